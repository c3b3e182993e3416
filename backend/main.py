"""
Perfo Ads Monitor API

FastAPI backend for the agency Meta Ads / Google Ads performance dashboard.
Exposes account metrics, client dashboards, goals and display preferences.
"""

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import sys
import os
from pathlib import Path

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent))

from routers import auth, clients, goals, metrics, preferences
from services.auth import require_session


def get_allowed_origins():
    """Get CORS allowed origins from environment or defaults."""
    custom_origins = os.environ.get("CORS_ORIGINS", "")

    # Default origins for development (Streamlit and local frontends)
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8501",
    ]

    # Add custom origins if provided (comma-separated)
    if custom_origins:
        origins.extend([o.strip() for o in custom_origins.split(",") if o.strip()])

    frontend_url = os.environ.get("FRONTEND_URL")
    if frontend_url:
        origins.append(frontend_url)

    return origins


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    print("Starting Perfo Ads Monitor API...")
    print(f"CORS allowed origins: {get_allowed_origins()}")
    if not os.environ.get("SESSION_SECRET"):
        print("[Auth] SESSION_SECRET not set - logins will fail")
    yield
    print("Shutting down...")


app = FastAPI(
    title="Perfo Ads Monitor API",
    description="Backend API for the Meta Ads / Google Ads performance dashboard",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Every data router requires a session
protected = [Depends(require_session)]

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(metrics.router, prefix="/api/metrics", tags=["Metrics"], dependencies=protected)
app.include_router(clients.router, prefix="/api/clients", tags=["Clients"], dependencies=protected)
app.include_router(goals.router, prefix="/api/goals", tags=["Goals"], dependencies=protected)
app.include_router(preferences.router, prefix="/api/preferences", tags=["Preferences"], dependencies=protected)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "healthy", "service": "Perfo Ads Monitor API"}


@app.get("/api/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "endpoints": [
            "/api/auth",
            "/api/metrics",
            "/api/clients",
            "/api/goals",
            "/api/preferences",
        ]
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
