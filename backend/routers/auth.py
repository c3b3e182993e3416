"""
Auth API endpoints.

Exchanges the dashboard login for a session token.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional

from services.auth import (
    check_credentials,
    create_session_token,
    require_session,
    safe_redirect,
)

router = APIRouter()


class LoginRequest(BaseModel):
    """Request body for logging in."""
    username: str
    password: str
    next: Optional[str] = None


@router.post("/login")
async def login(request: LoginRequest):
    """Check the login and issue a session token."""
    if not check_credentials(request.username, request.password):
        raise HTTPException(status_code=401, detail="Usuario o contraseña incorrectos")

    try:
        token = create_session_token(request.username)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))

    print(f"[Auth] Login for {request.username}")
    return {
        "access_token": token,
        "token_type": "bearer",
        "redirect": safe_redirect(request.next),
    }


@router.get("/me")
async def me(username: str = Depends(require_session)):
    """The logged-in user."""
    return {"username": username}
