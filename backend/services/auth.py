"""
Session authentication for the dashboard and API.

One shared dashboard login (username/password from the environment). A
successful login issues a signed HS256 session token; every data endpoint
requires it as a Bearer token.
"""

import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from dotenv import load_dotenv
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

load_dotenv()

DEFAULT_REDIRECT = "/clients"
ALGORITHM = "HS256"

_bearer = HTTPBearer(auto_error=False)


def _settings() -> dict:
    """Read auth settings from the environment on each call."""
    return {
        "username": os.environ.get("DASHBOARD_USERNAME", ""),
        "password": os.environ.get("DASHBOARD_PASSWORD", ""),
        "secret": os.environ.get("SESSION_SECRET", ""),
        "ttl_hours": float(os.environ.get("SESSION_TTL_HOURS", "168")),
    }


def check_credentials(username: str, password: str) -> bool:
    """Compare against the configured login in constant time."""
    settings = _settings()
    if not settings["username"] or not settings["password"]:
        print("[Auth] DASHBOARD_USERNAME / DASHBOARD_PASSWORD not set, login disabled")
        return False

    user_ok = hmac.compare_digest((username or "").encode(), settings["username"].encode())
    pass_ok = hmac.compare_digest((password or "").encode(), settings["password"].encode())
    return user_ok and pass_ok


def _secret() -> str:
    secret = _settings()["secret"]
    if not secret:
        raise ValueError("Missing credentials: SESSION_SECRET")
    return secret


def create_session_token(username: str, now: Optional[datetime] = None) -> str:
    """Signed session token valid for SESSION_TTL_HOURS."""
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": username,
        "iat": now,
        "exp": now + timedelta(hours=_settings()["ttl_hours"]),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def verify_session_token(token: str) -> Optional[str]:
    """
    Validate a session token.

    Returns:
        The username, or None if the token is missing, expired or forged
    """
    if not token:
        return None
    try:
        secret = _secret()
    except ValueError as e:
        print(f"[Auth] Cannot verify session: {e}")
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        print("[Auth] Session expired")
        return None
    except jwt.InvalidTokenError as e:
        print(f"[Auth] Invalid session token: {e}")
        return None
    return payload.get("sub")


def safe_redirect(path: Optional[str]) -> str:
    """Only same-site absolute paths are honoured after login."""
    if not path or not path.startswith("/") or path.startswith("//") or "\\" in path:
        return DEFAULT_REDIRECT
    return path


def require_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> str:
    """FastAPI dependency: the logged-in username, or 401."""
    username = verify_session_token(credentials.credentials) if credentials else None
    if not username:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return username
