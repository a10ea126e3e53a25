"""
Supabase authentication.

Access tokens are verified locally with the project's JWT secret; account
operations (sign-up, login, logout, password reset, admin deletion) are
forwarded to the Supabase auth REST API.
"""

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from typing import Any, Dict, Optional
import httpx
import jwt
import logging

from config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    access_token: Optional[str] = None

class AuthServiceError(Exception):
    """Error response from the Supabase auth API."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify a Supabase access token and return its claims."""
    if not settings.SUPABASE_JWT_SECRET:
        raise jwt.InvalidTokenError("SUPABASE_JWT_SECRET not configured")
    return jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=["HS256"],
        audience="authenticated",
        options={"require": ["exp", "sub"]},
    )

def _user_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[CurrentUser]:
    if credentials is None or not credentials.credentials:
        return None
    try:
        claims = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected access token: {e}")
        return None
    return CurrentUser(id=claims["sub"], email=claims.get("email"), access_token=credentials.credentials)

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Dependency: the authenticated user, or 401."""
    user = _user_from_credentials(credentials)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user

async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[CurrentUser]:
    """Dependency: the authenticated user, or None."""
    return _user_from_credentials(credentials)

# ============================================
# SUPABASE AUTH API
# ============================================

def _headers(bearer: Optional[str] = None, service: bool = False) -> Dict[str, str]:
    key = settings.SUPABASE_SERVICE_ROLE_KEY if service else settings.SUPABASE_ANON_KEY
    return {
        "apikey": key,
        "Authorization": f"Bearer {bearer or key}",
        "Content-Type": "application/json",
    }

async def _forward(method: str, path: str, headers: Dict[str, str], json_body: Optional[Dict] = None, params: Optional[Dict] = None) -> Dict[str, Any]:
    if not settings.SUPABASE_URL:
        raise AuthServiceError("SUPABASE_URL not configured", status_code=500)

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            response = await client.request(
                method,
                settings.supabase_auth_url(path),
                headers=headers,
                json=json_body,
                params=params,
            )
        except httpx.RequestError as e:
            raise AuthServiceError(f"Auth service unavailable: {e}", status_code=503) from e

    if response.status_code >= 400:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        message = (
            payload.get("error_description")
            or payload.get("msg")
            or payload.get("message")
            or payload.get("error")
            or response.text
        )
        raise AuthServiceError(message, status_code=response.status_code)

    if not response.content:
        return {}
    return response.json()

async def sign_up(email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return await _forward(
        "POST", "signup", _headers(),
        {"email": email, "password": password, "data": metadata or {}},
    )

async def sign_in(email: str, password: str) -> Dict[str, Any]:
    return await _forward(
        "POST", "token", _headers(),
        {"email": email, "password": password},
        params={"grant_type": "password"},
    )

async def sign_out(access_token: str) -> Dict[str, Any]:
    return await _forward("POST", "logout", _headers(bearer=access_token))

async def send_password_reset(email: str) -> Dict[str, Any]:
    return await _forward(
        "POST", "recover", _headers(),
        {"email": email},
        params={"redirect_to": f"{settings.APP_URL.rstrip('/')}/auth/reset-password/confirm"},
    )

async def get_auth_user(access_token: str) -> Dict[str, Any]:
    return await _forward("GET", "user", _headers(bearer=access_token))

async def delete_auth_user(user_id: str) -> bool:
    """Admin delete of the auth user. Returns False when no service role key is configured."""
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        return False
    await _forward("DELETE", f"admin/users/{user_id}", _headers(service=True))
    return True
