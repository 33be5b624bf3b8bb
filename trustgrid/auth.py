"""
TrustGrid - Authentication
Bearer JWT (or access_token cookie) resolved to an owner profile.

Sign-in itself happens at the identity provider; this module only issues
and checks the session token that the dashboard sends back.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, Request, Depends
from pydantic import BaseModel
import jwt

from trustgrid.config import settings
from trustgrid.accounts.profiles import Profile, ProfileStore
from trustgrid.deps import get_profile_store

JWT_ALGORITHM = "HS256"


class TokenData(BaseModel):
    user_id: str
    email: Optional[str] = None


# ===========================================
# JWT Token Helpers
# ===========================================

def create_access_token(user_id: str, email: Optional[str] = None) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "email": email,
        "exp": now + timedelta(days=settings.JWT_EXPIRY_DAYS),
        "iat": now,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[TokenData]:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id:
        return None
    return TokenData(user_id=str(user_id), email=payload.get("email"))


def _request_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return request.cookies.get("access_token")


# ===========================================
# Auth Dependency
# ===========================================

async def get_current_user(
    request: Request,
    profiles: ProfileStore = Depends(get_profile_store),
) -> Optional[Profile]:
    """
    Owner profile for the request's token, or None.
    A valid token with no profile yet gets a bare one created, so the
    first dashboard visit works before settings are saved.
    """
    token = _request_token(request)
    if not token:
        return None

    token_data = decode_access_token(token)
    if not token_data:
        return None

    profile = profiles.get_by_id(token_data.user_id)
    if profile is None:
        profile = profiles.upsert(Profile(id=token_data.user_id, email=token_data.email))
    return profile


async def require_auth(user: Optional[Profile] = Depends(get_current_user)) -> Profile:
    """Require authentication - raises 401 if not logged in."""
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
