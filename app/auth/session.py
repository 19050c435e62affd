"""
Bearer Token Sessions
Verifies JWT access tokens and hands handlers an explicit SessionContext
"""

import time
import uuid
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header

from app.config import get_config
from app.errors import ForbiddenError, UnauthorizedError

ROLES = {"admin", "teacher", "student"}

# Session blacklist (in-process until a shared store is wired in)
# Format: {jti: expiration_timestamp}
revoked_sessions: dict[str, float] = {}


class SessionContext:
    """
    Authenticated caller, passed explicitly to services
    """
    def __init__(self, payload: dict):
        self.user_id = payload["sub"]
        self.role = payload.get("role", "student")
        self.email = payload.get("email")
        self.token_id = payload.get("jti")
        self.expires_at = payload.get("exp")
        self.payload = payload

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(user_id: str, role: str, email: Optional[str] = None, expires_in: Optional[timedelta] = None) -> str:
    """
    Create access token with session tracking

    Args:
        user_id: Subject of the token
        role: admin, teacher or student
        email: Optional email claim
        expires_in: Lifetime override (defaults to TOKEN_EXPIRE_HOURS)

    Returns:
        str: JWT token
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    config = get_config()
    now = datetime.utcnow()
    expire = now + (expires_in if expires_in is not None else timedelta(hours=config.TOKEN_EXPIRE_HOURS))

    payload = {
        "jti": str(uuid.uuid4()),  # Unique token ID for revocation
        "iss": config.JWT_ISSUER,
        "aud": config.JWT_AUDIENCE,
        "sub": user_id,
        "role": role,
        "email": email,
        "exp": expire,
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_access_token(token: str) -> SessionContext:
    """
    Verify token signature, claims and revocation status

    Raises:
        UnauthorizedError: If token invalid, expired, or revoked
    """
    config = get_config()
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
            issuer=config.JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Authentication failed")

    if not payload.get("sub") or payload.get("role") not in ROLES:
        raise UnauthorizedError("Authentication failed")

    jti = payload.get("jti")
    if jti and _is_session_revoked(jti):
        raise UnauthorizedError("Session revoked")

    return SessionContext(payload)


def revoke_session(session: SessionContext) -> None:
    """Revoke a session (logout) until the token would have expired anyway"""
    if session.token_id and session.expires_at:
        revoked_sessions[session.token_id] = float(session.expires_at)
        _cleanup_revoked_sessions()


def _is_session_revoked(jti: str) -> bool:
    if jti in revoked_sessions:
        if revoked_sessions[jti] > time.time():
            return True
        del revoked_sessions[jti]
    return False


def _cleanup_revoked_sessions() -> None:
    now = time.time()
    expired = [jti for jti, exp in revoked_sessions.items() if exp <= now]
    for jti in expired:
        del revoked_sessions[jti]


# ==================== DEPENDENCY FUNCTIONS ====================

async def get_session(authorization: str = Header(None)) -> SessionContext:
    """
    FastAPI dependency for any authenticated route

    Usage:
        @router.get("/me")
        async def me(session: SessionContext = Depends(get_session)):
            return {"user_id": session.user_id}
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Authentication required")

    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise UnauthorizedError("Authentication required")

    return verify_access_token(token)


async def get_current_admin(session: SessionContext = Depends(get_session)) -> SessionContext:
    if not session.is_admin:
        raise ForbiddenError("Access denied. Admin privileges required.")
    return session


async def get_current_staff(session: SessionContext = Depends(get_session)) -> SessionContext:
    """Teachers and admins"""
    if session.role not in ("teacher", "admin"):
        raise ForbiddenError("Access denied. Teacher privileges required.")
    return session
