"""
Authentication utilities: Password hashing and JWT token management
"""

import jwt
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from typing import Optional

from config.settings import get_settings

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto"
)

# JWT configuration
ALGORITHM = "HS256"
SESSION_TTL = timedelta(days=7)
VERIFY_TTL = timedelta(days=2)

PURPOSE_SESSION = "session"
PURPOSE_VERIFY = "verify"


def hash_password(password: str) -> str:
    """Hash a password using argon2"""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Verify a password against its hash. Users created by checkout have none."""
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def _secret() -> str:
    secret = get_settings().jwt_secret_key
    if not secret:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot create or decode JWT tokens.")
    return secret


def create_jwt(user_id: str, purpose: str = PURPOSE_SESSION, ttl: timedelta = SESSION_TTL) -> str:
    """Create a JWT token for a user"""
    payload = {
        "sub": user_id,
        "purpose": purpose,
        "exp": datetime.now(timezone.utc) + ttl,
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def decode_jwt(token: str, purpose: str = PURPOSE_SESSION) -> Optional[dict]:
    """Decode a JWT token. Returns None if invalid, expired or minted for another purpose."""
    try:
        payload = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if payload.get("purpose", PURPOSE_SESSION) != purpose:
        return None
    return payload
