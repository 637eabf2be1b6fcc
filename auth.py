"""
Authentication routes and dependencies
"""

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import (
    PURPOSE_VERIFY,
    SESSION_TTL,
    VERIFY_TTL,
    create_jwt,
    decode_jwt,
    hash_password,
    verify_password,
)
from config.settings import Settings, get_settings
from crud.user import UserRepository
from database import get_db
from database_models import User
from dependencies import get_email_service
from services.email_service import EmailService
from services.email_templates import WELCOME_VERIFY
from utils.security_utils import validate_email, validate_password_strength

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

AUTH_COOKIE = "auth_token"


# Request models
class SignupRequest(BaseModel):
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


def _session_response(user: User) -> JSONResponse:
    token = create_jwt(str(user.id))
    response = JSONResponse(content={"ok": True, "user_id": str(user.id)})
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=int(SESSION_TTL.total_seconds()),
    )
    return response


def has_paid_access(user: Optional[User]) -> bool:
    """
    Paid data is only served to a verified owner of the email. A checkout-created
    record can be claimed by anyone who signs up with its address, so its
    entitlement stays dormant until the verification link is followed.
    """
    return bool(user and user.is_paid and user.email_verified)


def _user_info(user: User) -> dict:
    return {
        "user_id": str(user.id),
        "email": user.email,
        "email_verified": user.email_verified,
        "is_paid": user.is_paid,
        "subscription_tier": user.subscription_tier,
        "has_paid_access": has_paid_access(user),
        "is_active": user.is_active,
    }


@auth_router.post("/signup")
async def signup(
    request: SignupRequest,
    db: AsyncSession = Depends(get_db),
    mailer: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
):
    """
    Create a new user account and send the welcome / verify email.

    An email that only exists because it went through checkout has no password
    yet; signing up with it claims that record and keeps its entitlement.
    """
    if not validate_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    try:
        validate_password_strength(request.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    user_repo = UserRepository(db)
    existing_user = await user_repo.get_user_by_email(request.email)
    if existing_user and existing_user.hashed_password:
        raise HTTPException(status_code=400, detail="Email already registered")

    password_hash = hash_password(request.password)
    if existing_user:
        user = await user_repo.update_user(existing_user, {"hashed_password": password_hash})
    else:
        user = await user_repo.create_user({"email": request.email, "hashed_password": password_hash})
    await db.commit()

    verify_token = create_jwt(str(user.id), purpose=PURPOSE_VERIFY, ttl=VERIFY_TTL)
    await mailer.send(
        user.email,
        WELCOME_VERIFY,
        {"verification_link": f"{settings.app_url}/auth/verify?token={verify_token}"},
    )

    return _session_response(user)


@auth_router.get("/verify")
async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
    """Confirm an email address from the link in the welcome email"""
    payload = decode_jwt(token, purpose=PURPOSE_VERIFY)
    if not payload:
        raise HTTPException(status_code=400, detail="Invalid or expired verification link")

    user_repo = UserRepository(db)
    user = await user_repo.get_user_by_id(int(payload["sub"]))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    await user_repo.update_user(user, {"email_verified": True})
    return {"ok": True, "email": user.email}


@auth_router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login and get JWT token"""
    user = await UserRepository(db).get_user_by_email(request.email)
    if not user or not verify_password(request.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")

    return _session_response(user)


@auth_router.post("/logout")
async def logout():
    """Logout and clear auth token cookie"""
    response = JSONResponse(content={"ok": True, "message": "Logged out successfully"})
    response.set_cookie(
        key=AUTH_COOKIE,
        value="",
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=0,
    )
    return response


def _extract_token(auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # Cookie first (browser), then Bearer header (API consumers)
    if auth_token:
        return auth_token
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip()
    return None


async def _user_from_token(token: str, db: AsyncSession) -> User:
    payload = decode_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid user ID in token")

    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")
    return user


# Dependency for protected routes
async def get_current_user(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticated user, or 401."""
    token = _extract_token(auth_token, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")
    return await _user_from_token(token, db)


async def get_optional_user(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Authenticated user, or None for anonymous visitors."""
    token = _extract_token(auth_token, authorization)
    if not token:
        return None
    return await _user_from_token(token, db)


@auth_router.get("/me")
async def get_current_user_info(user: User = Depends(get_current_user)):
    """Get current user information from JWT token"""
    return {"ok": True, **_user_info(user)}
