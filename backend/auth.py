# auth.py — Bearer-token identity for the Taskboard API
# Features:
# - JWT access tokens (HS256) carrying the user id as "sub"
# - bcrypt password hashing
# - Password policy enforcement
# - FastAPI dependency resolving the calling user on every request

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from exceptions import AuthenticationError, ValidationError
from models import User

logger = logging.getLogger("taskboard.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set. Generated ephemeral key; tokens will not survive a restart."
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
MIN_PASSWORD_LENGTH = 8

# auto_error=False so a missing header maps to 401 instead of Starlette's 403
security = HTTPBearer(auto_error=False)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str
    display_name: str = ""

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one digit")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class CurrentUser(BaseModel):
    id: str
    email: str
    display_name: str
    avatar_url: Optional[str] = None

    @property
    def name(self) -> str:
        return self.display_name or self.email


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Password hashing, token issuance and verification"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except JWTError:
            raise AuthenticationError("Invalid token")
        if payload.get("type") != "access" or not payload.get("sub"):
            raise AuthenticationError("Invalid token")
        return payload

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        stmt = select(User).where(User.email == user_data.email)
        result = await db.execute(stmt)
        if result.scalar_one_or_none():
            raise ValidationError(
                "User already exists",
                errors=[{"loc": ["body", "email"], "msg": "Email already registered", "type": "duplicate"}],
            )

        new_user = User(
            email=user_data.email,
            display_name=user_data.display_name or user_data.email.split("@")[0],
            password_hash=AuthService.hash_password(user_data.password),
            preferences={},
            is_active=True,
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        logger.info(f"User registered: {new_user.id[:8]}")
        return new_user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            return None
        if not user.is_active:
            return None
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = AuthService.verify_token(credentials.credentials)

    stmt = select(User).where(User.id == payload["sub"])
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return CurrentUser(
        id=user.id,
        email=user.email,
        display_name=user.display_name or "",
        avatar_url=user.avatar_url,
    )
