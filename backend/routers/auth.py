# routers/auth.py — Registration, login and the current user
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, TokenResponse,
    get_current_user, CurrentUser, ACCESS_TOKEN_EXPIRE_MINUTES,
)
from database import get_db_session
from exceptions import AuthenticationError

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _build_token_response(user_obj) -> TokenResponse:
    """Build token response from a user ORM instance"""
    access_token = AuthService.create_access_token({"sub": user_obj.id, "email": user_obj.email})
    return TokenResponse(
        access_token=access_token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user={
            "id": user_obj.id,
            "email": user_obj.email,
            "display_name": user_obj.display_name or "",
            "avatar_url": user_obj.avatar_url,
        },
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user account"""
    user = await AuthService.register_user(user_data, db)
    return _build_token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive an access token"""
    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    if not user:
        raise AuthenticationError("Invalid credentials")
    return _build_token_response(user)


@router.get("/me")
async def get_current_user_info(user: CurrentUser = Depends(get_current_user)):
    """Get current authenticated user information"""
    return {"success": True, "user": user.model_dump()}
