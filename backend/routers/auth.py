# routers/auth.py — Registration, login and token refresh
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES, AuthService, UserRegister, UserLogin, TokenResponse,
    RefreshRequest, get_current_user, CurrentUser,
)
from database import get_db_session
from models import User
from schemas import envelope, user_ref

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _build_token_response(user_obj: User) -> TokenResponse:
    """Issue an access/refresh pair for a user ORM instance"""
    access_token, refresh_token = AuthService.issue_tokens(user_obj)
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=user_ref(user_obj).model_dump(),
    )


@router.post("/register", status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user account"""
    user = await AuthService.register_user(user_data, db)
    return envelope(_build_token_response(user), "User registered successfully")


@router.post("/login")
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive tokens"""
    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return envelope(_build_token_response(user), "Login successful")


@router.post("/refresh")
async def refresh_token(
    refresh_req: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Exchange a refresh token for a new token pair"""
    payload = AuthService.verify_token(refresh_req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token type. Expected refresh token.")

    result = await db.execute(select(User).where(User.id == payload.get("sub")))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return envelope(_build_token_response(user))


@router.get("/me")
async def me(user: CurrentUser = Depends(get_current_user)):
    return envelope(user)
