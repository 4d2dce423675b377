# routers/auth.py — Registration, login and self-service account endpoints
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, TokenResponse, ProfileUpdate,
    PasswordChange, AccountDelete, get_current_user, CurrentUser, user_to_dict,
)
from database import get_db_session

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user account"""
    user = await AuthService.register_user(user_data, db)
    return AuthService.issue_token(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive an access token"""
    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    return AuthService.issue_token(user)


@router.get("/me")
async def get_me(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    profile = await AuthService.get_profile(user.id, db)
    return user_to_dict(profile)


@router.patch("/me")
async def update_me(
    data: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    profile = await AuthService.update_profile(user.id, data, db)
    return user_to_dict(profile)


@router.post("/change-password")
async def change_password(
    data: PasswordChange,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await AuthService.change_password(user.id, data, db)
    return {"status": "password_changed"}


@router.delete("/me")
async def delete_me(
    data: AccountDelete,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Permanently delete the caller's account"""
    await AuthService.delete_account(user.id, data.password, db)
    return {"status": "deleted"}
