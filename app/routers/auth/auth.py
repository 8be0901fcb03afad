# app/routers/auth/auth.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_db
from app.schemas.auth_schemas import UserLogin, TokenResponse, UserOut, LogoutResponse
from app.services.auth_service import login, logout_user
from app.utils.get_user import get_current_user

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=TokenResponse)
async def login_route(data: UserLogin, db: AsyncSession = Depends(get_db)):
    return await login(db, data.email, data.password)


@router.get("/me", response_model=UserOut)
async def me_route(current_user=Depends(get_current_user)):
    return UserOut.model_validate(current_user)


@router.post("/logout", response_model=LogoutResponse)
async def logout_route(db: AsyncSession = Depends(get_db), current_user=Depends(get_current_user)):
    """
    Invalidates every access token issued to the caller so far.
    """
    return await logout_user(db, current_user)
