from fastapi import APIRouter, Depends
from panel.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse, CurrentUserResponse
)
from panel.modules.auth.service import AuthService
from panel.core.dependencies import get_auth_service, get_bearer_token, get_current_user
from panel.core.errors import UnauthenticatedError
from typing import Dict, Optional

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: Optional[str] = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service)
):
    """End the Supabase session"""
    if token is None:
        raise UnauthenticatedError()
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(current_user: Dict = Depends(get_current_user)):
    """Identity of the caller. Permissions live at /auth/permissions."""
    return current_user
