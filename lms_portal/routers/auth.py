from fastapi import APIRouter, Depends
import logging

from ..core.dependencies import get_bearer_token, get_lms_client, get_session_context, get_session_manager
from ..schemas.auth_schemas import (
    LoginRequest, PasswordUpdate, ProfileUpdate, RegisterRequest, SessionInfo, User
)
from ..services.lms_client import LMSClient
from ..services.session_service import SessionContext, SessionManager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

@router.post("/login", response_model=SessionInfo)
async def login(
    credentials: LoginRequest,
    manager: SessionManager = Depends(get_session_manager)
):
    """Authenticate against the LMS backend and open a portal session"""
    context = await manager.login(credentials.email, credentials.password)
    return context.info()

@router.post("/register", response_model=dict)
async def register(
    user_data: RegisterRequest,
    manager: SessionManager = Depends(get_session_manager)
):
    """Create an account; the response carries a session when the backend logs the user in"""
    context = await manager.register(user_data.model_dump(mode="json", by_alias=True, exclude_none=True))
    return {
        "message": "Registration successful",
        "session": context.info().model_dump(mode="json", by_alias=True) if context else None
    }

@router.post("/logout", response_model=dict)
async def logout(
    token: str = Depends(get_bearer_token),
    manager: SessionManager = Depends(get_session_manager)
):
    closed = manager.logout(token)
    return {"message": "Logged out successfully", "session_closed": closed}

@router.get("/me", response_model=User)
async def get_me(context: SessionContext = Depends(get_session_context)):
    """Current user of the session"""
    return context.user

@router.put("/profile", response_model=User)
async def update_profile(
    profile: ProfileUpdate,
    context: SessionContext = Depends(get_session_context),
    client: LMSClient = Depends(get_lms_client),
    manager: SessionManager = Depends(get_session_manager)
):
    updated = await client.update_profile(context.token, profile.model_dump(mode="json", by_alias=True, exclude_none=True))
    if isinstance(updated, dict):
        manager.refresh_user(context, updated)
    return context.user

@router.put("/password", response_model=dict)
async def update_password(
    passwords: PasswordUpdate,
    context: SessionContext = Depends(get_session_context),
    client: LMSClient = Depends(get_lms_client)
):
    await client.update_password(context.token, passwords.model_dump(by_alias=True))
    logger.info(f"Password changed for {context.user.email}")
    return {"message": "Password updated successfully"}
