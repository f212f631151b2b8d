# lms_portal/core/dependencies.py
"""FastAPI dependencies handing the backend client and session context to routers."""
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional

from .exceptions import AccessDeniedError, AuthenticationError
from ..services.lms_client import LMSClient
from ..services.session_service import SessionContext, SessionManager

bearer_scheme = HTTPBearer(auto_error=False)


def get_lms_client(request: Request) -> LMSClient:
    return request.app.state.lms_client


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    return credentials.credentials


async def get_session_context(
    token: str = Depends(get_bearer_token),
    manager: SessionManager = Depends(get_session_manager)
) -> SessionContext:
    """Live session for the bearer token; unknown tokens from an earlier process are resumed via /auth/me, revoked ones never are"""
    if manager.is_revoked(token):
        raise AuthenticationError()
    context = manager.get(token)
    if context is None:
        context = await manager.resume(token)
    return context


async def require_lecturer(context: SessionContext = Depends(get_session_context)) -> SessionContext:
    if not context.is_lecturer:
        raise AccessDeniedError("Lecturer access required")
    return context


async def require_student(context: SessionContext = Depends(get_session_context)) -> SessionContext:
    if not context.is_student:
        raise AccessDeniedError("Student access required")
    return context
