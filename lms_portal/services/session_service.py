# lms_portal/services/session_service.py
"""Explicit login/logout lifecycle for portal users."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Set

from ..core.config import settings
from ..core.exceptions import AuthenticationError
from ..schemas.auth_schemas import SessionInfo, User, UserRole
from .lms_client import LMSClient, unwrap

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Everything a surface needs to act on behalf of the logged-in user."""
    token: str
    user: User
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    @property
    def is_lecturer(self) -> bool:
        return self.user.role == UserRole.LECTURER

    @property
    def is_student(self) -> bool:
        return self.user.role == UserRole.STUDENT

    def info(self) -> SessionInfo:
        return SessionInfo(
            token=self.token, user=self.user, created_at=self.created_at, expires_at=self.expires_at
        )


class SessionManager:
    """Owns every live SessionContext, keyed by the backend bearer token."""

    def __init__(self, client: LMSClient, ttl_minutes: Optional[int] = None):
        self.client = client
        self.ttl = timedelta(minutes=ttl_minutes or settings.session_ttl_minutes)
        self._sessions: Dict[str, SessionContext] = {}
        # Tokens that were logged out or expired; never resumed
        self._revoked: Set[str] = set()
        client.on_unauthorized = self.invalidate

    def _open(self, token: str, user: User) -> SessionContext:
        now = datetime.now(timezone.utc)
        context = SessionContext(token=token, user=user, created_at=now, expires_at=now + self.ttl)
        self._revoked.discard(token)
        self._sessions[token] = context
        return context

    async def login(self, email: str, password: str) -> SessionContext:
        data = await self.client.login(email, password)
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Login response did not include a token")
        user_data = data.get("user") or unwrap(data)
        context = self._open(token, User.model_validate(user_data))
        logger.info(f"User {context.user.email} logged in as {context.user.role.value}")
        return context

    async def register(self, user_data: Dict[str, Any]) -> Optional[SessionContext]:
        """Create the account; opens a session when the backend returns a token with it."""
        data = await self.client.register(user_data)
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            logger.info(f"Registered {user_data.get('email')} without an auto-login token")
            return None
        context = self._open(token, User.model_validate(data.get("user") or unwrap(data)))
        logger.info(f"User {context.user.email} registered as {context.user.role.value}")
        return context

    def refresh_user(self, context: SessionContext, user_data: Dict[str, Any]) -> SessionContext:
        context.user = User.model_validate(user_data)
        return context

    async def resume(self, token: str) -> SessionContext:
        """Rebuild a context for a token issued before this portal process started."""
        user_data = await self.client.current_user(token)
        context = self._open(token, User.model_validate(user_data))
        logger.info(f"Resumed session for {context.user.email}")
        return context

    def get(self, token: str) -> Optional[SessionContext]:
        context = self._sessions.get(token)
        if context is None:
            return None
        if context.is_expired():
            logger.info(f"Session for {context.user.email} expired")
            self.invalidate(token)
            raise AuthenticationError()
        return context

    def logout(self, token: str) -> bool:
        context = self._sessions.pop(token, None)
        self._revoked.add(token)
        if context:
            logger.info(f"User {context.user.email} logged out")
        return context is not None

    def invalidate(self, token: str):
        self._sessions.pop(token, None)
        self._revoked.add(token)

    def is_revoked(self, token: str) -> bool:
        return token in self._revoked

    def purge_expired(self) -> int:
        now = datetime.now(timezone.utc)
        expired = [token for token, context in self._sessions.items() if context.is_expired(now)]
        for token in expired:
            del self._sessions[token]
            self._revoked.add(token)
        return len(expired)

    def close(self):
        count = len(self._sessions)
        self._sessions.clear()
        self._revoked.clear()
        logger.info(f"Closed {count} portal sessions")

    def __len__(self):
        return len(self._sessions)
