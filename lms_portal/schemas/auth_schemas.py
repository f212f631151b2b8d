# lms_portal/schemas/auth_schemas.py
"""Pydantic schemas for authentication and the session context."""
from typing import Optional
from datetime import datetime
from enum import Enum
from pydantic import EmailStr, Field

from .base import PortalModel, BackendDocument


class UserRole(str, Enum):
    STUDENT = "student"
    LECTURER = "lecturer"


class LoginRequest(PortalModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(PortalModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.STUDENT
    student_id: Optional[str] = Field(default=None, max_length=50)


class User(BackendDocument):
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.STUDENT
    student_id: Optional[str] = None


class ProfileUpdate(PortalModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None


class PasswordUpdate(PortalModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class SessionInfo(PortalModel):
    token: str
    user: User
    created_at: datetime
    expires_at: datetime
