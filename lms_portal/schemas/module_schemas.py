# lms_portal/schemas/module_schemas.py
"""Pydantic schemas for modules and enrolment."""
from typing import Any, List, Optional
from pydantic import EmailStr, Field, field_validator

from .base import PortalModel, BackendDocument
from .grade_schemas import AssessmentWeights


class ModuleBase(PortalModel):
    code: str = Field(..., min_length=1, max_length=20, description="Module code")
    name: str = Field(..., min_length=1, max_length=200, description="Module name")
    description: Optional[str] = Field(default=None, max_length=2000)
    credit_hours: float = Field(..., ge=0, le=60, description="Credit hours")
    level: Optional[int] = Field(default=None, ge=1, le=10)
    assessment_weights: AssessmentWeights = Field(default_factory=AssessmentWeights)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()


class ModuleCreate(ModuleBase):
    """Schema for creating a new module"""
    pass


class ModuleUpdate(PortalModel):
    """Schema for updating a module - all fields optional"""
    code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    credit_hours: Optional[float] = Field(default=None, ge=0, le=60)
    level: Optional[int] = Field(default=None, ge=1, le=10)
    assessment_weights: Optional[AssessmentWeights] = None

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper() if v is not None else v


class Module(BackendDocument):
    code: str
    name: str
    description: Optional[str] = None
    credit_hours: float = 0
    level: Optional[int] = None
    total_sessions: Optional[int] = None
    assessment_weights: AssessmentWeights = Field(default_factory=AssessmentWeights)
    enrolled_students: List[Any] = Field(default_factory=list)

    @property
    def enrolled_count(self) -> int:
        return len(self.enrolled_students)


class Student(BackendDocument):
    student_id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class EnrollmentRequest(PortalModel):
    students: List[str] = Field(..., min_length=1, description="Backend ids of students to enrol")


class EnrollmentTemplateRow(PortalModel):
    student_id: str
    first_name: str
    last_name: str
    email: EmailStr

    @field_validator('student_id', mode='before')
    @classmethod
    def coerce_student_id(cls, v):
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v).strip()
