# lms_portal/schemas/grade_schemas.py
"""Pydantic schemas for grade aggregation, classification and CGPA."""
from typing import Any, Dict, List, Optional
from enum import Enum
from pydantic import Field, computed_field, field_validator, model_validator

from .base import PortalModel, BackendDocument
from ..core.exceptions import ConfigurationError


class GradeComponentType(str, Enum):
    ASSIGNMENT = "assignment"
    TEST = "test"
    EXAM = "exam"


class AssessmentWeights(PortalModel):
    """Percentage weights of a module's assessment methods; must total 100."""
    attendance: float = Field(default=5, ge=0, le=100)
    assignments: float = Field(default=15, ge=0, le=100)
    test: float = Field(default=10, ge=0, le=100)
    final_exam: float = Field(default=70, ge=0, le=100)

    @property
    def total(self) -> float:
        return self.attendance + self.assignments + self.test + self.final_exam

    @model_validator(mode='after')
    def validate_total(self):
        if abs(self.total - 100) > 1e-9:
            raise ConfigurationError(
                f"Assessment weights must total 100%, got {self.total:g}% "
                f"(attendance={self.attendance:g}, assignments={self.assignments:g}, "
                f"test={self.test:g}, finalExam={self.final_exam:g})"
            )
        return self


class ModuleGrade(PortalModel):
    """Points earned per component; the final grade is always derived."""
    attendance_grade: float = 0.0
    assignment_grade: float = 0.0
    test_grade: float = 0.0
    exam_grade: float = 0.0

    @computed_field
    @property
    def final_grade(self) -> float:
        return self.attendance_grade + self.assignment_grade + self.test_grade + self.exam_grade


class GradeClassification(PortalModel):
    percentage: Optional[float]
    letter: str
    grade_points: float
    clamped: bool = False
    original_percentage: Optional[float] = None


class CreditEntry(PortalModel):
    module_code: str
    module_name: Optional[str] = None
    credit_hours: float = Field(..., ge=0)
    final_grade: Optional[float] = None


class CGPAResult(PortalModel):
    cgpa: float
    total_credits: float
    earned_credits: float
    total_quality_points: float


class GradeStatistics(PortalModel):
    graded_count: int
    average: float
    highest: float
    lowest: float
    pass_rate: float
    distribution: Dict[str, int]


def _component_value(value: Any) -> Any:
    """Backend grade components arrive either bare or as {"grade": x, "comments": ...}."""
    if isinstance(value, dict):
        return value.get("grade")
    return value


class StudentGradeRecord(BackendDocument):
    """Raw component percentages for one student in one module, as stored by the backend."""
    student: Optional[Any] = None
    assignment: Optional[float] = Field(default=None, ge=0, le=100)
    test: Optional[float] = Field(default=None, ge=0, le=100)
    exam: Optional[float] = Field(default=None, ge=0, le=100)
    attendance_count: Optional[int] = Field(default=None, ge=0)
    final_grade: Optional[Any] = None

    @model_validator(mode='before')
    @classmethod
    def unwrap_components(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            if "assignment" not in data and "assignments" in data:
                data["assignment"] = data["assignments"]
            for key in ("assignment", "test", "exam"):
                if key in data:
                    data[key] = _component_value(data[key])
        return data

    @property
    def student_id(self) -> Optional[str]:
        if isinstance(self.student, dict):
            return self.student.get("_id") or self.student.get("id")
        return self.student


class GradeUpdate(PortalModel):
    grade: float = Field(..., ge=0, le=100, description="Raw component percentage")
    comments: Optional[str] = Field(default=None, max_length=1000)


class GradeImportRow(PortalModel):
    """One validated row of a grade import CSV."""
    student_id: str = Field(..., min_length=1)
    assignment: Optional[float] = Field(default=None, ge=0, le=100)
    test: Optional[float] = Field(default=None, ge=0, le=100)
    exam: Optional[float] = Field(default=None, ge=0, le=100)

    @field_validator('student_id', mode='before')
    @classmethod
    def coerce_student_id(cls, v):
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v).strip()


class StudentGradeRow(PortalModel):
    """One line of the lecturer grade sheet."""
    student_id: Optional[str] = None
    student_number: Optional[str] = None
    name: str = ""
    email: Optional[str] = None
    attendance_rate: float = 0.0
    raw_assignment: Optional[float] = None
    raw_test: Optional[float] = None
    raw_exam: Optional[float] = None
    grade: ModuleGrade
    classification: GradeClassification


class ModuleGradeSheet(PortalModel):
    module_id: str
    module_code: Optional[str] = None
    weights: AssessmentWeights
    rows: List[StudentGradeRow]
    statistics: GradeStatistics


class StudentModuleResult(PortalModel):
    module_id: Optional[str] = None
    module_code: str
    module_name: Optional[str] = None
    credit_hours: float
    attendance_rate: float
    assignment: Optional[float] = None
    test: Optional[float] = None
    exam: Optional[float] = None
    final_grade: Optional[float] = None
    letter: str
    grade_points: float
    quality_points: float


class StudentTranscript(PortalModel):
    modules: List[StudentModuleResult]
    summary: CGPAResult
    average_grade: Optional[float] = None
