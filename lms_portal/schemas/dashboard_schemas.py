# lms_portal/schemas/dashboard_schemas.py
from typing import List, Optional

from .base import PortalModel
from .grade_schemas import CGPAResult, StudentModuleResult


class ModuleAttendanceOverview(PortalModel):
    module_id: Optional[str] = None
    module_code: str
    module_name: Optional[str] = None
    enrolled_students: int
    sessions: int = 0
    average_attendance: float = 0.0
    available: bool = True


class LecturerDashboard(PortalModel):
    active_modules: int
    total_students: int
    average_attendance: float
    modules: List[ModuleAttendanceOverview]


class StudentDashboard(PortalModel):
    enrolled_modules: int
    average_attendance: float
    average_grade: Optional[float] = None
    summary: CGPAResult
    modules: List[StudentModuleResult]
