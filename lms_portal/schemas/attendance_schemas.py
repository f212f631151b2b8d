# lms_portal/schemas/attendance_schemas.py
"""Pydantic schemas for attendance sessions, records and QR payloads."""
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from enum import Enum
from pydantic import Field, model_validator

from .base import PortalModel, BackendDocument


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"


class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class AttendanceRecord(PortalModel):
    """A single student's mark in one session."""
    date: Optional[datetime] = None
    status: AttendanceStatus
    time_marked: Optional[datetime] = None
    student: Optional[Any] = None

    @property
    def student_id(self) -> Optional[str]:
        if isinstance(self.student, dict):
            return self.student.get("_id") or self.student.get("id")
        return self.student


class AttendanceSession(BackendDocument):
    module: Optional[Any] = None
    date: Optional[datetime] = None
    start_time: Optional[str] = None
    status: SessionStatus = SessionStatus.PENDING
    students: List[AttendanceRecord] = Field(default_factory=list)

    @model_validator(mode='after')
    def stamp_record_dates(self):
        for record in self.students:
            if record.date is None:
                record.date = self.date
        return self


class AttendanceSummary(PortalModel):
    present: int = Field(default=0, ge=0)
    late: int = Field(default=0, ge=0)
    absent: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)


class StudentAttendanceView(PortalModel):
    module_id: str
    summary: AttendanceSummary
    attendance_rate: float
    attendance_score: float
    records: List[AttendanceRecord]


class SessionCreate(PortalModel):
    module_id: str = Field(..., validation_alias='module', serialization_alias='module')
    date: date
    start_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")

    model_config = {'populate_by_name': True}


class StatusUpdate(PortalModel):
    status: SessionStatus


class AttendanceMark(PortalModel):
    status: AttendanceStatus


class BulkAttendanceEntry(PortalModel):
    student_id: str = Field(..., validation_alias='student', serialization_alias='student')
    status: AttendanceStatus

    model_config = {'populate_by_name': True}


class QRPayload(PortalModel):
    """Payload encoded in the session QR code. The token is opaque to the portal."""
    attendance_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = None


class QRScan(PortalModel):
    qr_data: str = Field(..., min_length=1, description="Raw text read from the QR code")


class QRDisplay(PortalModel):
    payload: QRPayload
    qr_data: str
    image_base64: str
    refresh_seconds: int


class ModuleAttendanceStats(PortalModel):
    module_id: str
    sessions: int
    summary: AttendanceSummary
    average_attendance: float
    per_student: Dict[str, AttendanceSummary] = Field(default_factory=dict)
