# lms_portal/services/attendance_service.py
from typing import Dict, List, Optional
import asyncio
import logging

from ..core.config import settings
from ..core.exceptions import BackendError, InvalidSessionTransition, SessionClosedError, ValidationException
from ..schemas.attendance_schemas import (
    AttendanceRecord, AttendanceSession, AttendanceStatus, AttendanceSummary, BulkAttendanceEntry,
    ModuleAttendanceStats, QRDisplay, SessionCreate, SessionStatus, StudentAttendanceView
)
from ..schemas.module_schemas import Module, Student
from . import grading, qr_service
from .csv_processor import CSVProcessor
from .lms_client import LMSClient
from .session_service import SessionContext

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    SessionStatus.PENDING: {SessionStatus.ACTIVE},
    SessionStatus.ACTIVE: {SessionStatus.COMPLETED},
    SessionStatus.COMPLETED: set(),
}


def check_transition(current: SessionStatus, target: SessionStatus) -> bool:
    """True when the status has to change, False for a same-state no-op."""
    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidSessionTransition(current.value, target.value)
    return True


def ensure_editable(session: AttendanceSession):
    if session.status == SessionStatus.COMPLETED:
        raise SessionClosedError(session.id or "unknown")


def over_sessions(summary: Optional[AttendanceSummary], session_count: int) -> AttendanceSummary:
    """Rate attendance against every session held, not only the ones a student was marked in."""
    summary = summary or AttendanceSummary()
    return summary.model_copy(update={"total": max(summary.total, session_count)})


def summarize_by_student(sessions: List[AttendanceSession]) -> Dict[str, AttendanceSummary]:
    records: Dict[str, List[AttendanceRecord]] = {}
    for session in sessions:
        for record in session.students:
            if record.student_id:
                records.setdefault(record.student_id, []).append(record)
    return {student_id: grading.summarize_attendance(marks) for student_id, marks in records.items()}


class AttendanceService:
    def __init__(self, client: LMSClient, context: SessionContext):
        self.client = client
        self.context = context

    @property
    def token(self) -> str:
        return self.context.token

    async def create_session(self, session_data: SessionCreate) -> AttendanceSession:
        """Create an attendance session for a module"""
        payload = session_data.model_dump(mode="json", by_alias=True, exclude_none=True)
        created = await self.client.create_session(self.token, payload)
        session = AttendanceSession.model_validate(created)
        logger.info(f"Attendance session {session.id} created for module {session_data.module_id}")
        return session

    async def get_session(self, attendance_id: str) -> AttendanceSession:
        return AttendanceSession.model_validate(await self.client.get_session(self.token, attendance_id))

    async def module_sessions(self, module_id: str) -> List[AttendanceSession]:
        sessions = await self.client.module_sessions(self.token, module_id)
        return [AttendanceSession.model_validate(s) for s in sessions]

    async def today_session(self, module_id: str) -> Optional[AttendanceSession]:
        session = await self.client.today_session(self.token, module_id)
        return AttendanceSession.model_validate(session) if session else None

    async def mark_student(self, attendance_id: str, student_id: str, status: AttendanceStatus):
        """Change one student's mark; rejected once the session is completed"""
        ensure_editable(await self.get_session(attendance_id))
        return await self.client.update_student_status(self.token, attendance_id, student_id, status.value)

    async def bulk_mark(self, attendance_id: str, entries: List[BulkAttendanceEntry]):
        ensure_editable(await self.get_session(attendance_id))
        students = [entry.model_dump(mode="json", by_alias=True) for entry in entries]
        return await self.client.bulk_update_attendance(self.token, attendance_id, students)

    async def change_status(self, attendance_id: str, target: SessionStatus) -> AttendanceSession:
        session = await self.get_session(attendance_id)
        if not check_transition(session.status, target):
            return session
        updated = await self.client.update_session_status(self.token, attendance_id, target.value)
        logger.info(f"Attendance session {attendance_id}: {session.status.value} -> {target.value}")
        if isinstance(updated, dict):
            return AttendanceSession.model_validate(updated)
        session.status = target
        return session

    async def qr_display(self, attendance_id: str) -> QRDisplay:
        """Fetch a fresh token for the session and render it for display"""
        session = await self.get_session(attendance_id)
        if session.status != SessionStatus.ACTIVE:
            raise ValidationException("QR codes can only be generated for an active session", field="status")
        issued = await self.client.generate_qr(self.token, attendance_id)
        token = issued.get("token") if isinstance(issued, dict) else None
        if not token:
            raise BackendError("Failed to generate QR code")

        payload = qr_service.build_payload(attendance_id, token)
        qr_data = qr_service.encode_payload(payload)
        return QRDisplay(
            payload=payload,
            qr_data=qr_data,
            image_base64=qr_service.render_png_base64(qr_data),
            refresh_seconds=settings.qr_refresh_seconds,
        )

    async def mark_from_qr(self, decoded_text: str):
        """Forward a student's scan to the backend, which validates the token"""
        payload = qr_service.parse_scan(decoded_text)
        result = await self.client.mark_attendance_qr(self.token, decoded_text)
        logger.info(f"QR attendance submitted for session {payload.attendance_id} by {self.context.user.email}")
        return result

    async def student_view(self, module_id: str) -> StudentAttendanceView:
        """The logged-in student's marks for a module with rate and score"""
        records = [
            AttendanceRecord.model_validate(r)
            for r in await self.client.student_attendance(self.token, module_id)
        ]
        summary = grading.summarize_attendance(records)
        return StudentAttendanceView(
            module_id=module_id,
            summary=summary,
            attendance_rate=round(grading.attendance_rate(summary.present, summary.late, summary.absent, summary.total), 2),
            attendance_score=round(grading.score_summary(summary), 2),
            records=records,
        )

    async def module_stats(self, module_id: str) -> ModuleAttendanceStats:
        sessions = await self.module_sessions(module_id)
        per_student = {
            student_id: over_sessions(summary, len(sessions))
            for student_id, summary in summarize_by_student(sessions).items()
        }
        overall = grading.summarize_attendance(
            record for session in sessions for record in session.students
        )
        return ModuleAttendanceStats(
            module_id=module_id,
            sessions=len(sessions),
            summary=overall,
            average_attendance=round(grading.attendance_rate(overall.present, overall.late, overall.absent, overall.total), 2),
            per_student=per_student,
        )

    async def export_attendance(self, module_id: str) -> str:
        """Attendance report CSV for every enrolled student of a module"""
        module_data, students_data, sessions = await asyncio.gather(
            self.client.get_module(self.token, module_id),
            self.client.module_students(self.token, module_id),
            self.module_sessions(module_id),
        )
        module = Module.model_validate(module_data)
        students = [Student.model_validate(s) for s in students_data]
        per_student = summarize_by_student(sessions)
        summaries = {
            student.id: over_sessions(per_student.get(student.id), len(sessions))
            for student in students
        }
        logger.info(f"Exporting attendance for {len(students)} students of module {module.code}")
        return CSVProcessor.attendance_report_to_csv(
            students, summaries, attendance_weight=module.assessment_weights.attendance
        )
