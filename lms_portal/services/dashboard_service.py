# lms_portal/services/dashboard_service.py
import asyncio
import logging
from typing import List

from ..core.exceptions import PortalException
from ..schemas.attendance_schemas import AttendanceSession
from ..schemas.dashboard_schemas import LecturerDashboard, ModuleAttendanceOverview, StudentDashboard
from ..schemas.module_schemas import Module
from . import grading
from .grade_service import GradeService
from .lms_client import LMSClient
from .session_service import SessionContext

logger = logging.getLogger(__name__)


def _student_key(entry) -> str:
    if isinstance(entry, dict):
        return entry.get("_id") or entry.get("id") or ""
    return str(entry)


class DashboardService:
    def __init__(self, client: LMSClient, context: SessionContext):
        self.client = client
        self.context = context

    async def _module_overview(self, module: Module) -> ModuleAttendanceOverview:
        sessions = [
            AttendanceSession.model_validate(s)
            for s in await self.client.module_sessions(self.context.token, module.id)
        ]
        overall = grading.summarize_attendance(
            record for session in sessions for record in session.students
        )
        return ModuleAttendanceOverview(
            module_id=module.id,
            module_code=module.code,
            module_name=module.name,
            enrolled_students=module.enrolled_count,
            sessions=len(sessions),
            average_attendance=round(
                grading.attendance_rate(overall.present, overall.late, overall.absent, overall.total), 2
            ),
        )

    async def lecturer_dashboard(self) -> LecturerDashboard:
        """Module count, distinct students and average attendance per module.

        A module whose sessions cannot be fetched is shown with 0% attendance
        and ``available=False`` instead of failing the whole dashboard.
        """
        modules = [Module.model_validate(m) for m in await self.client.lecturer_modules(self.context.token)]
        results = await asyncio.gather(
            *(self._module_overview(module) for module in modules),
            return_exceptions=True
        )

        overviews: List[ModuleAttendanceOverview] = []
        for module, result in zip(modules, results):
            if isinstance(result, PortalException):
                logger.warning(f"Attendance for module {module.code} unavailable: {result.message}")
                result = ModuleAttendanceOverview(
                    module_id=module.id,
                    module_code=module.code,
                    module_name=module.name,
                    enrolled_students=module.enrolled_count,
                    available=False,
                )
            elif isinstance(result, BaseException):
                raise result
            overviews.append(result)

        students = {
            _student_key(entry) for module in modules for entry in module.enrolled_students
        }
        students.discard("")
        average = sum(o.average_attendance for o in overviews) / len(overviews) if overviews else 0.0

        return LecturerDashboard(
            active_modules=len(modules),
            total_students=len(students),
            average_attendance=round(average, 2),
            modules=overviews,
        )

    async def student_dashboard(self) -> StudentDashboard:
        transcript = await GradeService(self.client, self.context).student_transcript()
        rates = [m.attendance_rate for m in transcript.modules]
        return StudentDashboard(
            enrolled_modules=len(transcript.modules),
            average_attendance=round(sum(rates) / len(rates), 2) if rates else 0.0,
            average_grade=transcript.average_grade,
            summary=transcript.summary,
            modules=transcript.modules,
        )
