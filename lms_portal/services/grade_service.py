# lms_portal/services/grade_service.py
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.config import settings
from ..core.exceptions import NotFoundError, ValidationException
from ..schemas.attendance_schemas import AttendanceRecord, AttendanceSession
from ..schemas.grade_schemas import (
    CreditEntry, GradeComponentType, GradeUpdate, ModuleGradeSheet, StudentGradeRecord,
    StudentGradeRow, StudentModuleResult, StudentTranscript
)
from ..schemas.module_schemas import Module, Student
from . import grading
from .attendance_service import over_sessions, summarize_by_student
from .csv_processor import CSVProcessor
from .lms_client import LMSClient
from .session_service import SessionContext

logger = logging.getLogger(__name__)


def _is_graded(record: Optional[StudentGradeRecord]) -> bool:
    return record is not None and any(
        value is not None for value in (record.assignment, record.test, record.exam)
    )


class GradeService:
    def __init__(self, client: LMSClient, context: SessionContext):
        self.client = client
        self.context = context

    @property
    def token(self) -> str:
        return self.context.token

    async def module_grade_sheet(self, module_id: str) -> ModuleGradeSheet:
        """Every enrolled student's component points, final grade and letter for a module"""
        module_data, students_data, grades_data, sessions_data = await asyncio.gather(
            self.client.get_module(self.token, module_id),
            self.client.module_students(self.token, module_id),
            self.client.module_grades(self.token, module_id),
            self.client.module_sessions(self.token, module_id),
        )
        module = Module.model_validate(module_data)
        students = [Student.model_validate(s) for s in students_data]
        records = {}
        for raw in grades_data:
            record = StudentGradeRecord.model_validate(raw)
            if record.student_id:
                records[record.student_id] = record

        sessions = [AttendanceSession.model_validate(s) for s in sessions_data]
        attendance = summarize_by_student(sessions)

        rows = []
        final_grades: List[Any] = []
        for student in students:
            record = records.get(student.id)
            summary = over_sessions(attendance.get(student.id), len(sessions))
            grade = grading.build_module_grade(
                summary,
                module.assessment_weights,
                assignment=record.assignment if record else None,
                test=record.test if record else None,
                exam=record.exam if record else None,
            )
            final = grade.final_grade if _is_graded(record) else None
            final_grades.append(final)
            rows.append(StudentGradeRow(
                student_id=student.id,
                student_number=student.student_id,
                name=student.full_name,
                email=student.email,
                attendance_rate=round(
                    grading.attendance_rate(summary.present, summary.late, summary.absent, summary.total), 2
                ),
                raw_assignment=record.assignment if record else None,
                raw_test=record.test if record else None,
                raw_exam=record.exam if record else None,
                grade=grade,
                classification=grading.classify_percentage(final),
            ))

        return ModuleGradeSheet(
            module_id=module_id,
            module_code=module.code,
            weights=module.assessment_weights,
            rows=rows,
            statistics=grading.grade_statistics(final_grades),
        )

    async def update_component(
        self,
        module_id: str,
        student_id: str,
        component: GradeComponentType,
        update: GradeUpdate
    ):
        result = await self.client.update_grade(
            self.token, module_id, student_id, component.value, update.grade, update.comments
        )
        logger.info(f"{component.value} grade for student {student_id} in module {module_id} set to {update.grade}")
        return result

    async def import_grades(self, module_id: str, content: bytes) -> Dict[str, Any]:
        """Validate a grade CSV and push the valid rows to the backend in one call"""
        valid_rows, validation_errors = CSVProcessor.process_grade_csv(content)
        if not valid_rows:
            raise ValidationException(
                f"No valid rows found in CSV ({len(validation_errors)} invalid)", field="file"
            )

        result = await self.client.bulk_update_grades(self.token, module_id, valid_rows)
        logger.info(
            f"Imported {len(valid_rows)} grade rows for module {module_id}, "
            f"{len(validation_errors)} rejected"
        )
        return {
            "message": "Grades imported",
            "total_rows": len(valid_rows) + len(validation_errors),
            "imported_rows": len(valid_rows),
            "validation_errors_count": len(validation_errors),
            "validation_errors": validation_errors[:20],
            "result": result,
        }

    async def export_grades(self, module_id: str) -> str:
        return CSVProcessor.grade_sheet_to_csv(await self.module_grade_sheet(module_id))

    async def _student_module_result(self, module: Module) -> Tuple[StudentModuleResult, CreditEntry]:
        grades_data, attendance_data = await asyncio.gather(
            self._own_grades(module.id),
            self.client.student_attendance(self.token, module.id),
        )
        record = StudentGradeRecord.model_validate(grades_data) if grades_data else None
        summary = grading.summarize_attendance(AttendanceRecord.model_validate(r) for r in attendance_data)
        summary = over_sessions(summary, module.total_sessions or 0)

        grade = grading.build_module_grade(
            summary,
            module.assessment_weights,
            assignment=record.assignment if record else None,
            test=record.test if record else None,
            exam=record.exam if record else None,
        )
        final = grade.final_grade if _is_graded(record) else None
        classification = grading.classify_percentage(final)
        # Credit entry keeps the unrounded grade so the CGPA uses the letter shown
        entry = CreditEntry(
            module_code=module.code,
            module_name=module.name,
            credit_hours=module.credit_hours,
            final_grade=classification.percentage,
        )
        result = StudentModuleResult(
            module_id=module.id,
            module_code=module.code,
            module_name=module.name,
            credit_hours=module.credit_hours,
            attendance_rate=round(
                grading.attendance_rate(summary.present, summary.late, summary.absent, summary.total), 2
            ),
            assignment=record.assignment if record else None,
            test=record.test if record else None,
            exam=record.exam if record else None,
            final_grade=round(classification.percentage, 2) if classification.percentage is not None else None,
            letter=classification.letter,
            grade_points=classification.grade_points,
            quality_points=classification.grade_points * module.credit_hours,
        )
        return result, entry

    async def _own_grades(self, module_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.student_grades(self.token, module_id, self.context.user.id)
        except NotFoundError:
            logger.debug(f"No grades recorded yet for module {module_id}")
            return None

    async def student_transcript(self) -> StudentTranscript:
        """All of the logged-in student's modules with the CGPA summary"""
        modules = [Module.model_validate(m) for m in await self.client.student_modules(self.token)]
        pairs = await asyncio.gather(*(self._student_module_result(m) for m in modules))
        results = [result for result, _ in pairs]

        summary = grading.compute_cgpa(entry for _, entry in pairs)
        graded = [r.final_grade for r in results if r.final_grade is not None]
        average = round(sum(graded) / len(graded), 2) if graded else None

        logger.info(
            f"Transcript for {self.context.user.email}: {len(results)} modules, "
            f"CGPA {summary.cgpa} on the {settings.grade_point_scale} scale"
        )
        return StudentTranscript(modules=results, summary=summary, average_grade=average)
