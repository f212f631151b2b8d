# lms_portal/services/csv_processor.py
import io
import logging
from typing import Any, Dict, List, Tuple

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ValidationException
from ..schemas.attendance_schemas import AttendanceSummary
from ..schemas.grade_schemas import GradeImportRow, ModuleGradeSheet
from ..schemas.module_schemas import EnrollmentTemplateRow, Student
from . import grading

logger = logging.getLogger(__name__)

GRADE_EXPORT_COLUMNS = [
    'Student ID', 'Name', 'Email', 'Attendance', 'Assignment', 'Test', 'Exam',
    'Final Grade', 'Letter Grade', 'Grade Points',
]
ATTENDANCE_EXPORT_COLUMNS = [
    'Student ID', 'Name', 'Email', 'Present', 'Late', 'Absent', 'Total Sessions',
    'Attendance Rate (%)', 'Attendance Grade',
]
ENROLLMENT_COLUMNS = ['student_id', 'first_name', 'last_name', 'email']


def _validation_message(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first['msg']


class CSVProcessor:
    @staticmethod
    def _read_csv(content: bytes) -> pd.DataFrame:
        try:
            decoded_content = content.decode('utf-8-sig')
        except UnicodeDecodeError:
            raise ValidationException("CSV file must be UTF-8 encoded", field="file")
        if not decoded_content.strip():
            raise ValidationException("CSV file is empty", field="file")

        try:
            df = pd.read_csv(io.StringIO(decoded_content))
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ValidationException(f"Failed to process CSV: {str(e)}", field="file")

        # Clean and standardize column names
        df.columns = df.columns.str.strip().str.lower().str.replace(' ', '_')
        return df

    @staticmethod
    def _require_columns(df: pd.DataFrame, required_columns: List[str]):
        missing_columns = [col for col in required_columns if col not in df.columns]
        if missing_columns:
            raise ValidationException(f"Missing required columns: {missing_columns}", field="file")

    @staticmethod
    def _clean_row(row: pd.Series) -> Dict[str, Any]:
        row_dict = {}
        for col, value in row.items():
            if pd.notna(value):  # Only include non-NaN values
                if hasattr(value, 'item'):  # numpy scalar
                    value = value.item()
                if isinstance(value, str):
                    value = value.strip()
                if value != "":  # Skip empty strings
                    row_dict[col] = value
        return row_dict

    @staticmethod
    def process_grade_csv(content: bytes) -> Tuple[List[Dict], List[Dict]]:
        """
        Process a grade import CSV with validation and error reporting
        Returns: (valid_rows, validation_errors)
        """
        df = CSVProcessor._read_csv(content)
        CSVProcessor._require_columns(df, ['student_id'])
        if not any(col in df.columns for col in ('assignment', 'test', 'exam')):
            raise ValidationException("CSV needs at least one of: assignment, test, exam", field="file")

        valid_rows = []
        validation_errors = []

        for index, row in df.iterrows():
            row_dict = CSVProcessor._clean_row(row)
            try:
                validated_row = GradeImportRow.model_validate(row_dict)
                valid_rows.append(validated_row.model_dump(by_alias=True, exclude_none=True))
            except PydanticValidationError as validation_error:
                validation_errors.append({
                    "row_number": index + 2,  # +2 for header and 0-based index
                    "data": {k: str(v) for k, v in row_dict.items()},
                    "error": _validation_message(validation_error)
                })

        logger.info(f"Grade CSV parsed: {len(valid_rows)} valid rows, {len(validation_errors)} errors")
        return valid_rows, validation_errors

    @staticmethod
    def validate_enrollment_csv(content: bytes) -> int:
        """Check an enrolment CSV before upload; returns the number of rows"""
        df = CSVProcessor._read_csv(content)
        CSVProcessor._require_columns(df, ENROLLMENT_COLUMNS)

        for index, row in df.iterrows():
            try:
                EnrollmentTemplateRow.model_validate(CSVProcessor._clean_row(row))
            except PydanticValidationError as e:
                raise ValidationException(f"Row {index + 2}: {_validation_message(e)}", field="file")
        return len(df)

    @staticmethod
    def generate_enrollment_template() -> str:
        """Generate CSV template for bulk student enrolment"""
        template_data = {
            'Student ID': ['ST2025001', 'ST2025002'],
            'First Name': ['Amal', 'Nadia'],
            'Last Name': ['Perera', 'Fernando'],
            'Email': ['amal.perera@students.example.edu', 'nadia.fernando@students.example.edu'],
        }

        df = pd.DataFrame(template_data)
        return df.to_csv(index=False)

    @staticmethod
    def grade_sheet_to_csv(sheet: ModuleGradeSheet) -> str:
        records = []
        for row in sheet.rows:
            graded = row.classification.percentage is not None
            records.append({
                'Student ID': row.student_number or row.student_id,
                'Name': row.name,
                'Email': row.email or '',
                'Attendance': round(row.grade.attendance_grade, 2),
                'Assignment': round(row.grade.assignment_grade, 2),
                'Test': round(row.grade.test_grade, 2),
                'Exam': round(row.grade.exam_grade, 2),
                'Final Grade': round(row.grade.final_grade, 2) if graded else grading.NOT_GRADED,
                'Letter Grade': row.classification.letter,
                'Grade Points': row.classification.grade_points,
            })
        return pd.DataFrame(records, columns=GRADE_EXPORT_COLUMNS).to_csv(index=False)

    @staticmethod
    def attendance_report_to_csv(
        students: List[Student],
        summaries: Dict[str, AttendanceSummary],
        attendance_weight: float = grading.ATTENDANCE_WEIGHT,
    ) -> str:
        records = []
        for student in students:
            summary = summaries.get(student.id) or AttendanceSummary()
            records.append({
                'Student ID': student.student_id or student.id,
                'Name': student.full_name,
                'Email': student.email or '',
                'Present': summary.present,
                'Late': summary.late,
                'Absent': summary.absent,
                'Total Sessions': summary.total,
                'Attendance Rate (%)': round(
                    grading.attendance_rate(summary.present, summary.late, summary.absent, summary.total), 1
                ),
                'Attendance Grade': round(grading.score_summary(summary, weight=attendance_weight), 2),
            })
        return pd.DataFrame(records, columns=ATTENDANCE_EXPORT_COLUMNS).to_csv(index=False)
