# lms_portal/services/grading.py
"""
Grade aggregation and classification rules.

Every surface that shows an attendance score, a final grade, a letter grade
or a CGPA goes through this module. All functions are pure and synchronous.
"""
import logging
import math
from typing import Any, Dict, Iterable, Optional, Tuple
from pydantic import ValidationError as PydanticValidationError

from ..core.config import settings
from ..core.exceptions import ConfigurationError, InvalidGradeError, ValidationException
from ..schemas.attendance_schemas import AttendanceStatus, AttendanceSummary
from ..schemas.grade_schemas import (
    AssessmentWeights, CGPAResult, CreditEntry, GradeClassification, GradeStatistics, ModuleGrade
)

logger = logging.getLogger(__name__)

# Attendance is worth 5 points of the final grade; a late mark counts half.
ATTENDANCE_WEIGHT = 5.0
LATE_CREDIT = 0.5

NOT_GRADED = "N/A"

# (minimum percentage, letter), scanned top-down
GRADE_THRESHOLDS: Tuple[Tuple[float, str], ...] = (
    (70, "A"),
    (65, "B+"),
    (60, "B"),
    (55, "B-"),
    (50, "C+"),
    (45, "C"),
    (40, "C-"),
    (35, "D+"),
    (30, "D"),
    (0, "F"),
)

GRADE_POINT_SCALES: Dict[str, Dict[str, float]] = {
    # Used by the CGPA calculation of the student grade report
    "standard": {
        "A": 4.0, "B+": 3.75, "B": 3.25, "B-": 3.0, "C+": 2.75,
        "C": 2.5, "C-": 2.0, "D+": 1.5, "D": 1.0, "F": 0.0,
    },
    # Printed in the grading legend shown to students
    "reference": {
        "A": 4.0, "B+": 3.5, "B": 3.0, "B-": 2.7, "C+": 2.3,
        "C": 2.0, "C-": 1.7, "D+": 1.3, "D": 1.0, "F": 0.0,
    },
}


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------

def summarize_attendance(records: Iterable[Any]) -> AttendanceSummary:
    """Fold attendance records into present/late/absent/total counts.

    Records may be AttendanceRecord models or plain dicts with a ``status`` key.
    """
    counts = {status: 0 for status in AttendanceStatus}
    total = 0
    for record in records:
        raw_status = record.get("status") if isinstance(record, dict) else record.status
        try:
            status = AttendanceStatus(raw_status)
        except ValueError:
            raise ValidationException(f"Unknown attendance status: {raw_status!r}", field="status")
        counts[status] += 1
        total += 1

    return AttendanceSummary(
        present=counts[AttendanceStatus.PRESENT],
        late=counts[AttendanceStatus.LATE],
        absent=counts[AttendanceStatus.ABSENT],
        total=total,
    )


def _attended_ratio(present: int, late: int, absent: int, total: int) -> float:
    if min(present, late, absent, total) < 0:
        raise ValidationException("Attendance counts cannot be negative")
    if present + late + absent > total:
        raise ValidationException(
            f"Attendance counts ({present + late + absent}) exceed total sessions ({total})"
        )
    if total == 0:
        return 0.0
    return (present + late * LATE_CREDIT) / total


def attendance_rate(present: int = 0, late: int = 0, absent: int = 0, total: int = 0) -> float:
    """Attendance as a percentage of sessions, late counting half; 0 with no sessions."""
    return _attended_ratio(present, late, absent, total) * 100


def attendance_score(
    present: int = 0,
    late: int = 0,
    absent: int = 0,
    total: int = 0,
    weight: float = ATTENDANCE_WEIGHT,
) -> float:
    """Points earned towards the final grade from attendance.

    ``((present + late*0.5) / total) * weight``; with the default 5-point
    weight this is the attendance rate times 0.05. Zero sessions give 0.
    """
    return _attended_ratio(present, late, absent, total) * weight


def score_summary(summary: AttendanceSummary, weight: float = ATTENDANCE_WEIGHT) -> float:
    return attendance_score(summary.present, summary.late, summary.absent, summary.total, weight=weight)


# ---------------------------------------------------------------------------
# Final grade
# ---------------------------------------------------------------------------

def validate_weights(weights: Any) -> AssessmentWeights:
    """Load assessment weights, raising ConfigurationError unless they total 100."""
    if isinstance(weights, AssessmentWeights):
        if abs(weights.total - 100) > 1e-9:
            raise ConfigurationError(f"Assessment weights must total 100%, got {weights.total:g}%")
        return weights
    if weights is None:
        raise ConfigurationError("Assessment weights are not configured")
    try:
        return AssessmentWeights.model_validate(weights)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid assessment weights: {e.errors()[0]['msg']}")


def weighted_component(raw_percentage: Optional[float], weight: float) -> float:
    """Convert a raw component percentage into points earned under ``weight``."""
    if raw_percentage is None:
        return 0.0
    value = _to_float(raw_percentage)
    if value is None or not 0 <= value <= 100:
        raise InvalidGradeError(f"Component grade must be between 0 and 100, got {raw_percentage!r}")
    return value * weight / 100


def final_grade(
    attendance_score: float,
    assignment_grade: float,
    test_grade: float,
    exam_grade: float,
    weights: Optional[Any] = None,
) -> float:
    """Sum of pre-weighted component points.

    When ``weights`` are given they are checked first so a module whose
    weights do not total 100 fails loudly instead of producing a skewed grade.
    """
    if weights is not None:
        validate_weights(weights)
    return attendance_score + assignment_grade + test_grade + exam_grade


def build_module_grade(
    summary: AttendanceSummary,
    weights: Any,
    assignment: Optional[float] = None,
    test: Optional[float] = None,
    exam: Optional[float] = None,
) -> ModuleGrade:
    """Module grade from attendance counts and raw component percentages."""
    weights = validate_weights(weights)
    return ModuleGrade(
        attendance_grade=score_summary(summary, weight=weights.attendance),
        assignment_grade=weighted_component(assignment, weights.assignments),
        test_grade=weighted_component(test, weights.test),
        exam_grade=weighted_component(exam, weights.final_exam),
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _to_float(value: Any) -> Optional[float]:
    """Parse a percentage; None for a missing grade."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%")
        if value == "" or value.upper() == NOT_GRADED:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidGradeError(f"Not a percentage: {value!r}")
    if math.isnan(number):
        raise InvalidGradeError("Percentage is NaN")
    return number


def clamp_percentage(value: float) -> Tuple[float, bool]:
    """Clamp into [0, 100]; the flag tells whether clamping happened."""
    if value < 0:
        return 0.0, True
    if value > 100:
        return 100.0, True
    return value, False


def _scale(scale: Optional[str]) -> Dict[str, float]:
    name = scale or settings.grade_point_scale
    try:
        return GRADE_POINT_SCALES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown grade point scale: {name!r}")


def classify_percentage(percentage: Any, scale: Optional[str] = None) -> GradeClassification:
    """Classify a final percentage into a letter grade and grade points.

    Missing grades classify as "N/A" with 0 points. Out-of-range values are
    clamped and the result is flagged ``clamped``.
    """
    points_table = _scale(scale)
    value = _to_float(percentage)
    if value is None:
        return GradeClassification(percentage=None, letter=NOT_GRADED, grade_points=0.0)

    clamped_value, clamped = clamp_percentage(value)
    if clamped:
        logger.warning(f"Final grade {value} outside 0-100, clamped to {clamped_value}")

    for minimum, letter in GRADE_THRESHOLDS:
        if clamped_value >= minimum:
            break

    return GradeClassification(
        percentage=clamped_value,
        letter=letter,
        grade_points=points_table[letter],
        clamped=clamped,
        original_percentage=value,
    )


def classify(percentage: Any) -> str:
    """Letter grade for a final percentage."""
    return classify_percentage(percentage).letter


def grade_points(percentage: Any, scale: Optional[str] = None) -> float:
    return classify_percentage(percentage, scale=scale).grade_points


# ---------------------------------------------------------------------------
# CGPA and class statistics
# ---------------------------------------------------------------------------

def compute_cgpa(
    entries: Iterable[CreditEntry],
    pass_mark: Optional[float] = None,
    scale: Optional[str] = None,
) -> CGPAResult:
    """Credit-weighted grade point average.

    Every module counts towards total credits; only graded modules add
    quality points, and only those at or above ``pass_mark`` earn credits.
    """
    if pass_mark is None:
        pass_mark = settings.earned_credit_pass_mark

    total_credits = 0.0
    earned_credits = 0.0
    quality_points = 0.0
    for entry in entries:
        total_credits += entry.credit_hours
        classification = classify_percentage(entry.final_grade, scale=scale)
        if classification.percentage is None:
            continue
        quality_points += classification.grade_points * entry.credit_hours
        if classification.percentage >= pass_mark:
            earned_credits += entry.credit_hours

    cgpa = quality_points / total_credits if total_credits > 0 else 0.0
    return CGPAResult(
        cgpa=round(cgpa, 2),
        total_credits=total_credits,
        earned_credits=earned_credits,
        total_quality_points=quality_points,
    )


def grade_statistics(final_grades: Iterable[Any], pass_mark: Optional[float] = None) -> GradeStatistics:
    """Average, extremes, pass rate and letter distribution of a class."""
    if pass_mark is None:
        pass_mark = settings.module_pass_mark

    distribution = {letter: 0 for _, letter in GRADE_THRESHOLDS}
    values = []
    for grade in final_grades:
        classification = classify_percentage(grade)
        if classification.percentage is None:
            continue
        values.append(classification.percentage)
        distribution[classification.letter] += 1

    if not values:
        return GradeStatistics(
            graded_count=0, average=0.0, highest=0.0, lowest=0.0, pass_rate=0.0, distribution=distribution
        )

    passed = sum(1 for value in values if value >= pass_mark)
    return GradeStatistics(
        graded_count=len(values),
        average=round(sum(values) / len(values), 2),
        highest=max(values),
        lowest=min(values),
        pass_rate=round(passed / len(values) * 100, 2),
        distribution=distribution,
    )
