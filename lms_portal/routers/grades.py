import io
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import StreamingResponse

from ..core.config import settings
from ..core.dependencies import get_lms_client, require_lecturer, require_student
from ..core.exceptions import ValidationException
from ..schemas.grade_schemas import (
    CGPAResult, CreditEntry, GradeClassification, GradeComponentType, GradeUpdate,
    ModuleGradeSheet, StudentTranscript
)
from ..services import grading
from ..services.grade_service import GradeService
from ..services.lms_client import LMSClient
from ..services.session_service import SessionContext

router = APIRouter(prefix="/api/v1/grades", tags=["Grades"])

# Lecturer grade sheet
@router.get("/modules/{module_id}", response_model=ModuleGradeSheet)
async def get_module_grades(
    module_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """Grade sheet with final grades recomputed from the module's weights"""
    service = GradeService(client, context)
    return await service.module_grade_sheet(module_id)

@router.put("/modules/{module_id}/students/{student_id}/{component}")
async def update_grade(
    module_id: str,
    student_id: str,
    component: GradeComponentType,
    update: GradeUpdate,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = GradeService(client, context)
    result = await service.update_component(module_id, student_id, component, update)
    return {"message": f"{component.value.capitalize()} grade updated", "result": result}

@router.post("/modules/{module_id}/import", response_model=dict)
async def import_grades(
    module_id: str,
    file: UploadFile = File(...),
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """Upload a CSV with studentId and assignment/test/exam percentages"""
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise ValidationException("Only CSV files are allowed", field="file")

    service = GradeService(client, context)
    return await service.import_grades(module_id, await file.read())

@router.get("/modules/{module_id}/export")
async def export_grades(
    module_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = GradeService(client, context)
    csv_content = await service.export_grades(module_id)

    return StreamingResponse(
        io.StringIO(csv_content),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=grades_{module_id}.csv"}
    )

# Student grades
@router.get("/me", response_model=StudentTranscript)
async def get_my_grades(
    context: SessionContext = Depends(require_student),
    client: LMSClient = Depends(get_lms_client)
):
    """Per-module results and CGPA of the logged-in student"""
    service = GradeService(client, context)
    return await service.student_transcript()

# Grading rules
@router.get("/classify", response_model=GradeClassification)
async def classify_grade(
    percentage: Optional[str] = Query(None),
    scale: Optional[str] = Query(None)
):
    return grading.classify_percentage(percentage, scale=scale)

@router.post("/cgpa", response_model=CGPAResult)
async def calculate_cgpa(
    entries: List[CreditEntry],
    scale: Optional[str] = Query(None)
):
    return grading.compute_cgpa(entries, scale=scale)

@router.get("/scale")
async def get_grade_scale(scale: Optional[str] = Query(None)):
    """Letter thresholds with grade points of the configured scale"""
    name = scale or settings.grade_point_scale
    points = grading.GRADE_POINT_SCALES.get(name)
    if points is None:
        raise ValidationException(f"Unknown grade point scale: {name}", field="scale")
    return {
        "scale": name,
        "earned_credit_pass_mark": settings.earned_credit_pass_mark,
        "grades": [
            {"letter": letter, "min_percentage": minimum, "grade_points": points[letter]}
            for minimum, letter in grading.GRADE_THRESHOLDS
        ]
    }
