import io
from typing import List
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse

from ..core.dependencies import get_lms_client, get_session_context, require_lecturer
from ..core.exceptions import ValidationException
from ..schemas.module_schemas import EnrollmentRequest, Module, ModuleCreate, ModuleUpdate, Student
from ..services.csv_processor import CSVProcessor
from ..services.lms_client import LMSClient
from ..services.module_service import ModuleService
from ..services.session_service import SessionContext

router = APIRouter(prefix="/api/v1/modules", tags=["Modules"])

@router.get("/", response_model=List[Module])
async def get_my_modules(
    context: SessionContext = Depends(get_session_context),
    client: LMSClient = Depends(get_lms_client)
):
    """Modules the lecturer teaches, or the student is enrolled in"""
    service = ModuleService(client, context)
    return await service.my_modules()

@router.get("/all", response_model=List[Module])
async def get_all_modules(
    context: SessionContext = Depends(get_session_context),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    return await service.list_modules()

@router.post("/", response_model=Module)
async def create_module(
    module_data: ModuleCreate,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """Create a new module; assessment weights must total 100%"""
    service = ModuleService(client, context)
    return await service.create_module(module_data)

@router.get("/students/available", response_model=List[Student])
async def get_available_students(
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    return await service.available_students()

@router.get("/enrollment/template")
async def download_enrollment_template():
    """Download CSV template for bulk student enrolment"""
    template_content = CSVProcessor.generate_enrollment_template()

    return StreamingResponse(
        io.StringIO(template_content),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=enrollment_template.csv"}
    )

@router.get("/{module_id}", response_model=Module)
async def get_module(
    module_id: str,
    context: SessionContext = Depends(get_session_context),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    return await service.get_module(module_id)

@router.put("/{module_id}", response_model=Module)
async def update_module(
    module_id: str,
    module_data: ModuleUpdate,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    return await service.update_module(module_id, module_data)

@router.delete("/{module_id}")
async def delete_module(
    module_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    await service.delete_module(module_id)
    return {"message": "Module deleted successfully"}

@router.get("/{module_id}/students", response_model=List[Student])
async def get_module_students(
    module_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    return await service.enrolled_students(module_id)

@router.post("/{module_id}/students")
async def enroll_students(
    module_id: str,
    enrollment: EnrollmentRequest,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    result = await service.enroll_students(module_id, enrollment.students)
    return {"message": f"{len(enrollment.students)} students enrolled", "result": result}

@router.delete("/{module_id}/students/{student_id}")
async def remove_student(
    module_id: str,
    student_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = ModuleService(client, context)
    await service.remove_student(module_id, student_id)
    return {"message": "Student removed from module"}

@router.post("/{module_id}/students/upload")
async def upload_students(
    module_id: str,
    file: UploadFile = File(...),
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """Bulk enrol students from a CSV in the template layout"""
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise ValidationException("Only CSV files are allowed", field="file")

    service = ModuleService(client, context)
    result = await service.upload_students(module_id, file.filename, await file.read())
    return {"message": "Students uploaded successfully", "result": result}
