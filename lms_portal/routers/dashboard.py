from fastapi import APIRouter, Depends

from ..core.dependencies import get_lms_client, require_lecturer, require_student
from ..schemas.dashboard_schemas import LecturerDashboard, StudentDashboard
from ..services.dashboard_service import DashboardService
from ..services.lms_client import LMSClient
from ..services.session_service import SessionContext

router = APIRouter(prefix="/api/v1/dashboard", tags=["Dashboard"])

@router.get("/lecturer", response_model=LecturerDashboard)
async def get_lecturer_dashboard(
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = DashboardService(client, context)
    return await service.lecturer_dashboard()

@router.get("/student", response_model=StudentDashboard)
async def get_student_dashboard(
    context: SessionContext = Depends(require_student),
    client: LMSClient = Depends(get_lms_client)
):
    service = DashboardService(client, context)
    return await service.student_dashboard()
