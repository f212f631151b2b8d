import io
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ..core.dependencies import get_lms_client, get_session_context, require_lecturer, require_student
from ..schemas.attendance_schemas import (
    AttendanceMark, AttendanceSession, AttendanceSummary, BulkAttendanceEntry, ModuleAttendanceStats,
    QRDisplay, QRScan, SessionCreate, StatusUpdate, StudentAttendanceView
)
from ..services import grading
from ..services.attendance_service import AttendanceService
from ..services.lms_client import LMSClient
from ..services.session_service import SessionContext

router = APIRouter(prefix="/api/v1/attendance", tags=["Attendance"])

# Session management (lecturer)
@router.post("/sessions", response_model=AttendanceSession)
async def create_session(
    session_data: SessionCreate,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """Create a pending attendance session for a module"""
    service = AttendanceService(client, context)
    return await service.create_session(session_data)

@router.get("/sessions/{attendance_id}", response_model=AttendanceSession)
async def get_session(
    attendance_id: str,
    context: SessionContext = Depends(get_session_context),
    client: LMSClient = Depends(get_lms_client)
):
    service = AttendanceService(client, context)
    return await service.get_session(attendance_id)

@router.patch("/sessions/{attendance_id}/status", response_model=AttendanceSession)
async def update_session_status(
    attendance_id: str,
    status_update: StatusUpdate,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """Move a session pending -> active -> completed"""
    service = AttendanceService(client, context)
    return await service.change_status(attendance_id, status_update.status)

@router.patch("/sessions/{attendance_id}/students/{student_id}")
async def mark_student(
    attendance_id: str,
    student_id: str,
    mark: AttendanceMark,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = AttendanceService(client, context)
    result = await service.mark_student(attendance_id, student_id, mark.status)
    return {"message": "Attendance updated", "result": result}

@router.patch("/sessions/{attendance_id}/bulk")
async def bulk_mark(
    attendance_id: str,
    entries: List[BulkAttendanceEntry],
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = AttendanceService(client, context)
    result = await service.bulk_mark(attendance_id, entries)
    return {"message": f"Attendance updated for {len(entries)} students", "result": result}

@router.get("/sessions/{attendance_id}/qr", response_model=QRDisplay)
async def get_session_qr(
    attendance_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """QR code for an active session; fetch again every refreshSeconds"""
    service = AttendanceService(client, context)
    return await service.qr_display(attendance_id)

@router.get("/modules/{module_id}/sessions", response_model=List[AttendanceSession])
async def get_module_sessions(
    module_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = AttendanceService(client, context)
    return await service.module_sessions(module_id)

@router.get("/modules/{module_id}/today", response_model=Optional[AttendanceSession])
async def get_today_session(
    module_id: str,
    context: SessionContext = Depends(get_session_context),
    client: LMSClient = Depends(get_lms_client)
):
    service = AttendanceService(client, context)
    return await service.today_session(module_id)

@router.get("/modules/{module_id}/stats", response_model=ModuleAttendanceStats)
async def get_module_stats(
    module_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    service = AttendanceService(client, context)
    return await service.module_stats(module_id)

@router.get("/modules/{module_id}/export")
async def export_attendance(
    module_id: str,
    context: SessionContext = Depends(require_lecturer),
    client: LMSClient = Depends(get_lms_client)
):
    """Download the attendance report of a module as CSV"""
    service = AttendanceService(client, context)
    csv_content = await service.export_attendance(module_id)

    return StreamingResponse(
        io.StringIO(csv_content),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=attendance_{module_id}.csv"}
    )

# Student side
@router.post("/qr-mark")
async def mark_attendance_qr(
    scan: QRScan,
    context: SessionContext = Depends(require_student),
    client: LMSClient = Depends(get_lms_client)
):
    """Submit the text read from a session QR code"""
    service = AttendanceService(client, context)
    result = await service.mark_from_qr(scan.qr_data)
    return {"message": "Attendance marked successfully", "result": result}

@router.get("/modules/{module_id}/me", response_model=StudentAttendanceView)
async def get_my_attendance(
    module_id: str,
    context: SessionContext = Depends(require_student),
    client: LMSClient = Depends(get_lms_client)
):
    service = AttendanceService(client, context)
    return await service.student_view(module_id)

@router.get("/score", response_model=dict)
async def calculate_attendance_score(
    present: int = Query(0, ge=0),
    late: int = Query(0, ge=0),
    absent: int = Query(0, ge=0),
    total: int = Query(0, ge=0),
    weight: float = Query(grading.ATTENDANCE_WEIGHT, ge=0, le=100)
):
    """Attendance rate and score for raw counts"""
    summary = AttendanceSummary(present=present, late=late, absent=absent, total=total)
    return {
        "summary": summary.model_dump(by_alias=True),
        "attendance_rate": grading.attendance_rate(present, late, absent, total),
        "attendance_score": grading.score_summary(summary, weight=weight)
    }
