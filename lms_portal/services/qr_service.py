# lms_portal/services/qr_service.py
"""
QR payloads for attendance sessions.

The portal only builds, renders and parses the payload. Token issuance,
expiry and replay checks belong to the LMS backend; the token is passed
through untouched.
"""
import base64
import io
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import qrcode
from pydantic import ValidationError as PydanticValidationError

from ..core.config import settings
from ..core.exceptions import InvalidQRCodeError
from ..schemas.attendance_schemas import QRPayload

logger = logging.getLogger(__name__)


def build_payload(attendance_id: str, token: str, timestamp: Optional[datetime] = None) -> QRPayload:
    return QRPayload(
        attendance_id=attendance_id,
        token=token,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


def encode_payload(payload: QRPayload) -> str:
    """JSON text carried by the QR code."""
    return payload.model_dump_json(by_alias=True)


def parse_scan(decoded_text: str) -> QRPayload:
    """Validate text read by a scanner; it must carry attendanceId and token."""
    try:
        data = json.loads(decoded_text)
    except (TypeError, ValueError):
        raise InvalidQRCodeError("Invalid QR code")
    if not isinstance(data, dict) or not data.get("attendanceId") or not data.get("token"):
        raise InvalidQRCodeError("Invalid QR code format")
    try:
        return QRPayload.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidQRCodeError(f"Invalid QR code format: {e.errors()[0]['msg']}")


def render_png_base64(qr_data: str, box_size: Optional[int] = None, border: Optional[int] = None) -> str:
    """Render QR text to a base64 PNG for display."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size or settings.qr_box_size,
        border=border or settings.qr_border,
    )
    qr.add_data(qr_data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("utf-8")
