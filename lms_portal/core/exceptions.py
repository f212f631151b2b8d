# lms_portal/core/exceptions.py
"""Custom exceptions for the LMS portal."""
from typing import Optional


class PortalException(Exception):
    """Base exception for the LMS portal"""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationException(PortalException):
    """Validation error exception"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, 400)


class InvalidGradeError(ValidationException):
    """Raised when a grade value cannot be interpreted as a percentage."""
    pass


class InvalidQRCodeError(ValidationException):
    """Raised when scanned text is not a valid attendance QR payload."""
    def __init__(self, message: str = "Invalid QR code"):
        super().__init__(message, field="qrData")


class ConfigurationError(PortalException):
    """Raised when module configuration is invalid, e.g. assessment weights."""
    def __init__(self, message: str):
        super().__init__(message, 422)


class AuthenticationError(PortalException):
    """Raised when no valid session is available."""
    def __init__(self, message: str = "Session expired. Please login again."):
        super().__init__(message, 401)


class AccessDeniedError(PortalException):
    """Permission denied exception"""
    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, 403)


class NotFoundError(PortalException):
    """Resource not found exception"""
    def __init__(self, resource: str, id: str = None):
        message = f"{resource} not found"
        if id:
            message += f" with id: {id}"
        super().__init__(message, 404)


class SessionClosedError(PortalException):
    """Raised when attendance is edited on a completed session."""
    def __init__(self, attendance_id: str):
        self.attendance_id = attendance_id
        super().__init__(f"Attendance session {attendance_id} is completed and can no longer be edited", 409)


class InvalidSessionTransition(PortalException):
    """Raised on a disallowed attendance session status change."""
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move attendance session from '{current}' to '{target}'", 409)


class BackendError(PortalException):
    """Raised when the LMS backend rejects or fails a request."""
    def __init__(self, message: str, status_code: int = 502, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message, status_code)


class BackendTimeoutError(BackendError):
    """Raised when the LMS backend does not answer in time."""
    def __init__(self, message: str = "LMS backend timeout"):
        super().__init__(message, 504)
