# lms_portal/services/lms_client.py
"""Async client for the external LMS REST backend."""
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.exceptions import AuthenticationError, BackendError, BackendTimeoutError, NotFoundError

logger = logging.getLogger(__name__)


def unwrap(payload: Any) -> Any:
    """Strip the backend's {"success": ..., "data": ...} envelope."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or f"HTTP {response.status_code}"
    return str(body)


class LMSClient:
    """One shared httpx.AsyncClient; the bearer token is supplied per call."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.lms_api_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.lms_api_timeout,
            transport=transport,
        )
        # Set by the session manager so a rejected token tears down its session
        self.on_unauthorized: Optional[Callable[[str], None]] = None

    async def aclose(self):
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        **kwargs
    ) -> Any:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException:
            logger.error(f"LMS backend timeout: {method} {path}")
            raise BackendTimeoutError()
        except httpx.RequestError as e:
            logger.error(f"LMS backend unreachable: {method} {path} - {e}")
            raise BackendError(f"LMS backend unreachable: {e.__class__.__name__}")

        if response.status_code == 401:
            logger.info(f"LMS backend rejected token on {method} {path}")
            if token and self.on_unauthorized:
                self.on_unauthorized(token)
            raise AuthenticationError()
        if response.status_code == 404:
            logger.info(f"LMS backend 404 on {method} {path}: {_error_message(response)}")
            raise NotFoundError("LMS resource", path)
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"LMS backend error: {response.status_code} {method} {path} - {message}")
            status_code = response.status_code if response.status_code < 500 else 502
            raise BackendError(message, status_code=status_code, upstream_status=response.status_code)

        if not response.content:
            return None
        try:
            return unwrap(response.json())
        except ValueError:
            raise BackendError(f"Invalid JSON from LMS backend on {method} {path}")

    async def ping(self) -> bool:
        try:
            response = await self._client.get("/")
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    # Auth
    async def login(self, email: str, password: str) -> Dict[str, Any]:
        return await self._client_post_json("/auth/login", {"email": email, "password": password})

    async def _client_post_json(self, path: str, body: Dict[str, Any]) -> Any:
        # Login and register answer with the token next to the user, outside "data"
        try:
            response = await self._client.post(path, json=body)
        except httpx.TimeoutException:
            raise BackendTimeoutError()
        except httpx.RequestError as e:
            raise BackendError(f"LMS backend unreachable: {e.__class__.__name__}")
        if response.status_code in (400, 401):
            raise AuthenticationError(_error_message(response))
        if response.status_code >= 400:
            raise BackendError(_error_message(response), upstream_status=response.status_code)
        return response.json()

    async def register(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._client_post_json("/auth/register", user_data)

    async def current_user(self, token: str) -> Dict[str, Any]:
        return await self._request("GET", "/auth/me", token)

    async def update_profile(self, token: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", "/auth/profile", token, json=profile)

    async def update_password(self, token: str, passwords: Dict[str, Any]) -> Any:
        return await self._request("PUT", "/auth/password", token, json=passwords)

    # Modules
    async def list_modules(self, token: str) -> List[Dict[str, Any]]:
        return await self._request("GET", "/modules", token) or []

    async def lecturer_modules(self, token: str) -> List[Dict[str, Any]]:
        return await self._request("GET", "/modules/lecturer", token) or []

    async def student_modules(self, token: str) -> List[Dict[str, Any]]:
        return await self._request("GET", "/modules/student", token) or []

    async def get_module(self, token: str, module_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/modules/{module_id}", token)

    async def create_module(self, token: str, module_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/modules", token, json=module_data)

    async def update_module(self, token: str, module_id: str, module_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/modules/{module_id}", token, json=module_data)

    async def delete_module(self, token: str, module_id: str) -> Any:
        return await self._request("DELETE", f"/modules/{module_id}", token)

    async def module_students(self, token: str, module_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/modules/{module_id}/students", token) or []

    async def add_students(self, token: str, module_id: str, student_ids: List[str]) -> Any:
        return await self._request("POST", f"/modules/{module_id}/students", token, json={"students": student_ids})

    async def remove_student(self, token: str, module_id: str, student_id: str) -> Any:
        return await self._request("DELETE", f"/modules/{module_id}/students/{student_id}", token)

    async def upload_students(self, token: str, module_id: str, filename: str, content: bytes) -> Any:
        return await self._request(
            "POST", f"/modules/{module_id}/students/upload", token,
            files={"file": (filename, content, "text/csv")},
        )

    async def available_students(self, token: str) -> List[Dict[str, Any]]:
        return await self._request("GET", "/users/students", token) or []

    # Attendance
    async def create_session(self, token: str, session_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/attendance", token, json=session_data)

    async def module_sessions(self, token: str, module_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/attendance/module/{module_id}", token) or []

    async def get_session(self, token: str, attendance_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/attendance/{attendance_id}/validate", token)

    async def today_session(self, token: str, module_id: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/attendance/module/{module_id}/today", token)

    async def update_student_status(self, token: str, attendance_id: str, student_id: str, status: str) -> Any:
        return await self._request(
            "PATCH", f"/attendance/{attendance_id}/student/{student_id}", token, json={"status": status}
        )

    async def bulk_update_attendance(self, token: str, attendance_id: str, students: List[Dict[str, Any]]) -> Any:
        return await self._request(
            "PATCH", f"/attendance/{attendance_id}/bulk-update", token, json={"students": students}
        )

    async def update_session_status(self, token: str, attendance_id: str, status: str) -> Any:
        return await self._request("PATCH", f"/attendance/{attendance_id}/status", token, json={"status": status})

    async def generate_qr(self, token: str, attendance_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/attendance/{attendance_id}/qr", token)

    async def mark_attendance_qr(self, token: str, qr_data: str) -> Any:
        return await self._request("POST", "/attendance/qr-mark", token, json={"qrData": qr_data})

    async def student_attendance(self, token: str, module_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/attendance/student/module/{module_id}", token) or []

    # Grades
    async def module_grades(self, token: str, module_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/modules/{module_id}/grades", token) or []

    async def student_grades(self, token: str, module_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        return await self._request("GET", f"/modules/{module_id}/grades/{student_id}", token)

    async def update_grade(
        self, token: str, module_id: str, student_id: str, component: str, grade: float,
        comments: Optional[str] = None
    ) -> Any:
        return await self._request(
            "POST", f"/modules/{module_id}/grades/{student_id}/{component}", token,
            json={"grade": grade, "comments": comments},
        )

    async def bulk_update_grades(self, token: str, module_id: str, grades: List[Dict[str, Any]]) -> Any:
        return await self._request(
            "POST", f"/modules/{module_id}/grades/bulk-update", token, json={"grades": grades}
        )
