import copy
import json
import re

import httpx
import pytest
from fastapi.testclient import TestClient

from lms_portal.main import app
from lms_portal.services.lms_client import LMSClient
from lms_portal.services.session_service import SessionManager

BASE_URL = "http://lms.test/api"

LECTURER = {
    "_id": "u-lect", "email": "lecturer@uni.edu", "firstName": "Grace",
    "lastName": "Hopper", "role": "lecturer",
}
STUDENTS = {
    "stu-1": {
        "_id": "stu-1", "studentId": "ST001", "email": "amal@uni.edu",
        "firstName": "Amal", "lastName": "Perera", "role": "student",
    },
    "stu-2": {
        "_id": "stu-2", "studentId": "ST002", "email": "nadia@uni.edu",
        "firstName": "Nadia", "lastName": "Fernando", "role": "student",
    },
}
MODULES = {
    "mod-1": {
        "_id": "mod-1", "code": "CS101", "name": "Programming", "creditHours": 3,
        "totalSessions": 4,
        "assessmentWeights": {"attendance": 5, "assignments": 15, "test": 10, "finalExam": 70},
        "enrolledStudents": ["stu-1", "stu-2"],
    },
    "mod-2": {
        "_id": "mod-2", "code": "MA201", "name": "Discrete Maths", "creditHours": 2,
        "enrolledStudents": [{"_id": "stu-1"}],
    },
}


def _session(attendance_id, status, marks):
    return {
        "_id": attendance_id, "module": "mod-1", "date": "2025-03-03T00:00:00Z",
        "startTime": "09:00", "status": status,
        "students": [{"student": sid, "status": mark} for sid, mark in marks],
    }


SESSIONS = {
    "att-1": _session("att-1", "completed", [("stu-1", "present"), ("stu-2", "absent")]),
    "att-2": _session("att-2", "completed", [("stu-1", "present"), ("stu-2", "late")]),
    "att-3": _session("att-3", "completed", [("stu-1", "late"), ("stu-2", "present")]),
    "att-4": _session("att-4", "active", [("stu-1", "present"), ("stu-2", "absent")]),
}
GRADES = {
    "mod-1": [
        {
            "_id": "g-1", "student": "stu-1", "assignment": {"grade": 80}, "test": {"grade": 70},
            "exam": {"grade": 90}, "finalGrade": 12,
        },
        {"_id": "g-2", "student": {"_id": "stu-2"}, "assignments": {"grade": 40}, "test": 50, "exam": 30},
    ],
}
QR_TOKEN = "tok-abc"


class FakeLMSBackend:
    """In-memory stand-in for the LMS REST backend, served through httpx.MockTransport."""

    def __init__(self):
        self.tokens = {"lecturer-token": LECTURER, "student-token": STUDENTS["stu-1"]}
        self.passwords = {"lecturer@uni.edu": "secret", "amal@uni.edu": "secret"}
        self.modules = copy.deepcopy(MODULES)
        self.sessions = copy.deepcopy(SESSIONS)
        self.grades = copy.deepcopy(GRADES)
        self.calls = []
        self.fail_paths = set()
        self.routes = [
            ("POST", r"/auth/login", self.login),
            ("POST", r"/auth/register", self.register),
            ("GET", r"/auth/me", self.me),
            ("PUT", r"/auth/profile", self.update_profile),
            ("PUT", r"/auth/password", self.ok),
            ("GET", r"/modules", self.list_modules),
            ("POST", r"/modules", self.create_module),
            ("GET", r"/modules/lecturer", self.list_modules),
            ("GET", r"/modules/student", self.student_modules),
            ("GET", r"/modules/(?P<mid>[^/]+)", self.get_module),
            ("PUT", r"/modules/(?P<mid>[^/]+)", self.update_module),
            ("DELETE", r"/modules/(?P<mid>[^/]+)", self.ok),
            ("GET", r"/modules/(?P<mid>[^/]+)/students", self.module_students),
            ("POST", r"/modules/(?P<mid>[^/]+)/students", self.ok),
            ("POST", r"/modules/(?P<mid>[^/]+)/students/upload", self.ok),
            ("DELETE", r"/modules/(?P<mid>[^/]+)/students/(?P<sid>[^/]+)", self.ok),
            ("GET", r"/users/students", self.all_students),
            ("POST", r"/attendance", self.create_session),
            ("GET", r"/attendance/module/(?P<mid>[^/]+)", self.module_sessions),
            ("GET", r"/attendance/module/(?P<mid>[^/]+)/today", self.today_session),
            ("GET", r"/attendance/(?P<aid>[^/]+)/validate", self.get_session),
            ("PATCH", r"/attendance/(?P<aid>[^/]+)/status", self.update_status),
            ("PATCH", r"/attendance/(?P<aid>[^/]+)/student/(?P<sid>[^/]+)", self.ok),
            ("PATCH", r"/attendance/(?P<aid>[^/]+)/bulk-update", self.ok),
            ("GET", r"/attendance/(?P<aid>[^/]+)/qr", self.generate_qr),
            ("POST", r"/attendance/qr-mark", self.qr_mark),
            ("GET", r"/attendance/student/module/(?P<mid>[^/]+)", self.student_attendance),
            ("GET", r"/modules/(?P<mid>[^/]+)/grades", self.module_grades),
            ("POST", r"/modules/(?P<mid>[^/]+)/grades/bulk-update", self.ok),
            ("GET", r"/modules/(?P<mid>[^/]+)/grades/(?P<sid>[^/]+)", self.student_grades),
            ("POST", r"/modules/(?P<mid>[^/]+)/grades/(?P<sid>[^/]+)/(?P<component>[^/]+)", self.ok),
        ]

    # Transport
    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/api"):] if request.url.path.startswith("/api") else request.url.path
        body = json.loads(request.content) if request.content and request.headers.get(
            "content-type", "").startswith("application/json") else None
        self.calls.append((request.method, path, body))

        if path in self.fail_paths:
            return httpx.Response(500, json={"success": False, "error": "Internal error"})

        for method, pattern, view in self.routes:
            match = re.fullmatch(pattern, path)
            if method == request.method and match:
                user = None
                if not path.startswith(("/auth/login", "/auth/register")):
                    token = request.headers.get("authorization", "").removeprefix("Bearer ")
                    user = self.tokens.get(token)
                    if user is None:
                        return httpx.Response(401, json={"success": False, "error": "Not authorized"})
                return view(user=user, body=body, **match.groupdict())
        return httpx.Response(404, json={"success": False, "error": f"No route {request.method} {path}"})

    def calls_to(self, method, path):
        return [body for m, p, body in self.calls if m == method and p == path]

    @staticmethod
    def data(payload, status_code=200):
        return httpx.Response(status_code, json={"success": True, "data": payload})

    def ok(self, **kwargs):
        return self.data({"updated": True})

    # Auth
    def login(self, body, **kwargs):
        if self.passwords.get(body.get("email")) != body.get("password"):
            return httpx.Response(401, json={"success": False, "error": "Invalid credentials"})
        token = next(t for t, u in self.tokens.items() if u["email"] == body["email"])
        return httpx.Response(200, json={"success": True, "token": token, "user": self.tokens[token]})

    def register(self, body, **kwargs):
        user = {"_id": "u-new", "email": body["email"], "firstName": body["firstName"],
                "lastName": body["lastName"], "role": body.get("role", "student")}
        self.tokens["new-token"] = user
        return httpx.Response(201, json={"success": True, "token": "new-token", "user": user})

    def me(self, user, **kwargs):
        return self.data(user)

    def update_profile(self, user, body, **kwargs):
        return self.data({**user, **body})

    # Modules
    def list_modules(self, **kwargs):
        return self.data(list(self.modules.values()))

    def student_modules(self, user, **kwargs):
        return self.data([
            m for m in self.modules.values()
            if any((s.get("_id") if isinstance(s, dict) else s) == user["_id"] for s in m["enrolledStudents"])
        ])

    def get_module(self, mid, **kwargs):
        if mid not in self.modules:
            return httpx.Response(404, json={"success": False, "error": "Module not found"})
        return self.data(self.modules[mid])

    def create_module(self, body, **kwargs):
        module = {"_id": f"mod-{len(self.modules) + 1}", "enrolledStudents": [], **body}
        self.modules[module["_id"]] = module
        return self.data(module, 201)

    def update_module(self, mid, body, **kwargs):
        self.modules[mid].update(body)
        return self.data(self.modules[mid])

    def module_students(self, mid, **kwargs):
        ids = [s.get("_id") if isinstance(s, dict) else s for s in self.modules[mid]["enrolledStudents"]]
        return self.data([STUDENTS[sid] for sid in ids])

    def all_students(self, **kwargs):
        return self.data(list(STUDENTS.values()))

    # Attendance
    def create_session(self, body, **kwargs):
        session = {"_id": "att-new", "status": "pending", "students": [], **body}
        self.sessions[session["_id"]] = session
        return self.data(session, 201)

    def module_sessions(self, mid, **kwargs):
        return self.data([s for s in self.sessions.values() if s["module"] == mid])

    def today_session(self, mid, **kwargs):
        active = [s for s in self.sessions.values() if s["module"] == mid and s["status"] == "active"]
        return self.data(active[0] if active else None)

    def get_session(self, aid, **kwargs):
        if aid not in self.sessions:
            return httpx.Response(404, json={"success": False, "error": "Attendance not found"})
        return self.data(self.sessions[aid])

    def update_status(self, aid, body, **kwargs):
        self.sessions[aid]["status"] = body["status"]
        return self.data(self.sessions[aid])

    def generate_qr(self, aid, **kwargs):
        return self.data({"token": QR_TOKEN, "expiresIn": 300})

    def qr_mark(self, body, **kwargs):
        payload = json.loads(body["qrData"])
        if payload.get("token") != QR_TOKEN:
            return httpx.Response(400, json={"success": False, "error": "QR code expired"})
        return self.data({"status": "present", "attendanceId": payload["attendanceId"]})

    def student_attendance(self, user, mid, **kwargs):
        records = []
        for session in self.sessions.values():
            if session["module"] != mid:
                continue
            for mark in session["students"]:
                if mark["student"] == user["_id"]:
                    records.append({"date": session["date"], "status": mark["status"]})
        return self.data(records)

    # Grades
    def module_grades(self, mid, **kwargs):
        return self.data(self.grades.get(mid, []))

    def student_grades(self, mid, sid, **kwargs):
        for record in self.grades.get(mid, []):
            student = record["student"]
            if (student.get("_id") if isinstance(student, dict) else student) == sid:
                return self.data(record)
        return httpx.Response(404, json={"success": False, "error": "Grades not found"})


@pytest.fixture
def backend():
    return FakeLMSBackend()


@pytest.fixture
async def lms_client(backend):
    client = LMSClient(base_url=BASE_URL, transport=httpx.MockTransport(backend.handler))
    yield client
    await client.aclose()


@pytest.fixture
def manager(lms_client):
    return SessionManager(lms_client)


@pytest.fixture
async def lecturer_context(manager):
    return await manager.login("lecturer@uni.edu", "secret")


@pytest.fixture
async def student_context(manager):
    return await manager.login("amal@uni.edu", "secret")


@pytest.fixture
def api_client(backend):
    app.state.lms_client = LMSClient(base_url=BASE_URL, transport=httpx.MockTransport(backend.handler))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def lecturer_headers():
    return {"Authorization": "Bearer lecturer-token"}


@pytest.fixture
def student_headers():
    return {"Authorization": "Bearer student-token"}
