import json
from datetime import datetime, timedelta, timezone


def test_root_and_health(api_client):
    assert api_client.get("/").json()["status"] == "active"
    health = api_client.get("/health/").json()
    assert health["status"] == "healthy"
    backend = api_client.get("/health/full-health").json()
    assert backend["components"]["backend"] == "healthy"


def test_process_time_header(api_client):
    response = api_client.get("/health/")
    assert "x-process-time" in response.headers


class TestAuthAPI:
    def test_login_me_logout(self, api_client):
        response = api_client.post("/api/v1/auth/login", json={"email": "lecturer@uni.edu", "password": "secret"})
        assert response.status_code == 200
        session = response.json()
        assert session["token"] == "lecturer-token"
        assert session["user"]["firstName"] == "Grace"
        assert "expiresAt" in session

        headers = {"Authorization": f"Bearer {session['token']}"}
        assert api_client.get("/api/v1/auth/me", headers=headers).json()["role"] == "lecturer"
        assert api_client.post("/api/v1/auth/logout", headers=headers).json()["session_closed"] is True

        after = api_client.get("/api/v1/auth/me", headers=headers)
        assert after.status_code == 401
        assert after.json()["type"] == "AuthenticationError"

    def test_login_after_logout_works_again(self, api_client):
        credentials = {"email": "lecturer@uni.edu", "password": "secret"}
        token = api_client.post("/api/v1/auth/login", json=credentials).json()["token"]
        headers = {"Authorization": f"Bearer {token}"}
        api_client.post("/api/v1/auth/logout", headers=headers)

        api_client.post("/api/v1/auth/login", json=credentials)
        assert api_client.get("/api/v1/auth/me", headers=headers).status_code == 200

    def test_expired_session_stays_closed(self, api_client, lecturer_headers):
        assert api_client.get("/api/v1/auth/me", headers=lecturer_headers).status_code == 200
        context = api_client.app.state.session_manager.get("lecturer-token")
        context.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)

        assert api_client.get("/api/v1/auth/me", headers=lecturer_headers).status_code == 401
        assert api_client.get("/api/v1/auth/me", headers=lecturer_headers).status_code == 401

    def test_wrong_password(self, api_client):
        response = api_client.post("/api/v1/auth/login", json={"email": "lecturer@uni.edu", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["type"] == "AuthenticationError"

    def test_missing_token(self, api_client):
        response = api_client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert response.json()["error"] == "Not authenticated"

    def test_unknown_token_is_rejected_by_backend(self, api_client):
        response = api_client.get("/api/v1/auth/me", headers={"Authorization": "Bearer forged"})
        assert response.status_code == 401
        assert response.json()["error"] == "Session expired. Please login again."

    def test_register(self, api_client):
        response = api_client.post("/api/v1/auth/register", json={
            "email": "new@uni.edu", "password": "secret1", "firstName": "New", "lastName": "Student",
        })
        assert response.status_code == 200
        assert response.json()["session"]["token"] == "new-token"

    def test_profile_update_refreshes_session_user(self, api_client, student_headers):
        response = api_client.put("/api/v1/auth/profile", json={"firstName": "Amala"}, headers=student_headers)
        assert response.json()["firstName"] == "Amala"
        assert api_client.get("/api/v1/auth/me", headers=student_headers).json()["firstName"] == "Amala"


class TestRoleGuards:
    def test_student_cannot_open_grade_sheet(self, api_client, student_headers):
        response = api_client.get("/api/v1/grades/modules/mod-1", headers=student_headers)
        assert response.status_code == 403
        assert response.json()["type"] == "AccessDeniedError"

    def test_lecturer_cannot_scan(self, api_client, lecturer_headers):
        response = api_client.post("/api/v1/attendance/qr-mark", json={"qrData": "{}"}, headers=lecturer_headers)
        assert response.status_code == 403


class TestModulesAPI:
    def test_lecturer_modules(self, api_client, lecturer_headers):
        modules = api_client.get("/api/v1/modules/", headers=lecturer_headers).json()
        assert [m["code"] for m in modules] == ["CS101", "MA201"]
        assert modules[0]["assessmentWeights"]["finalExam"] == 70

    def test_create_module_rejects_bad_weights(self, api_client, lecturer_headers, backend):
        response = api_client.post("/api/v1/modules/", headers=lecturer_headers, json={
            "code": "cs300", "name": "Compilers", "creditHours": 4,
            "assessmentWeights": {"attendance": 5, "assignments": 15, "test": 10, "finalExam": 50},
        })
        assert response.status_code == 422
        assert response.json()["type"] == "ConfigurationError"
        assert backend.calls_to("POST", "/modules") == []

    def test_create_module(self, api_client, lecturer_headers, backend):
        response = api_client.post("/api/v1/modules/", headers=lecturer_headers, json={
            "code": "cs300", "name": "Compilers", "creditHours": 4,
        })
        assert response.status_code == 200
        assert response.json()["code"] == "CS300"
        sent = backend.calls_to("POST", "/modules")[0]
        assert sent["assessmentWeights"] == {"attendance": 5, "assignments": 15, "test": 10, "finalExam": 70}

    def test_update_module_normalizes_code(self, api_client, lecturer_headers, backend):
        response = api_client.put("/api/v1/modules/mod-1", headers=lecturer_headers, json={"code": " cs102 "})
        assert response.status_code == 200
        assert backend.calls_to("PUT", "/modules/mod-1") == [{"code": "CS102"}]
        assert response.json()["code"] == "CS102"

    def test_missing_module(self, api_client, lecturer_headers):
        response = api_client.get("/api/v1/modules/nope", headers=lecturer_headers)
        assert response.status_code == 404
        assert response.json()["type"] == "NotFoundError"

    def test_enrollment_template(self, api_client):
        response = api_client.get("/api/v1/modules/enrollment/template")
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text.splitlines()[0] == "Student ID,First Name,Last Name,Email"

    def test_upload_students(self, api_client, lecturer_headers, backend):
        content = b"Student ID,First Name,Last Name,Email\nST009,Kamal,Silva,kamal@uni.edu\n"
        response = api_client.post(
            "/api/v1/modules/mod-1/students/upload",
            headers=lecturer_headers,
            files={"file": ("students.csv", content, "text/csv")},
        )
        assert response.status_code == 200
        assert len(backend.calls_to("POST", "/modules/mod-1/students/upload")) == 1

    def test_upload_requires_csv(self, api_client, lecturer_headers):
        response = api_client.post(
            "/api/v1/modules/mod-1/students/upload",
            headers=lecturer_headers,
            files={"file": ("students.xlsx", b"data", "application/octet-stream")},
        )
        assert response.status_code == 400
        assert response.json()["field"] == "file"


class TestAttendanceAPI:
    def test_session_lifecycle(self, api_client, lecturer_headers, backend):
        created = api_client.post("/api/v1/attendance/sessions", headers=lecturer_headers, json={
            "module": "mod-1", "date": "2025-03-10", "startTime": "10:00",
        }).json()
        assert created["status"] == "pending"

        url = f"/api/v1/attendance/sessions/{created['id']}/status"
        skip = api_client.patch(url, headers=lecturer_headers, json={"status": "completed"})
        assert skip.status_code == 409
        assert skip.json()["type"] == "InvalidSessionTransition"

        assert api_client.patch(url, headers=lecturer_headers, json={"status": "active"}).json()["status"] == "active"
        assert api_client.patch(url, headers=lecturer_headers, json={"status": "completed"}).json()["status"] == "completed"

        closed = api_client.patch(
            f"/api/v1/attendance/sessions/{created['id']}/students/stu-1",
            headers=lecturer_headers, json={"status": "present"},
        )
        assert closed.status_code == 409
        assert closed.json()["type"] == "SessionClosedError"

    def test_qr_round_trip(self, api_client, lecturer_headers, student_headers):
        display = api_client.get("/api/v1/attendance/sessions/att-4/qr", headers=lecturer_headers).json()
        assert display["refreshSeconds"] == 300
        assert json.loads(display["qrData"])["token"] == "tok-abc"

        marked = api_client.post(
            "/api/v1/attendance/qr-mark", headers=student_headers, json={"qrData": display["qrData"]}
        )
        assert marked.status_code == 200
        assert marked.json()["message"] == "Attendance marked successfully"

    def test_invalid_qr(self, api_client, student_headers):
        response = api_client.post("/api/v1/attendance/qr-mark", headers=student_headers, json={"qrData": "xyz"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid QR code", "type": "InvalidQRCodeError", "field": "qrData"}

    def test_my_attendance(self, api_client, student_headers):
        view = api_client.get("/api/v1/attendance/modules/mod-1/me", headers=student_headers).json()
        assert view["attendanceRate"] == 87.5
        assert view["summary"] == {"present": 3, "late": 1, "absent": 0, "total": 4}

    def test_attendance_export(self, api_client, lecturer_headers):
        response = api_client.get("/api/v1/attendance/modules/mod-1/export", headers=lecturer_headers)
        assert response.status_code == 200
        assert "attachment; filename=attendance_mod-1.csv" == response.headers["content-disposition"]
        assert response.text.splitlines()[1].startswith("ST001,Amal Perera")

    def test_score_calculator(self, api_client):
        result = api_client.get("/api/v1/attendance/score", params={"late": 10, "total": 10}).json()
        assert result["attendance_score"] == 2.5
        assert result["attendance_rate"] == 50

    def test_score_calculator_rejects_impossible_counts(self, api_client):
        response = api_client.get("/api/v1/attendance/score", params={"present": 3, "total": 2})
        assert response.status_code == 400


class TestGradesAPI:
    def test_grade_sheet(self, api_client, lecturer_headers):
        sheet = api_client.get("/api/v1/grades/modules/mod-1", headers=lecturer_headers).json()
        letters = [row["classification"]["letter"] for row in sheet["rows"]]
        assert letters == ["A", "D"]
        assert sheet["statistics"]["passRate"] == 50
        assert sheet["weights"]["finalExam"] == 70

    def test_update_component(self, api_client, lecturer_headers, backend):
        response = api_client.put(
            "/api/v1/grades/modules/mod-1/students/stu-2/exam",
            headers=lecturer_headers, json={"grade": 64, "comments": "Resit"},
        )
        assert response.status_code == 200
        assert backend.calls_to("POST", "/modules/mod-1/grades/stu-2/exam") == [{"grade": 64.0, "comments": "Resit"}]

    def test_update_component_rejects_out_of_range(self, api_client, lecturer_headers):
        response = api_client.put(
            "/api/v1/grades/modules/mod-1/students/stu-2/exam",
            headers=lecturer_headers, json={"grade": 101},
        )
        assert response.status_code == 422

    def test_import_and_export(self, api_client, lecturer_headers):
        imported = api_client.post(
            "/api/v1/grades/modules/mod-1/import",
            headers=lecturer_headers,
            files={"file": ("grades.csv", b"Student ID,Exam\nST001,88\nST002,-4\n", "text/csv")},
        ).json()
        assert imported["imported_rows"] == 1
        assert imported["validation_errors"][0]["row_number"] == 3

        exported = api_client.get("/api/v1/grades/modules/mod-1/export", headers=lecturer_headers)
        header, first, second = exported.text.splitlines()
        assert header == "Student ID,Name,Email,Attendance,Assignment,Test,Exam,Final Grade,Letter Grade,Grade Points"
        assert first.endswith(",A,4.0")
        assert second.endswith(",D,1.0")

    def test_my_grades(self, api_client, student_headers):
        transcript = api_client.get("/api/v1/grades/me", headers=student_headers).json()
        assert transcript["summary"]["cgpa"] == 2.4
        assert transcript["summary"]["totalCredits"] == 5
        assert [m["letter"] for m in transcript["modules"]] == ["A", "N/A"]

    def test_classify(self, api_client):
        result = api_client.get("/api/v1/grades/classify", params={"percentage": "105"}).json()
        assert result["letter"] == "A"
        assert result["clamped"] is True
        assert api_client.get("/api/v1/grades/classify").json()["letter"] == "N/A"
        assert api_client.get("/api/v1/grades/classify", params={"percentage": "abc"}).status_code == 400

    def test_cgpa(self, api_client):
        result = api_client.post("/api/v1/grades/cgpa", json=[
            {"moduleCode": "CS101", "creditHours": 3, "finalGrade": 70},
            {"moduleCode": "MA201", "creditHours": 2, "finalGrade": None},
        ]).json()
        assert result == {"cgpa": 2.4, "totalCredits": 5.0, "earnedCredits": 3.0, "totalQualityPoints": 12.0}

    def test_scale_legend(self, api_client):
        legend = api_client.get("/api/v1/grades/scale", params={"scale": "reference"}).json()
        assert legend["grades"][1] == {"letter": "B+", "min_percentage": 65, "grade_points": 3.5}
        assert api_client.get("/api/v1/grades/scale", params={"scale": "curved"}).status_code == 400


class TestDashboardAPI:
    def test_lecturer_dashboard(self, api_client, lecturer_headers):
        dashboard = api_client.get("/api/v1/dashboard/lecturer", headers=lecturer_headers).json()
        assert dashboard["activeModules"] == 2
        assert dashboard["totalStudents"] == 2

    def test_student_dashboard(self, api_client, student_headers):
        dashboard = api_client.get("/api/v1/dashboard/student", headers=student_headers).json()
        assert dashboard["enrolledModules"] == 2
        assert dashboard["summary"]["cgpa"] == 2.4
