"""API tests for /api/students and /api/parent (parent-only endpoints)."""
import pytest

from conftest import auth_header
from thinkdrills.services.worksheet_store import WorksheetStore

PARENT_TOKEN = "parent-token"


@pytest.fixture
def parent_id(fake_sb):
    pid = fake_sb.add_user("parent", PARENT_TOKEN, email="pat@example.com")
    fake_sb.add_row("parents", id=pid, name="Pat", email="pat@example.com")
    return pid


def _create(client, **overrides):
    body = {
        "name": "Ava",
        "user_name": "ava",
        "grade": 3,
        "password": "dinosaurs1",
        "categories": ["Math", "Science"],
        "interests": ["Space"],
    }
    body.update(overrides)
    return client.post("/api/students", json=body, headers=auth_header(PARENT_TOKEN))


class TestCreate:
    def test_creates_login_and_profile(self, client, fake_sb, parent_id):
        r = _create(client)
        assert r.status_code == 201, r.text
        student = r.json()
        assert student["parent_id"] == parent_id
        assert student["categories"] == ["Math", "Science"]

        auth_user = fake_sb.auth.users[student["id"]]
        assert auth_user.email == "ava@students.thinkdrills.app"
        assert auth_user.user_metadata["role"] == "student"

    def test_duplicate_user_name(self, client, parent_id):
        assert _create(client).status_code == 201
        r = _create(client, name="Other Ava")
        assert r.status_code == 400
        assert r.json()["detail"] == "Username already taken"

    @pytest.mark.parametrize("field,value", [("grade", 0), ("grade", 13), ("user_name", "ab"), ("password", "short")])
    def test_validation(self, client, parent_id, field, value):
        assert _create(client, **{field: value}).status_code == 422

    def test_parent_profile_missing(self, client, fake_sb):
        fake_sb.add_user("parent", PARENT_TOKEN)
        assert _create(client).status_code == 404

    def test_failed_profile_insert_removes_login(self, client, fake_sb, parent_id, monkeypatch):
        def failing_create_student(self, row):
            raise RuntimeError("students insert failed")

        monkeypatch.setattr(WorksheetStore, "create_student", failing_create_student)
        r = _create(client)
        assert r.status_code == 500
        assert r.json()["detail"] == "Failed to create student login"
        assert list(fake_sb.auth.users) == [parent_id]
        assert len(fake_sb.auth.admin.deleted) == 1

    def test_student_cannot_create(self, client, fake_sb, parent_id):
        fake_sb.add_user("student", "student-token")
        r = client.post(
            "/api/students",
            json={"name": "X", "user_name": "xxx", "grade": 1, "password": "password1"},
            headers=auth_header("student-token"),
        )
        assert r.status_code == 403


class TestListUpdateDelete:
    def test_list_only_own_students(self, client, fake_sb, parent_id):
        _create(client)
        fake_sb.add_row("students", id="x", parent_id="someone-else", name="Zed", user_name="zed", grade=1)
        r = client.get("/api/students", headers=auth_header(PARENT_TOKEN))
        assert [s["user_name"] for s in r.json()] == ["ava"]

    def test_update_fields(self, client, parent_id):
        sid = _create(client).json()["id"]
        r = client.put(
            "/api/students",
            json={"id": sid, "grade": 4, "interests": ["Dinosaurs"]},
            headers=auth_header(PARENT_TOKEN),
        )
        assert r.status_code == 200
        assert r.json()["grade"] == 4
        assert r.json()["interests"] == ["Dinosaurs"]
        assert r.json()["categories"] == ["Math", "Science"]

    def test_rename_updates_login_email(self, client, fake_sb, parent_id):
        sid = _create(client).json()["id"]
        r = client.put("/api/students", json={"id": sid, "user_name": "ava2"}, headers=auth_header(PARENT_TOKEN))
        assert r.status_code == 200
        assert fake_sb.auth.admin.updated[sid]["email"] == "ava2@students.thinkdrills.app"

    def test_failed_login_rename_keeps_user_name(self, client, fake_sb, parent_id, monkeypatch):
        sid = _create(client).json()["id"]

        def failing_update(uid, attrs):
            raise RuntimeError("auth update failed")

        monkeypatch.setattr(fake_sb.auth.admin, "update_user_by_id", failing_update)
        r = client.put("/api/students", json={"id": sid, "user_name": "ava2"}, headers=auth_header(PARENT_TOKEN))
        assert r.status_code == 500
        assert r.json()["detail"] == "Failed to update student login"
        assert fake_sb.tables["students"][0]["user_name"] == "ava"

    def test_rename_to_taken_user_name(self, client, parent_id):
        sid = _create(client).json()["id"]
        _create(client, user_name="bob", name="Bob")
        r = client.put("/api/students", json={"id": sid, "user_name": "bob"}, headers=auth_header(PARENT_TOKEN))
        assert r.status_code == 400

    def test_update_other_parents_student(self, client, fake_sb, parent_id):
        fake_sb.add_row("students", id="x", parent_id="someone-else", name="Zed", user_name="zed", grade=1)
        r = client.put("/api/students", json={"id": "x", "grade": 2}, headers=auth_header(PARENT_TOKEN))
        assert r.status_code == 404

    def test_delete(self, client, fake_sb, parent_id):
        sid = _create(client).json()["id"]
        r = client.delete(f"/api/students?id={sid}", headers=auth_header(PARENT_TOKEN))
        assert r.status_code == 200
        assert fake_sb.tables["students"] == []
        assert sid in fake_sb.auth.admin.deleted

    def test_reset_student_password(self, client, fake_sb, parent_id):
        sid = _create(client).json()["id"]
        r = client.put(
            "/api/students/reset-password",
            json={"id": sid, "password": "newpassword"},
            headers=auth_header(PARENT_TOKEN),
        )
        assert r.status_code == 200
        assert fake_sb.auth.admin.updated[sid]["password"] == "newpassword"


class TestReports:
    def test_report_per_student(self, client, fake_sb, parent_id):
        sid = _create(client).json()["id"]
        fake_sb.add_row("worksheets", student_id=sid, subject="Math", status="COMPLETED", score=80,
                        title="a", created_at="2025-01-01T00:00:00+00:00")
        fake_sb.add_row("worksheets", student_id=sid, subject="Math", status="COMPLETED", score=90,
                        title="b", created_at="2025-01-02T00:00:00+00:00")
        fake_sb.add_row("worksheets", student_id=sid, subject="Science", status="COMPLETED", score=90,
                        title="c", created_at="2025-01-03T00:00:00+00:00")

        r = client.get("/api/students/reports", headers=auth_header(PARENT_TOKEN))
        assert r.status_code == 200
        [report] = r.json()
        assert report["total_worksheets"] == 3
        assert report["subject_averages"] == [
            {"subject": "Math", "average_score": 85},
            {"subject": "Science", "average_score": 90},
        ]
        assert [w["title"] for w in report["recent_worksheets"]] == ["c", "b", "a"]


class TestDeleteParent:
    def test_removes_parent_students_and_logins(self, client, fake_sb, parent_id):
        sid = _create(client).json()["id"]
        r = client.delete("/api/parent", headers=auth_header(PARENT_TOKEN))
        assert r.status_code == 200
        assert fake_sb.tables["parents"] == []
        assert fake_sb.tables["students"] == []
        assert set(fake_sb.auth.admin.deleted) == {sid, parent_id}
