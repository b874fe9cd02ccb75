"""Tests for registration, login, profiles and user administration."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import campus_notes.main as main_module
from campus_notes.core.security import decode_token
from campus_notes.core.settings import settings
from campus_notes.db.base import utcnow
from campus_notes.models.content import Note
from campus_notes.models.engagement import ContentComment
from campus_notes.models.user import User
from campus_notes.services.variants import NOTE, QUESTION_PAPER

from conftest import PASSWORD, PDF_BYTES, PNG_BYTES, auth_headers, pdf_upload, stored_files

NOTE_METADATA = {"title": "DS Ch5", "subject": "DS", "department": "CS", "semester": "3"}
PAPER_METADATA = {"title": "DS Final", "subject": "DS", "department": "CS", "semester": "3", "exam_type": "final", "year": "2024"}


def test_register_creates_student_and_returns_token(client, db):
    response = client.post(
        "/api/auth/register",
        json={
            "email": "  New.Student@College.edu ",
            "password": "hunter22",
            "full_name": "New Student",
            "department": "CS",
            "semester": 2,
        },
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["email"] == "new.student@college.edu"
    assert data["user"]["role"] == "student"
    claims = decode_token(data["access_token"])
    assert claims["sub"] == str(data["user"]["id"])
    assert (claims["role"], claims["department"]) == ("student", "CS")
    assert db.query(User).filter(User.email == "new.student@college.edu").count() == 1


def test_register_rejects_duplicate_email(client):
    payload = {"email": "student@college.edu", "password": "hunter22", "full_name": "Dup", "department": "CS"}

    response = client.post("/api/auth/register", json=payload)

    assert response.status_code == 400
    assert response.json()["message"] == "User already exists with this email"


def test_register_reports_field_errors(client):
    response = client.post("/api/auth/register", json={"email": "bad", "password": "1", "full_name": "X", "department": "CS"})

    assert response.status_code == 400
    fields = {error["field"] for error in response.json()["errors"]}
    assert {"email", "password", "full_name"} <= fields


def test_login_and_me(client, users):
    response = client.post("/api/auth/login", data={"username": "student@college.edu", "password": PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["data"]["user"]["id"] == users["student"].id

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["data"]["email"] == "student@college.edu"
    assert me.json()["data"]["last_login_at"] is not None


def test_login_with_wrong_password(client, users):
    response = client.post("/api/auth/login", data={"username": "student@college.edu", "password": "wrong-pass"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Incorrect email or password"}


def test_invalid_token_is_unauthorized(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["message"] == "Could not validate credentials"


def test_notification_preferences_round_trip(client, users):
    headers = auth_headers(users["student"])

    defaults = client.get("/api/auth/me/notifications", headers=headers).json()["data"]
    updated = client.patch("/api/auth/me/notifications", json={"new_notes": False}, headers=headers).json()["data"]

    assert defaults == {"email_enabled": True, "new_notes": True, "new_question_papers": True}
    assert updated == {"email_enabled": True, "new_notes": False, "new_question_papers": True}


def test_profile_update(client, users):
    headers = auth_headers(users["student"])

    updated = client.patch("/api/auth/me", json={"full_name": "  Renamed Student ", "semester": 5}, headers=headers)
    invalid = client.patch("/api/auth/me", json={"semester": 9}, headers=headers)

    assert updated.status_code == 200
    assert updated.json()["message"] == "Profile updated successfully"
    data = updated.json()["data"]
    assert (data["full_name"], data["semester"], data["department"]) == ("Renamed Student", 5, "CS")
    assert invalid.status_code == 400
    assert invalid.json()["errors"][0]["field"] == "semester"


def test_password_change(client, users):
    headers = auth_headers(users["student"])
    path = "/api/auth/me/password"

    wrong = client.post(
        path,
        json={"current_password": "not-it", "new_password": "fresh-pass", "confirm_password": "fresh-pass"},
        headers=headers,
    )
    mismatch = client.post(
        path,
        json={"current_password": PASSWORD, "new_password": "fresh-pass", "confirm_password": "other-pass"},
        headers=headers,
    )
    changed = client.post(
        path,
        json={"current_password": PASSWORD, "new_password": "fresh-pass", "confirm_password": "fresh-pass"},
        headers=headers,
    )

    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Current password is incorrect"
    assert mismatch.status_code == 400
    assert mismatch.json()["errors"][0]["field"] == "confirm_password"
    assert changed.json() == {"success": True, "message": "Password changed successfully", "data": None}
    old_login = client.post("/api/auth/login", data={"username": "student@college.edu", "password": PASSWORD})
    new_login = client.post("/api/auth/login", data={"username": "student@college.edu", "password": "fresh-pass"})
    assert old_login.status_code == 401
    assert new_login.status_code == 200


def test_avatar_upload_replaces_previous_file(client, db, users, store):
    headers = auth_headers(users["student"])
    path = "/api/auth/me/avatar"

    first = client.post(path, files={"avatar": ("me.png", PNG_BYTES, "image/png")}, headers=headers)
    second = client.post(path, files={"avatar": ("me.jpg", PNG_BYTES, "image/jpeg")}, headers=headers)

    assert first.status_code == 200
    assert first.json()["message"] == "Avatar uploaded successfully"
    first_url = first.json()["data"]["avatar_url"]
    second_url = second.json()["data"]["avatar_url"]
    assert first_url.startswith("/uploads/avatars/")
    assert second_url != first_url
    db.refresh(users["student"])
    assert users["student"].avatar_url == second_url
    assert store.deleted == [first_url.removeprefix("/uploads/")]
    assert [stored.parent.name for stored in stored_files(store)] == ["avatars"]


def test_avatar_requires_an_image(client, users, store):
    headers = auth_headers(users["student"])

    missing = client.post("/api/auth/me/avatar", data={"caption": "me"}, headers=headers)
    not_image = client.post(
        "/api/auth/me/avatar",
        files={"avatar": ("cv.pdf", PDF_BYTES, "application/pdf")},
        headers=headers,
    )

    assert missing.status_code == 400
    assert missing.json()["message"] == "No image file provided"
    assert not_image.status_code == 400
    assert not_image.json()["errors"][0]["field"] == "avatar"
    assert stored_files(store) == []


def test_user_list_is_admin_only(client, users):
    assert client.get("/api/users", headers=auth_headers(users["teacher"])).status_code == 403

    body = client.get("/api/users", params={"role": "student", "limit": 2}, headers=auth_headers(users["admin"])).json()

    assert len(body["data"]) == 2
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["hasNext"] is True


def test_user_search_matches_name_or_email(client, users):
    body = client.get("/api/users", params={"search": "CLASSMATE"}, headers=auth_headers(users["admin"])).json()

    assert [user["id"] for user in body["data"]] == [users["classmate"].id]


def test_profile_visible_to_self_and_admin(client, workflow, users):
    workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["teacher"])
    path = f"/api/users/{users['teacher'].id}"

    own = client.get(path, headers=auth_headers(users["teacher"]))
    by_admin = client.get(path, headers=auth_headers(users["admin"]))
    by_student = client.get(path, headers=auth_headers(users["student"]))

    assert own.status_code == 200
    assert own.json()["data"]["stats"]["notes_uploaded"] == 1
    assert by_admin.status_code == 200
    assert by_student.status_code == 403


def test_role_change_and_last_admin_guard(client, users):
    headers = auth_headers(users["admin"])

    promoted = client.patch(f"/api/users/{users['student'].id}/role", json={"role": "teacher"}, headers=headers)
    demote_last_admin = client.patch(f"/api/users/{users['admin'].id}/role", json={"role": "student"}, headers=headers)

    assert promoted.json()["data"]["role"] == "teacher"
    assert demote_last_admin.status_code == 400
    assert demote_last_admin.json()["message"] == "Cannot demote the last admin user"


def test_verify_user(client, users):
    response = client.patch(
        f"/api/users/{users['student'].id}/verify",
        json={"is_verified": True},
        headers=auth_headers(users["admin"]),
    )

    assert response.json()["data"]["is_verified"] is True
    assert response.json()["message"] == "User verified successfully"


def test_delete_user_removes_uploads_and_files(client, db, workflow, engagement, users, store):
    note = workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["teacher"])
    engagement.add_comment(NOTE, note.id, users["teacher"], "Errata in section 2")
    engagement.add_comment(NOTE, note.id, users["student"], "Thanks")

    response = client.delete(f"/api/users/{users['teacher'].id}", headers=auth_headers(users["admin"]))

    assert response.status_code == 200
    assert db.get(User, users["teacher"].id) is None
    assert db.query(Note).count() == 0
    assert db.query(ContentComment).count() == 0
    assert stored_files(store) == []


@pytest.mark.parametrize("target", ["admin", "missing"])
def test_delete_user_guards(client, users, target):
    user_id = users["admin"].id if target == "admin" else 9999

    response = client.delete(f"/api/users/{user_id}", headers=auth_headers(users["admin"]))

    assert response.status_code == (400 if target == "admin" else 404)


def test_dashboard_scopes_by_role(client, workflow, users):
    teacher_note = workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["teacher"])
    student_note = workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["student"])

    student = client.get("/api/users/stats/dashboard", headers=auth_headers(users["student"])).json()["data"]
    admin = client.get("/api/users/stats/dashboard", headers=auth_headers(users["admin"])).json()["data"]

    assert student["total_users"] == 0
    assert student["total_notes"] == 0
    assert student["pending_approvals"] == 0
    assert admin["total_users"] == 5
    assert admin["total_notes"] == 1
    assert admin["pending_approvals"] == 1
    assert {row["user_id"] for row in admin["top_uploaders"]} == {users["teacher"].id, users["student"].id}
    assert [row["id"] for row in student["recent_uploads"]] == [student_note.id]
    assert student["recent_uploads"][0]["status"] == "pending"
    assert [row["id"] for row in admin["recent_uploads"]] == [student_note.id, teacher_note.id]
    assert admin["recent_uploads"][1]["uploader_name"] == users["teacher"].full_name


def test_dashboard_recent_uploads_cover_last_week_only(client, db, workflow, users):
    stale = workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["teacher"])
    stale.created_at = utcnow() - timedelta(days=8)
    db.commit()
    for index in range(6):
        workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["teacher"])
        workflow.submit(QUESTION_PAPER, metadata=PAPER_METADATA, upload=pdf_upload(), requester=users["teacher"])

    recent = client.get("/api/users/stats/dashboard", headers=auth_headers(users["admin"])).json()["data"]["recent_uploads"]

    assert len(recent) == 10
    assert sorted(row["kind"] for row in recent) == ["note"] * 5 + ["question_paper"] * 5
    assert stale.id not in {row["id"] for row in recent if row["kind"] == "note"}
    assert recent == sorted(recent, key=lambda row: row["created_at"], reverse=True)


def test_pending_approvals_queue(client, workflow, users):
    pending = workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["student"])

    everything = client.get("/api/users/approvals/pending", headers=auth_headers(users["teacher"])).json()
    notes_only = client.get(
        "/api/users/approvals/pending", params={"type": "notes"}, headers=auth_headers(users["teacher"])
    ).json()
    forbidden = client.get("/api/users/approvals/pending", headers=auth_headers(users["student"]))

    assert [item["id"] for item in everything["data"]["notes"]] == [pending.id]
    assert everything["data"]["question_papers"] == []
    assert notes_only["pagination"]["total"] == 1
    assert forbidden.status_code == 403


def test_health_and_version(client):
    assert client.get("/version").json()["app"] == "Campus Notes API"
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "campus_notes_moderation_decisions" in metrics.text


def test_app_shutdown_drains_notifications(monkeypatch):
    calls = []
    monkeypatch.setattr(main_module, "shutdown_dispatcher", lambda: calls.append("drained"))

    with TestClient(main_module.app) as running:
        assert running.get("/version").status_code == 200
        assert calls == []

    assert calls == ["drained"]


def test_production_settings_refuse_unsafe_defaults():
    unsafe = settings.model_copy(
        update={
            "environment": "production",
            "jwt_secret": "change_me",
            "allow_origins": ["*"],
            "email_provider": "smtp",
            "email_from": None,
        }
    )
    safe = unsafe.model_copy(
        update={"jwt_secret": "s3cret", "allow_origins": ["https://notes.college.edu"], "email_from": "noreply@college.edu"}
    )

    assert len(unsafe.production_problems()) == 3
    assert safe.production_problems() == []
