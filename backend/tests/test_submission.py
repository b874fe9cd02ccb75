"""Tests for uploading notes and question papers."""
import pytest
from sqlalchemy.exc import OperationalError

from campus_notes.core.errors import DependencyError, ValidationError
from campus_notes.models.content import Note
from campus_notes.models.enums import ContentStatus
from campus_notes.services.variants import NOTE, QUESTION_PAPER

from conftest import PDF_BYTES, auth_headers, pdf_upload, stored_files

NOTE_METADATA = {"title": "DS Ch5", "subject": "DS", "department": "CS", "semester": "3"}


def test_student_upload_is_pending_and_silent(workflow, users, store, dispatcher, channel):
    item = workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["student"])

    assert item.status == ContentStatus.PENDING
    assert item.approved_by_user_id is None
    assert item.approved_at is None
    assert item.uploaded_by_user_id == users["student"].id
    assert item.file_name == "chapter.pdf"
    assert item.file_type == "application/pdf"
    assert store.path_for(item.storage_key).exists()
    assert dispatcher.wait_idle(timeout=5)
    assert channel.attempted == []


def test_privileged_upload_is_published_with_self_approval(workflow, users, dispatcher, channel):
    item = workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["teacher"])

    assert item.status == ContentStatus.APPROVED
    assert item.approved_by_user_id == users["teacher"].id
    assert item.approved_at is not None

    assert dispatcher.wait_idle(timeout=5)
    assert sorted(channel.attempted) == sorted(
        [users["admin"].email, users["student"].email, users["classmate"].email]
    )


def test_invalid_metadata_removes_stored_file(workflow, users, store, db):
    metadata = dict(NOTE_METADATA, semester="9")

    with pytest.raises(ValidationError) as excinfo:
        workflow.submit(NOTE, metadata=metadata, upload=pdf_upload(), requester=users["student"])

    assert [err.field for err in excinfo.value.errors] == ["semester"]
    assert len(store.deleted) == 1
    assert stored_files(store) == []
    assert db.query(Note).count() == 0


def test_missing_file_reports_file_and_metadata_errors(workflow, users, store):
    with pytest.raises(ValidationError) as excinfo:
        workflow.submit(NOTE, metadata={"title": "DS"}, upload=None, requester=users["student"])

    fields = [err.field for err in excinfo.value.errors]
    assert "file" in fields
    assert "title" in fields
    assert "subject" in fields
    assert store.deleted == []


def test_rejected_mime_type_never_reaches_disk(workflow, users, store):
    upload = pdf_upload(name="tool.exe", content=b"MZ", content_type="application/x-msdownload")

    with pytest.raises(ValidationError) as excinfo:
        workflow.submit(NOTE, metadata=NOTE_METADATA, upload=upload, requester=users["student"])

    assert excinfo.value.errors[0].field == "file"
    assert stored_files(store) == []


def test_oversized_file_is_rejected(workflow, users, store):
    upload = pdf_upload(content=b"x" * (store.max_file_size + 1))

    with pytest.raises(ValidationError):
        workflow.submit(NOTE, metadata=NOTE_METADATA, upload=upload, requester=users["student"])

    assert stored_files(store) == []


def test_database_failure_rolls_back_file(workflow, users, store, monkeypatch):
    def broken_create(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(workflow.repository, "create", broken_create)

    with pytest.raises(DependencyError):
        workflow.submit(NOTE, metadata=NOTE_METADATA, upload=pdf_upload(), requester=users["student"])

    assert len(store.deleted) == 1
    assert stored_files(store) == []


def test_question_paper_accepts_camel_case_fields(workflow, users):
    metadata = {
        "title": "Data Structures Final",
        "subject": "DS",
        "department": "CS",
        "semester": "3",
        "examType": "final",
        "year": "2024",
        "maxMarks": "100",
        "tags": "trees, graphs, trees",
    }

    paper = workflow.submit(QUESTION_PAPER, metadata=metadata, upload=pdf_upload(), requester=users["student"])

    assert paper.exam_type.value == "final"
    assert paper.year == 2024
    assert paper.max_marks == 100
    assert paper.tags == ["trees", "graphs"]
    assert paper.storage_key.startswith("questions/")


def test_question_paper_year_out_of_range(workflow, users, store):
    metadata = {
        "title": "Ancient paper",
        "subject": "DS",
        "department": "CS",
        "semester": "3",
        "exam_type": "final",
        "year": "1999",
    }

    with pytest.raises(ValidationError) as excinfo:
        workflow.submit(QUESTION_PAPER, metadata=metadata, upload=pdf_upload(), requester=users["student"])

    assert [err.field for err in excinfo.value.errors] == ["year"]
    assert len(store.deleted) == 1


def test_upload_endpoint_returns_pending_envelope(client, users):
    response = client.post(
        "/api/notes",
        data=NOTE_METADATA,
        files={"file": ("ch5.pdf", PDF_BYTES, "application/pdf")},
        headers=auth_headers(users["student"]),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Note uploaded successfully and is pending approval"
    assert body["data"]["status"] == "pending"
    assert body["data"]["uploader"]["id"] == users["student"].id


def test_upload_endpoint_validation_envelope(client, users, store):
    response = client.post(
        "/api/notes",
        data=dict(NOTE_METADATA, semester="9"),
        files={"file": ("ch5.pdf", PDF_BYTES, "application/pdf")},
        headers=auth_headers(users["student"]),
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "semester"
    assert stored_files(store) == []


def test_upload_requires_authentication(client):
    response = client.post(
        "/api/notes",
        data=NOTE_METADATA,
        files={"file": ("ch5.pdf", PDF_BYTES, "application/pdf")},
    )

    assert response.status_code == 401
    assert response.json()["success"] is False
