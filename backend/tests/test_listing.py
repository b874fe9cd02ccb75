"""Tests for paginated listing, filtering and visibility of uploads."""
from uuid import uuid4

import pytest

from campus_notes.core.errors import ValidationError
from campus_notes.models.content import Note, QuestionPaper
from campus_notes.models.enums import ContentStatus, ExamType
from campus_notes.services.content_repository import ContentQuery, ContentRepository, Page
from campus_notes.services.variants import NOTE

from conftest import auth_headers


def _note(db, uploader, title, *, status=ContentStatus.APPROVED, **fields):
    values = {
        "subject": "Data Structures",
        "department": "CS",
        "semester": 3,
        "tags": [],
    }
    values.update(fields)
    note = Note(
        title=title,
        file_url="/uploads/notes/sample.pdf",
        file_name="sample.pdf",
        file_size=128,
        file_type="application/pdf",
        storage_key=f"notes/{uuid4().hex}.pdf",
        status=status,
        uploaded_by_user_id=uploader.id,
        **values,
    )
    db.add(note)
    db.commit()
    return note


def _paper(db, uploader, title, *, year, exam_type=ExamType.FINAL, subject="Data Structures"):
    paper = QuestionPaper(
        title=title,
        subject=subject,
        department="CS",
        semester=3,
        tags=[],
        exam_type=exam_type,
        year=year,
        file_url="/uploads/questions/sample.pdf",
        file_name="sample.pdf",
        file_size=128,
        file_type="application/pdf",
        storage_key=f"questions/{uuid4().hex}.pdf",
        status=ContentStatus.APPROVED,
        uploaded_by_user_id=uploader.id,
    )
    db.add(paper)
    db.commit()
    return paper


@pytest.fixture
def twenty_five_notes(db, users):
    return [_note(db, users["teacher"], f"Note {index:02d}") for index in range(25)]


def test_page_math():
    assert Page(items=[], total=25, page=1, limit=10).pages == 3
    assert Page(items=[], total=0, page=1, limit=10).pages == 0
    assert Page(items=[], total=20, page=2, limit=10).has_next is False


def test_first_and_last_page_flags(client, twenty_five_notes):
    first = client.get("/api/notes", params={"page": 1, "limit": 10}).json()
    last = client.get("/api/notes", params={"page": 3, "limit": 10}).json()

    assert len(first["data"]) == 10
    assert first["pagination"] == {"current": 1, "pages": 3, "total": 25, "hasNext": True, "hasPrev": False}
    assert len(last["data"]) == 5
    assert last["pagination"] == {"current": 3, "pages": 3, "total": 25, "hasNext": False, "hasPrev": True}


def test_page_beyond_the_end_is_empty(client, twenty_five_notes):
    body = client.get("/api/notes", params={"page": 4, "limit": 10}).json()

    assert body["data"] == []
    assert body["pagination"]["hasNext"] is False


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 51}, {"sort_by": "password"}])
def test_invalid_paging_is_rejected(client, params):
    response = client.get("/api/notes", params=params)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["errors"]


def test_workflow_rejects_out_of_range_limit(workflow):
    with pytest.raises(ValidationError) as excinfo:
        workflow.list(NOTE, ContentQuery(page=1, limit=51), None)

    assert excinfo.value.errors[0].field == "limit"


def test_approved_items_are_public_and_pending_are_not(client, db, users):
    approved = _note(db, users["teacher"], "Approved note")
    pending = _note(db, users["student"], "Pending note", status=ContentStatus.PENDING)

    anonymous = client.get("/api/notes").json()
    assert [item["id"] for item in anonymous["data"]] == [approved.id]
    assert client.get(f"/api/notes/{approved.id}").status_code == 200
    assert client.get(f"/api/notes/{pending.id}").status_code == 403

    classmate = client.get("/api/notes", params={"status": "pending"}, headers=auth_headers(users["classmate"])).json()
    assert [item["id"] for item in classmate["data"]] == [approved.id]

    moderator = client.get("/api/notes", params={"status": "pending"}, headers=auth_headers(users["teacher"])).json()
    assert [item["id"] for item in moderator["data"]] == [pending.id]

    own = client.get("/api/notes/mine", headers=auth_headers(users["student"])).json()
    assert [item["id"] for item in own["data"]] == [pending.id]
    assert client.get(f"/api/notes/{pending.id}", headers=auth_headers(users["student"])).status_code == 200


def test_filters_are_combined(db, users):
    _note(db, users["teacher"], "Trees", semester=3, department="CS")
    _note(db, users["teacher"], "Circuits", semester=3, department="EE")
    _note(db, users["teacher"], "Graphs", semester=5, department="CS")

    page = ContentRepository(db).find(
        NOTE,
        ContentQuery(filters={"department": "CS", "semester": 3}, status=ContentStatus.APPROVED),
    )

    assert [item.title for item in page.items] == ["Trees"]


def test_search_matches_any_field_case_insensitively(client, db, users):
    by_title = _note(db, users["teacher"], "Binary TREES explained")
    by_description = _note(db, users["teacher"], "Chapter 4", description="balanced trees and heaps")
    by_tag = _note(db, users["teacher"], "Chapter 5", tags=["Trees"])
    _note(db, users["teacher"], "Sorting")

    body = client.get("/api/notes", params={"search": "trees"}).json()

    assert {item["id"] for item in body["data"]} == {by_title.id, by_description.id, by_tag.id}


def test_search_treats_wildcards_literally(client, db, users):
    _note(db, users["teacher"], "Percent 100% coverage")
    _note(db, users["teacher"], "Plain title")

    body = client.get("/api/notes", params={"search": "%"}).json()

    assert [item["title"] for item in body["data"]] == ["Percent 100% coverage"]


def test_search_matches_non_ascii_tags_and_titles(client, db, users):
    tagged = _note(db, users["teacher"], "Career notes", tags=["résumé"])
    titled = _note(db, users["teacher"], "ÉTUDE in graph theory")
    _note(db, users["teacher"], "Plain title", tags=["resume"])

    by_tag = client.get("/api/notes", params={"search": "résumé"}).json()
    by_title = client.get("/api/notes", params={"search": "étude"}).json()

    assert [item["id"] for item in by_tag["data"]] == [tagged.id]
    assert [item["id"] for item in by_title["data"]] == [titled.id]


def test_search_only_matches_tag_values(client, db, users):
    _note(db, users["teacher"], "Two tags", tags=["alpha", "beta"])

    separator = client.get("/api/notes", params={"search": '", "'}).json()
    bracket = client.get("/api/notes", params={"search": "["}).json()
    value = client.get("/api/notes", params={"search": "BETA"}).json()

    assert separator["pagination"]["total"] == 0
    assert bracket["pagination"]["total"] == 0
    assert value["pagination"]["total"] == 1


def test_subject_filter_is_substring(client, db, users):
    _note(db, users["teacher"], "Stacks", subject="Data Structures")
    _note(db, users["teacher"], "Limits", subject="Calculus")

    body = client.get("/api/notes", params={"subject": "structures"}).json()

    assert [item["title"] for item in body["data"]] == ["Stacks"]


def test_sort_by_title_ascending(client, db, users):
    for title in ("Charlie", "Alpha", "Bravo"):
        _note(db, users["teacher"], title)

    body = client.get("/api/notes", params={"sort_by": "title", "sort_order": "asc"}).json()

    assert [item["title"] for item in body["data"]] == ["Alpha", "Bravo", "Charlie"]


def test_question_paper_filters_and_years(client, db, users):
    _paper(db, users["teacher"], "DS Final 2023", year=2023)
    _paper(db, users["teacher"], "DS Midterm 2023", year=2023, exam_type=ExamType.MIDTERM)
    _paper(db, users["teacher"], "DS Final 2024", year=2024)

    finals = client.get("/api/question-papers", params={"exam_type": "final", "year": 2023}).json()
    assert [item["title"] for item in finals["data"]] == ["DS Final 2023"]

    years = client.get("/api/question-papers/filters/years").json()
    assert years["data"] == [2024, 2023]


def test_question_paper_overview(client, db, users):
    _paper(db, users["teacher"], "DS Final 2023", year=2023)
    _paper(db, users["teacher"], "DS Final 2024", year=2024)
    _paper(db, users["teacher"], "OS Quiz 2024", year=2024, exam_type=ExamType.QUIZ, subject="Operating Systems")

    body = client.get("/api/question-papers/stats/overview").json()["data"]

    assert body["total"] == 3
    assert {row["exam_type"]: row["count"] for row in body["by_exam_type"]} == {"final": 2, "quiz": 1}
    assert body["by_year"][0] == {"year": 2024, "count": 2}
    assert body["top_subjects"][0] == {"subject": "Data Structures", "count": 2}
