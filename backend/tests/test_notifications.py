"""Tests for notification fan-out, recipients and templates."""
import json
import threading

import httpx
import pytest

from campus_notes.core.errors import NotificationError
from campus_notes.core.settings import settings
from campus_notes.models.enums import ContentKind, Role
from campus_notes.models.notification_pref import UserNotificationPreference
from campus_notes.models.user import User
from campus_notes.services.email import EmailSendError, send_email
from campus_notes.services.notification_templates import build_new_content_email, build_rejection_email
from campus_notes.services.notifications import (
    NotificationDispatcher,
    NotificationMessage,
    find_interested_recipients,
)

from conftest import RecordingChannel


def _messages(count):
    return [
        NotificationMessage(
            recipient=f"user{index}@college.edu",
            subject="New Notes Available",
            html="<p>hi</p>",
            text="hi",
            recipient_user_id=index,
        )
        for index in range(1, count + 1)
    ]


class BlockingChannel:
    def __init__(self) -> None:
        self.release = threading.Event()
        self.started = threading.Event()

    def send(self, message) -> None:
        self.started.set()
        self.release.wait(timeout=5)


def test_one_failing_recipient_does_not_stop_the_others():
    channel = RecordingChannel(fail_for={"user3@college.edu"})
    dispatcher = NotificationDispatcher(channel, max_workers=1)
    try:
        result = dispatcher.submit(_messages(5), event="note_published").result(timeout=5)
    finally:
        dispatcher.shutdown()

    assert channel.attempted == [f"user{index}@college.edu" for index in range(1, 6)]
    assert channel.delivered_to == ["user1@college.edu", "user2@college.edu", "user4@college.edu", "user5@college.edu"]
    assert result.failed == ["user3@college.edu"]
    assert len(result.sent) == 4


def test_unexpected_channel_errors_are_contained():
    class ExplodingChannel:
        def send(self, message):
            raise RuntimeError("connection reset")

    dispatcher = NotificationDispatcher(ExplodingChannel())
    try:
        result = dispatcher.deliver_all(_messages(2), event="note_published")
    finally:
        dispatcher.shutdown()

    assert result.sent == []
    assert len(result.failed) == 2


def test_empty_batches_are_not_scheduled():
    dispatcher = NotificationDispatcher(RecordingChannel())
    try:
        assert dispatcher.submit([], event="note_published") is None
        assert dispatcher.wait_idle(timeout=1)
    finally:
        dispatcher.shutdown()


def test_jobs_beyond_capacity_are_dropped():
    channel = BlockingChannel()
    dispatcher = NotificationDispatcher(channel, max_workers=1, max_pending=1)
    try:
        first = dispatcher.submit(_messages(1), event="note_published")
        assert channel.started.wait(timeout=5)
        assert dispatcher.submit(_messages(1), event="note_published") is None
        channel.release.set()
        first.result(timeout=5)
        assert dispatcher.wait_idle(timeout=5)
    finally:
        channel.release.set()
        dispatcher.shutdown()


def test_submit_after_shutdown_is_dropped():
    dispatcher = NotificationDispatcher(RecordingChannel())
    dispatcher.shutdown()

    assert dispatcher.submit(_messages(1), event="note_published") is None


def test_interested_recipients_follow_preferences(db, users):
    db.add(UserNotificationPreference(user_id=users["classmate"].id, email_enabled=True, new_notes=False))
    inactive = User(
        email="former@college.edu",
        hashed_password="not-used",
        full_name="Former Student",
        role=Role.STUDENT,
        department="CS",
        is_active=False,
    )
    db.add(inactive)
    db.commit()

    for_notes = find_interested_recipients(
        db, department="CS", preference_attr="new_notes", exclude_user_id=users["student"].id
    )
    for_papers = find_interested_recipients(
        db, department="CS", preference_attr="new_question_papers", exclude_user_id=users["student"].id
    )

    assert [user.email for user in for_notes] == ["admin@college.edu", "teacher@college.edu"]
    assert [user.email for user in for_papers] == [
        "admin@college.edu",
        "teacher@college.edu",
        "classmate@college.edu",
    ]


def test_new_question_paper_email_mentions_year_and_escapes_title():
    content = build_new_content_email(
        kind=ContentKind.QUESTION_PAPER,
        title="<script>alert(1)</script>",
        subject="DS",
        department="CS",
        recipient_name="Asha",
        base_url="http://portal.test/",
        year=2024,
    )

    assert content["subject"] == "New Question Paper: <script>alert(1)</script>"
    assert "<script>" not in content["html"]
    assert "Year: 2024" in content["text"]
    assert "http://portal.test/question-papers" in content["text"]


def test_rejection_email_carries_reason():
    content = build_rejection_email(
        kind=ContentKind.NOTE,
        title="DS Ch5",
        reason="Wrong subject",
        recipient_name=None,
        base_url="http://portal.test",
    )

    assert content["subject"] == "Upload Rejected: DS Ch5"
    assert "Reason: Wrong subject" in content["text"]


def test_disabled_email_provider_raises_notification_error(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "disabled")

    with pytest.raises(NotificationError):
        send_email(to_address="a@college.edu", subject="s", html="<p>h</p>")
    assert issubclass(EmailSendError, NotificationError)


def test_shutdown_closes_the_channel():
    class ClosingChannel(RecordingChannel):
        closed = False

        def close(self):
            self.closed = True

    channel = ClosingChannel()
    NotificationDispatcher(channel).shutdown()

    assert channel.closed is True


def test_resend_delivery_reuses_the_given_client(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "resend")
    monkeypatch.setattr(settings, "email_api_key", "re_test")
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"id": "msg_1"})

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        result = send_email(
            to_address="asha@college.edu",
            subject="New Notes Available",
            html="<p>hi</p>",
            from_address="notes@college.edu",
            client=client,
        )

    assert result.provider == "resend"
    assert result.message_id == "msg_1"
    assert requests[0].headers["Authorization"] == "Bearer re_test"
    assert json.loads(requests[0].content)["to"] == ["asha@college.edu"]
