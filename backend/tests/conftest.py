from __future__ import annotations

import io
import threading
from typing import Iterable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import campus_notes.models  # noqa: F401
from campus_notes.core.deps import get_dispatcher, get_file_store
from campus_notes.core.errors import NotificationError
from campus_notes.core.rbac import Authorizer
from campus_notes.core.security import create_user_token, get_password_hash
from campus_notes.db.base import Base
from campus_notes.db.session import create_db_engine, get_db
from campus_notes.main import app
from campus_notes.models.enums import Role
from campus_notes.models.user import User
from campus_notes.services.content_workflow import ContentWorkflow, IncomingFile
from campus_notes.services.engagement import EngagementService
from campus_notes.services.notifications import NotificationDispatcher
from campus_notes.services.storage import LocalFileStore

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"
PASSWORD = "secret123"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class RecordingChannel:
    """Notification channel that records every attempt and fails for chosen recipients."""

    def __init__(self, fail_for: Iterable[str] = ()) -> None:
        self.fail_for = set(fail_for)
        self.attempted: list[str] = []
        self.sent = []
        self._lock = threading.Lock()

    def send(self, message) -> None:
        with self._lock:
            self.attempted.append(message.recipient)
        if message.recipient in self.fail_for:
            raise NotificationError(f"mailbox unavailable: {message.recipient}")
        with self._lock:
            self.sent.append(message)

    @property
    def delivered_to(self) -> list[str]:
        return [message.recipient for message in self.sent]


class CountingFileStore(LocalFileStore):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.deleted: list[str] = []

    def delete(self, key: str) -> bool:
        self.deleted.append(key)
        return super().delete(key)


def pdf_upload(name: str = "chapter.pdf", content: bytes = PDF_BYTES, content_type: str = "application/pdf") -> IncomingFile:
    return IncomingFile(filename=name, content_type=content_type, stream=io.BytesIO(content))


def auth_headers(user: User) -> dict[str, str]:
    token = create_user_token(user)
    return {"Authorization": f"Bearer {token}"}


def stored_files(store: LocalFileStore) -> list:
    return [path for path in store.root.rglob("*") if path.is_file()]


@pytest.fixture()
def db():
    engine = create_db_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def _make_user(db, email: str, role: Role, department: str = "CS", *, full_name: str | None = None) -> User:
    user = User(
        email=email,
        hashed_password="not-used",
        full_name=full_name or email.split("@")[0].title(),
        role=role,
        department=department,
        semester=3,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


@pytest.fixture()
def users(db):
    seeded = {
        "admin": _make_user(db, "admin@college.edu", Role.ADMIN),
        "teacher": _make_user(db, "teacher@college.edu", Role.TEACHER),
        "student": _make_user(db, "student@college.edu", Role.STUDENT),
        "classmate": _make_user(db, "classmate@college.edu", Role.STUDENT),
        "outsider": _make_user(db, "outsider@college.edu", Role.STUDENT, department="EE"),
    }
    seeded["student"].hashed_password = get_password_hash(PASSWORD)
    db.commit()
    return seeded


@pytest.fixture()
def channel():
    return RecordingChannel()


@pytest.fixture()
def dispatcher(channel):
    instance = NotificationDispatcher(channel, max_workers=2, max_pending=10)
    try:
        yield instance
    finally:
        instance.shutdown()


@pytest.fixture()
def store(tmp_path):
    return CountingFileStore(
        tmp_path / "uploads",
        max_file_size=1024 * 1024,
        allowed_mime_types=["application/pdf", "text/plain", "image/png", "image/jpeg"],
    )


@pytest.fixture()
def workflow(db, store, dispatcher):
    return ContentWorkflow(
        db,
        store=store,
        dispatcher=dispatcher,
        authorizer=Authorizer(),
        base_url="http://portal.test",
    )


@pytest.fixture()
def engagement(db):
    return EngagementService(db, Authorizer())


@pytest.fixture()
def client(db, store, dispatcher, users):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    client_instance = TestClient(app)
    try:
        yield client_instance
    finally:
        client_instance.close()
        app.dependency_overrides.clear()
