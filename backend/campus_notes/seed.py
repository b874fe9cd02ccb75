from __future__ import annotations

import argparse
import io

from sqlalchemy.orm import Session

import campus_notes.models  # noqa: F401
from campus_notes.core.security import get_password_hash
from campus_notes.core.settings import settings
from campus_notes.db.base import Base, utcnow
from campus_notes.db.session import SessionLocal, engine
from campus_notes.models.enums import ContentStatus, Role
from campus_notes.models.user import User
from campus_notes.services.content_repository import ContentRepository
from campus_notes.services.storage import LocalFileStore
from campus_notes.services.variants import NOTE, QUESTION_PAPER


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the Campus Notes database with demo data")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables before seeding")
    parser.add_argument("--password", default="password", help="Password for every demo account")
    return parser.parse_args()


def reset_db() -> None:
    if settings.is_production:
        raise RuntimeError("Destructive actions are disabled in this environment.")
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def get_or_create_user(
    db: Session,
    *,
    email: str,
    password: str,
    role: Role,
    full_name: str,
    department: str,
    semester: int | None = None,
) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        full_name=full_name,
        department=department,
        semester=semester,
        is_active=True,
        is_verified=role != Role.STUDENT,
    )
    db.add(user)
    db.flush()
    return user


def seed_content(db: Session, *, users: dict[str, User], store: LocalFileStore) -> None:
    repository = ContentRepository(db)
    samples = (
        (NOTE, users["teacher"], ContentStatus.APPROVED, {"title": "Linked Lists Basics", "unit": "Unit 2"}),
        (NOTE, users["student"], ContentStatus.PENDING, {"title": "Stacks and Queues summary", "unit": "Unit 3"}),
        (QUESTION_PAPER, users["teacher"], ContentStatus.APPROVED, {"title": "DS Final 2024", "exam_type": "final", "year": 2024}),
    )
    for variant, uploader, status, extra in samples:
        body = f"{extra['title']}\n\nDemo content for the {variant.label.lower()} listing.\n".encode()
        stored = store.save(variant.upload_category, f"{extra['title']}.txt", "text/plain", io.BytesIO(body))
        fields = {
            "subject": "Data Structures",
            "department": "CS",
            "semester": 3,
            "tags": ["demo", "data-structures"],
            **extra,
        }
        data = variant.create_schema.model_validate(fields)
        approved = status == ContentStatus.APPROVED
        repository.create(
            variant,
            **data.model_dump(),
            file_url=stored.url,
            file_name=stored.original_name,
            file_size=stored.size,
            file_type=stored.mime_type,
            storage_key=stored.key,
            uploaded_by_user_id=uploader.id,
            status=status,
            approved_by_user_id=uploader.id if approved else None,
            approved_at=utcnow() if approved else None,
        )


def main() -> None:
    args = parse_args()
    if args.reset:
        reset_db()

    store = LocalFileStore(
        settings.ensure_uploads_dir(),
        max_file_size=settings.max_file_size_bytes,
        allowed_mime_types=settings.allowed_mime_types,
    )

    with SessionLocal() as db:
        admin_exists = db.query(User).filter(User.email == "admin@campus.local").first()
        if admin_exists and not args.reset:
            print("Seed appears to have already run. Use --reset to reseed.")
            return

        users = {
            "admin": get_or_create_user(
                db, email="admin@campus.local", password=args.password, role=Role.ADMIN, full_name="Admin", department="CS"
            ),
            "teacher": get_or_create_user(
                db, email="teacher@campus.local", password=args.password, role=Role.TEACHER, full_name="Teacher", department="CS"
            ),
            "student": get_or_create_user(
                db,
                email="student@campus.local",
                password=args.password,
                role=Role.STUDENT,
                full_name="Student",
                department="CS",
                semester=3,
            ),
        }
        seed_content(db, users=users, store=store)

        db.commit()
        print("Seed complete.")
        print(f"Admin login: admin@campus.local / {args.password}")


if __name__ == "__main__":
    main()
