from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Protocol
from uuid import uuid4

from campus_notes.core.errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_CATEGORIES = ("notes", "questions", "avatars")

_CHUNK_SIZE = 1024 * 1024
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]+")


@dataclass(frozen=True)
class StoredFile:
    key: str
    url: str
    filename: str
    original_name: str
    size: int
    mime_type: str


class FileStore(Protocol):
    def save(self, category: str, filename: Optional[str], content_type: Optional[str], stream: BinaryIO) -> StoredFile: ...

    def delete(self, key: str) -> bool: ...

    def path_for(self, key: str) -> Path: ...


def _clean_stem(filename: str) -> str:
    stem = _UNSAFE_CHARS.sub("_", Path(filename).stem).strip("_").lower()
    return stem[:80] or "upload"


class LocalFileStore:
    """Stores uploads on disk under ``<root>/<category>/`` with collision-resistant names."""

    def __init__(
        self,
        root: Path | str,
        *,
        max_file_size: int,
        allowed_mime_types: Iterable[str],
        public_prefix: str = "/uploads",
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.max_file_size = max_file_size
        self.allowed_mime_types = {mime.lower() for mime in allowed_mime_types}
        self.public_prefix = public_prefix.rstrip("/")

    def _category_dir(self, category: str) -> Path:
        if category not in UPLOAD_CATEGORIES:
            raise ValueError(f"Unknown upload category: {category}")
        path = self.root / category
        path.mkdir(parents=True, exist_ok=True)
        return path

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValueError("Storage key escapes the upload root")
        return path

    def save(self, category: str, filename: Optional[str], content_type: Optional[str], stream: BinaryIO) -> StoredFile:
        mime_type = (content_type or "").split(";", 1)[0].strip().lower()
        if mime_type not in self.allowed_mime_types:
            raise ValidationError.for_field(
                "file",
                "Invalid file type. Only PDF, DOC, DOCX, PPT, PPTX, TXT, and images are allowed.",
            )

        # Strip any client-supplied directories before deriving the stored name.
        original_name = Path(filename or "upload.bin").name
        stored_name = f"{_clean_stem(original_name)}_{uuid4().hex}{Path(original_name).suffix.lower()}"
        target = self._category_dir(category) / stored_name
        key = f"{category}/{stored_name}"

        size = 0
        try:
            with target.open("wb") as handle:
                while True:
                    chunk = stream.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_file_size:
                        break
                    handle.write(chunk)
        except OSError as exc:
            target.unlink(missing_ok=True)
            raise DependencyError("Could not store the uploaded file") from exc

        if size > self.max_file_size:
            target.unlink(missing_ok=True)
            limit_mb = self.max_file_size // (1024 * 1024)
            raise ValidationError.for_field("file", f"File too large. Maximum size is {limit_mb}MB.")
        if size == 0:
            target.unlink(missing_ok=True)
            raise ValidationError.for_field("file", "Uploaded file is empty")

        logger.info("file_stored", extra={"storage_key": key})
        return StoredFile(
            key=key,
            url=f"{self.public_prefix}/{key}",
            filename=stored_name,
            original_name=original_name,
            size=size,
            mime_type=mime_type,
        )

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise DependencyError("Could not delete the stored file") from exc
        logger.info("file_deleted", extra={"storage_key": key})
        return True
