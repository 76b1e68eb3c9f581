"""
Project Approval Portal
File storage for uploaded documents.

Artifacts are addressed by an opaque handle (uuid + original extension) so
two uploads of ``plan.pdf`` never collide. The database only ever stores
the handle; the original file name travels separately on the Document row.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass

from flask import current_app
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    handle: str
    original_name: str
    size: int
    mime_type: str


def file_extension(filename: str | None) -> str:
    """Lower-case extension without the dot, '' when there is none."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def guess_mime_type(filename: str) -> str:
    mime, _ = mimetypes.guess_type(filename)
    return mime or "application/octet-stream"


class LocalFileStorage:
    """Filesystem-backed storage rooted at a single directory."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def _path(self, handle: str) -> str:
        safe = secure_filename(handle)
        if not safe or safe != handle:
            raise ValueError(f"Invalid storage handle: {handle!r}")
        return os.path.join(self.root, safe)

    def store(self, data: bytes, original_name: str, mime_type: str | None = None) -> StoredFile:
        ext = file_extension(original_name)
        handle = uuid.uuid4().hex + (f".{ext}" if ext else "")
        with open(self._path(handle), "wb") as fh:
            fh.write(data)
        logger.info("Stored file handle=%s size=%d", handle, len(data))
        return StoredFile(
            handle=handle,
            original_name=original_name,
            size=len(data),
            mime_type=mime_type or guess_mime_type(original_name),
        )

    def fetch(self, handle: str) -> bytes:
        path = self._path(handle)
        if not os.path.exists(path):
            raise FileNotFoundError(handle)
        with open(path, "rb") as fh:
            return fh.read()

    def delete(self, handle: str) -> None:
        path = self._path(handle)
        if os.path.exists(path):
            os.remove(path)
            logger.info("Deleted file handle=%s", handle)

    def exists(self, handle: str) -> bool:
        return os.path.exists(self._path(handle))


def get_storage() -> LocalFileStorage:
    """Storage bound to the current app, created on first use."""
    storage = current_app.extensions.get("file_storage")
    if storage is None:
        storage = LocalFileStorage(current_app.config["UPLOAD_FOLDER"])
        current_app.extensions["file_storage"] = storage
    return storage


def delete_file_quietly(handle: str) -> bool:
    """Best-effort artifact removal. Failures are logged, never raised."""
    try:
        get_storage().delete(handle)
        return True
    except Exception:
        logger.exception("Failed to delete stored file handle=%s", handle)
        return False
