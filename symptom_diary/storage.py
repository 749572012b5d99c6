"""
Object storage for symptom photos, kept on the local filesystem.

Objects are public to read. Writing, replacing and removing an object is
allowed only to the identity named by the first segment of its path.
"""

import os
import time
from pathlib import Path

from symptom_diary.config import ALLOWED_PHOTO_EXTENSIONS, MAX_UPLOAD_BYTES, STORAGE_BUCKET


class StorageError(ValueError):
    """Rejected storage request."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def build_object_path(identity: str, filename: str) -> str:
    """Return '<identity>/<epoch-ms>.<ext>' for an uploaded file name."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_PHOTO_EXTENSIONS:
        raise StorageError(f"Unsupported file type: .{ext or '?'}")
    return f"{identity}/{int(time.time() * 1000)}.{ext}"


def _segments(path: str):
    parts = path.split("/")
    if path.startswith("/") or any(p in ("", ".", "..") for p in parts) or len(parts) < 2:
        raise StorageError(f"Invalid object path: {path!r}")
    return parts


class ObjectStorage:
    """A single public bucket rooted at *root_dir*."""

    def __init__(self, root_dir: str, base_url: str, bucket: str = STORAGE_BUCKET):
        self.root = Path(root_dir) / bucket
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/{self.bucket}/{path}"

    def _authorize(self, requester: str, path: str) -> Path:
        parts = _segments(path)
        if parts[0] != requester:
            raise StorageError("new row violates row-level security policy for storage object", status=403)
        return self.root.joinpath(*parts)

    def upload(self, requester: str, path: str, data: bytes) -> str:
        """Store a new object and return its public URL."""
        target = self._authorize(requester, path)
        if len(data) > MAX_UPLOAD_BYTES:
            raise StorageError("The object exceeded the maximum allowed size", status=413)
        if target.exists():
            raise StorageError("The resource already exists", status=409)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return self.public_url(path)

    def replace(self, requester: str, path: str, data: bytes) -> str:
        target = self._authorize(requester, path)
        if not target.exists():
            raise StorageError("Object not found", status=404)
        if len(data) > MAX_UPLOAD_BYTES:
            raise StorageError("The object exceeded the maximum allowed size", status=413)
        target.write_bytes(data)
        return self.public_url(path)

    def remove(self, requester: str, path: str) -> None:
        target = self._authorize(requester, path)
        if not target.exists():
            raise StorageError("Object not found", status=404)
        os.remove(target)

    def read(self, path: str) -> bytes:
        """Return the object's bytes; no identity required."""
        target = self.root.joinpath(*_segments(path))
        if not target.is_file():
            raise StorageError("Object not found", status=404)
        return target.read_bytes()
