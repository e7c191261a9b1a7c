"""
Object Storage Service
File objects kept under STORAGE_ROOT/<bucket>/<object path>
"""

from collections import namedtuple
from typing import List, Optional
from datetime import date, datetime
from pathlib import Path, PurePosixPath
import logging
import re

from sqlalchemy.orm import Session

from agrisupply.core.config import settings
from agrisupply.core.exceptions import StorageError
from agrisupply.models import Document

logger = logging.getLogger(__name__)

SUPPLY_OBJECT_KINDS = ("documents", "signatures")
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._ -]")

# File received with a request, already read into memory
UploadedFile = namedtuple("UploadedFile", ["filename", "content", "content_type"])


def safe_filename(filename: str) -> str:
    """Drop any directory part and characters that do not belong in an object name"""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    name = _UNSAFE_NAME.sub("_", name).strip()
    return name or "upload"


def _timestamp_ms(now: Optional[datetime] = None) -> int:
    return int((now or datetime.now()).timestamp() * 1000)


def supply_document_path(
    supply_id: int, kind: str, prefix: str, filename: str, now: Optional[datetime] = None
) -> str:
    """supplies/{id}/{documents|signatures}/{prefix}_{epoch ms}_{filename}"""
    if kind not in SUPPLY_OBJECT_KINDS:
        raise ValueError(f"Unknown supply object kind: {kind}")
    return f"supplies/{supply_id}/{kind}/{prefix}_{_timestamp_ms(now)}_{safe_filename(filename)}"


def supplier_coa_path(supplier_id: int, filename: str, now: Optional[datetime] = None) -> str:
    return f"suppliers/{supplier_id}/coa/coa_{_timestamp_ms(now)}_{safe_filename(filename)}"


class ObjectStorage:
    """Bucket of file objects addressed by slash-separated paths"""

    def __init__(self, root: Optional[Path] = None, bucket: Optional[str] = None):
        self.root = Path(root or settings.STORAGE_ROOT)
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.bucket_directory = (self.root / self.bucket).resolve()
        self.bucket_directory.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        if not path or path.startswith("/"):
            raise StorageError(f"Invalid object path: {path!r}")
        target = (self.bucket_directory / path).resolve()
        if self.bucket_directory not in target.parents:
            raise StorageError(f"Object path escapes bucket: {path!r}")
        return target

    def upload(self, path: str, content: bytes, overwrite: bool = False) -> str:
        """Store content at path; returns the path"""
        if len(content) > settings.MAX_UPLOAD_SIZE:
            raise StorageError(f"File exceeds maximum upload size of {settings.MAX_UPLOAD_SIZE} bytes")

        target = self._resolve(path)
        if target.exists() and not overwrite:
            raise StorageError(f"Object already exists: {path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error(f"Upload to {self.bucket}/{path} failed: {e}")
            raise StorageError(f"Unable to store {path}: {e}") from e

        logger.info(f"Stored {self.bucket}/{path} ({len(content)} bytes)")
        return path

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"Object not found: {path}")
        return target.read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> bool:
        """Remove an object; False when it was not there"""
        target = self._resolve(path)
        if not target.is_file():
            return False
        try:
            target.unlink()
        except OSError as e:
            raise StorageError(f"Unable to delete {path}: {e}") from e
        logger.info(f"Deleted {self.bucket}/{path}")
        return True


def store_document(
    db: Session,
    storage: ObjectStorage,
    upload: UploadedFile,
    path: str,
    owner_type: str,
    owner_id: int,
    document_type_code: str,
    uploaded_by: Optional[int] = None,
    expiry_date: Optional[date] = None,
    uploaded_paths: Optional[List[str]] = None,
) -> Document:
    """
    Upload a file and record its documents row in the caller's transaction.

    The path is appended to uploaded_paths as soon as the object exists so the
    caller can remove it if the transaction is rolled back.
    """
    storage.upload(path, upload.content)
    if uploaded_paths is not None:
        uploaded_paths.append(path)

    document = Document(
        owner_type=owner_type,
        owner_id=owner_id,
        name=upload.filename,
        storage_path=path,
        content_type=upload.content_type,
        doc_type=document_type_code,
        document_type_code=document_type_code,
        expiry_date=expiry_date,
        uploaded_by=uploaded_by,
    )
    db.add(document)
    db.flush()
    return document


def discard_uploads(storage: ObjectStorage, paths: List[str]) -> None:
    """Remove objects written during a transaction that was rolled back"""
    for path in paths:
        try:
            storage.delete(path)
        except StorageError as e:
            logger.warning(f"Could not remove orphaned upload {path}: {e}")
