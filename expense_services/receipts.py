"""
expense_services.receipts -- Receipt validation and object storage.

Responsibility:
    Validates receipt uploads, names them under the submitter's company
    and employee prefix, hands the bytes to an ``ObjectStore`` and resolves
    public URLs.  ``sweep_orphans`` removes blobs no expense references,
    which covers uploads whose expense insert later failed.

Architecture position:
    Services layer.  The object store is an injected collaborator; the
    filesystem implementation here serves local runs and tests.

Failure modes:
    - InvalidReceiptError before anything is stored (type, size, empty).
    - ReceiptUploadError when the store refuses the bytes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable
from uuid import UUID

from expense_config.schema import ReceiptSettings
from expense_kernel.domain.clock import Clock, SystemClock, as_utc
from expense_kernel.exceptions import InvalidReceiptError, ReceiptUploadError
from expense_kernel.logging_config import get_logger

logger = get_logger("services.receipts")

DEFAULT_BUCKET = "receipts"
DEFAULT_CONTENT_TYPES: tuple[str, ...] = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
)
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_ORPHAN_MAX_AGE_HOURS = 24

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "application/pdf": "pdf",
}


@dataclass(frozen=True)
class ReceiptUpload:
    """A receipt file as received from the client."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        suffix = PurePosixPath(self.filename).suffix.lstrip(".").lower()
        return suffix or _EXTENSIONS.get(self.content_type, "bin")


@dataclass(frozen=True)
class StoredObject:
    path: str
    size: int
    modified_at: datetime


@runtime_checkable
class ObjectStore(Protocol):
    """Narrow object storage contract."""

    def upload(self, bucket: str, path: str, data: bytes) -> str: ...

    def public_url(self, bucket: str, path: str) -> str: ...

    def delete(self, bucket: str, path: str) -> None: ...

    def list_objects(self, bucket: str) -> list[StoredObject]: ...


class LocalObjectStore:
    """Object store backed by a directory tree, one sub-directory per bucket."""

    def __init__(self, root: Path | str, base_url: str = "file://receipts"):
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Path:
        bucket_dir = (self._root / bucket).resolve()
        target = (bucket_dir / path).resolve()
        if not target.is_relative_to(bucket_dir):
            raise ValueError(f"Object path escapes bucket: {path}")
        return target

    def upload(self, bucket: str, path: str, data: bytes) -> str:
        target = self._resolve(bucket, path)
        if target.exists():
            raise FileExistsError(f"Object already exists: {bucket}/{path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/{bucket}/{path}"

    def delete(self, bucket: str, path: str) -> None:
        self._resolve(bucket, path).unlink(missing_ok=True)

    def list_objects(self, bucket: str) -> list[StoredObject]:
        bucket_dir = self._root / bucket
        if not bucket_dir.is_dir():
            return []
        objects = []
        for file in sorted(p for p in bucket_dir.rglob("*") if p.is_file()):
            stat = file.stat()
            objects.append(
                StoredObject(
                    path=file.relative_to(bucket_dir).as_posix(),
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                )
            )
        return objects


class ReceiptService:
    """Validates, names, stores and sweeps receipts."""

    def __init__(
        self,
        store: ObjectStore,
        clock: Clock | None = None,
        bucket: str = DEFAULT_BUCKET,
        allowed_content_types: Iterable[str] = DEFAULT_CONTENT_TYPES,
        max_bytes: int = DEFAULT_MAX_BYTES,
        orphan_max_age_hours: int = DEFAULT_ORPHAN_MAX_AGE_HOURS,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._bucket = bucket
        self._allowed = frozenset(allowed_content_types)
        self._max_bytes = max_bytes
        self._orphan_max_age_hours = orphan_max_age_hours

    @classmethod
    def from_settings(
        cls,
        settings: ReceiptSettings,
        store: ObjectStore | None = None,
        clock: Clock | None = None,
    ) -> ReceiptService:
        """Service over ``store``, or a local store under ``settings.storage_root``."""
        if store is None:
            store = LocalObjectStore(settings.storage_root, settings.public_base_url)
        return cls(
            store,
            clock=clock,
            bucket=settings.bucket,
            allowed_content_types=settings.allowed_content_types,
            max_bytes=settings.max_bytes,
            orphan_max_age_hours=settings.orphan_max_age_hours,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def validate(self, receipt: ReceiptUpload) -> None:
        if receipt.content_type not in self._allowed:
            raise InvalidReceiptError(
                receipt.filename,
                "Please upload an image (JPEG, PNG, GIF) or PDF file.",
            )
        if receipt.size == 0:
            raise InvalidReceiptError(receipt.filename, "The file is empty.")
        if receipt.size > self._max_bytes:
            limit_mb = self._max_bytes / (1024 * 1024)
            raise InvalidReceiptError(
                receipt.filename,
                f"Please upload a file smaller than {limit_mb:g}MB.",
            )

    def build_path(self, company_id: UUID, employee_id: UUID, receipt: ReceiptUpload) -> str:
        timestamp_ms = int(self._clock.now().timestamp() * 1000)
        return f"{company_id}/{employee_id}/{timestamp_ms}_{employee_id}.{receipt.extension}"

    def upload(self, company_id: UUID, employee_id: UUID, receipt: ReceiptUpload) -> str:
        """Validate and store a receipt; returns its storage path."""
        self.validate(receipt)
        path = self.build_path(company_id, employee_id, receipt)
        try:
            stored = self._store.upload(self._bucket, path, receipt.data)
        except (OSError, ValueError) as exc:
            logger.error(
                "receipt_upload_failed",
                extra={
                    "storage_path": path,
                    "company_id": str(company_id),
                    "employee_id": str(employee_id),
                },
                exc_info=True,
            )
            raise ReceiptUploadError(path, str(exc)) from exc

        logger.info(
            "receipt_uploaded",
            extra={
                "storage_path": stored,
                "content_type": receipt.content_type,
                "size_bytes": receipt.size,
            },
        )
        return stored

    def public_url(self, path: str) -> str:
        return self._store.public_url(self._bucket, path)

    def discard(self, path: str) -> None:
        """Best-effort removal of a blob whose expense was never created."""
        try:
            self._store.delete(self._bucket, path)
        except OSError:
            logger.warning("receipt_discard_failed", extra={"storage_path": path}, exc_info=True)

    def sweep_orphans(
        self,
        referenced: Iterable[str],
        as_of: datetime | None = None,
        max_age_hours: int | None = None,
    ) -> list[str]:
        """Delete unreferenced blobs older than ``max_age_hours``.

        Young blobs are kept; they may belong to a submission in flight.
        """
        if max_age_hours is None:
            max_age_hours = self._orphan_max_age_hours
        keep = set(referenced)
        cutoff = as_utc(as_of or self._clock.now()) - timedelta(hours=max_age_hours)
        removed = []
        for obj in self._store.list_objects(self._bucket):
            if obj.path in keep or as_utc(obj.modified_at) >= cutoff:
                continue
            self._store.delete(self._bucket, obj.path)
            removed.append(obj.path)

        logger.info(
            "receipt_orphans_swept",
            extra={
                "removed_count": len(removed),
                "referenced_count": len(keep),
                "cutoff": cutoff,
            },
        )
        return removed
