import logging
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from fastapi import UploadFile

from app.errors import UploadTooLargeError
from app.models import UploadResult

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class RemoteStorage(Protocol):
    """A media-storage provider that guest photos are forwarded to."""

    name: str

    def ensure_ready(self) -> None:
        """Raise NotConfiguredError if the provider cannot accept uploads."""

    def upload(self, *, path: Path, guest_name: str, filename: str, mime_type: str | None) -> UploadResult:
        """Upload a local file into the guest's folder."""


class TempUploadStore:
    """Local scratch directory holding each upload until it has been forwarded."""

    def __init__(self, root_dir: str, max_size_mb: int):
        self.root = Path(root_dir)
        self.max_size_mb = max_size_mb
        self.max_size_bytes = max_size_mb * 1024 * 1024

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, source: UploadFile) -> Path:
        suffix = Path(source.filename or "").suffix
        target = self.root / f"{uuid4().hex}{suffix}"

        total = 0
        with target.open("wb") as f:
            while True:
                chunk = source.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > self.max_size_bytes:
                    f.close()
                    target.unlink(missing_ok=True)
                    raise UploadTooLargeError(self.max_size_mb)
                f.write(chunk)
        logger.debug("Saved temp upload", extra={"path": str(target), "size_bytes": total})
        return target

    def discard(self, path: Path | None) -> None:
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.debug("Could not delete temp upload", extra={"path": str(path), "error": str(exc)})
