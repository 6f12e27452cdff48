import logging
import re
import traceback
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from app.models import ErrorLogEntry

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SECRET_PATTERNS = [
    re.compile(r"(?i)\b(api_secret|client_secret|access_token|refresh_token|signature)(\s*[=:]\s*['\"]?)[^\s&'\",]+"),
    re.compile(r"(?i)\b(Bearer)(\s+)[A-Za-z0-9._~+/-]+=*"),
]


def new_correlation_id() -> str:
    return uuid4().hex[:12]


def redact(text: str, secrets: list[str] | None = None) -> str:
    for secret in secrets or []:
        if secret:
            text = text.replace(secret, REDACTED)
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", text)
    return text


class ErrorLog:
    """Append-only newline-delimited JSON log of failed uploads."""

    def __init__(self, path: str, secrets: list[str] | None = None):
        self.path = Path(path)
        self.secrets = secrets or []

    def record(self, exc: BaseException, *, guest_name: str | None = None, filename: str | None = None) -> str:
        correlation_id = new_correlation_id()
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        entry = ErrorLogEntry(
            timestamp=datetime.now(timezone.utc),
            id=correlation_id,
            message=redact(str(exc), self.secrets),
            stack=redact(stack, self.secrets),
            guest_name=guest_name,
            filename=filename,
        )

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(entry.model_dump_json(by_alias=True) + "\n")
        except OSError as write_error:
            logger.error("Could not write upload error log", extra={"path": str(self.path), "error": str(write_error)})

        logger.error("Upload failed", extra={"correlation_id": correlation_id, "error": entry.message})
        return correlation_id
