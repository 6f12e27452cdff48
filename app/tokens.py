import logging
from pathlib import Path

from pydantic import ValidationError

from app.models import OAuthToken

logger = logging.getLogger(__name__)


class TokenStore:
    """The operator's OAuth token, kept as a single JSON file on disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> OAuthToken | None:
        if not self.path.exists():
            logger.warning("No OAuth token found, authenticate once at /auth", extra={"path": str(self.path)})
            return None
        try:
            token = OAuthToken.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Could not load OAuth token", extra={"path": str(self.path), "error": str(exc)})
            return None
        logger.info("OAuth token loaded", extra={"path": str(self.path)})
        return token

    def save(self, token: OAuthToken) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token.model_dump_json(), encoding="utf-8")
        logger.info("OAuth token saved", extra={"path": str(self.path)})
