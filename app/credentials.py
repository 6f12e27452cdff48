"""
Google OAuth client credential loading.

Credentials are resolved from an ordered list of sources; the first one that
yields a bundle wins:

1. ``GOOGLE_CREDENTIALS_JSON``: the whole client JSON in an env variable
2. ``GOOGLE_CREDENTIALS_PATH``: the client JSON downloaded from Cloud Console
3. ``GOOGLE_CLIENT_ID`` / ``GOOGLE_CLIENT_SECRET`` / ``GOOGLE_REDIRECT_URIS``

A failure never stops the server. ``load_auth`` returns an unconfigured
``AuthState`` instead, and every auth-dependent route reports it.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from app.config import Settings
from app.errors import ConfigError, NotConfiguredError
from app.oauth import ClientCredentials, OAuthClient
from app.tokens import TokenStore

logger = logging.getLogger(__name__)

CredentialSource = Callable[[Settings], dict | None]


def from_env_json(settings: Settings) -> dict | None:
    if not settings.google_credentials_json:
        return None
    try:
        return json.loads(settings.google_credentials_json)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"GOOGLE_CREDENTIALS_JSON is not valid JSON: {exc.msg}") from exc


def from_file(settings: Settings) -> dict | None:
    path = Path.cwd() / settings.google_credentials_path
    if not path.is_file():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read credentials file {path}: {exc}") from exc


def from_env_vars(settings: Settings) -> dict | None:
    if not (settings.google_client_id and settings.google_client_secret):
        return None
    return {
        "web": {
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "redirect_uris": settings.redirect_uris_list,
        }
    }


SOURCES: list[tuple[str, CredentialSource]] = [
    ("GOOGLE_CREDENTIALS_JSON", from_env_json),
    ("GOOGLE_CREDENTIALS_PATH", from_file),
    ("GOOGLE_CLIENT_* variables", from_env_vars),
]


def parse_client_credentials(raw: dict) -> ClientCredentials:
    conf = raw.get("installed") or raw.get("web") or raw
    if not isinstance(conf, dict):
        raise ConfigError("Invalid credentials (expected a JSON object)")

    client_id = conf.get("client_id")
    client_secret = conf.get("client_secret")
    redirect_uris = conf.get("redirect_uris") or []
    if isinstance(redirect_uris, str):
        redirect_uris = [redirect_uris]
    if not client_id or not client_secret or not redirect_uris:
        raise ConfigError("Invalid credentials (missing client_id/client_secret/redirect_uris)")

    extra = {key: conf[key] for key in ("auth_uri", "token_uri") if conf.get(key)}
    return ClientCredentials(client_id=client_id, client_secret=client_secret, redirect_uris=list(redirect_uris), **extra)


def load_client_credentials(settings: Settings, sources: list[tuple[str, CredentialSource]] | None = None) -> ClientCredentials:
    for name, source in sources or SOURCES:
        raw = source(settings)
        if raw is None:
            continue
        logger.info("Loading Google credentials", extra={"source": name})
        return parse_client_credentials(raw)
    raise ConfigError(
        f"{settings.google_credentials_path} not found and no credential environment variables provided"
    )


@dataclass
class AuthState:
    """Outcome of OAuth setup: either a ready client or the reason there is none."""

    client: OAuthClient | None = None
    error: str | None = None

    @property
    def configured(self) -> bool:
        return self.client is not None

    def require(self) -> OAuthClient:
        if self.client is None:
            raise NotConfiguredError("Google OAuth", self.error)
        return self.client


def load_auth(settings: Settings, token_store: TokenStore | None = None) -> AuthState:
    try:
        credentials = load_client_credentials(settings)
    except ConfigError as exc:
        logger.warning("Google credentials unavailable, auth routes disabled", extra={"reason": str(exc)})
        return AuthState(error=str(exc))

    token_store = token_store or TokenStore(settings.google_token_path)
    client = OAuthClient(credentials, token_store, token=token_store.load())
    logger.info("Google credentials loaded", extra={"authorized": client.authorized})
    return AuthState(client=client)
