import logging
import os
import threading
from dataclasses import dataclass, field

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from app.models import OAuthToken
from app.tokens import TokenStore

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]


@dataclass
class ClientCredentials:
    client_id: str
    client_secret: str
    redirect_uris: list[str] = field(default_factory=list)
    auth_uri: str = "https://accounts.google.com/o/oauth2/auth"
    token_uri: str = "https://oauth2.googleapis.com/token"

    @property
    def redirect_uri(self) -> str:
        return self.redirect_uris[0]

    def client_config(self) -> dict:
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uris": self.redirect_uris,
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
            }
        }


class OAuthClient:
    """Google OAuth2 client for the service operator's Drive account."""

    def __init__(self, credentials: ClientCredentials, token_store: TokenStore, token: OAuthToken | None = None):
        self.client = credentials
        self.token_store = token_store
        self.token = token
        self._lock = threading.Lock()

    @property
    def authorized(self) -> bool:
        return self.token is not None

    def _flow(self) -> Flow:
        # Each request builds a fresh flow, so PKCE verifiers cannot survive
        # from /auth to /oauth2callback.
        return Flow.from_client_config(
            self.client.client_config(),
            scopes=DRIVE_SCOPES,
            redirect_uri=self.client.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorization_url(
        self,
        *,
        force: bool = False,
        prompt: str | None = None,
        login_hint: str | None = None,
        authuser: str | None = None,
    ) -> str:
        params = {
            "access_type": "offline",
            "include_granted_scopes": "true",
            "prompt": prompt or ("consent select_account" if force else "select_account"),
        }
        if login_hint:
            params["login_hint"] = login_hint
        if authuser:
            params["authuser"] = authuser

        url, _state = self._flow().authorization_url(**params)
        logger.info("Authorization URL generated", extra={"prompt": params["prompt"]})
        return url

    def exchange_code(self, code: str) -> OAuthToken:
        # Google returns previously granted scopes alongside drive.file when
        # include_granted_scopes is set; oauthlib rejects that unless relaxed.
        os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")
        flow = self._flow()
        flow.fetch_token(code=code)
        return token_from_credentials(flow.credentials)

    def set_token(self, token: OAuthToken) -> None:
        with self._lock:
            if token.refresh_token is None and self.token is not None:
                token = token.model_copy(update={"refresh_token": self.token.refresh_token})
            self.token = token
            self.token_store.save(token)

    def credentials(self) -> Credentials | None:
        if self.token is None:
            return None
        return Credentials(
            token=self.token.access_token,
            refresh_token=self.token.refresh_token,
            token_uri=self.token.token_uri,
            client_id=self.client.client_id,
            client_secret=self.client.client_secret,
            scopes=self.token.scopes or DRIVE_SCOPES,
            expiry=self.token.expiry,
        )

    def remember_refresh(self, credentials: Credentials) -> None:
        """Persist the access token if the SDK refreshed it during a call."""
        if self.token is not None and credentials.token and credentials.token != self.token.access_token:
            logger.info("OAuth access token refreshed")
            try:
                self.set_token(token_from_credentials(credentials))
            except OSError as exc:
                logger.error("Could not persist refreshed OAuth token", extra={"error": str(exc)})


def token_from_credentials(credentials: Credentials) -> OAuthToken:
    return OAuthToken(
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
        expiry=credentials.expiry,
        token_uri=credentials.token_uri or OAuthToken.model_fields["token_uri"].default,
        scopes=list(credentials.scopes or []),
    )
