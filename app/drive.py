import logging
import time
from pathlib import Path
from typing import Any, Callable

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseUpload

from app.credentials import AuthState
from app.errors import NotConfiguredError, RemoteStorageError
from app.models import UploadResult
from app.naming import sanitize_guest_name

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def build_drive_service(credentials: Credentials) -> Any:
    return build("drive", "v3", credentials=credentials, cache_discovery=False)


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveStorage:
    """Uploads into ``<event folder>/<guest>`` folders in the operator's Drive."""

    name = "Google Drive"

    def __init__(
        self,
        auth: AuthState,
        event_folder: str,
        service_factory: Callable[[Credentials], Any] = build_drive_service,
    ):
        self.auth = auth
        self.event_folder = event_folder
        self.service_factory = service_factory

    def ensure_ready(self) -> None:
        client = self.auth.require()
        if not client.authorized:
            raise NotConfiguredError(self.name, "no OAuth token, authenticate once at /auth")

    def ensure_folder(self, service: Any, name: str, parent_id: str | None = None) -> str:
        query = f"name='{_quote(name)}' and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        if parent_id:
            query = f"name='{_quote(name)}' and '{parent_id}' in parents and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"

        found = service.files().list(q=query, fields="files(id)").execute().get("files", [])
        if found:
            return found[0]["id"]

        body: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]
        created = service.files().create(body=body, fields="id").execute()
        logger.info("Created Drive folder", extra={"folder": name, "parent_id": parent_id})
        return created["id"]

    def upload(self, *, path: Path, guest_name: str, filename: str, mime_type: str | None) -> UploadResult:
        self.ensure_ready()
        client = self.auth.require()
        credentials = client.credentials()

        remote_name = f"{int(time.time() * 1000)}_{filename}"
        try:
            service = self.service_factory(credentials)
            event_id = self.ensure_folder(service, self.event_folder)
            guest_id = self.ensure_folder(service, sanitize_guest_name(guest_name.strip()), parent_id=event_id)
            with path.open("rb") as fh:
                media = MediaIoBaseUpload(fh, mimetype=mime_type or "application/octet-stream", resumable=False)
                created = service.files().create(
                    body={"name": remote_name, "parents": [guest_id]},
                    media_body=media,
                    fields="id, name, webViewLink",
                ).execute()
        except Exception as e:
            raise RemoteStorageError(f"Drive upload failed: {e}") from e
        finally:
            client.remember_refresh(credentials)

        logger.info("Uploaded file to Drive", extra={"file_id": created["id"], "folder_id": guest_id})
        return UploadResult(id=created["id"], name=created.get("name", remote_name), view_url=created.get("webViewLink"))
