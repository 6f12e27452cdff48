import logging
from pathlib import Path

import cloudinary.uploader

from app.config import Settings
from app.errors import NotConfiguredError, RemoteStorageError
from app.models import UploadResult
from app.naming import guest_folder

logger = logging.getLogger(__name__)


class CloudinaryStorage:
    """
    Signed server-side uploads to Cloudinary.

    Folders are created implicitly from the ``folder`` path. Files keep their
    original name and are never overwritten or renamed to a unique name.
    """

    name = "Cloudinary"

    def __init__(self, settings: Settings):
        self.base_folder = settings.cloudinary_folder
        self.config = {
            "cloud_name": settings.cloudinary_cloud_name,
            "api_key": settings.cloudinary_api_key,
            "api_secret": settings.cloudinary_api_secret,
        }
        self.missing = [key for key, value in self.config.items() if not value]

    def ensure_ready(self) -> None:
        if self.missing:
            raise NotConfiguredError(self.name, f"missing {', '.join(self.missing)}")

    def upload(self, *, path: Path, guest_name: str, filename: str, mime_type: str | None) -> UploadResult:
        self.ensure_ready()
        folder = guest_folder(self.base_folder, guest_name)
        try:
            result = cloudinary.uploader.upload(
                str(path),
                folder=folder,
                filename_override=filename,
                use_filename=True,
                unique_filename=False,
                overwrite=False,
                resource_type="auto",
                **self.config,
            )
        except Exception as e:
            raise RemoteStorageError(f"Cloudinary upload failed: {e}") from e

        if result.get("existing"):
            raise RemoteStorageError(f"asset already exists: {result.get('public_id')}")

        logger.info("Uploaded file to Cloudinary", extra={"public_id": result.get("public_id"), "folder": folder})
        # Only the public id and URL leave the server; the rest is provider metadata.
        return UploadResult(id=result["public_id"], name=filename, view_url=result.get("secure_url"))
