import hashlib
import time

from app.config import Settings
from app.errors import ConfigError
from app.models import SignedUploadParams
from app.naming import PLACEHOLDER_SEGMENT, guest_folder


class CloudinarySigner:
    def __init__(self, api_secret: str):
        self.api_secret = api_secret

    def _message(self, params: dict) -> str:
        return "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))

    def sign(self, params: dict) -> str:
        payload = self._message(params) + self.api_secret
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def signed_upload_params(settings: Settings, guest_name: str | None, timestamp: int | None = None) -> SignedUploadParams:
    missing = [
        name
        for name, value in (
            ("CLOUDINARY_CLOUD_NAME", settings.cloudinary_cloud_name),
            ("CLOUDINARY_API_KEY", settings.cloudinary_api_key),
            ("CLOUDINARY_API_SECRET", settings.cloudinary_api_secret),
        )
        if not value
    ]
    if missing:
        raise ConfigError(f"Cloudinary not configured (missing {', '.join(missing)})")

    folder = guest_folder(settings.cloudinary_folder, guest_name, placeholder=PLACEHOLDER_SEGMENT)
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = CloudinarySigner(settings.cloudinary_api_secret).sign({"folder": folder, "timestamp": timestamp})

    return SignedUploadParams(
        api_key=settings.cloudinary_api_key,
        timestamp=timestamp,
        signature=signature,
        cloud_name=settings.cloudinary_cloud_name,
        folder=folder,
    )
