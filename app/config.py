import logging
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "wedding-photo-uploader"
    port: int = 3000
    storage_backend: Literal["drive", "cloudinary"] = "drive"
    upload_dir: str = "uploads"
    static_dir: str = "static"
    max_file_size_mb: int = 25
    frontend_origin: str = "*"
    event_folder: str = "Fotos_Boda"
    log_level: str = "INFO"

    google_credentials_json: str | None = None
    google_credentials_path: str = "credentials.json"
    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_redirect_uris: str = ""
    google_token_path: str = "token.json"

    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None
    cloudinary_folder: str = "wedding_photos"

    error_log_path: str = "logs/upload-errors.log"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("storage_backend", mode="before")
    @classmethod
    def normalize_backend(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def redirect_uris_list(self) -> list[str]:
        return [uri.strip() for uri in self.google_redirect_uris.split(",") if uri.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        if self.frontend_origin.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.frontend_origin.split(",") if origin.strip()]

    @property
    def secret_values(self) -> list[str]:
        """Configured secrets that must never appear in logs or responses."""
        return [s for s in (self.google_client_secret, self.cloudinary_api_secret) if s]


@lru_cache
def get_settings() -> Settings:
    return Settings()
