from datetime import datetime

from pydantic import BaseModel, Field


class UploadResult(BaseModel):
    id: str
    name: str
    view_url: str | None = Field(default=None, serialization_alias="viewUrl")


class UploadResponse(BaseModel):
    success: bool = True
    file: UploadResult


class OAuthToken(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expiry: datetime | None = None
    token_uri: str = "https://oauth2.googleapis.com/token"
    scopes: list[str] = Field(default_factory=list)


class SignedUploadParams(BaseModel):
    api_key: str
    timestamp: int
    signature: str
    cloud_name: str
    folder: str


class ErrorLogEntry(BaseModel):
    timestamp: datetime
    id: str
    message: str
    stack: str
    guest_name: str | None = Field(default=None, serialization_alias="guestName")
    filename: str | None = None
