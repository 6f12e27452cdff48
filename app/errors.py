class ConfigError(Exception):
    """Missing or invalid credentials for an external service."""


class NotConfiguredError(Exception):
    def __init__(self, service: str, reason: str | None = None):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} not configured")


class UploadTooLargeError(Exception):
    def __init__(self, max_size_mb: int):
        self.max_size_mb = max_size_mb
        super().__init__(f"File exceeds the {max_size_mb} MB limit")


class RemoteStorageError(Exception):
    """Raised when the storage provider rejects or fails an upload."""
