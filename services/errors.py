from __future__ import annotations

from typing import List, Optional


class UploadServiceError(RuntimeError):
    """Base error; the HTTP layer maps it to a JSON envelope."""

    status_code = 500
    message = "server error"

    def __init__(self, detail: str, *, message: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if message is not None:
            self.message = message


class ValidationError(UploadServiceError):
    status_code = 400
    message = "validation failed"

    def __init__(self, detail: str, *, missing: Optional[List[str]] = None, message: Optional[str] = None) -> None:
        super().__init__(detail, message=message)
        self.missing = list(missing or [])


class InvalidArgument(UploadServiceError):
    status_code = 400
    message = "invalid argument"


class RemoteStorageError(UploadServiceError):
    status_code = 500
    message = "upload failed"


class ConfigurationError(UploadServiceError):
    status_code = 500
    message = "server misconfigured"
