"""Error taxonomy for file storage and the handler that renders it as JSON.

Every error carries an HTTP status and a machine-readable code so the routes
never translate errors by hand.
"""
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class FileStorageError(Exception):
    """Base error for the storage core."""

    status_code: int = 500
    code: str = "STORAGE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result


# ── Client faults ────────────────────────────────────────────────

class InvalidInputError(FileStorageError):
    """Rejected before anything is written."""

    status_code = 400
    code = "INVALID_INPUT"


class InvalidContentTypeError(InvalidInputError):
    code = "INVALID_CONTENT_TYPE"

    def __init__(self, content_type: str, allowed: list[str]):
        super().__init__(
            f"File type not allowed: {content_type or 'unknown'}. "
            "Only web files and images are allowed.",
            details={"content_type": content_type, "allowed_types": allowed},
        )


class PayloadTooLargeError(InvalidInputError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"

    def __init__(self, size_bytes: int, max_bytes: int):
        max_mb = max_bytes // (1024 * 1024)
        super().__init__(
            f"File too large. Maximum size is {max_mb}MB.",
            details={"size_bytes": size_bytes, "max_bytes": max_bytes},
        )


class UploadInterruptedError(InvalidInputError):
    """The upload stream broke off before it was fully read."""

    code = "UPLOAD_INTERRUPTED"

    def __init__(self, received_bytes: int, error: str):
        super().__init__(
            "Upload was interrupted before the file was fully received",
            details={"received_bytes": received_bytes, "error": error},
        )


class ObjectNotFoundError(FileStorageError):
    """Absent and soft-deleted objects look exactly the same."""

    status_code = 404
    code = "FILE_NOT_FOUND"

    def __init__(self, storage_key: str):
        super().__init__("File not found", details={"storage_key": storage_key})


class AccessForbiddenError(FileStorageError):
    status_code = 403
    code = "ACCESS_DENIED"

    def __init__(self, storage_key: str):
        super().__init__("Access denied", details={"storage_key": storage_key})


# ── Transient ────────────────────────────────────────────────────

class StorageBackendUnavailableError(FileStorageError):
    """The database failed. Never retried here; the caller owns retry policy."""

    status_code = 503
    code = "STORAGE_UNAVAILABLE"
    retryable = True

    def __init__(self, operation: str, error: str):
        super().__init__(
            f"Storage backend unavailable during {operation}",
            details={"operation": operation, "error": error},
        )


async def file_storage_exception_handler(request: Request, exc: FileStorageError) -> JSONResponse:
    """Convert FileStorageError to JSON response."""
    headers = {"Retry-After": "5"} if isinstance(exc, StorageBackendUnavailableError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
