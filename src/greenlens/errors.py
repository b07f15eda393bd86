"""
Error classification for greenlens.

Every failure the capture and upload pipeline can surface maps onto one of the
categories below. Each error carries a user-facing message next to the
technical one so callers can show it without further translation.
"""

from enum import Enum
from typing import Any

from .logging_config import log_error


class ErrorCategory(Enum):
    """Error categories for classification and handling."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    CAPTURE = "capture"
    TRANSFER = "transfer"
    PERSISTENCE_WRITE = "persistence_write"
    PERSISTENCE_READ = "persistence_read"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class GreenLensError(Exception):
    """Base exception class for greenlens."""

    default_user_message = "An unexpected error occurred."

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
        original_exception: Exception | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.code = code or f"{category.value}_error"
        self.user_message = user_message or self.default_user_message
        self.details = details or {}
        self.recoverable = recoverable
        self.original_exception = original_exception

        self._log_error()

    def _log_error(self) -> None:
        context = {
            "category": self.category.value,
            "code": self.code,
            "recoverable": self.recoverable,
            **self.details,
        }
        if self.original_exception:
            context["original_exception"] = str(self.original_exception)
        log_error(self, context)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dictionary."""
        return {
            "category": self.category.value,
            "code": self.code,
            "message": str(self),
            "user_message": self.user_message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(GreenLensError):
    """Required external-service settings are missing. Blocks every upload."""

    default_user_message = "Image uploads are not configured. Please contact the site administrator."

    def __init__(self, message: str, missing: list[str] | None = None, code: str | None = None):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            code=code or "configuration_missing",
            details={"missing": missing or []},
            recoverable=False,
        )
        self.missing = missing or []


class ValidationError(GreenLensError):
    """Input rejected before any network call."""

    default_user_message = "Please check the highlighted input and try again."

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            code=code or "validation_failed",
            user_message=user_message or message,
            details=details,
        )


class CaptureError(GreenLensError):
    """Camera session failure. Recoverable by retrying or picking files instead."""

    default_user_message = "Unable to access camera."

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.CAPTURE,
            code=code or "capture_failed",
            user_message=user_message,
            original_exception=original_exception,
        )


class PermissionDeniedError(CaptureError):
    default_user_message = "Unable to access camera. Please allow camera permissions and try again."

    def __init__(self, message: str = "Camera permission denied", original_exception: Exception | None = None):
        super().__init__(message, code="permission_denied", original_exception=original_exception)


class DeviceNotFoundError(CaptureError):
    default_user_message = "Unable to access camera. No camera found on this device."

    def __init__(self, message: str = "No camera device found", original_exception: Exception | None = None):
        super().__init__(message, code="device_not_found", original_exception=original_exception)


class CaptureUnsupportedError(CaptureError):
    default_user_message = "Unable to access camera. Camera not supported on this device."

    def __init__(self, message: str = "Camera capture is not supported", original_exception: Exception | None = None):
        super().__init__(message, code="capture_unsupported", original_exception=original_exception)


class DeviceBusyError(CaptureError):
    default_user_message = "The camera is already in use. Close the other capture first."

    def __init__(self, message: str = "Camera device is already in use"):
        super().__init__(message, code="device_busy")


class TransferError(GreenLensError):
    """Network failure or non-success response while talking to the image CDN."""

    default_user_message = "Upload failed. Please try again."

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.TRANSFER,
            code=code or ("http_status_error" if status_code else "transfer_failed"),
            details={"status_code": status_code, **(details or {})},
            original_exception=original_exception,
        )
        self.status_code = status_code


class PersistenceError(GreenLensError):
    """Metadata insert, update or delete failed."""

    default_user_message = "Failed to save image metadata."

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.PERSISTENCE_WRITE,
            code=code or "persistence_write_failed",
            details=details,
            original_exception=original_exception,
        )


PersistenceWriteError = PersistenceError


class PersistenceReadError(GreenLensError):
    """Metadata query failed. Lenient read paths turn this into an empty result."""

    default_user_message = "Failed to load images."

    def __init__(self, message: str, details: dict[str, Any] | None = None, original_exception: Exception | None = None):
        super().__init__(
            message=message,
            category=ErrorCategory.PERSISTENCE_READ,
            code="persistence_read_failed",
            details=details,
            original_exception=original_exception,
        )


class NotFoundError(GreenLensError):
    """No image record with the requested id."""

    default_user_message = "The image no longer exists."

    def __init__(self, image_id: str):
        super().__init__(
            message=f"Image '{image_id}' not found",
            category=ErrorCategory.NOT_FOUND,
            code="image_not_found",
            details={"image_id": image_id},
        )
        self.image_id = image_id


def describe_error(error: Exception) -> str:
    """
    Turn an exception into the message shown on a failed upload task.

    Args:
        error: Exception raised while processing a file

    Returns:
        Human-readable, non-empty message
    """
    message = str(error).strip()
    if message:
        return message
    if isinstance(error, GreenLensError):
        return error.user_message
    return "Upload failed"
