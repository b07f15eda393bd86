"""Candidate file validation for greenlens uploads.

Pure checks only: no I/O and no side effects. Rejected files are reported back
to the caller instead of being dropped silently, so one aggregate warning can
be shown for the whole selection.
"""

from dataclasses import dataclass, field
from pathlib import Path

from ..config import DEFAULT_MAX_FILE_SIZE
from ..errors import ValidationError
from ..logging_config import get_logger
from ..models.image import DESCRIPTION_MAX_LENGTH, NAME_MAX_LENGTH, CaptureFile, ImageMetadata

logger = get_logger(__name__)

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/heic"})

EXTENSION_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
}

SKIPPED_FILES_WARNING = "Some files were skipped. Please use JPEG, PNG, WebP, or HEIC images under {limit_mb}MB."


@dataclass(frozen=True)
class Rejection:
    filename: str
    reason: str
    code: str


@dataclass
class ValidationResult:
    """Accepted files in their original order plus every rejection."""

    accepted: list[CaptureFile] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)
    max_file_size: int = DEFAULT_MAX_FILE_SIZE

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @property
    def warning(self) -> str | None:
        """One aggregate warning when anything was rejected, else None."""
        if not self.rejected:
            return None
        return SKIPPED_FILES_WARNING.format(limit_mb=self.max_file_size // (1024 * 1024))


def guess_mime_type(filename: str) -> str:
    """Map a filename extension to a MIME type (application/octet-stream when unknown)."""
    return EXTENSION_MIME_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


class MediaValidator:
    """Whitelist and size-ceiling validation for candidate image files."""

    def __init__(self, max_file_size: int = DEFAULT_MAX_FILE_SIZE, allowed_mime_types: frozenset[str] | None = None):
        self.max_file_size = max_file_size
        self.allowed_mime_types = allowed_mime_types or ALLOWED_MIME_TYPES

    def check(self, mime_type: str, size: int) -> Rejection | None:
        """
        Validate one candidate by MIME type and byte size.

        Returns:
            None when the file is accepted, otherwise the Rejection (filename left empty)
        """
        if (mime_type or "").lower() not in self.allowed_mime_types:
            return Rejection(filename="", reason=f"Unsupported file type '{mime_type}'", code="unsupported_type")
        if size > self.max_file_size:
            limit_mb = self.max_file_size / (1024 * 1024)
            return Rejection(
                filename="",
                reason=f"File is too large ({size / (1024 * 1024):.1f}MB). Maximum size: {limit_mb:.0f}MB",
                code="file_too_large",
            )
        return None

    def is_acceptable(self, mime_type: str, size: int) -> bool:
        return self.check(mime_type, size) is None

    def validate(self, files: list[CaptureFile]) -> ValidationResult:
        """
        Split candidates into accepted and rejected files.

        Args:
            files: Candidate files in selection order

        Returns:
            ValidationResult with accepted files (order preserved) and rejections
        """
        result = ValidationResult(max_file_size=self.max_file_size)

        for capture_file in files:
            rejection = self.check(capture_file.mime_type, capture_file.size)
            if rejection is None:
                result.accepted.append(capture_file)
            else:
                result.rejected.append(Rejection(capture_file.filename, rejection.reason, rejection.code))
                logger.warning(
                    "file_validation_failed",
                    filename=capture_file.filename,
                    mime_type=capture_file.mime_type,
                    size=capture_file.size,
                    reason=rejection.code,
                )

        if result.rejected:
            logger.warning("files_skipped", accepted=len(result.accepted), rejected=result.rejected_count)
        return result


def validate_metadata(metadata: ImageMetadata, batch_size: int = 1) -> None:
    """
    Check the shared batch metadata against the record limits.

    Args:
        metadata: Shared metadata as entered
        batch_size: Number of files; the longest indexed name must also fit

    Raises:
        ValidationError: Naming the first offending field
    """
    if not metadata.name:
        raise ValidationError("Image name is required", code="name_required", details={"field": "name"})
    if len(metadata.for_file(batch_size, batch_size).name) > NAME_MAX_LENGTH:
        raise ValidationError("Name too long", code="name_too_long", details={"field": "name"})
    if not metadata.description:
        raise ValidationError("Description is required", code="description_required", details={"field": "description"})
    if len(metadata.description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError("Description too long", code="description_too_long", details={"field": "description"})
