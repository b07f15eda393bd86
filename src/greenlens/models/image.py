"""
Image data models for greenlens.

ImageRecord is the persisted row; CaptureFile, UploadTask and CatalogQuery are
transient values that live only for the duration of a capture, a batch upload
or a gallery view.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 200
MUTABLE_FIELDS = ("name", "description", "category", "location")


class Category(str, Enum):
    """Gallery categories. "all" is a query-side value only and is never persisted."""

    FLOWERS = "flowers"
    NATURE = "nature"
    CROPS = "crops"

    @classmethod
    def parse(cls, value: "str | Category") -> "Category":
        """Parse a category, raising ValueError for anything outside the closed set."""
        if isinstance(value, Category):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise ValueError(f"Invalid category '{value}'. Expected one of: {allowed}") from None


ALL_CATEGORIES = "all"


class SortKey(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    NAME = "name"


class UploadStatus(str, Enum):
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not UploadStatus.UPLOADING


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO timestamp (``Z`` suffix allowed); naive values are taken as UTC."""
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True)
class ImageRecord:
    """
    A published image.

    ``id`` is assigned by the metadata store. ``url`` and ``storage_ref`` point at
    the same CDN object and, like ``created_at``, never change after insert.
    """

    id: str
    url: str
    name: str
    description: str
    category: Category
    created_at: datetime
    storage_ref: str
    location: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert ImageRecord to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "location": self.location,
            "created_at": self.created_at.isoformat(),
            "storage_ref": self.storage_ref,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImageRecord":
        """Create ImageRecord from a dictionary (e.g. a database row)."""
        return cls(
            id=str(data["id"]),
            url=data["url"],
            name=data["name"],
            description=data["description"],
            category=Category.parse(data["category"]),
            location=data.get("location"),
            created_at=parse_timestamp(data["created_at"]),
            storage_ref=data["storage_ref"],
        )

    def with_updates(self, updates: dict[str, Any]) -> "ImageRecord":
        """Return a copy with the mutable fields in ``updates`` applied."""
        return replace(self, **{k: v for k, v in updates.items() if k in MUTABLE_FIELDS})


@dataclass(frozen=True)
class NewImage:
    """An image record before the store has assigned its id."""

    url: str
    name: str
    description: str
    category: Category
    created_at: datetime
    storage_ref: str
    location: str | None = None

    def with_id(self, image_id: str) -> ImageRecord:
        return ImageRecord(
            id=image_id,
            url=self.url,
            name=self.name,
            description=self.description,
            category=self.category,
            created_at=self.created_at,
            storage_ref=self.storage_ref,
            location=self.location,
        )


@dataclass(frozen=True)
class ImageMetadata:
    """Metadata shared by every file of one batch, as entered by the contributor."""

    name: str
    description: str
    category: Category
    location: str | None = None

    @classmethod
    def create(
        cls, name: str, description: str, category: "str | Category", location: str | None = None
    ) -> "ImageMetadata":
        """Normalize and build metadata. Use ``validate_metadata`` to check the length limits."""
        location = location.strip() if location else None
        return cls(
            name=name.strip(),
            description=description.strip(),
            category=Category.parse(category),
            location=location or None,
        )

    def for_file(self, index: int, total: int) -> "ImageMetadata":
        """Metadata for the 1-based ``index``-th file; names are suffixed when the batch has several files."""
        if total > 1:
            return replace(self, name=f"{self.name} {index}")
        return self


@dataclass
class CaptureFile:
    """Raw image bytes waiting to be uploaded, from a file pick or a camera snapshot."""

    filename: str
    mime_type: str
    data: bytes
    file_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class UploadTask:
    """Per-file progress tracker inside one batch."""

    task_id: str
    filename: str
    progress: int = 0
    status: UploadStatus = UploadStatus.UPLOADING
    error: str | None = None

    def advance(self, percentage: int) -> None:
        """Move progress forward; progress never decreases while uploading."""
        if self.status is not UploadStatus.UPLOADING:
            return
        self.progress = max(self.progress, min(100, max(0, int(percentage))))

    def succeed(self) -> None:
        self.status = UploadStatus.SUCCESS
        self.progress = 100
        self.error = None

    def fail(self, message: str) -> None:
        self.status = UploadStatus.ERROR
        self.error = message or "Upload failed"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "task_id": self.task_id,
            "filename": self.filename,
            "progress": self.progress,
            "status": self.status.value,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class CatalogQuery:
    """Gallery query state: category filter, free-text search and sort order."""

    category: str = ALL_CATEGORIES
    search: str = ""
    sort: SortKey = SortKey.NEWEST

    @classmethod
    def create(cls, category: str | None = None, search: str | None = None, sort: str | None = None) -> "CatalogQuery":
        """Build a query from loose inputs (CLI flags, form values)."""
        if category is None or str(category).strip().lower() in ("", ALL_CATEGORIES):
            category_value = ALL_CATEGORIES
        else:
            category_value = Category.parse(category).value
        return cls(category=category_value, search=search or "", sort=SortKey(sort or SortKey.NEWEST.value))

    @property
    def category_filter(self) -> Category | None:
        if self.category == ALL_CATEGORIES:
            return None
        return Category.parse(self.category)
