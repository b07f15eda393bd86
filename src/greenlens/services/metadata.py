"""
Image metadata store for greenlens, backed by DuckDB.

Writes (insert, update, delete) raise on failure and never leave a partial
row behind. Reads are lenient: ``list`` returns an empty sequence when the
query fails so the gallery shows an empty state instead of crashing. Callers
that need to tell "no images" from "query failed" use ``query``, which
returns a QueryResult carrying the failure reason.

Usage:
    store = MetadataStore(settings)
    image_id = store.insert(new_image)
    flowers = store.list(category=Category.FLOWERS, search="rose", limit=20)
    store.update(image_id, location="North Field")
    store.delete(image_id)
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from ..config import ServiceSettings
from ..errors import GreenLensError, NotFoundError, PersistenceError, PersistenceReadError, ValidationError
from ..logging_config import get_logger, log_performance
from ..models.database import DatabaseManager, get_database_manager
from ..models.image import (
    DESCRIPTION_MAX_LENGTH,
    MUTABLE_FIELDS,
    NAME_MAX_LENGTH,
    Category,
    ImageRecord,
    NewImage,
)
from ..models.schema import IMAGE_COLUMNS, IMAGES_TABLE

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 50

_SELECT_COLUMNS = ", ".join(IMAGE_COLUMNS)


@dataclass(frozen=True)
class QueryResult:
    """Outcome of a metadata query: records on success, a reason on failure."""

    records: list[ImageRecord] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _to_db_timestamp(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value


def _row_to_record(row: tuple) -> ImageRecord:
    return ImageRecord.from_dict(dict(zip(IMAGE_COLUMNS, row, strict=True)))


class MetadataStore:
    """CRUD and filtered queries over the images table."""

    def __init__(self, settings: ServiceSettings | None = None, db_manager: DatabaseManager | None = None):
        """
        Initialize the metadata store.

        Args:
            settings: Service settings; ``database_path`` locates the DuckDB file
            db_manager: Pre-built DatabaseManager (takes precedence over settings)
        """
        if settings is None and db_manager is None:
            raise ValueError("MetadataStore needs settings or a DatabaseManager")
        self.settings = settings
        self.database_path = db_manager.db_path if db_manager is not None else settings.database_path
        self._db_manager = db_manager

    @property
    def db_manager(self) -> DatabaseManager:
        """Get database manager, initializing the schema on first use."""
        if self._db_manager is None:
            self._db_manager = get_database_manager(self.database_path)
        return self._db_manager

    def close(self) -> None:
        if self._db_manager is not None:
            self._db_manager.close()

    def __enter__(self) -> "MetadataStore":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def insert(self, new_image: NewImage) -> str:
        """
        Insert one record and return the id assigned to it.

        Raises:
            PersistenceError: If the write fails (nothing is stored)
        """
        image_id = str(uuid.uuid4())
        try:
            self.db_manager.execute_query(
                f"INSERT INTO {IMAGES_TABLE} ({_SELECT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    image_id,
                    new_image.url,
                    new_image.name,
                    new_image.description,
                    new_image.category.value,
                    new_image.location,
                    _to_db_timestamp(new_image.created_at),
                    new_image.storage_ref,
                ],
            )
        except Exception as e:
            raise PersistenceError(
                "Failed to save image metadata",
                details={
                    "operation": "insert_image",
                    "image_name": new_image.name,
                    "storage_ref": new_image.storage_ref,
                },
                original_exception=e,
            ) from e

        logger.info("image_inserted", image_id=image_id, category=new_image.category.value)
        return image_id

    def get(self, image_id: str) -> ImageRecord | None:
        """
        Get one record by id.

        Raises:
            PersistenceReadError: If the lookup fails
        """
        try:
            rows = self.db_manager.execute_query(
                f"SELECT {_SELECT_COLUMNS} FROM {IMAGES_TABLE} WHERE id = ?", [image_id]
            )
        except Exception as e:
            raise PersistenceReadError(
                f"Failed to load image '{image_id}'", details={"image_id": image_id}, original_exception=e
            ) from e
        return _row_to_record(rows[0]) if rows else None

    def query(
        self,
        category: Category | str | None = None,
        search: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> QueryResult:
        """
        Filtered listing, newest first, that reports failures instead of hiding them.

        Args:
            category: Exact category match when given
            search: Case-insensitive substring of name, description or location
            limit: Maximum number of records

        Returns:
            QueryResult (``ok`` False and ``error`` set when the query failed)
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")

        conditions = []
        parameters: list[Any] = []
        if category is not None:
            conditions.append("category = ?")
            parameters.append(Category.parse(category).value)

        needle = (search or "").lower()
        if needle.strip():
            conditions.append(
                "(contains(lower(name), ?) OR contains(lower(description), ?)"
                " OR coalesce(contains(lower(location), ?), false))"
            )
            parameters.extend([needle, needle, needle])

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"SELECT {_SELECT_COLUMNS} FROM {IMAGES_TABLE} {where} ORDER BY created_at DESC LIMIT {int(limit)}"

        started = time.monotonic()
        try:
            records = [_row_to_record(row) for row in self.db_manager.execute_query(sql, parameters)]
        except Exception as e:
            error = PersistenceReadError(
                f"Failed to list images: {e}",
                details={"category": str(category) if category else None, "limit": limit},
                original_exception=e,
            )
            logger.warning("list_images_failed", error=str(e))
            return QueryResult(records=[], error=str(error))

        log_performance("list_images", time.monotonic() - started, result_count=len(records), limit=limit)
        return QueryResult(records=records)

    def list(
        self,
        category: Category | str | None = None,
        search: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[ImageRecord]:
        """Lenient listing: same as ``query`` but an empty list on failure."""
        return self.query(category=category, search=search, limit=limit).records

    def count(self) -> int:
        result = self.db_manager.execute_query(f"SELECT COUNT(*) FROM {IMAGES_TABLE}")
        return result[0][0] if result else 0

    def update(self, image_id: str, **fields: Any) -> ImageRecord:
        """
        Update the mutable fields (name, description, category, location) of one record.

        Returns:
            The record after the update

        Raises:
            ValidationError: For an immutable/unknown field or a value outside the limits
            NotFoundError: If no record has ``image_id``
            PersistenceError: If the write fails
        """
        updates = self._clean_updates(fields)
        if not updates:
            current = self.get(image_id)
            if current is None:
                raise NotFoundError(image_id)
            return current

        assignments = ", ".join(f"{column} = ?" for column in updates)
        try:
            rows = self.db_manager.execute_query(
                f"UPDATE {IMAGES_TABLE} SET {assignments} WHERE id = ? RETURNING {_SELECT_COLUMNS}",
                [*updates.values(), image_id],
            )
        except Exception as e:
            raise PersistenceError(
                "Failed to update image metadata",
                details={"operation": "update_image", "image_id": image_id},
                original_exception=e,
            ) from e

        if not rows:
            raise NotFoundError(image_id)

        logger.info("image_updated", image_id=image_id, fields=sorted(updates))
        return _row_to_record(rows[0])

    @staticmethod
    def _clean_updates(fields: dict[str, Any]) -> dict[str, Any]:
        immutable = sorted(set(fields) - set(MUTABLE_FIELDS))
        if immutable:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(immutable)}",
                code="immutable_field",
                details={"fields": immutable},
            )

        updates: dict[str, Any] = {}
        for key, value in fields.items():
            if value is None and key != "location":
                continue
            if key == "category":
                try:
                    updates[key] = Category.parse(value).value
                except ValueError as e:
                    raise ValidationError(str(e), code="invalid_category") from e
            elif key == "location":
                location = str(value).strip() if value is not None else ""
                updates[key] = location or None
            else:
                text = str(value).strip()
                limit = NAME_MAX_LENGTH if key == "name" else DESCRIPTION_MAX_LENGTH
                if not text or len(text) > limit:
                    raise ValidationError(
                        f"{key.capitalize()} must be 1-{limit} characters",
                        code=f"invalid_{key}",
                        details={"field": key},
                    )
                updates[key] = text
        return updates

    def delete(self, image_id: str) -> ImageRecord:
        """
        Delete one record. The stored CDN object is left for the caller to remove.

        Returns:
            The deleted record (its ``storage_ref`` is needed to delete the bytes)

        Raises:
            NotFoundError: If no record has ``image_id``
            PersistenceError: If the write fails
        """
        try:
            rows = self.db_manager.execute_query(
                f"DELETE FROM {IMAGES_TABLE} WHERE id = ? RETURNING {_SELECT_COLUMNS}", [image_id]
            )
        except Exception as e:
            raise PersistenceError(
                "Failed to delete image metadata",
                details={"operation": "delete_image", "image_id": image_id},
                original_exception=e,
            ) from e

        if not rows:
            raise NotFoundError(image_id)

        logger.info("image_deleted", image_id=image_id)
        return _row_to_record(rows[0])

    def seed_defaults(self, now: datetime | None = None) -> int:
        """
        Insert the sample gallery when the table is empty.

        Args:
            now: Reference time for the sample ``created_at`` values

        Returns:
            Number of records inserted (0 when the table already has data)
        """
        if self.count() > 0:
            return 0

        now = now or datetime.now(UTC)
        inserted = 0
        for days_ago, (name, description, category, location, slug, photo) in enumerate(DEFAULT_IMAGES, start=1):
            try:
                self.insert(
                    NewImage(
                        url=f"https://images.pexels.com/photos/{photo}?auto=compress&cs=tinysrgb&w=800",
                        name=name,
                        description=description,
                        category=category,
                        location=location,
                        created_at=now - timedelta(days=days_ago),
                        storage_ref=f"seed/{category.value}/{slug}",
                    )
                )
            except GreenLensError:
                logger.warning("seed_image_failed", image_name=name)
                continue
            inserted += 1

        logger.info("default_images_seeded", inserted=inserted)
        return inserted


# (name, description, category, location, slug, pexels photo path); listed newest first
DEFAULT_IMAGES = [
    (
        "Wild Daisies",
        "Cheerful white daisies scattered across the meadow like nature's confetti",
        Category.FLOWERS,
        "Meadow",
        "wild-daisies",
        "842711/pexels-photo-842711.jpeg",
    ),
    (
        "Sunflower Field",
        "Vibrant sunflowers reaching toward the sky on a perfect summer day",
        Category.FLOWERS,
        "North Field",
        "sunflower-field",
        "1408221/pexels-photo-1408221.jpeg",
    ),
    (
        "Pink Garden Rose",
        "Beautiful pink rose blooming in the morning light with dewdrops on petals",
        Category.FLOWERS,
        "Home Garden",
        "pink-rose",
        "56866/garden-rose-red-pink-56866.jpeg",
    ),
    (
        "Mountain Dawn",
        "Misty mountains catching the first light of dawn in golden hues",
        Category.NATURE,
        "Valley View",
        "mountain-dawn",
        "147411/italy-mountains-dawn-daybreak-147411.jpeg",
    ),
    (
        "Forest Path",
        "Peaceful woodland trail leading through ancient trees and dappled sunlight",
        Category.NATURE,
        "Back Woods",
        "forest-path",
        "417074/pexels-photo-417074.jpeg",
    ),
    (
        "Autumn Trees",
        "Brilliant fall foliage painting the landscape in warm reds and oranges",
        Category.NATURE,
        "East Grove",
        "autumn-trees",
        "33109/fall-autumn-red-season.jpg",
    ),
    (
        "Wheat Harvest",
        "Golden wheat ready for harvest, swaying gently in the evening breeze",
        Category.CROPS,
        "Main Field",
        "wheat-harvest",
        "2132227/pexels-photo-2132227.jpeg",
    ),
    (
        "Tomato Vines",
        "Ripe red tomatoes hanging heavy on healthy green vines in the greenhouse",
        Category.CROPS,
        "Greenhouse 2",
        "tomato-vines",
        "2280549/pexels-photo-2280549.jpeg",
    ),
    (
        "Corn Field",
        "Tall corn stalks creating green corridors under the summer sun",
        Category.CROPS,
        "South Field",
        "corn-field",
        "1595104/pexels-photo-1595104.jpeg",
    ),
]
