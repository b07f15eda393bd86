"""
Models module for greenlens.

- ImageRecord and the transient upload/query models
- Database schema and DatabaseManager
"""

from .database import DatabaseManager, get_database_manager
from .image import (
    ALL_CATEGORIES,
    CaptureFile,
    CatalogQuery,
    Category,
    ImageMetadata,
    ImageRecord,
    NewImage,
    SortKey,
    UploadStatus,
    UploadTask,
)
from .schema import get_schema_statements, validate_schema_compatibility

__all__ = [
    "ALL_CATEGORIES",
    "CaptureFile",
    "CatalogQuery",
    "Category",
    "DatabaseManager",
    "ImageMetadata",
    "ImageRecord",
    "NewImage",
    "SortKey",
    "UploadStatus",
    "UploadTask",
    "get_database_manager",
    "get_schema_statements",
    "validate_schema_compatibility",
]
