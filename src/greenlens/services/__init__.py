"""
Services module for greenlens.

- MediaValidator: MIME whitelist and size ceiling for candidate files
- CaptureSession: camera stream acquisition and snapshots
- ObjectStorageClient: image CDN upload, display URLs and deletion
- MetadataStore: DuckDB-backed image records
- UploadOrchestrator: sequential batch upload with per-file state
- CatalogEngine: in-memory filter, search and sort of the gallery
"""

from .capture import CameraConstraints, CaptureSession, CaptureState, MediaDevices, OpenCVMediaDevices
from .catalog import CatalogEngine, refine
from .media_validator import MediaValidator, ValidationResult, validate_metadata
from .metadata import MetadataStore, QueryResult
from .storage import ObjectStorageClient, StoredImage, UploadProgress, build_display_url
from .upload import BatchOutcome, BatchSummary, UploadForm, UploadOrchestrator

__all__ = [
    "BatchOutcome",
    "BatchSummary",
    "CameraConstraints",
    "CaptureSession",
    "CaptureState",
    "CatalogEngine",
    "MediaDevices",
    "MediaValidator",
    "MetadataStore",
    "ObjectStorageClient",
    "OpenCVMediaDevices",
    "QueryResult",
    "StoredImage",
    "UploadForm",
    "UploadOrchestrator",
    "UploadProgress",
    "ValidationResult",
    "build_display_url",
    "refine",
    "validate_metadata",
]
