"""Image CDN client for greenlens.

Uploads go to the Cloudinary-compatible unsigned upload endpoint. The
multipart body is streamed in chunks so byte-level progress can be reported
while the transfer is in flight. Display URLs are built locally from the
content id and never need a network round trip.
"""

import hashlib
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime

import httpx

from ..config import ServiceSettings
from ..errors import TransferError
from ..logging_config import get_logger, log_performance
from ..models.image import CaptureFile, parse_timestamp

logger = get_logger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024
CROP_MODES = ("fill", "fit", "scale", "crop")
FORMATS = ("auto", "webp", "jpg", "png")

ProgressCallback = Callable[["UploadProgress"], None]


@dataclass(frozen=True)
class UploadProgress:
    """Bytes sent so far for one transfer."""

    loaded: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return max(0, min(100, round(self.loaded / self.total * 100)))


@dataclass(frozen=True)
class StoredImage:
    """What the CDN reports back after a successful upload."""

    content_id: str
    raw_url: str
    width: int | None = None
    height: int | None = None
    format: str | None = None
    byte_size: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_response(cls, payload: dict) -> "StoredImage":
        created_at = payload.get("created_at")
        return cls(
            content_id=payload["public_id"],
            raw_url=payload.get("secure_url") or payload["url"],
            width=payload.get("width"),
            height=payload.get("height"),
            format=payload.get("format"),
            byte_size=payload.get("bytes"),
            created_at=parse_timestamp(created_at) if created_at else None,
        )


def build_display_url(
    settings: ServiceSettings,
    content_id: str,
    width: int | None = None,
    height: int | None = None,
    quality: int | str = "auto",
    format: str = "auto",
    crop: str = "fill",
) -> str:
    """
    Build a transformation-qualified delivery URL. Pure: no I/O, no state.

    Args:
        settings: Service settings (cloud name and delivery host)
        content_id: Content id returned by the upload
        width: Target width in pixels
        height: Target height in pixels
        quality: "auto" or 1-100
        format: "auto", "webp", "jpg" or "png"
        crop: Crop mode, used only when width or height is given

    Returns:
        str: e.g. ``https://res.cloudinary.com/<cloud>/image/upload/w_1200,c_fill/q_auto/f_auto/<content_id>``
    """
    if crop not in CROP_MODES:
        raise ValueError(f"Unsupported crop mode '{crop}'")
    if format not in FORMATS:
        raise ValueError(f"Unsupported format '{format}'")

    transformations = []
    if width or height:
        dimensions = [f"w_{width}" if width else "", f"h_{height}" if height else "", f"c_{crop}"]
        transformations.append(",".join(part for part in dimensions if part))
    transformations.append(f"q_{quality}")
    transformations.append(f"f_{format}")

    base = settings.delivery_base_url.rstrip("/")
    return f"{base}/{settings.cloud_name}/image/upload/{'/'.join(transformations)}/{content_id}"


class ObjectStorageClient:
    """Client for the image CDN: upload with progress, display URLs, deletion."""

    def __init__(self, settings: ServiceSettings, transport: httpx.BaseTransport | None = None):
        """
        Initialize the storage client.

        Args:
            settings: Service settings built at startup
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(transport=self._transport, timeout=httpx.Timeout(self.settings.request_timeout))

    def _endpoint(self, action: str) -> str:
        return f"{self.settings.api_base_url.rstrip('/')}/{self.settings.cloud_name}/image/{action}"

    def upload(
        self,
        capture_file: CaptureFile,
        folder: str,
        progress_callback: ProgressCallback | None = None,
    ) -> StoredImage:
        """
        Upload one file.

        Args:
            capture_file: File bytes, name and MIME type
            folder: Destination folder on the CDN
            progress_callback: Called with non-decreasing UploadProgress while the body is sent

        Returns:
            StoredImage with the content id and raw URL

        Raises:
            ConfigurationError: Before any network attempt if cloud name or preset is missing
            TransferError: On network failure, non-200 status or an unreadable response
        """
        self.settings.require_upload_credentials()

        form = {
            "upload_preset": self.settings.upload_preset,
            "folder": folder,
            "quality": "auto",
            "fetch_format": "auto",
        }
        files = {"file": (capture_file.filename, capture_file.data, capture_file.mime_type)}
        started = time.monotonic()

        logger.info("upload_started", filename=capture_file.filename, size=capture_file.size, folder=folder)

        try:
            with self._client() as client:
                request = client.build_request("POST", self._endpoint("upload"), data=form, files=files)
                body = request.read()
                headers = {"Content-Type": request.headers["Content-Type"], "Content-Length": str(len(body))}
                response = client.post(
                    self._endpoint("upload"),
                    content=self._stream_body(body, progress_callback),
                    headers=headers,
                )
        except httpx.HTTPError as e:
            raise TransferError(
                "Network error during upload",
                details={"filename": capture_file.filename, "reason": str(e)},
                original_exception=e,
            ) from e

        if response.status_code != 200:
            raise TransferError(
                f"Upload failed with status: {response.status_code}",
                status_code=response.status_code,
                details={"filename": capture_file.filename},
            )

        try:
            stored = StoredImage.from_response(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise TransferError(
                "Failed to parse upload response",
                code="invalid_response",
                details={"filename": capture_file.filename},
                original_exception=e,
            ) from e

        log_performance("cdn_upload", time.monotonic() - started, filename=capture_file.filename, bytes=len(body))
        logger.info("upload_completed", filename=capture_file.filename, content_id=stored.content_id)
        return stored

    @staticmethod
    def _stream_body(body: bytes, progress_callback: ProgressCallback | None) -> Iterator[bytes]:
        total = len(body)
        sent = 0
        for offset in range(0, total, UPLOAD_CHUNK_SIZE):
            chunk = body[offset : offset + UPLOAD_CHUNK_SIZE]
            yield chunk
            sent += len(chunk)
            if progress_callback:
                progress_callback(UploadProgress(loaded=sent, total=total))

    def build_display_url(self, content_id: str, **options) -> str:
        """Transformation-qualified URL for ``content_id``; see module-level ``build_display_url``."""
        return build_display_url(self.settings, content_id, **options)

    def delete(self, content_id: str) -> None:
        """
        Delete a stored image through the signed destroy endpoint.

        Raises:
            ConfigurationError: If api key or secret is missing
            TransferError: On network failure, non-200 status or a result other than "ok"/"not found"
        """
        self.settings.require_deletion_credentials()

        timestamp = str(int(time.time()))
        form = {
            "public_id": content_id,
            "timestamp": timestamp,
            "api_key": self.settings.api_key,
            "signature": self.sign({"public_id": content_id, "timestamp": timestamp}),
        }

        try:
            with self._client() as client:
                response = client.post(self._endpoint("destroy"), data=form)
        except httpx.HTTPError as e:
            raise TransferError(
                "Network error during delete", details={"content_id": content_id}, original_exception=e
            ) from e

        if response.status_code != 200:
            raise TransferError(
                f"Delete failed with status: {response.status_code}",
                status_code=response.status_code,
                details={"content_id": content_id},
            )

        try:
            result = response.json().get("result")
        except ValueError as e:
            raise TransferError(
                "Failed to parse delete response", code="invalid_response", original_exception=e
            ) from e
        if result not in ("ok", "not found"):
            raise TransferError(f"Delete failed: {result}", code="delete_rejected", details={"content_id": content_id})

        logger.info("storage_object_deleted", content_id=content_id, result=result)

    def sign(self, params: dict[str, str]) -> str:
        """SHA-1 signature over the alphabetically sorted ``key=value`` pairs plus the api secret."""
        payload = "&".join(f"{key}={params[key]}" for key in sorted(params))
        return hashlib.sha1(f"{payload}{self.settings.api_secret}".encode()).hexdigest()  # nosec B324
