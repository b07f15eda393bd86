"""
Pytest configuration and fixtures for greenlens tests.
"""

import io
import json
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta

import httpx
import numpy as np
import pytest
from PIL import Image

from greenlens.config import ServiceSettings
from greenlens.models.image import CaptureFile, Category, ImageRecord
from greenlens.services.capture import CameraConstraints, CaptureSession
from greenlens.services.metadata import MetadataStore
from greenlens.services.storage import ObjectStorageClient

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def settings(tmp_path) -> ServiceSettings:
    """Settings with upload credentials and a throwaway database file."""
    return ServiceSettings(
        cloud_name="demo-cloud",
        upload_preset="greenlens_unsigned",
        database_path=str(tmp_path / "greenlens.duckdb"),
    )


@pytest.fixture
def deletion_settings(tmp_path) -> ServiceSettings:
    """Settings that can also delete stored images."""
    return ServiceSettings(
        cloud_name="demo-cloud",
        upload_preset="greenlens_unsigned",
        api_key="123456",
        api_secret="shh",
        database_path=str(tmp_path / "greenlens.duckdb"),
    )


@pytest.fixture
def store(settings) -> Generator[MetadataStore, None, None]:
    """Metadata store on a temporary DuckDB file."""
    with MetadataStore(settings) as metadata_store:
        yield metadata_store


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A small real JPEG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (32, 24), color=(40, 160, 60)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def make_file(jpeg_bytes) -> Callable[..., CaptureFile]:
    """Factory for capture files; JPEG by default."""

    def _make(filename: str = "leaf.jpg", mime_type: str = "image/jpeg", data: bytes | None = None) -> CaptureFile:
        return CaptureFile(filename=filename, mime_type=mime_type, data=jpeg_bytes if data is None else data)

    return _make


def upload_response(public_id: str, cloud_name: str = "demo-cloud") -> httpx.Response:
    """Successful CDN upload response for ``public_id``."""
    payload = {
        "public_id": public_id,
        "secure_url": f"https://res.cloudinary.com/{cloud_name}/image/upload/v1/{public_id}.jpg",
        "width": 32,
        "height": 24,
        "format": "jpg",
        "bytes": 1024,
        "created_at": "2024-05-01T10:00:00Z",
    }
    return httpx.Response(200, content=json.dumps(payload).encode(), headers={"Content-Type": "application/json"})


@pytest.fixture
def cdn_response() -> Callable[..., httpx.Response]:
    return upload_response


@pytest.fixture
def make_storage() -> Callable[..., ObjectStorageClient]:
    """Factory for storage clients answering through an ``httpx.MockTransport`` handler."""

    def _make(settings: ServiceSettings, handler: Handler) -> ObjectStorageClient:
        return ObjectStorageClient(settings, transport=httpx.MockTransport(handler))

    return _make


class FakeStream:
    """In-memory MediaStream returning solid-colour RGB frames."""

    def __init__(self, device_id: str = "0", width: int = 64, height: int = 48):
        self.device_id = device_id
        self.frame = np.full((height, width, 3), 120, dtype=np.uint8)
        self.stopped = False
        self.read_error: Exception | None = None

    def read_frame(self) -> np.ndarray:
        if self.read_error is not None:
            raise self.read_error
        return self.frame

    def stop(self) -> None:
        self.stopped = True


class FakeMediaDevices:
    """MediaDevices double: hands out FakeStreams or raises ``error``."""

    def __init__(self, error: Exception | None = None, width: int = 64, height: int = 48):
        self.error = error
        self.width = width
        self.height = height
        self.streams: list[FakeStream] = []

    def get_user_media(self, constraints: CameraConstraints) -> FakeStream:
        if self.error is not None:
            raise self.error
        stream = FakeStream(constraints.device, self.width, self.height)
        self.streams.append(stream)
        return stream


@pytest.fixture
def fake_devices() -> FakeMediaDevices:
    return FakeMediaDevices()


@pytest.fixture
def make_devices() -> Callable[..., FakeMediaDevices]:
    return FakeMediaDevices


@pytest.fixture(autouse=True)
def release_held_cameras() -> Generator[None, None, None]:
    """Make sure no test leaks a held camera into the next one."""
    yield
    CaptureSession._held_devices.clear()


@pytest.fixture
def make_record() -> Callable[..., ImageRecord]:
    """Factory for ImageRecords with sensible defaults."""
    base = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def _make(
        name: str,
        category: Category = Category.FLOWERS,
        description: str = "A photo from the farm",
        location: str | None = None,
        hours: int = 0,
        image_id: str | None = None,
    ) -> ImageRecord:
        return ImageRecord(
            id=image_id or name.lower().replace(" ", "-"),
            url=f"https://res.cloudinary.com/demo-cloud/image/upload/q_auto/f_auto/{name}",
            name=name,
            description=description,
            category=category,
            created_at=base + timedelta(hours=hours),
            storage_ref=f"greenlens/{category.value}/{name}",
            location=location,
        )

    return _make
