"""Camera capture for greenlens.

A CaptureSession walks ``Idle -> Requesting -> Active | Denied | Unavailable``.
While Active it holds the device stream exclusively; ``snapshot`` encodes the
current frame as a JPEG at the stream's native resolution. The stream is
released on ``stop``, on context-manager exit and on every error path.

Devices are reached through the ``MediaDevices`` protocol. ``OpenCVMediaDevices``
is the host implementation backed by ``cv2.VideoCapture``.
"""

import io
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import cv2
import numpy as np
from PIL import Image

from ..errors import (
    CaptureError,
    CaptureUnsupportedError,
    DeviceBusyError,
    DeviceNotFoundError,
    PermissionDeniedError,
)
from ..logging_config import get_logger
from ..models.image import CaptureFile

logger = get_logger(__name__)

SNAPSHOT_JPEG_QUALITY = 95


class CaptureState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CameraConstraints:
    """Requested stream properties. Rear camera preferred, 1080p ideal, VGA minimum."""

    device: str = "0"
    facing_mode: str = "environment"
    ideal_width: int = 1920
    ideal_height: int = 1080
    min_width: int = 640
    min_height: int = 480


class MediaStream(Protocol):
    device_id: str

    def read_frame(self) -> np.ndarray:
        """Return the current frame as an RGB ``(height, width, 3)`` uint8 array."""
        ...

    def stop(self) -> None: ...


class MediaDevices(Protocol):
    def get_user_media(self, constraints: CameraConstraints) -> MediaStream:
        """
        Open a stream for ``constraints.device``.

        Raises:
            PermissionDeniedError, DeviceNotFoundError, CaptureUnsupportedError
        """
        ...


class OpenCVStream:
    """MediaStream over an opened ``cv2.VideoCapture``."""

    def __init__(self, device_id: str, capture: Any):
        self.device_id = device_id
        self._capture = capture

    def read_frame(self) -> np.ndarray:
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CaptureError(f"Failed to read a frame from camera {self.device_id}", code="frame_read_failed")
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def stop(self) -> None:
        self._capture.release()


class OpenCVMediaDevices:
    """Host camera access through OpenCV. ``device`` is a numeric index or a device path."""

    def get_user_media(self, constraints: CameraConstraints) -> OpenCVStream:
        source: int | str = int(constraints.device) if constraints.device.isdigit() else constraints.device
        device_path = f"/dev/video{source}" if isinstance(source, int) else source

        if os.path.exists(device_path) and not os.access(device_path, os.R_OK):
            raise PermissionDeniedError(f"No read permission on {device_path}")

        try:
            capture = cv2.VideoCapture(source)
        except cv2.error as e:
            raise CaptureUnsupportedError(f"Camera backend unavailable: {e}", original_exception=e) from e

        if not capture.isOpened():
            capture.release()
            raise DeviceNotFoundError(f"No camera found at {constraints.device}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if width < constraints.min_width or height < constraints.min_height:
            capture.release()
            minimum = f"{constraints.min_width}x{constraints.min_height}"
            raise CaptureUnsupportedError(f"Camera resolution {width}x{height} is below the {minimum} minimum")

        return OpenCVStream(str(constraints.device), capture)


class CaptureSession:
    """One camera capture session. Use as a context manager to guarantee release."""

    _held_devices: set[str] = set()

    def __init__(self, devices: MediaDevices | None = None, constraints: CameraConstraints | None = None):
        self.devices = devices or OpenCVMediaDevices()
        self.constraints = constraints or CameraConstraints()
        self.state = CaptureState.IDLE
        self.last_error: CaptureError | None = None
        self._stream: MediaStream | None = None
        self._last_timestamp_ms = 0

    @property
    def is_active(self) -> bool:
        return self.state is CaptureState.ACTIVE

    def request(self) -> None:
        """
        Acquire the camera stream.

        Raises:
            CaptureError: PermissionDeniedError (state Denied), DeviceNotFoundError,
                CaptureUnsupportedError or DeviceBusyError (state Unavailable)
        """
        if self.state is CaptureState.ACTIVE:
            return
        if self.state is CaptureState.REQUESTING:
            raise CaptureError("A camera request is already pending", code="request_pending")

        self.last_error = None
        device = self.constraints.device
        if device in CaptureSession._held_devices:
            self.state = CaptureState.UNAVAILABLE
            self.last_error = DeviceBusyError(f"Camera {device} is held by another capture session")
            raise self.last_error

        self.state = CaptureState.REQUESTING
        logger.info("camera_requested", device=device, facing_mode=self.constraints.facing_mode)

        try:
            stream = self.devices.get_user_media(self.constraints)
        except PermissionDeniedError as e:
            self._enter_failed(CaptureState.DENIED, e)
            raise
        except CaptureError as e:
            self._enter_failed(CaptureState.UNAVAILABLE, e)
            raise
        except Exception as e:
            error = CaptureError(f"Unable to access camera: {e}", original_exception=e)
            self._enter_failed(CaptureState.UNAVAILABLE, error)
            raise error from e

        self._stream = stream
        CaptureSession._held_devices.add(device)
        self.state = CaptureState.ACTIVE
        logger.info("camera_active", device=device)

    def preview(self) -> np.ndarray:
        """Return the current RGB frame without encoding it."""
        return self._read_frame()

    def snapshot(self) -> CaptureFile:
        """
        Encode the current frame as a JPEG capture file. The session stays Active.

        Returns:
            CaptureFile named ``camera-capture-<epoch millis>.jpg``
        """
        frame = self._read_frame()
        height, width = frame.shape[:2]

        buffer = io.BytesIO()
        Image.fromarray(frame).convert("RGB").save(buffer, format="JPEG", quality=SNAPSHOT_JPEG_QUALITY)

        capture_file = CaptureFile(
            filename=f"camera-capture-{self._next_timestamp_ms()}.jpg",
            mime_type="image/jpeg",
            data=buffer.getvalue(),
        )
        logger.info(
            "camera_snapshot",
            filename=capture_file.filename,
            width=width,
            height=height,
            size=capture_file.size,
        )
        return capture_file

    def stop(self) -> None:
        """Release the stream (if any) and return to Idle. Safe to call from any state."""
        self._release()
        if self.state is not CaptureState.IDLE:
            logger.info("camera_stopped", device=self.constraints.device, previous_state=self.state.value)
        self.state = CaptureState.IDLE
        self.last_error = None

    def _read_frame(self) -> np.ndarray:
        if self.state is not CaptureState.ACTIVE or self._stream is None:
            raise CaptureError("Camera is not active", code="camera_not_active")
        try:
            return self._stream.read_frame()
        except Exception as e:
            error = e if isinstance(e, CaptureError) else CaptureError(f"Camera read failed: {e}", original_exception=e)
            self._enter_failed(CaptureState.UNAVAILABLE, error)
            if error is e:
                raise
            raise error from e

    def _enter_failed(self, state: CaptureState, error: CaptureError) -> None:
        self._release()
        self.state = state
        self.last_error = error
        logger.warning("camera_unavailable", device=self.constraints.device, state=state.value, code=error.code)

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            CaptureSession._held_devices.discard(self.constraints.device)

    def _next_timestamp_ms(self) -> int:
        timestamp = int(time.time() * 1000)
        if timestamp <= self._last_timestamp_ms:
            timestamp = self._last_timestamp_ms + 1
        self._last_timestamp_ms = timestamp
        return timestamp

    def __enter__(self) -> "CaptureSession":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()
