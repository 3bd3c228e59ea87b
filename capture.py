"""Open the scan camera via OpenCV and classify device/permission failures."""

import logging
import os
import platform
from dataclasses import dataclass
from enum import Enum

import cv2
import numpy as np

logger = logging.getLogger("scanner")

PERMISSION_KEY = "cameraPermissionGranted"


class CameraError(Exception):
    """Camera could not be opened. `user_message` is shown to the operator."""

    user_message = "Camera access is required to scan barcodes."

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.user_message)
        self.detail = detail


class PermissionDenied(CameraError):
    user_message = (
        "Camera permission was denied. Allow camera access for this program "
        "in your system settings and try again."
    )


class NoDevice(CameraError):
    user_message = "No camera found on this device. Please ensure your device has a camera."


class DeviceBusy(CameraError):
    user_message = (
        "Camera is currently being used by another application. "
        "Please close other camera apps and try again."
    )


class Unsupported(CameraError):
    user_message = "Camera is not supported by this OpenCV build."


class ConstraintsUnsatisfiable(CameraError):
    user_message = "Camera constraints not supported. Please try again."


class Facing(str, Enum):
    ENVIRONMENT = "environment"
    USER = "user"

    def opposite(self) -> "Facing":
        return Facing.USER if self is Facing.ENVIRONMENT else Facing.ENVIRONMENT


@dataclass
class Range:
    ideal: int
    min: int
    max: int

    def admits(self, value: int) -> bool:
        return self.min <= value <= self.max


@dataclass
class Constraints:
    width: Range
    height: Range

    @classmethod
    def from_config(cls, config: dict) -> "Constraints":
        return cls(width=Range(**config["camera_width"]), height=Range(**config["camera_height"]))


class VideoStream:
    """An opened camera. Frames come back as BGR numpy arrays."""

    def __init__(self, cap, index: int):
        self._cap = cap
        self.index = index

    @property
    def active(self) -> bool:
        return self._cap is not None

    @property
    def width(self) -> int:
        if self._cap is None:
            return 0
        return int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))

    @property
    def height(self) -> int:
        if self._cap is None:
            return 0
        return int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

    def read(self) -> np.ndarray | None:
        """Return the current frame, or None while the video is not ready."""
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    def release(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.debug("Camera %d released", self.index)


def _capture_api() -> int:
    system = platform.system()
    if system == "Windows":
        return cv2.CAP_DSHOW
    if system == "Linux":
        return cv2.CAP_V4L2
    return cv2.CAP_ANY


def _check_device_node(index: int):
    """On Linux the device node tells us missing vs. not permitted."""
    if platform.system() != "Linux":
        return
    node = f"/dev/video{index}"
    if not os.path.exists(node):
        raise NoDevice(f"{node} does not exist")
    if not os.access(node, os.R_OK | os.W_OK):
        raise PermissionDenied(f"no read/write access to {node}")


def open_device(index: int, constraints: Constraints | None = None) -> VideoStream:
    """Open camera `index`, optionally negotiating a resolution."""
    if not hasattr(cv2, "VideoCapture"):
        raise Unsupported("cv2 has no VideoCapture")

    _check_device_node(index)

    try:
        cap = cv2.VideoCapture(index, _capture_api())
    except cv2.error as e:
        raise Unsupported(str(e)) from e

    if not cap.isOpened():
        cap.release()
        if platform.system() == "Linux":
            # Node exists and is accessible, so someone else holds it
            raise DeviceBusy(f"camera {index} could not be opened")
        raise NoDevice(f"camera {index} could not be opened")

    if hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

    if constraints is not None:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width.ideal)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height.ideal)

    ok, _ = cap.read()
    if not ok:
        cap.release()
        raise DeviceBusy(f"camera {index} opened but returned no frame")

    if constraints is not None:
        w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if not (constraints.width.admits(w) and constraints.height.admits(h)):
            cap.release()
            raise ConstraintsUnsatisfiable(f"camera {index} negotiated {w}x{h}")

    return VideoStream(cap, index)


class CameraAcquisition:
    """Basic access check, then the full stream with facing fallback."""

    def __init__(
        self,
        store,
        constraints: Constraints,
        devices: dict | None = None,
        default_index: int = 0,
        opener=open_device,
    ):
        self._store = store
        self._constraints = constraints
        self._devices = devices or {Facing.ENVIRONMENT: 0, Facing.USER: 1}
        self._default_index = default_index
        self._open = opener

    @classmethod
    def from_config(cls, store, config: dict, opener=open_device) -> "CameraAcquisition":
        return cls(
            store,
            Constraints.from_config(config),
            devices={
                Facing.ENVIRONMENT: config["environment_camera_index"],
                Facing.USER: config["user_camera_index"],
            },
            default_index=config["default_camera_index"],
            opener=opener,
        )

    @property
    def permission_granted(self) -> bool:
        return bool(self._store.get(PERMISSION_KEY, False))

    def forget_permission(self):
        self._store.remove(PERMISSION_KEY)

    def _request_access(self):
        logger.info("Requesting basic camera access first...")
        try:
            trial = self._open(self._default_index, None)
        except CameraError:
            self.forget_permission()
            raise
        trial.release()
        self._store.set(PERMISSION_KEY, True)
        logger.info("Camera permission granted and stored")

    def acquire(self, preferred: Facing = Facing.ENVIRONMENT) -> VideoStream:
        try:
            if not self.permission_granted:
                self._request_access()
            try:
                stream = self._open(self._devices[preferred], self._constraints)
            except (ConstraintsUnsatisfiable, NoDevice) as e:
                fallback = preferred.opposite()
                logger.info("%s camera not available (%s), trying %s camera...",
                            preferred.value, e, fallback.value)
                stream = self._open(self._devices[fallback], self._constraints)
        except PermissionDenied:
            self.forget_permission()
            raise
        logger.info("Camera %d streaming at %dx%d", stream.index, stream.width, stream.height)
        return stream

    def release(self, stream: VideoStream | None):
        if stream is not None:
            stream.release()
