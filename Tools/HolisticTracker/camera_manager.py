"""
Camera manager for HolisticTracker.

Provides an OpenCV VideoCapture wrapper that yields timestamped RGB frames.
"""

import sys
import time
from typing import Optional

import cv2

from .config import CAMERA_FPS, CAMERA_HEIGHT, CAMERA_WIDTH, DEFAULT_CAMERA_INDEX
from .letterbox import Frame
from .logger import get_logger

logger = get_logger("CameraManager")


class CameraError(Exception):
    """Raised when camera operations fail."""
    pass


def _open_capture(index: int) -> cv2.VideoCapture:
    # DirectShow opens faster on Windows; other platforms use the default backend
    if sys.platform == "win32":
        capture = cv2.VideoCapture(index, cv2.CAP_DSHOW)
        if capture.isOpened():
            return capture
        logger.debug("DirectShow failed, trying default backend")
    return cv2.VideoCapture(index)


class CameraManager:
    """
    Manages webcam capture using OpenCV VideoCapture.

    Attributes:
        camera_index: Index of the camera device.
        width: Capture width in pixels.
        height: Capture height in pixels.
        fps: Target frames per second.
    """

    def __init__(
        self,
        camera_index: int = DEFAULT_CAMERA_INDEX,
        width: int = CAMERA_WIDTH,
        height: int = CAMERA_HEIGHT,
        fps: int = CAMERA_FPS
    ):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.fps = fps

        self._capture: Optional[cv2.VideoCapture] = None
        self._is_open = False
        self._frame_count = 0

    @property
    def is_open(self) -> bool:
        """Check if camera is currently open."""
        return self._is_open and self._capture is not None

    @property
    def actual_width(self) -> int:
        if self._capture:
            return int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        return 0

    @property
    def actual_height(self) -> int:
        if self._capture:
            return int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return 0

    @property
    def actual_fps(self) -> float:
        if self._capture:
            return self._capture.get(cv2.CAP_PROP_FPS)
        return 0.0

    @property
    def frame_count(self) -> int:
        """Total frames captured since opening."""
        return self._frame_count

    def open(self) -> None:
        """
        Open the camera for capture.

        Raises:
            CameraError: If camera cannot be opened.
        """
        if self._is_open:
            logger.warning("Camera already open, closing first")
            self.close()

        logger.info(f"Opening camera {self.camera_index}...")
        self._capture = _open_capture(self.camera_index)

        if not self._capture.isOpened():
            self._capture = None
            raise CameraError(f"Failed to open camera {self.camera_index}")

        self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture.set(cv2.CAP_PROP_FPS, self.fps)
        self._capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)  # Minimize latency

        actual_w = self.actual_width
        actual_h = self.actual_height
        logger.info(f"Camera opened: {actual_w}x{actual_h} @ {self.actual_fps:.1f} FPS")

        if actual_w != self.width or actual_h != self.height:
            logger.warning(
                f"Requested {self.width}x{self.height}, got {actual_w}x{actual_h}"
            )

        self._is_open = True
        self._frame_count = 0

    def close(self) -> None:
        """Close the camera and release resources."""
        if self._capture:
            logger.info("Closing camera")
            self._capture.release()
            self._capture = None
        self._is_open = False

    def read_frame(self) -> Optional[Frame]:
        """
        Read a single RGB frame stamped with the capture time.

        Returns:
            Frame, or None if the read failed.

        Raises:
            CameraError: If camera is not open.
        """
        if not self._is_open or self._capture is None:
            raise CameraError("Camera is not open")

        ret, bgr = self._capture.read()
        timestamp = time.perf_counter()

        if not ret or bgr is None:
            logger.warning("Failed to read frame from camera")
            return None

        self._frame_count += 1
        return Frame(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB), timestamp)

    def __enter__(self) -> "CameraManager":
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


def list_available_cameras(max_index: int = 10) -> list[int]:
    """
    Enumerate available camera indices.

    Args:
        max_index: Maximum index to probe.

    Returns:
        List of available camera indices.
    """
    available = []

    for i in range(max_index):
        cap = _open_capture(i)
        if cap.isOpened():
            available.append(i)
        cap.release()

    logger.debug(f"Available cameras: {available}")
    return available


def select_camera(preferred_index: int = -1) -> int:
    """
    Select the best available camera.

    Args:
        preferred_index: Preferred camera index (-1 for auto).

    Returns:
        Selected camera index.

    Raises:
        CameraError: If no camera is available.
    """
    available = list_available_cameras()

    if not available:
        raise CameraError("No cameras available")

    if preferred_index >= 0:
        if preferred_index in available:
            logger.info(f"Using preferred camera index: {preferred_index}")
            return preferred_index
        logger.warning(
            f"Preferred camera {preferred_index} not available, "
            f"using {available[0]}"
        )

    selected = available[0]
    logger.info(f"Auto-selected camera index: {selected}")
    return selected
