"""
Letterbox transform between camera frames and the square working frame.

Whole-frame detectors run on a fixed-size square image. The source frame is
centred in it with zero padding on the short axis, and every detector output
is mapped back to frame-relative coordinates through the inverse transform.
"""

from dataclasses import dataclass

import cv2
import numpy as np


@dataclass(frozen=True)
class Letterbox:
    """
    Scale between working frame and frame coordinates.

    frame = working * scale - (scale - 1) / 2, per axis.

    Attributes:
        scale_x: Horizontal scale (>= 1, > 1 for portrait frames).
        scale_y: Vertical scale (>= 1, > 1 for landscape frames).
    """
    scale_x: float
    scale_y: float

    @classmethod
    def for_size(cls, width: int, height: int) -> "Letterbox":
        """
        Create the letterbox for a frame size.

        Args:
            width: Frame width in pixels.
            height: Frame height in pixels.

        Returns:
            Letterbox for that aspect ratio.
        """
        return cls(
            scale_x=max(height / width, 1.0),
            scale_y=max(1.0, width / height)
        )

    @property
    def pad_x(self) -> float:
        return (self.scale_x - 1.0) / 2.0

    @property
    def pad_y(self) -> float:
        return (self.scale_y - 1.0) / 2.0

    def matrix(self) -> np.ndarray:
        """3x3 affine mapping working frame to frame coordinates."""
        return np.array([
            [self.scale_x, 0.0, -self.pad_x],
            [0.0, self.scale_y, -self.pad_y],
            [0.0, 0.0, 1.0],
        ])

    def to_frame(self, points: np.ndarray) -> np.ndarray:
        """Map (N, 2) working frame points to frame coordinates."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return pts * (self.scale_x, self.scale_y) - (self.pad_x, self.pad_y)

    def to_working(self, points: np.ndarray) -> np.ndarray:
        """Map (N, 2) frame points to working frame coordinates."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return (pts + (self.pad_x, self.pad_y)) / (self.scale_x, self.scale_y)


@dataclass(frozen=True)
class Frame:
    """
    One camera frame.

    Attributes:
        image: RGB image (H, W, 3), uint8.
        timestamp: Capture time in seconds.
    """
    image: np.ndarray
    timestamp: float

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass(frozen=True)
class WorkingFrame:
    """
    Letterboxed square image for one frame.

    Attributes:
        image: RGB image (S, S, 3), uint8.
        letterbox: Transform back to the source frame.
        timestamp: Capture time of the source frame in seconds.
    """
    image: np.ndarray
    letterbox: Letterbox
    timestamp: float

    @property
    def size(self) -> int:
        return int(self.image.shape[0])

    @classmethod
    def from_frame(cls, frame: Frame, size: int) -> "WorkingFrame":
        letterbox = Letterbox.for_size(frame.width, frame.height)
        return cls(
            image=letterbox_image(frame.image, letterbox, size),
            letterbox=letterbox,
            timestamp=frame.timestamp
        )


def letterbox_image(image: np.ndarray, letterbox: Letterbox, size: int) -> np.ndarray:
    """
    Resample a frame into the square working image.

    Args:
        image: Source image (H, W[, C]).
        letterbox: Letterbox for the image's aspect ratio.
        size: Working image side in pixels.

    Returns:
        Working image (size, size[, C]) with zero padding on the short axis.
    """
    h, w = image.shape[:2]
    affine = (
        np.diag([float(w), float(h), 1.0])
        @ letterbox.matrix()
        @ np.diag([1.0 / size, 1.0 / size, 1.0])
    )
    return cv2.warpAffine(
        image,
        affine[:2],
        (size, size),
        flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0
    )
