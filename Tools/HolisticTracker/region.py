"""
Rotated crop regions.

A Region is an oriented rectangle in the normalised coordinates of a parent
image. Detector crops are sampled through a Region and detector outputs are
mapped back through the same Region.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

import cv2
import numpy as np


def normalize_radians(angle: float) -> float:
    """Wrap an angle into [-pi, pi)."""
    return angle - 2 * math.pi * math.floor((angle + math.pi) / (2 * math.pi))


def rotation_from_direction(dx: float, dy: float) -> float:
    """
    Rotation that points a crop's "up" (-v) axis along (dx, dy).

    Args:
        dx: Direction x component in parent coordinates.
        dy: Direction y component in parent coordinates (y grows downwards).

    Returns:
        Rotation in radians, 0 when the direction is straight up.
    """
    return normalize_radians(math.atan2(dx, -dy))


@dataclass(frozen=True)
class Region:
    """
    Oriented rectangle in a parent image's normalised coordinates.

    A crop-local point (u, v) in [0, 1]^2 maps to the parent as
    center + R(rotation) @ ((u - 0.5) * width, (v - 0.5) * height).

    Attributes:
        center_x: Centre x in parent coordinates.
        center_y: Centre y in parent coordinates.
        width: Width in parent coordinates.
        height: Height in parent coordinates.
        rotation: Clockwise rotation in radians (image y axis points down).
    """
    center_x: float
    center_y: float
    width: float
    height: float
    rotation: float = 0.0

    @property
    def center(self) -> tuple[float, float]:
        return (self.center_x, self.center_y)

    def matrix(self) -> np.ndarray:
        """
        Get the 3x3 affine mapping crop-local (u, v) to parent coordinates.

        Returns:
            Homogeneous transform as a float64 array.
        """
        c = math.cos(self.rotation)
        s = math.sin(self.rotation)
        m = np.array([
            [self.width * c, -self.height * s],
            [self.width * s, self.height * c],
        ])
        t = np.array([self.center_x, self.center_y]) - m @ np.array([0.5, 0.5])
        out = np.eye(3)
        out[:2, :2] = m
        out[:2, 2] = t
        return out

    def to_parent(self, points: np.ndarray) -> np.ndarray:
        """Map (N, 2) crop-local points to parent coordinates."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        m = self.matrix()
        return pts @ m[:2, :2].T + m[:2, 2]

    def to_local(self, points: np.ndarray) -> np.ndarray:
        """Map (N, 2) parent points to crop-local coordinates."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        inv = np.linalg.inv(self.matrix())
        return pts @ inv[:2, :2].T + inv[:2, 2]

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "Region":
        """
        Decompose a crop-to-parent affine into a Region.

        Mirrored matrices (negative determinant) decompose to the
        un-mirrored Region covering the same area.

        Args:
            matrix: 3x3 (or 2x3) affine without shear.

        Returns:
            Region covering the matrix's unit square.
        """
        m = np.asarray(matrix, dtype=np.float64)
        a, b = m[0, 0], m[0, 1]
        c, d = m[1, 0], m[1, 1]
        center = m[:2, :2] @ np.array([0.5, 0.5]) + m[:2, 2]

        width = math.hypot(a, c)
        height = math.hypot(b, d)
        if a * d - b * c < 0:
            a, c = -a, -c
        rotation = math.atan2(c, a) if width > 0 else 0.0

        return cls(
            float(center[0]), float(center[1]),
            float(width), float(height),
            normalize_radians(rotation)
        )

    @classmethod
    def full_frame(cls) -> "Region":
        """Region covering the whole parent image."""
        return cls(0.5, 0.5, 1.0, 1.0, 0.0)


@dataclass(frozen=True)
class DetectionCandidate:
    """
    Palm detection result in working frame coordinates.

    Attributes:
        region: Hand crop region derived from the palm box.
        score: Detection confidence.
        keypoints: Optional (7, 2) palm keypoints.
    """
    region: Region
    score: float
    keypoints: Optional[np.ndarray] = field(default=None, compare=False)


def crop_region(
    image: np.ndarray,
    region: Region,
    size: int,
    flip_vertical: bool = False
) -> np.ndarray:
    """
    Sample a square crop of an image through a Region.

    Pixels outside the image are filled with zeros.

    Args:
        image: Source image (H, W) or (H, W, C).
        region: Region in the image's normalised coordinates.
        size: Output crop side in pixels.
        flip_vertical: Sample with v = 1 - y / size so the crop comes out
            upside down relative to the Region.

    Returns:
        Crop as an array of shape (size, size[, C]).
    """
    h, w = image.shape[:2]

    # Crop pixels -> crop-local (u, v)
    if flip_vertical:
        to_local = np.array([
            [1.0 / size, 0.0, 0.0],
            [0.0, -1.0 / size, 1.0],
            [0.0, 0.0, 1.0],
        ])
    else:
        to_local = np.array([
            [1.0 / size, 0.0, 0.0],
            [0.0, 1.0 / size, 0.0],
            [0.0, 0.0, 1.0],
        ])

    to_pixels = np.diag([float(w), float(h), 1.0])
    affine = to_pixels @ region.matrix() @ to_local

    return cv2.warpAffine(
        image,
        affine[:2].astype(np.float64),
        (size, size),
        flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0
    )
