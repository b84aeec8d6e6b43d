"""
Landmark data model and topology tables.

Every detector's output is published as a LandmarkSet: a fixed-length,
model-ordered array of (x, y, z, w) rows for one LandmarkKind.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final

import numpy as np


class LandmarkKind(Enum):
    """Published landmark buffers."""
    POSE = "pose"
    POSE_WORLD = "pose_world"
    FACE = "face"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_HAND = "left_hand"
    RIGHT_HAND = "right_hand"


POSE_VERTEX_COUNT: Final[int] = 33
FACE_VERTEX_COUNT: Final[int] = 468
EYE_VERTEX_COUNT: Final[int] = 21  # 5 iris + 16 contour
HAND_VERTEX_COUNT: Final[int] = 21

VERTEX_COUNTS: Final[dict[LandmarkKind, int]] = {
    LandmarkKind.POSE: POSE_VERTEX_COUNT,
    LandmarkKind.POSE_WORLD: POSE_VERTEX_COUNT,
    LandmarkKind.FACE: FACE_VERTEX_COUNT,
    LandmarkKind.LEFT_EYE: EYE_VERTEX_COUNT,
    LandmarkKind.RIGHT_EYE: EYE_VERTEX_COUNT,
    LandmarkKind.LEFT_HAND: HAND_VERTEX_COUNT,
    LandmarkKind.RIGHT_HAND: HAND_VERTEX_COUNT,
}

# Kinds that expose an aggregate score entry at index == vertex count
SCORED_KINDS: Final[frozenset[LandmarkKind]] = frozenset({
    LandmarkKind.POSE,
    LandmarkKind.POSE_WORLD,
    LandmarkKind.LEFT_HAND,
    LandmarkKind.RIGHT_HAND,
})


class PoseIndex:
    """MediaPipe pose landmark indices."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32

    FACE = tuple(range(0, 11))


class HandIndex:
    """MediaPipe hand landmark indices."""
    WRIST = 0
    THUMB_CMC = 1
    THUMB_MCP = 2
    THUMB_IP = 3
    THUMB_TIP = 4
    INDEX_MCP = 5
    INDEX_PIP = 6
    INDEX_DIP = 7
    INDEX_TIP = 8
    MIDDLE_MCP = 9
    MIDDLE_PIP = 10
    MIDDLE_DIP = 11
    MIDDLE_TIP = 12
    RING_MCP = 13
    RING_PIP = 14
    RING_DIP = 15
    RING_TIP = 16
    PINKY_MCP = 17
    PINKY_PIP = 18
    PINKY_DIP = 19
    PINKY_TIP = 20


# Face mesh indices of each eye (the subject's own left/right), iris first
LEFT_EYE_IRIS: Final[tuple[int, ...]] = (473, 474, 475, 476, 477)
LEFT_EYE_CONTOUR: Final[tuple[int, ...]] = (
    263, 249, 390, 373, 374, 380, 381, 382,
    362, 466, 388, 387, 386, 385, 384, 398,
)
RIGHT_EYE_IRIS: Final[tuple[int, ...]] = (468, 469, 470, 471, 472)
RIGHT_EYE_CONTOUR: Final[tuple[int, ...]] = (
    33, 7, 163, 144, 145, 153, 154, 155,
    133, 246, 161, 160, 159, 158, 157, 173,
)

# Body skeleton lines over the 33 pose landmarks
POSE_CONNECTIONS: Final[tuple[tuple[int, int], ...]] = (
    (0, 1), (1, 2), (2, 3), (3, 7), (0, 4),
    (4, 5), (5, 6), (6, 8), (9, 10), (11, 12),
    (11, 13), (13, 15), (15, 17), (17, 19), (19, 15),
    (15, 21), (12, 14), (14, 16), (16, 18), (18, 20),
    (20, 16), (16, 22), (11, 23), (12, 24), (23, 24),
    (23, 25), (25, 27), (27, 29), (29, 31), (31, 27),
    (24, 26), (26, 28), (28, 30), (30, 32), (32, 28),
)

# Hand bones: four per finger plus the palm base
HAND_CONNECTIONS: Final[tuple[tuple[int, int], ...]] = (
    (0, 1), (1, 2), (2, 3), (3, 4),
    (0, 5), (5, 6), (6, 7), (7, 8),
    (5, 9), (9, 10), (10, 11), (11, 12),
    (9, 13), (13, 14), (14, 15), (15, 16),
    (13, 17), (17, 18), (18, 19), (19, 20),
    (0, 17),
)


@dataclass(frozen=True)
class Landmark:
    """Single landmark with 3D coordinates and visibility."""
    x: float  # Normalized x [0, 1] once reconciled
    y: float  # Normalized y [0, 1] once reconciled
    z: float  # Relative depth
    w: float = 1.0  # Visibility, or 1.0 for kinds without one


@dataclass(frozen=True, eq=False)
class LandmarkSet:
    """
    Fixed-length landmark buffer for one kind.

    Attributes:
        kind: Which buffer this is.
        points: Read-only (N, 4) float32 array of (x, y, z, w) rows.
        score: Aggregate confidence, exposed at index N for scored kinds.
    """
    kind: LandmarkKind
    points: np.ndarray
    score: float = 0.0

    def __post_init__(self) -> None:
        expected = VERTEX_COUNTS[self.kind]
        points = np.array(self.points, dtype=np.float32, copy=True)
        if points.shape != (expected, 4):
            raise ValueError(
                f"{self.kind.value} landmarks must have shape ({expected}, 4), "
                f"got {points.shape}"
            )
        points.setflags(write=False)
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "score", float(self.score))

    @classmethod
    def empty(cls, kind: LandmarkKind) -> "LandmarkSet":
        """All-zero set with score 0."""
        return cls(kind, np.zeros((VERTEX_COUNTS[kind], 4), dtype=np.float32), 0.0)

    @property
    def vertex_count(self) -> int:
        return VERTEX_COUNTS[self.kind]

    def landmark(self, index: int) -> Landmark:
        """
        Get landmark by index.

        For scored kinds index == vertex_count returns the score entry,
        with every component set to the aggregate score.

        Raises:
            IndexError: If index is out of range for this kind.
        """
        count = self.vertex_count
        if index == count and self.kind in SCORED_KINDS:
            return Landmark(self.score, self.score, self.score, self.score)
        if not 0 <= index < count:
            raise IndexError(f"{self.kind.value} landmark index {index} out of range")
        x, y, z, w = (float(v) for v in self.points[index])
        return Landmark(x, y, z, w)

    def as_buffer(self) -> np.ndarray:
        """
        Flat buffer layout: N rows, plus a trailing score row for scored kinds.

        Returns:
            New float32 array of shape (N, 4) or (N + 1, 4).
        """
        if self.kind not in SCORED_KINDS:
            return self.points.copy()
        score_row = np.full((1, 4), self.score, dtype=np.float32)
        return np.concatenate([self.points, score_row], axis=0)

    def xy(self) -> np.ndarray:
        """(N, 2) x, y columns as float64."""
        return self.points[:, :2].astype(np.float64)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LandmarkSet):
            return NotImplemented
        return (
            self.kind == other.kind
            and self.score == other.score
            and np.array_equal(self.points, other.points)
        )
