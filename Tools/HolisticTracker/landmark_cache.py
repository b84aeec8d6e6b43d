"""
Double-buffered landmark publication.

The worker builds a complete FrameResult off to the side, then the cache
swaps it in under a lock. Readers always see one whole published frame and
never a half-written one.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .config import InferenceMode
from .landmarks import LandmarkKind, LandmarkSet
from .logger import get_logger
from .pipeline_state import HandState, Side
from .region import Region

logger = get_logger("LandmarkCache")


@dataclass(frozen=True, eq=False)
class FrameResult:
    """
    Everything one processed frame publishes.

    Attributes:
        sequence: Monotonic frame number assigned at submission.
        timestamp: Frame timestamp in seconds.
        mode: Stages that ran.
        landmarks: LandmarkSets produced this frame, frame-relative.
        eye_crop_matrices: Eye-local to frame affines (face stage only).
        eye_regions: Eye regions in frame coordinates (face stage only).
        face_region: Face crop region in working frame coordinates.
        hand_regions: Hand crop regions in working frame coordinates.
        hand_states: Per-hand tracking state after this frame.
        pose_score: Pose confidence, 0 when pose did not run.
        face_score: Face confidence, 0 when the face stage did not run.
        elapsed_ms: Processing time of the step.
    """
    sequence: int
    timestamp: float
    mode: InferenceMode
    landmarks: dict[LandmarkKind, LandmarkSet] = field(default_factory=dict)
    eye_crop_matrices: dict[Side, np.ndarray] = field(default_factory=dict)
    eye_regions: dict[Side, Region] = field(default_factory=dict)
    face_region: Optional[Region] = None
    hand_regions: dict[Side, Region] = field(default_factory=dict)
    hand_states: dict[Side, HandState] = field(default_factory=dict)
    pose_score: float = 0.0
    face_score: float = 0.0
    elapsed_ms: float = 0.0


class LandmarkCache:
    """
    Last published landmarks per kind.

    Kinds a frame did not produce keep their previously published value.
    Results older than the last published sequence are dropped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._landmarks: dict[LandmarkKind, LandmarkSet] = {}
        self._eye_matrices: dict[Side, np.ndarray] = {}
        self._latest: Optional[FrameResult] = None
        self._sequence = -1
        self._reset_buffers()

    def _reset_buffers(self) -> None:
        self._landmarks = {kind: LandmarkSet.empty(kind) for kind in LandmarkKind}
        self._eye_matrices = {side: np.eye(3) for side in Side}
        self._latest = None
        self._sequence = -1

    @property
    def sequence(self) -> int:
        """Sequence number of the last published frame, -1 if none."""
        with self._lock:
            return self._sequence

    def publish(self, result: FrameResult) -> bool:
        """
        Swap in a frame's results.

        Args:
            result: Fully built result of one step.

        Returns:
            True if published, False if the result was stale.
        """
        with self._lock:
            if result.sequence <= self._sequence:
                logger.debug(f"Dropping stale frame {result.sequence} (published {self._sequence})")
                return False

            # Build the new front buffer, then swap
            landmarks = dict(self._landmarks)
            landmarks.update(result.landmarks)
            eye_matrices = dict(self._eye_matrices)
            eye_matrices.update({side: m.copy() for side, m in result.eye_crop_matrices.items()})

            self._landmarks = landmarks
            self._eye_matrices = eye_matrices
            self._latest = result
            self._sequence = result.sequence

        return True

    def get(self, kind: LandmarkKind) -> LandmarkSet:
        with self._lock:
            return self._landmarks[kind]

    def eye_crop_matrix(self, side: Side) -> np.ndarray:
        with self._lock:
            return self._eye_matrices[side].copy()

    def latest(self) -> Optional[FrameResult]:
        with self._lock:
            return self._latest

    def clear(self) -> None:
        """Drop everything published so far."""
        with self._lock:
            self._reset_buffers()
