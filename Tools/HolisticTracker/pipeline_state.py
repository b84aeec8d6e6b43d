"""
Per-hand state that persists across frames.

Only hands carry region state between frames; pose and face are re-derived
every frame. The pipeline owns one PipelineState, the region tracker and
fallback controller are the only writers.
"""

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Optional

from .landmarks import LandmarkKind
from .region import Region


class Side(Enum):
    """Which of the subject's hands."""
    LEFT = "left"
    RIGHT = "right"

    @property
    def landmark_kind(self) -> LandmarkKind:
        return LandmarkKind.LEFT_HAND if self is Side.LEFT else LandmarkKind.RIGHT_HAND

    @property
    def eye_kind(self) -> LandmarkKind:
        return LandmarkKind.LEFT_EYE if self is Side.LEFT else LandmarkKind.RIGHT_EYE


class TrackingState(Enum):
    """Where a hand's crop region came from this frame."""
    PALM_TRACKED = auto()   # Region from a palm detection with confident landmarks
    POSE_FALLBACK = auto()  # Region synthesised from pose wrist and elbow


@dataclass(frozen=True)
class HandState:
    """
    Snapshot of one hand's tracking state.

    Attributes:
        region: Crop region used on the last frame, working frame coordinates.
        timestamp: Timestamp of that frame in seconds.
        confidence: Published hand score on that frame.
        handedness: Handedness probability (right hand) on that frame.
        tracking: Tracking state on that frame.
    """
    region: Optional[Region] = None
    timestamp: Optional[float] = None
    confidence: float = 0.0
    handedness: float = 0.0
    tracking: TrackingState = TrackingState.POSE_FALLBACK

    @property
    def palm_region(self) -> Optional[Region]:
        """Region to smooth palm detections against; None unless palm tracked."""
        if self.tracking is TrackingState.PALM_TRACKED:
            return self.region
        return None


class PipelineState:
    """
    Persistent state owned by the pipeline.

    Reset (not destroyed) when the pipeline is initialized again, released
    at shutdown.
    """

    def __init__(self) -> None:
        self._hands: dict[Side, HandState] = {}
        self._released = False
        self.reset()

    @property
    def is_released(self) -> bool:
        return self._released

    def hand(self, side: Side) -> HandState:
        return self._hands[side]

    def update_hand(self, side: Side, **changes) -> HandState:
        """
        Replace fields of one hand's state.

        Returns:
            The new HandState.
        """
        state = replace(self._hands[side], **changes)
        self._hands[side] = state
        return state

    def snapshot(self) -> dict[Side, HandState]:
        """Copy of every hand's state."""
        return dict(self._hands)

    def reset(self) -> None:
        """Forget all cross-frame state."""
        self._hands = {side: HandState() for side in Side}
        self._released = False

    def release(self) -> None:
        self._hands = {}
        self._released = True
