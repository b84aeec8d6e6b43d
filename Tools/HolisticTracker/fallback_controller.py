"""
Fallback controller for the hand path.

Assigns palm-derived hand results to the left/right hand and decides, per
hand and per frame, whether the palm result is kept or the hand falls back
to the pose-derived region.
"""

from dataclasses import dataclass
from typing import Optional

from .hand_landmark import HandLandmarkResult
from .logger import get_logger
from .pipeline_state import PipelineState, Side, TrackingState
from .region import Region

logger = get_logger("FallbackController")

# Handedness above this is a right hand
HANDEDNESS_SPLIT = 0.5


@dataclass(frozen=True)
class HandProbe:
    """
    Hand landmark result for one palm candidate.

    Attributes:
        region: Crop region the landmarks were detected in.
        result: Hand landmark output for that crop.
        candidate_index: Position of the palm candidate this frame.
    """
    region: Region
    result: HandLandmarkResult
    candidate_index: int


class FallbackController:
    """
    Per-hand PALM_TRACKED / POSE_FALLBACK decisions.

    Fallback is re-evaluated every frame: a hand that fell back returns to
    PALM_TRACKED as soon as a confident palm result is assigned to it.
    """

    def __init__(self, state: PipelineState, hand_fallback_threshold: float):
        """
        Initialize fallback controller.

        Args:
            state: Shared per-hand state.
            hand_fallback_threshold: Presence below which a palm result is rejected.
        """
        self._state = state
        self.hand_fallback_threshold = hand_fallback_threshold

    def assign(self, probes: list[HandProbe]) -> dict[Side, HandProbe]:
        """
        Map palm results to hands by handedness, in candidate order.

        A later result that maps to an already assigned hand is discarded.

        Args:
            probes: Hand landmark results, one per palm candidate.

        Returns:
            Side -> probe for each assigned hand.
        """
        assigned: dict[Side, HandProbe] = {}
        for probe in probes:
            side = Side.RIGHT if probe.result.handedness > HANDEDNESS_SPLIT else Side.LEFT
            if side in assigned:
                logger.debug(
                    f"Discarding palm candidate {probe.candidate_index}: "
                    f"{side.value} hand already assigned"
                )
                continue
            assigned[side] = probe
        return assigned

    def resolve(self, side: Side, probe: Optional[HandProbe]) -> TrackingState:
        """
        Decide a hand's tracking state for this frame.

        Args:
            side: Which hand.
            probe: Palm result assigned to this hand, or None.

        Returns:
            PALM_TRACKED if a confident palm result exists, else POSE_FALLBACK.
        """
        if probe is None:
            tracking = TrackingState.POSE_FALLBACK
        elif probe.result.presence < self.hand_fallback_threshold:
            tracking = TrackingState.POSE_FALLBACK
            logger.debug(
                f"{side.value} hand presence {probe.result.presence:.2f} below "
                f"{self.hand_fallback_threshold:.2f}"
            )
        else:
            tracking = TrackingState.PALM_TRACKED

        previous = self._state.hand(side).tracking
        if previous is not tracking:
            logger.info(f"{side.value} hand: {previous.name} -> {tracking.name}")

        return tracking

    def record(
        self,
        side: Side,
        tracking: TrackingState,
        confidence: float,
        handedness: float
    ) -> None:
        """Store this frame's decision and scores for a hand."""
        self._state.update_hand(
            side,
            tracking=tracking,
            confidence=confidence,
            handedness=handedness
        )
