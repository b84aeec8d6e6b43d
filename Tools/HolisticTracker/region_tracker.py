"""
Region tracker for the face and hand crops.

Decides where each detector looks on a frame: hand regions come from palm
detections smoothed against the previous frame or, failing that, from the
pose wrist and elbow; the face region comes from the pose face landmarks or
the whole frame.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import (
    FACE_REGION_MIN_SIZE,
    FACE_REGION_SCALE,
    HAND_FALLBACK_MIN_SIZE,
    HAND_FALLBACK_VISIBILITY,
    PipelineConfig,
)
from .landmarks import LandmarkSet, PoseIndex
from .letterbox import Letterbox
from .logger import get_logger
from .one_euro_filter import blend_regions
from .pipeline_state import PipelineState, Side
from .region import DetectionCandidate, Region, rotation_from_direction

logger = get_logger("RegionTracker")

# Pose (wrist, elbow) anchors per hand
HAND_ANCHORS: dict[Side, tuple[int, int]] = {
    Side.LEFT: (PoseIndex.LEFT_WRIST, PoseIndex.LEFT_ELBOW),
    Side.RIGHT: (PoseIndex.RIGHT_WRIST, PoseIndex.RIGHT_ELBOW),
}


@dataclass(frozen=True)
class FallbackRegion:
    """
    Pose-derived hand region.

    Attributes:
        region: Hand crop region in working frame coordinates.
        visibility: min(wrist, elbow) pose visibility.
        viable: False when the region is only a best-effort guess.
    """
    region: Region
    visibility: float
    viable: bool


@dataclass(frozen=True)
class PalmMatch:
    """
    Crop region chosen for one palm candidate.

    Attributes:
        region: Region to crop, smoothed when a previous hand was matched.
        detected: Region as decoded from the palm detection.
        smoothed_against: Hand whose previous region was blended in, if any.
    """
    region: Region
    detected: Region
    smoothed_against: Optional[Side]


class RegionTracker:
    """
    Derives per-frame crop regions and commits hand regions to state.

    All regions are in working frame coordinates.
    """

    def __init__(self, state: PipelineState, config: PipelineConfig):
        """
        Initialize region tracker.

        Args:
            state: Shared per-hand state.
            config: Pipeline configuration (fallback geometry, smoothing, gate).
        """
        self._state = state
        self.config = config

    def match_candidates(
        self,
        candidates: list[DetectionCandidate],
        timestamp: float
    ) -> list[PalmMatch]:
        """
        Pick the crop region for each palm candidate.

        A candidate near a hand that was palm tracked on the previous frame
        is blended with that hand's region. Each previous hand can be claimed
        once; unmatched candidates are adopted as detected.

        Args:
            candidates: Palm detections for this frame, in order.
            timestamp: Frame timestamp in seconds.

        Returns:
            One PalmMatch per candidate, same order.
        """
        claimed: set[Side] = set()
        matches = []

        for candidate in candidates:
            side = self._nearest_palm_tracked(candidate.region, claimed)
            if side is None:
                matches.append(PalmMatch(candidate.region, candidate.region, None))
                continue

            claimed.add(side)
            previous = self._state.hand(side)
            te = timestamp - previous.timestamp
            matches.append(PalmMatch(
                blend_regions(previous.region, candidate.region, te, self.config.smoothing),
                candidate.region,
                side
            ))

        return matches

    @staticmethod
    def region_for_side(side: Side, match: PalmMatch) -> Region:
        """
        Crop region for a palm candidate once handedness has picked its hand.

        A candidate that was smoothed against the other hand's region falls
        back to its detected region.
        """
        if match.smoothed_against is None or match.smoothed_against is side:
            return match.region
        logger.debug(
            f"Palm smoothed against {match.smoothed_against.value} hand "
            f"assigned to {side.value}; using detected region"
        )
        return match.detected

    def _nearest_palm_tracked(self, region: Region, claimed: set[Side]) -> Optional[Side]:
        best_side = None
        best_distance = self.config.hand_identity_gate
        for side in Side:
            if side in claimed:
                continue
            previous = self._state.hand(side)
            if previous.palm_region is None or previous.timestamp is None:
                continue
            distance = math.hypot(
                region.center_x - previous.region.center_x,
                region.center_y - previous.region.center_y
            )
            if distance < best_distance:
                best_side = side
                best_distance = distance
        return best_side

    def pose_fallback_region(
        self,
        side: Side,
        pose: LandmarkSet,
        letterbox: Letterbox
    ) -> FallbackRegion:
        """
        Synthesise a hand region from the pose wrist and elbow.

        The crop's "up" axis follows the forearm from elbow to wrist, its
        size scales with forearm length, and the wrist sits on the crop's
        lower edge. A region is always produced; low anchor visibility only
        marks it as not viable.

        Args:
            side: Which hand.
            pose: Frame-relative pose landmarks.
            letterbox: Transform of the current frame.

        Returns:
            FallbackRegion in working frame coordinates.
        """
        wrist_index, elbow_index = HAND_ANCHORS[side]
        wrist_lm = pose.landmark(wrist_index)
        elbow_lm = pose.landmark(elbow_index)

        wrist, elbow = letterbox.to_working(
            np.array([[wrist_lm.x, wrist_lm.y], [elbow_lm.x, elbow_lm.y]])
        )
        direction = wrist - elbow
        length = float(np.hypot(direction[0], direction[1]))
        if length > 1e-6:
            direction = direction / length
        else:
            direction = np.array([0.0, -1.0])

        size = max(length * self.config.hand_fallback_scale, HAND_FALLBACK_MIN_SIZE)
        center = wrist + direction * size * self.config.hand_fallback_shift
        rotation = rotation_from_direction(float(direction[0]), float(direction[1]))

        visibility = min(wrist_lm.w, elbow_lm.w)
        viable = visibility >= HAND_FALLBACK_VISIBILITY
        if not viable:
            logger.debug(f"{side.value} hand fallback anchors barely visible ({visibility:.2f})")

        return FallbackRegion(
            Region(float(center[0]), float(center[1]), size, size, rotation),
            float(visibility),
            viable
        )

    def face_region(self, pose: Optional[LandmarkSet], letterbox: Letterbox) -> Region:
        """
        Face crop region for this frame.

        Uses the pose face landmarks when pose ran and found a body,
        otherwise the whole working frame.

        Args:
            pose: Frame-relative pose landmarks from this frame, or None.
            letterbox: Transform of the current frame.

        Returns:
            Square Region in working frame coordinates.
        """
        if pose is None or pose.score < self.config.human_exist_threshold:
            return Region.full_frame()

        points = letterbox.to_working(pose.xy()[list(PoseIndex.FACE)])
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        center = (lo + hi) / 2.0
        size = max(float(max(hi - lo)) * FACE_REGION_SCALE, FACE_REGION_MIN_SIZE)

        right_eye, left_eye = letterbox.to_working(
            pose.xy()[[PoseIndex.RIGHT_EYE, PoseIndex.LEFT_EYE]]
        )
        rotation = math.atan2(left_eye[1] - right_eye[1], left_eye[0] - right_eye[0])

        return Region(float(center[0]), float(center[1]), size, size, rotation)

    def eye_regions(self, eye_matrices: dict[Side, np.ndarray]) -> dict[Side, Region]:
        """Decompose eye-local-to-frame matrices into frame-space Regions."""
        return {side: Region.from_matrix(matrix) for side, matrix in eye_matrices.items()}

    def commit_hand_region(self, side: Side, region: Region, timestamp: float) -> None:
        """Store the region actually used for a hand on this frame."""
        self._state.update_hand(side, region=region, timestamp=timestamp)
