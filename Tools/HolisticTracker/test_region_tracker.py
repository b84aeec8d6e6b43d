import math

import numpy as np
import pytest

from HolisticTracker.config import FACE_REGION_SCALE, PipelineConfig
from HolisticTracker.landmarks import LandmarkKind, LandmarkSet, PoseIndex
from HolisticTracker.letterbox import Letterbox
from HolisticTracker.pipeline_state import PipelineState, Side, TrackingState
from HolisticTracker.region import DetectionCandidate, Region
from HolisticTracker.region_tracker import PalmMatch, RegionTracker

SQUARE = Letterbox.for_size(100, 100)


@pytest.fixture
def state():
    return PipelineState()


@pytest.fixture
def tracker(state):
    return RegionTracker(state, PipelineConfig())


def _pose(overrides: dict[int, tuple], score: float = 0.9) -> LandmarkSet:
    points = np.zeros((33, 4))
    points[:, :2] = 0.5
    points[:, 3] = 0.9
    for index, values in overrides.items():
        points[index, : len(values)] = values
    return LandmarkSet(LandmarkKind.POSE, points, score)


def test_fallback_region_follows_forearm(tracker):
    pose = _pose({
        PoseIndex.LEFT_WRIST: (0.5, 0.4, 0.0, 0.8),
        PoseIndex.LEFT_ELBOW: (0.5, 0.6, 0.0, 0.6),
    })
    fallback = tracker.pose_fallback_region(Side.LEFT, pose, SQUARE)
    region = fallback.region

    assert region.rotation == pytest.approx(0.0)
    assert region.width == pytest.approx(0.2 * 1.6)
    assert region.center_x == pytest.approx(0.5)
    # Wrist sits on the lower edge of the crop
    assert region.center_y == pytest.approx(0.4 - 0.32 * 0.5)
    assert fallback.visibility == pytest.approx(0.6)
    assert fallback.viable


def test_fallback_region_for_sideways_forearm(tracker):
    pose = _pose({
        PoseIndex.RIGHT_WRIST: (0.7, 0.5),
        PoseIndex.RIGHT_ELBOW: (0.5, 0.5),
    })
    region = tracker.pose_fallback_region(Side.RIGHT, pose, SQUARE).region
    assert region.rotation == pytest.approx(math.pi / 2)
    assert region.center_x > 0.7


def test_fallback_region_without_body_is_best_effort(tracker):
    fallback = tracker.pose_fallback_region(Side.LEFT, LandmarkSet.empty(LandmarkKind.POSE), SQUARE)
    assert not fallback.viable
    assert fallback.visibility == 0.0
    assert fallback.region.width > 0.0
    assert fallback.region.rotation == pytest.approx(0.0)


def test_fallback_region_in_working_coordinates(tracker):
    landscape = Letterbox.for_size(640, 480)
    pose = _pose({
        PoseIndex.LEFT_WRIST: (0.5, 0.0),
        PoseIndex.LEFT_ELBOW: (0.5, 0.2),
    })
    region = tracker.pose_fallback_region(Side.LEFT, pose, landscape).region
    # Forearm is 0.2 frame heights = 0.15 working units
    assert region.width == pytest.approx(0.15 * 1.6)


def test_face_region_without_body_is_full_frame(tracker):
    assert tracker.face_region(None, SQUARE) == Region.full_frame()
    assert tracker.face_region(_pose({}, score=0.2), SQUARE) == Region.full_frame()


def test_face_region_from_pose_face_points(tracker):
    overrides = {index: (0.5, 0.3) for index in PoseIndex.FACE}
    overrides[PoseIndex.RIGHT_EYE] = (0.45, 0.3)
    overrides[PoseIndex.LEFT_EYE] = (0.55, 0.3)
    overrides[PoseIndex.MOUTH_LEFT] = (0.5, 0.35)
    region = tracker.face_region(_pose(overrides), SQUARE)

    assert region.center == pytest.approx((0.5, 0.325))
    assert region.width == pytest.approx(0.1 * FACE_REGION_SCALE)
    assert region.rotation == pytest.approx(0.0)


def test_face_region_rotates_with_eye_line(tracker):
    overrides = {index: (0.5, 0.3) for index in PoseIndex.FACE}
    overrides[PoseIndex.RIGHT_EYE] = (0.45, 0.25)
    overrides[PoseIndex.LEFT_EYE] = (0.55, 0.35)
    region = tracker.face_region(_pose(overrides), SQUARE)
    assert region.rotation == pytest.approx(math.pi / 4)


def test_unmatched_candidates_are_adopted(tracker):
    candidates = [
        DetectionCandidate(Region(0.3, 0.5, 0.2, 0.2), 0.9),
        DetectionCandidate(Region(0.7, 0.5, 0.2, 0.2), 0.8),
    ]
    matches = tracker.match_candidates(candidates, 0.0)
    assert [m.region for m in matches] == [c.region for c in candidates]
    assert all(m.smoothed_against is None for m in matches)


def test_candidate_near_palm_tracked_hand_is_smoothed(state, tracker):
    state.update_hand(
        Side.RIGHT,
        region=Region(0.5, 0.5, 0.2, 0.2),
        timestamp=0.0,
        tracking=TrackingState.PALM_TRACKED
    )
    near = DetectionCandidate(Region(0.52, 0.5, 0.2, 0.2), 0.9)
    far = DetectionCandidate(Region(0.9, 0.9, 0.2, 0.2), 0.8)

    smoothed, adopted = tracker.match_candidates([near, far], 1 / 30)

    assert 0.5 < smoothed.region.center_x < 0.52
    assert smoothed.smoothed_against is Side.RIGHT
    assert adopted.region == far.region


def test_previous_hand_is_claimed_once(state, tracker):
    state.update_hand(
        Side.LEFT,
        region=Region(0.5, 0.5, 0.2, 0.2),
        timestamp=0.0,
        tracking=TrackingState.PALM_TRACKED
    )
    first = DetectionCandidate(Region(0.52, 0.5, 0.2, 0.2), 0.9)
    second = DetectionCandidate(Region(0.51, 0.5, 0.2, 0.2), 0.8)

    regions = [m.region for m in tracker.match_candidates([first, second], 1 / 30)]

    assert regions[0] != first.region
    assert regions[1] == second.region


def test_fallback_hand_is_not_smoothed_against(state, tracker):
    state.update_hand(
        Side.LEFT,
        region=Region(0.5, 0.5, 0.2, 0.2),
        timestamp=0.0,
        tracking=TrackingState.POSE_FALLBACK
    )
    candidate = DetectionCandidate(Region(0.52, 0.5, 0.2, 0.2), 0.9)
    assert tracker.match_candidates([candidate], 1 / 30) == [PalmMatch(candidate.region, candidate.region, None)]


def test_repeated_timestamp_follows_candidate(state, tracker):
    state.update_hand(
        Side.RIGHT,
        region=Region(0.5, 0.5, 0.2, 0.2),
        timestamp=1.0,
        tracking=TrackingState.PALM_TRACKED
    )
    moved = DetectionCandidate(Region(0.55, 0.5, 0.2, 0.2), 0.9)

    [match] = tracker.match_candidates([moved], 1.0)

    assert match.region == moved.region
    assert match.smoothed_against is Side.RIGHT


def test_candidate_smoothed_against_other_hand_uses_detected_region(state, tracker):
    state.update_hand(
        Side.RIGHT,
        region=Region(0.3, 0.5, 0.2, 0.2),
        timestamp=0.0,
        tracking=TrackingState.PALM_TRACKED
    )
    state.update_hand(
        Side.LEFT,
        region=Region(0.7, 0.5, 0.2, 0.2),
        timestamp=0.0,
        tracking=TrackingState.PALM_TRACKED
    )
    candidate = DetectionCandidate(Region(0.46, 0.5, 0.2, 0.2), 0.9)

    [match] = tracker.match_candidates([candidate], 1 / 30)

    assert match.smoothed_against is Side.RIGHT
    assert match.region.center_x < 0.46
    assert tracker.region_for_side(Side.RIGHT, match) == match.region
    assert tracker.region_for_side(Side.LEFT, match) == candidate.region


def test_commit_hand_region(state, tracker):
    region = Region(0.2, 0.3, 0.1, 0.1)
    tracker.commit_hand_region(Side.LEFT, region, 2.0)
    assert state.hand(Side.LEFT).region == region
    assert state.hand(Side.LEFT).timestamp == 2.0


def test_eye_regions_decompose_matrices(tracker):
    region = Region(0.4, 0.3, 0.05, 0.05, 0.1)
    regions = tracker.eye_regions({Side.LEFT: region.matrix()})
    assert regions[Side.LEFT].center == pytest.approx(region.center)
    assert regions[Side.LEFT].width == pytest.approx(0.05)
