import numpy as np
import pytest

from HolisticTracker.landmarks import LandmarkKind, LandmarkSet
from HolisticTracker.letterbox import Letterbox
from HolisticTracker.reconciler import CoordinateReconciler, apply_affine
from HolisticTracker.region import Region

SQUARE = CoordinateReconciler(Letterbox.for_size(100, 100))


def _hand_points(u: float, v: float, z: float = 0.0) -> np.ndarray:
    points = np.zeros((21, 3))
    points[:] = (u, v, z)
    return points


def test_palm_path_undoes_vertical_flip():
    region = Region.full_frame()
    unflipped = SQUARE.hand(_hand_points(0.5, 0.25), region, False, LandmarkKind.LEFT_HAND, 0.9)
    flipped = SQUARE.hand(_hand_points(0.5, 0.25), region, True, LandmarkKind.LEFT_HAND, 0.9)

    assert unflipped.landmark(0).y == pytest.approx(0.25)
    assert flipped.landmark(0).y == pytest.approx(0.75)
    assert flipped.landmark(0).x == pytest.approx(0.5)


def test_hand_score_and_visibility():
    lms = SQUARE.hand(_hand_points(0.5, 0.5), Region.full_frame(), True, LandmarkKind.RIGHT_HAND, 0.42)
    assert lms.kind is LandmarkKind.RIGHT_HAND
    assert lms.score == pytest.approx(0.42)
    assert lms.landmark(21).x == pytest.approx(0.42)
    assert lms.landmark(3).w == 1.0


def test_hand_depth_scales_with_crop_width():
    region = Region(0.5, 0.5, 0.5, 0.5)
    lms = SQUARE.hand(_hand_points(0.5, 0.5, 0.1), region, False, LandmarkKind.LEFT_HAND, 1.0)
    assert lms.landmark(0).z == pytest.approx(0.05)


def test_hand_through_region_and_letterbox():
    reconciler = CoordinateReconciler(Letterbox.for_size(640, 480))
    region = Region(0.5, 0.5, 0.5, 0.5)
    lms = reconciler.hand(_hand_points(0.5, 0.0), region, False, LandmarkKind.LEFT_HAND, 1.0)

    # Crop top-centre is working (0.5, 0.25)
    assert lms.landmark(0).x == pytest.approx(0.5)
    assert lms.landmark(0).y == pytest.approx(0.25 * 4 / 3 - 1 / 6)


def test_face_undoes_horizontal_mirror():
    points = np.zeros((468, 4))
    points[:] = (0.25, 0.5, 0.0, 1.0)
    face = LandmarkSet(LandmarkKind.FACE, points, 1.0)

    out = SQUARE.face(face, Region.full_frame())

    assert out.landmark(0).x == pytest.approx(0.75)
    assert out.landmark(0).y == pytest.approx(0.5)


def test_face_mirror_applies_before_rotation():
    points = np.zeros((468, 4))
    points[:] = (0.0, 0.5, 0.0, 1.0)
    face = LandmarkSet(LandmarkKind.FACE, points, 1.0)
    region = Region(0.5, 0.5, 0.2, 0.2, np.pi / 2)

    out = SQUARE.face(face, region)

    # Mirrored left edge is the region's right side, which rotation points down
    assert out.landmark(0).x == pytest.approx(0.5, abs=1e-9)
    assert out.landmark(0).y == pytest.approx(0.6)


def test_eye_matrix_composition():
    face_region = Region(0.5, 0.4, 0.3, 0.3, 0.2)
    eye_matrix = Region(0.3, 0.35, 0.1, 0.1, 0.05).matrix()

    composed = SQUARE.eye_crop_matrix(eye_matrix, face_region)

    np.testing.assert_allclose(composed, SQUARE.face_matrix(face_region) @ eye_matrix)


def test_eye_landmarks_follow_eye_matrix():
    face_region = Region(0.5, 0.4, 0.3, 0.3, 0.2)
    eye_matrix = Region(0.3, 0.35, 0.1, 0.1, 0.05).matrix()
    points = np.zeros((21, 4))
    points[:, 0] = np.linspace(0.0, 1.0, 21)
    points[:, 1] = 0.5
    points[:, 3] = 1.0
    eye = LandmarkSet(LandmarkKind.LEFT_EYE, points, 1.0)

    out = SQUARE.eye(eye, eye_matrix, face_region)

    expected = apply_affine(SQUARE.eye_crop_matrix(eye_matrix, face_region), points[:, :2])
    np.testing.assert_allclose(out.xy(), expected, atol=1e-6)
    assert out.kind is LandmarkKind.LEFT_EYE


def test_pose_passes_through():
    pose = LandmarkSet(LandmarkKind.POSE, np.full((33, 4), 0.3), 0.8)
    assert SQUARE.pose(pose) is pose
