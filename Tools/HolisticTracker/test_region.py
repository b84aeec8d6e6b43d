import math

import numpy as np
import pytest

from HolisticTracker.reconciler import FACE_UNMIRROR
from HolisticTracker.region import (
    Region,
    crop_region,
    normalize_radians,
    rotation_from_direction,
)


@pytest.mark.parametrize("angle, expected", [
    (0.0, 0.0),
    (math.pi / 2, math.pi / 2),
    (3 * math.pi / 2, -math.pi / 2),
    (-3 * math.pi / 2, math.pi / 2),
    (math.pi, -math.pi),
    (4 * math.pi + 0.5, 0.5),
])
def test_normalize_radians(angle, expected):
    assert normalize_radians(angle) == pytest.approx(expected)


def test_rotation_from_direction():
    assert rotation_from_direction(0.0, -1.0) == pytest.approx(0.0)
    assert rotation_from_direction(1.0, 0.0) == pytest.approx(math.pi / 2)
    assert rotation_from_direction(-1.0, 0.0) == pytest.approx(-math.pi / 2)
    assert abs(rotation_from_direction(0.0, 1.0)) == pytest.approx(math.pi)


def test_centre_maps_to_centre():
    region = Region(0.3, 0.6, 0.2, 0.1, 0.7)
    np.testing.assert_allclose(region.to_parent([[0.5, 0.5]]), [[0.3, 0.6]])


def test_rotated_up_axis_follows_rotation():
    region = Region(0.5, 0.5, 0.2, 0.2, rotation_from_direction(1.0, 0.0))
    # Top-centre of the crop points along +x in the parent
    np.testing.assert_allclose(region.to_parent([[0.5, 0.0]]), [[0.6, 0.5]], atol=1e-12)


def test_to_local_inverts_to_parent():
    region = Region(0.4, 0.55, 0.3, 0.2, -1.1)
    local = np.array([[0.0, 0.0], [1.0, 0.25], [0.3, 0.9]])
    np.testing.assert_allclose(region.to_local(region.to_parent(local)), local, atol=1e-12)


def test_from_matrix_recovers_region():
    region = Region(0.4, 0.55, 0.3, 0.2, 2.5)
    recovered = Region.from_matrix(region.matrix())
    assert recovered.center_x == pytest.approx(0.4)
    assert recovered.center_y == pytest.approx(0.55)
    assert recovered.width == pytest.approx(0.3)
    assert recovered.height == pytest.approx(0.2)
    assert recovered.rotation == pytest.approx(2.5)


def test_from_matrix_unmirrors():
    region = Region(0.4, 0.55, 0.3, 0.3, 0.4)
    recovered = Region.from_matrix(region.matrix() @ FACE_UNMIRROR)
    assert recovered.center == pytest.approx(region.center)
    assert recovered.width == pytest.approx(0.3)
    assert recovered.rotation == pytest.approx(0.4)


def _top_half_white(size: int = 100) -> np.ndarray:
    image = np.zeros((size, size), dtype=np.uint8)
    image[: size // 2] = 255
    return image


def test_crop_full_frame_keeps_orientation():
    crop = crop_region(_top_half_white(), Region.full_frame(), 10)
    assert crop.shape == (10, 10)
    assert crop[0, 5] == 255
    assert crop[9, 5] == 0


def test_crop_flip_vertical_turns_crop_upside_down():
    crop = crop_region(_top_half_white(), Region.full_frame(), 10, flip_vertical=True)
    assert crop[0, 5] == 0
    assert crop[9, 5] == 255


def test_crop_outside_image_is_zero():
    image = np.full((50, 50, 3), 200, dtype=np.uint8)
    crop = crop_region(image, Region(2.0, 2.0, 0.5, 0.5), 8)
    assert crop.shape == (8, 8, 3)
    assert not crop.any()
