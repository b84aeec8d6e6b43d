import math

import pytest

from HolisticTracker.config import RegionSmoothingSettings
from HolisticTracker.one_euro_filter import blend_regions, one_euro_blend, smoothing_factor
from HolisticTracker.region import Region

SETTINGS = RegionSmoothingSettings()
FRAME = 1 / 30


def test_smoothing_factor_range():
    a = smoothing_factor(FRAME, 1.0)
    assert 0.0 < a < 1.0
    # Higher cutoff follows the input more closely
    assert smoothing_factor(FRAME, 10.0) > a


def test_blend_without_elapsed_time_adopts_sample():
    assert one_euro_blend(1.0, 2.0, 0.0, 1.0, 0.0) == 2.0
    assert one_euro_blend(1.0, 2.0, -0.1, 1.0, 0.0) == 2.0


def test_blend_stays_between_samples():
    value = one_euro_blend(1.0, 2.0, FRAME, 1.0, 0.5)
    assert 1.0 < value < 2.0


def test_fast_movement_is_smoothed_less():
    def fraction(distance: float) -> float:
        return (one_euro_blend(0.0, distance, FRAME, 1.0, 5.0)) / distance

    assert fraction(0.5) > fraction(0.01)


def test_regions_without_elapsed_time():
    previous = Region(0.5, 0.5, 0.2, 0.2, 0.0)
    current = Region(0.6, 0.5, 0.3, 0.3, 0.5)
    assert blend_regions(previous, current, 0.0, SETTINGS) is current


def test_identical_regions_are_unchanged():
    region = Region(0.4, 0.6, 0.25, 0.25, 1.2)
    blended = blend_regions(region, region, FRAME, SETTINGS)
    assert blended.center == pytest.approx(region.center)
    assert blended.width == pytest.approx(region.width)
    assert blended.rotation == pytest.approx(region.rotation)


def test_region_moves_towards_detection():
    previous = Region(0.5, 0.5, 0.2, 0.2, 0.0)
    current = Region(0.55, 0.45, 0.24, 0.24, 0.2)
    blended = blend_regions(previous, current, FRAME, SETTINGS)

    assert 0.5 < blended.center_x < 0.55
    assert 0.45 < blended.center_y < 0.5
    assert 0.2 < blended.width < 0.24
    assert 0.0 < blended.rotation < 0.2


def test_rotation_blends_across_seam():
    previous = Region(0.5, 0.5, 0.2, 0.2, math.pi - 0.05)
    current = Region(0.5, 0.5, 0.2, 0.2, -math.pi + 0.05)
    blended = blend_regions(previous, current, FRAME, SETTINGS)

    # Short way round stays near +-pi instead of swinging through 0
    assert abs(blended.rotation) > math.pi - 0.05
