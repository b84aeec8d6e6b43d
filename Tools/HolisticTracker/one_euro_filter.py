"""
One Euro smoothing for hand crop regions.

Each frame a hand's new crop region is blended with its previous one. The
blend weight follows the One Euro rule: slow movement = heavy smoothing
(reduces jitter), fast movement = light smoothing (reduces latency).

The blend is a pure function of the two regions and the time between them,
so the result of a frame depends only on the stored previous region.

Reference: Casiez et al. "1€ Filter: A Simple Speed-based Low-pass
Filter for Noisy Input in Interactive Systems" (CHI 2012)
"""

import math

from .config import RegionSmoothingSettings
from .region import Region, normalize_radians


def smoothing_factor(te: float, cutoff: float) -> float:
    """
    Calculate smoothing factor alpha from elapsed time and cutoff frequency.

    Args:
        te: Elapsed time in seconds (must be positive).
        cutoff: Cutoff frequency in Hz.

    Returns:
        Blend weight of the new sample in (0, 1).
    """
    tau = 1.0 / (2.0 * math.pi * cutoff)
    return 1.0 / (1.0 + tau / te)


def one_euro_blend(
    previous: float,
    current: float,
    te: float,
    min_cutoff: float,
    beta: float
) -> float:
    """
    Blend one value towards a new sample.

    Args:
        previous: Previous output.
        current: New raw sample.
        te: Elapsed time in seconds. Non-positive adopts the new sample.
        min_cutoff: Minimum cutoff frequency (Hz). Lower = smoother but more lag.
        beta: Speed coefficient. Higher = more responsive to fast movements.

    Returns:
        Blended value.
    """
    if te <= 0:
        return current

    speed = abs(current - previous) / te
    cutoff = min_cutoff + beta * speed
    a = smoothing_factor(te, cutoff)
    return a * current + (1.0 - a) * previous


def blend_regions(
    previous: Region,
    current: Region,
    te: float,
    settings: RegionSmoothingSettings
) -> Region:
    """
    Blend a new crop region with the previous frame's region.

    Centre, size and rotation are blended independently. Centre speed is
    the Euclidean speed of the centre, and rotation is blended the short way
    round the +-pi seam.

    Args:
        previous: Region used on the previous frame.
        current: Region derived from this frame's detection.
        te: Seconds between the two frames. Non-positive returns current.
        settings: Cutoff and speed coefficients.

    Returns:
        Smoothed Region.
    """
    if te <= 0:
        return current

    # Centre
    dx = current.center_x - previous.center_x
    dy = current.center_y - previous.center_y
    speed = math.hypot(dx, dy) / te
    a = smoothing_factor(te, settings.center_min_cutoff + settings.center_beta * speed)
    cx = previous.center_x + a * dx
    cy = previous.center_y + a * dy

    # Size
    width = one_euro_blend(previous.width, current.width, te, settings.size_min_cutoff, settings.size_beta)
    height = one_euro_blend(previous.height, current.height, te, settings.size_min_cutoff, settings.size_beta)

    # Rotation
    delta = normalize_radians(current.rotation - previous.rotation)
    rotation = one_euro_blend(
        0.0, delta, te, settings.rotation_min_cutoff, settings.rotation_beta
    ) + previous.rotation

    return Region(cx, cy, width, height, normalize_radians(rotation))
