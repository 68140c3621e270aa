"""Easing curves for camera motion. Each maps normalized time in [0, 1] to progress in [0, 1]."""

import math


def cinematic_fly_ease(t: float) -> float:
    """Cubic in-out: the single continuous curve used for every flight."""
    if t < 0.5:
        return 4 * t * t * t
    return 1 - math.pow(-2 * t + 2, 3) / 2


def orbit_ease(t: float) -> float:
    """Ease-out sine for the slow post-landing rotation."""
    return math.sin((t * math.pi) / 2)


def reset_ease(t: float) -> float:
    """Ease-out quad for the reset-orientation button."""
    return t * (2 - t)
