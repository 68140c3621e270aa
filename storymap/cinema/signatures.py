"""Per-stop camera signatures.

The table is a deliberate repeating pattern: stop N uses entry N % 6. Each entry
sets the landed zoom and pitch, and a bearing delta that is added to the running
bearing so the heading drifts from stop to stop instead of resetting.
"""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class CameraSignature:
    zoom: float
    pitch: float
    bearing_delta: float


CAMERA_SIGNATURES: tuple[CameraSignature, ...] = (
    CameraSignature(zoom=13.5, pitch=58, bearing_delta=0),
    CameraSignature(zoom=12.8, pitch=65, bearing_delta=-38),
    CameraSignature(zoom=14.0, pitch=48, bearing_delta=52),
    CameraSignature(zoom=13.2, pitch=70, bearing_delta=-30),
    CameraSignature(zoom=13.8, pitch=55, bearing_delta=75),
    CameraSignature(zoom=12.5, pitch=62, bearing_delta=-60),
)


def signature_for(index: int) -> CameraSignature:
    return CAMERA_SIGNATURES[index % len(CAMERA_SIGNATURES)]


def accumulate_bearing(start: float, deltas: Iterable[float]) -> float:
    """Fold bearing deltas onto a start bearing, modulo 360."""
    bearing = start
    for delta in deltas:
        bearing = (bearing + delta) % 360
    return bearing
