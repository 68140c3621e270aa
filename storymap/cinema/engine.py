"""Camera and audio handles driven by the playback core.

The map engine and the audio elements are owned elsewhere; the core only sees
these protocols. ``RecordingCamera`` and ``RecordingAudio`` implement them on a
clock and write everything they are asked to do to a shared ``CueLog``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from storymap.cinema.clock import Clock, TimerHandle

logger = logging.getLogger(__name__)

Easing = Callable[[float], float]
LngLat = tuple[float, float]


class PlaybackRejected(Exception):
    """Raised by an audio handle when the host refuses to start playback (autoplay policy)."""


@dataclass(frozen=True)
class CameraTarget:
    """Where a transition should end. ``None`` fields keep their current value."""
    center: LngLat | None = None
    zoom: float | None = None
    pitch: float | None = None
    bearing: float | None = None


@dataclass(frozen=True)
class CameraPose:
    center: LngLat
    zoom: float
    pitch: float
    bearing: float


class CameraHandle(Protocol):
    @property
    def pose(self) -> CameraPose: ...

    def fly_to(
        self,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing,
        curve: float | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> None: ...

    def ease_to(
        self,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing,
        on_complete: Callable[[], None] | None = None,
    ) -> None: ...

    def stop(self) -> None: ...


class AudioHandle(Protocol):
    src: str
    volume: float

    @property
    def paused(self) -> bool: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...


# --- Cue log ---


@dataclass
class Cue:
    at_ms: float
    channel: str
    action: str
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"at_ms": self.at_ms, "channel": self.channel, "action": self.action, **self.detail}

    def __str__(self) -> str:
        extra = " ".join(f"{k}={_fmt(v)}" for k, v in self.detail.items())
        return f"{self.at_ms / 1000:8.2f}s  {self.channel:<8} {self.action:<14} {extra}".rstrip()


class CueLog:
    """Time-stamped record of everything the core asked the handles and UI to do."""

    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self.entries: list[Cue] = []

    def record(self, channel: str, action: str, **detail: Any) -> Cue:
        cue = Cue(at_ms=self.clock.now_ms, channel=channel, action=action, detail=detail)
        self.entries.append(cue)
        logger.debug("cue %s", cue)
        return cue

    def since(self, position: int) -> list[Cue]:
        return self.entries[position:]

    def filter(self, channel: str | None = None, action: str | None = None) -> list[Cue]:
        return [
            c for c in self.entries
            if (channel is None or c.channel == channel)
            and (action is None or c.action == action)
        ]

    def __len__(self) -> int:
        return len(self.entries)


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, tuple):
        return "(" + ", ".join(_fmt(v) for v in value) + ")"
    return str(value)


# --- Recording handles ---


@dataclass
class _Transition:
    kind: str
    start: CameraPose
    end: CameraPose
    started_ms: float
    duration_ms: float
    easing: Easing
    timer: TimerHandle | None = None
    on_complete: Callable[[], None] | None = None


class RecordingCamera:
    """A camera that moves on a clock, interpolating its pose with each transition's easing.

    Like a real map engine, starting a transition implicitly replaces the one in
    progress. ``fly_overlaps`` counts flights that were started without the
    previous motion being stopped first.
    """

    def __init__(
        self,
        clock: Clock,
        cues: CueLog | None = None,
        center: LngLat = (0.0, 20.0),
        zoom: float = 1.5,
        pitch: float = 0.0,
        bearing: float = 0.0,
    ) -> None:
        self.clock = clock
        self.cues = cues if cues is not None else CueLog(clock)
        self._rest = CameraPose(center=center, zoom=zoom, pitch=pitch, bearing=bearing)
        self._transition: _Transition | None = None
        self.fly_overlaps = 0
        self.completed = 0

    @property
    def pose(self) -> CameraPose:
        t = self._transition
        if t is None:
            return self._rest
        if t.duration_ms <= 0:
            return t.end
        progress = min(1.0, max(0.0, (self.clock.now_ms - t.started_ms) / t.duration_ms))
        return _interpolate(t.start, t.end, t.easing(progress))

    def fly_to(
        self,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing,
        curve: float | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> None:
        if self._transition is not None and self._transition.kind == "fly_to":
            self.fly_overlaps += 1
        self._begin("fly_to", target, duration_ms, easing, on_complete, curve=curve)

    def ease_to(
        self,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing,
        on_complete: Callable[[], None] | None = None,
    ) -> None:
        self._begin("ease_to", target, duration_ms, easing, on_complete)

    def stop(self) -> None:
        was_moving = self._halt()
        self.cues.record("camera", "stop", was_moving=was_moving)

    def _begin(
        self,
        kind: str,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing,
        on_complete: Callable[[], None] | None,
        **extra: Any,
    ) -> None:
        self._halt()
        start = self._rest
        end = CameraPose(
            center=target.center if target.center is not None else start.center,
            zoom=target.zoom if target.zoom is not None else start.zoom,
            pitch=target.pitch if target.pitch is not None else start.pitch,
            bearing=target.bearing if target.bearing is not None else start.bearing,
        )
        transition = _Transition(
            kind=kind,
            start=start,
            end=end,
            started_ms=self.clock.now_ms,
            duration_ms=duration_ms,
            easing=easing,
            on_complete=on_complete,
        )
        transition.timer = self.clock.call_later(duration_ms, lambda: self._finish(transition))
        self._transition = transition
        detail = {k: v for k, v in extra.items() if v is not None}
        self.cues.record(
            "camera", kind,
            center=end.center, zoom=end.zoom, pitch=end.pitch, bearing=end.bearing,
            duration_ms=duration_ms, easing=getattr(easing, "__name__", "custom"), **detail,
        )

    def _halt(self) -> bool:
        """Freeze the camera where it is. Returns True if a transition was cut short."""
        t = self._transition
        if t is None:
            return False
        self._rest = self.pose
        if t.timer is not None:
            t.timer.cancel()
        self._transition = None
        return True

    def _finish(self, transition: _Transition) -> None:
        if self._transition is not transition:
            return
        self._rest = transition.end
        self._transition = None
        self.completed += 1
        self.cues.record("camera", "settled", kind=transition.kind)
        if transition.on_complete is not None:
            transition.on_complete()


def _interpolate(a: CameraPose, b: CameraPose, k: float) -> CameraPose:
    return CameraPose(
        center=(
            a.center[0] + (b.center[0] - a.center[0]) * k,
            a.center[1] + (b.center[1] - a.center[1]) * k,
        ),
        zoom=a.zoom + (b.zoom - a.zoom) * k,
        pitch=a.pitch + (b.pitch - a.pitch) * k,
        bearing=a.bearing + (b.bearing - a.bearing) * k,
    )


class RecordingAudio:
    """An audio element stand-in. Set ``reject_play`` to mimic a blocked autoplay."""

    def __init__(
        self,
        name: str,
        src: str,
        cues: CueLog | None = None,
        reject_play: bool = False,
    ) -> None:
        self.name = name
        self.src = src
        self.cues = cues
        self.reject_play = reject_play
        self.volume = 1.0
        self._paused = True
        self.play_calls = 0

    @property
    def paused(self) -> bool:
        return self._paused

    def play(self) -> None:
        self.play_calls += 1
        if self.reject_play:
            self._record("play_rejected")
            raise PlaybackRejected(f"{self.name}: playback blocked by host")
        self._paused = False
        self._record("play")

    def pause(self) -> None:
        self._paused = True
        self._record("pause")

    def _record(self, action: str) -> None:
        if self.cues is not None:
            self.cues.record(f"audio:{self.name}", action, src=self.src)
