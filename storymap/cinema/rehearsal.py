"""Scripted rehearsals: run a playback session on a virtual clock and keep the cue sheet."""

import logging
from typing import Any

from pydantic import BaseModel

from storymap.cinema.clock import VirtualClock
from storymap.cinema.engine import Cue, CueLog, RecordingAudio, RecordingCamera
from storymap.cinema.session import PlaybackSession, SessionView
from storymap.config import Config
from storymap.models import Journey

logger = logging.getLogger(__name__)

# Viewer dwell after a stop's flight lands, long enough for the overlay to clear
DWELL_AFTER_LANDING_MS = 6000


class RehearsalStep(BaseModel):
    at_ms: float
    action: str
    arg: int | str | None = None


class RehearsalResult:
    """Cue sheet and UI snapshots from a rehearsal."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        self.cues: list[Cue] = []
        self.snapshots: list[tuple[float, str, SessionView]] = []
        self.final_view: SessionView | None = None
        self.duration_ms: float = 0.0
        self.camera_overlaps = 0

    @property
    def flights(self) -> list[Cue]:
        return [c for c in self.cues if c.channel == "camera" and c.action == "fly_to"]

    def __repr__(self) -> str:
        return (
            f"RehearsalResult({self.slug}: {self.duration_ms / 1000:.1f}s, "
            f"{len(self.cues)} cues, {len(self.flights)} flights)"
        )


def new_session(
    journey: Journey,
    config: Config | None = None,
) -> tuple[PlaybackSession, VirtualClock, CueLog, RecordingCamera]:
    """A session wired to a virtual clock and recording camera/audio handles."""
    clock = VirtualClock()
    cues = CueLog(clock)
    camera = RecordingCamera(clock, cues)
    session = PlaybackSession(
        journey,
        clock,
        config,
        camera=camera,
        audio_factory=lambda name, src: RecordingAudio(name, src, cues),
        cues=cues,
    )
    return session, clock, cues, camera


def apply_action(session: PlaybackSession, action: str, arg: Any = None) -> bool:
    """Dispatch a named user/host action onto a session."""
    if action == "wait":
        return True
    if action == "map_event":
        session.map_event(str(arg))
        return True
    if action == "select_stop":
        return session.select_stop(int(arg))
    if action == "select_location":
        return session.select_location(int(arg))

    simple = {
        "enter": session.enter,
        "start_journey": session.start_journey,
        "next": session.next,
        "prev": session.prev,
        "stop_journey": session.stop_journey,
        "toggle_panel": session.toggle_panel,
        "toggle_mute": session.toggle_mute,
        "reset_orientation": session.reset_orientation,
    }
    if action == "close":
        session.close()
        return True
    if action not in simple:
        raise ValueError(f"Unknown action: {action}")
    return simple[action]()


def default_script(journey: Journey, config: Config | None = None) -> list[RehearsalStep]:
    """Load the map, enter, play every stop in order, stop, and watch the return flight."""
    cinema = (config or Config()).cinema
    steps = [
        RehearsalStep(at_ms=0, action="map_event", arg="styledataloading"),
        RehearsalStep(at_ms=400, action="map_event", arg="styledata"),
        RehearsalStep(at_ms=1200, action="map_event", arg="load"),
    ]
    enter_at = float(cinema.intro_button_delay_ms)
    steps.append(RehearsalStep(at_ms=enter_at, action="enter"))

    t = enter_at + cinema.intro_exit_ms + cinema.reveal_unblock_ms + 1000
    steps.append(RehearsalStep(at_ms=t, action="start_journey"))
    t += cinema.first_fly_duration_ms + DWELL_AFTER_LANDING_MS
    for _ in range(1, len(journey.locations)):
        steps.append(RehearsalStep(at_ms=t, action="next"))
        t += cinema.fly_duration_ms + DWELL_AFTER_LANDING_MS

    steps.append(RehearsalStep(at_ms=t, action="stop_journey"))
    t += cinema.return_settle_ms + cinema.reveal_duration_ms + 500
    steps.append(RehearsalStep(at_ms=t, action="wait"))
    return steps


def rehearse(
    journey: Journey,
    config: Config | None = None,
    script: list[RehearsalStep] | None = None,
) -> RehearsalResult:
    """Play a script through a fresh session and return what happened."""
    if script is None:
        script = default_script(journey, config)
    session, clock, cues, camera = new_session(journey, config)
    result = RehearsalResult(journey.client.slug)

    for step in sorted(script, key=lambda s: s.at_ms):
        clock.advance_to(step.at_ms)
        applied = apply_action(session, step.action, step.arg)
        if not applied:
            logger.debug("Step %s at %.0fms had no effect", step.action, step.at_ms)
        result.snapshots.append((clock.now_ms, step.action, session.view()))

    result.final_view = session.view()
    result.duration_ms = clock.now_ms
    result.cues = list(cues.entries)
    result.camera_overlaps = camera.fly_overlaps
    logger.info("Rehearsal complete: %s", result)
    return result
