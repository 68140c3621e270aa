"""Playback session — the intro / reveal / overview / journey state machine.

A session is created when a map page loads and discarded when the viewer
leaves. It owns the only mutable playback state (mode, journey index, camera
bookkeeping, mute, UI flags) and every pending timer. User actions that do not
apply to the current mode are ignored; missing handles turn actions into no-ops.

    Intro --enter--> Revealing --10s--> Overview <--start/stop--> Journey
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field

from storymap.cinema.audio import AudioCrossfadeEngine
from storymap.cinema.clock import Clock, TimerHandle
from storymap.cinema.easing import cinematic_fly_ease, reset_ease
from storymap.cinema.engine import AudioHandle, CameraHandle, CameraTarget, CueLog
from storymap.cinema.flight import CameraState, FlightController
from storymap.cinema.route import reveal_progress, route_coordinates, visible_route
from storymap.cinema.timing import StageTimingPlan
from storymap.config import Config
from storymap.models import Journey, LocationRow

logger = logging.getLogger(__name__)

AudioFactory = Callable[[str, str], AudioHandle]

# Stage timers belong to a single journey stop and are replaced on every arrival
STAGE_TIMERS = ("overlay_show", "overlay_hide", "flash_show", "flash_hide", "explore_hint", "panel_open")


class PlaybackMode(str, Enum):
    INTRO = "intro"
    REVEALING = "revealing"
    OVERVIEW = "overview"
    JOURNEY = "journey"


@dataclass
class SessionState:
    mode: PlaybackMode = PlaybackMode.INTRO
    current_journey_index: int = 0
    is_muted: bool = True
    camera: CameraState = field(default_factory=CameraState)
    # Map readiness
    map_loaded: bool = False
    load_progress: int = 0
    # Intro and reveal
    intro_visible: bool = True
    enter_available: bool = False
    interaction_blocked: bool = True
    first_reveal: bool = True
    reveal_fired: bool = False
    route_tracking: bool = False
    route_progress: float = 0.0
    # Chrome and stage
    header_visible: bool = False
    timeline_visible: bool = False
    panel_open: bool = False
    overlay_visible: bool = False
    overlay_index: int | None = None
    arrival_flash_visible: bool = False
    explore_hint_visible: bool = False
    selected_location_id: int | None = None
    closed: bool = False

    @property
    def cumulative_bearing(self) -> float:
        return self.camera.cumulative_bearing


class TimelineEntry(BaseModel):
    index: int
    location_id: int
    title: str
    location_name: str
    date_from: str | None = None
    date_to: str | None = None
    active: bool = False


class SessionView(BaseModel):
    """What the surrounding UI reads after every action."""
    slug: str
    title: str
    subtitle: str
    mode: PlaybackMode
    current_journey_index: int
    cumulative_bearing: float
    is_muted: bool
    journey_started: bool
    intro_visible: bool
    enter_available: bool
    interaction_blocked: bool
    load_progress: int
    header_visible: bool
    timeline_visible: bool
    player_visible: bool
    panel_open: bool
    overlay_visible: bool
    overlay_words: list[str] = Field(default_factory=list)
    overlay_subtitle: str | None = None
    arrival_flash_visible: bool
    explore_hint_visible: bool
    needs_reset: bool
    route_progress: float
    route_points_visible: int
    audio_fading: bool
    timeline: list[TimelineEntry] = Field(default_factory=list)
    selected_location: dict[str, Any] | None = None
    selected_media: list[dict[str, Any]] = Field(default_factory=list)
    can_prev: bool = False
    can_next: bool = False


class PlaybackSession:
    def __init__(
        self,
        journey: Journey,
        clock: Clock,
        config: Config | None = None,
        camera: CameraHandle | None = None,
        audio_factory: AudioFactory | None = None,
        cues: CueLog | None = None,
    ) -> None:
        self.journey = journey
        self.clock = clock
        self.config = config if config is not None else Config()
        self.cinema = self.config.cinema
        self.cues = cues
        self.state = SessionState()
        self.flight = FlightController(clock, self.cinema, self.state.camera, camera)
        self.audio = AudioCrossfadeEngine(
            clock,
            self.config.audio,
            ambient=_open_track(audio_factory, "ambient", journey.client.background_music_url),
            journey=_open_track(audio_factory, "journey", journey.client.journey_music_url),
            cues=cues,
        )
        self.route = route_coordinates(journey.locations)
        self._timers: dict[str, TimerHandle] = {}

        self._schedule("enter_button", self.cinema.intro_button_delay_ms, self._show_enter)
        logger.info(
            "Session opened for %s: %d stops, ambient=%s, journey=%s",
            journey.client.slug, len(journey.locations),
            self.audio.ambient is not None, self.audio.journey is not None,
        )

    # --- Properties ---

    @property
    def locations(self) -> list[LocationRow]:
        return self.journey.locations

    @property
    def mode(self) -> PlaybackMode:
        return self.state.mode

    @property
    def journey_started(self) -> bool:
        return self.state.mode == PlaybackMode.JOURNEY

    @property
    def current_location(self) -> LocationRow | None:
        idx = self.state.current_journey_index
        if 0 <= idx < len(self.locations):
            return self.locations[idx]
        return None

    @property
    def pending_timers(self) -> list[str]:
        return sorted(name for name, h in self._timers.items() if not h.cancelled)

    # --- Host events ---

    def attach_camera(self, camera: CameraHandle | None) -> None:
        self.flight.camera = camera
        self._maybe_reveal()

    def map_event(self, name: str) -> None:
        """Coarse readiness events from the map engine."""
        if self.state.closed:
            return
        if name == "styledataloading":
            self.state.load_progress = max(self.state.load_progress, 30)
        elif name == "styledata":
            self.state.load_progress = max(self.state.load_progress, 70)
        elif name == "load":
            self.state.map_loaded = True
            self.state.load_progress = 100
            self._ui("map_loaded")
            self._maybe_reveal()
        else:
            logger.debug("Ignoring map event %s", name)

    # --- User actions ---

    def enter(self) -> bool:
        """Intro -> Revealing."""
        st = self.state
        if st.closed or st.mode != PlaybackMode.INTRO or not st.enter_available:
            return self._ignored("enter")
        self.cancel_all()
        st.mode = PlaybackMode.REVEALING
        st.is_muted = False
        self._ui("revealing")
        self.audio.fade_in(self.audio.ambient)
        self._schedule("intro_exit", self.cinema.intro_exit_ms, self._dismiss_intro)
        self._maybe_reveal()
        return True

    def start_journey(self) -> bool:
        """Overview -> Journey, from the first stop."""
        if self.state.closed or self.state.mode != PlaybackMode.OVERVIEW:
            return self._ignored("start_journey")
        self.cancel_all()
        self.flight.cancel()
        st = self.state
        st.mode = PlaybackMode.JOURNEY
        st.current_journey_index = 0
        st.header_visible = False
        st.timeline_visible = False
        self._ui("journey_started", stops=len(self.locations))
        if not st.is_muted:
            self.audio.to_journey()
        self._arrive(0, first=True)
        return True

    def next(self) -> bool:
        if self.state.closed or self.state.mode != PlaybackMode.JOURNEY:
            return self._ignored("next")
        if self.state.current_journey_index >= len(self.locations) - 1:
            return False
        return self._go_to(self.state.current_journey_index + 1)

    def prev(self) -> bool:
        if self.state.closed or self.state.mode != PlaybackMode.JOURNEY:
            return self._ignored("prev")
        if self.state.current_journey_index <= 0:
            return False
        return self._go_to(self.state.current_journey_index - 1)

    def select_stop(self, index: int) -> bool:
        """Journey timeline tap."""
        if self.state.closed or self.state.mode != PlaybackMode.JOURNEY:
            return self._ignored("select_stop")
        if not 0 <= index < len(self.locations):
            return self._ignored("select_stop")
        return self._go_to(index)

    def select_location(self, location_id: int) -> bool:
        """Marker or overview timeline tap: fly close, then open the detail panel."""
        index = self.journey.index_of(location_id)
        if self.state.closed or index < 0:
            return self._ignored("select_location")
        if self.state.mode == PlaybackMode.JOURNEY:
            return self.select_stop(index)
        if self.state.mode != PlaybackMode.OVERVIEW:
            return self._ignored("select_location")

        loc = self.locations[index]
        st = self.state
        st.selected_location_id = loc.id
        st.panel_open = False
        self._cancel("panel_open")
        self._ui("location_selected", index=index, name=loc.location_name)
        self.flight.fly_to(
            CameraTarget(
                center=loc.lng_lat,
                zoom=self.cinema.select_zoom,
                pitch=self.cinema.select_pitch,
                bearing=0.0,
            ),
            self.cinema.select_duration_ms,
            cinematic_fly_ease,
        )
        self._schedule("panel_open", self.cinema.panel_open_delay_ms, lambda: self._set_panel(True))
        return True

    def stop_journey(self) -> bool:
        """Journey -> Overview, with a return flight to the establishing framing."""
        if self.state.closed or self.state.mode != PlaybackMode.JOURNEY:
            return self._ignored("stop_journey")
        self.cancel_all()
        self.flight.cancel()
        st = self.state
        st.mode = PlaybackMode.OVERVIEW
        st.panel_open = False
        st.selected_location_id = None
        st.overlay_visible = False
        st.overlay_index = None
        st.explore_hint_visible = False
        st.arrival_flash_visible = False
        self._ui("journey_stopped")
        if self.locations:
            self._schedule("return_flight", self.cinema.return_settle_ms, self._fly_overview)
        if not st.is_muted:
            self.audio.to_ambient()
        self._schedule_chrome(first=False)
        return True

    def toggle_panel(self) -> bool:
        if self.state.closed or self.state.selected_location_id is None:
            return self._ignored("toggle_panel")
        self._set_panel(not self.state.panel_open)
        return True

    def toggle_mute(self) -> bool:
        if self.state.closed or self.state.mode == PlaybackMode.INTRO:
            return self._ignored("toggle_mute")
        st = self.state
        st.is_muted = not st.is_muted
        self._ui("muted" if st.is_muted else "unmuted")
        self.audio.apply_mute(st.is_muted, journeying=self.journey_started)
        return True

    def reset_orientation(self) -> bool:
        """Ease back to north-up at the mode's resting pitch."""
        if self.state.closed or self.state.mode == PlaybackMode.INTRO:
            return self._ignored("reset_orientation")
        pitch = self.cinema.journey_rest_pitch if self.journey_started else 0.0
        return self.flight.ease_to(
            CameraTarget(bearing=0.0, pitch=pitch), self.cinema.reset_duration_ms, reset_ease,
        )

    def close(self) -> None:
        """Viewer navigated away: drop every timer and silence audio."""
        self.cancel_all()
        self.flight.cancel()
        self.audio.silence()
        self.state.closed = True
        self._ui("closed")

    # --- Timers ---

    def cancel_all(self) -> None:
        """Cancel every pending session timer."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _schedule(self, name: str, delay_ms: float, callback: Callable[[], None]) -> None:
        self._cancel(name)

        def fire() -> None:
            self._timers.pop(name, None)
            callback()

        self._timers[name] = self.clock.call_later(delay_ms, fire)

    def _cancel(self, *names: str) -> None:
        for name in names:
            handle = self._timers.pop(name, None)
            if handle is not None:
                handle.cancel()

    # --- Internals ---

    def _show_enter(self) -> None:
        self.state.enter_available = True
        self._ui("enter_available")

    def _dismiss_intro(self) -> None:
        self.state.intro_visible = False
        self._ui("intro_dismissed")
        self._schedule_chrome(first=True)
        self._schedule("unblock", self.cinema.reveal_unblock_ms, self._enter_overview)

    def _enter_overview(self) -> None:
        if self.state.mode != PlaybackMode.REVEALING:
            return
        st = self.state
        st.mode = PlaybackMode.OVERVIEW
        st.interaction_blocked = False
        st.first_reveal = False
        self._freeze_route()
        self._ui("overview")

    def _schedule_chrome(self, first: bool) -> None:
        header = self.cinema.header_delay_first_ms if first else self.cinema.header_delay_ms
        timeline = self.cinema.timeline_delay_first_ms if first else self.cinema.timeline_delay_ms
        self._schedule("header", header, lambda: self._set_chrome("header_visible"))
        self._schedule("timeline", timeline, lambda: self._set_chrome("timeline_visible"))

    def _set_chrome(self, flag: str) -> None:
        if self.journey_started:
            return
        setattr(self.state, flag, True)
        self._ui(flag.removesuffix("_visible") + "_shown")

    def _maybe_reveal(self) -> None:
        st = self.state
        if st.reveal_fired or not st.map_loaded or not self.locations:
            return
        if st.mode not in (PlaybackMode.REVEALING, PlaybackMode.OVERVIEW):
            return
        if not self._fly_overview():
            return
        st.reveal_fired = True
        if self.route:
            st.route_tracking = True
            self._schedule("route_tracking", self.cinema.route_tracking_ms, self._freeze_route)

    def _fly_overview(self) -> bool:
        first = self.locations[0]
        return self.flight.fly_to(
            CameraTarget(
                center=first.lng_lat,
                zoom=self.cinema.overview_zoom,
                pitch=self.cinema.overview_pitch,
                bearing=self.cinema.overview_bearing,
            ),
            self.cinema.reveal_duration_ms,
            cinematic_fly_ease,
        )

    def _current_route_progress(self) -> float:
        st = self.state
        if not st.route_tracking or self.flight.camera is None:
            return st.route_progress
        return reveal_progress(
            self.flight.camera.pose.zoom, self.cinema.globe_zoom, self.cinema.overview_zoom,
        )

    def _freeze_route(self) -> None:
        if not self.state.route_tracking:
            return
        self.state.route_progress = self._current_route_progress()
        self.state.route_tracking = False
        self._cancel("route_tracking")

    def _go_to(self, index: int) -> bool:
        if index == self.state.current_journey_index:
            return False
        self.state.current_journey_index = index
        self._arrive(index)
        return True

    def _arrive(self, index: int, first: bool = False) -> None:
        """Fly to a stop and lay out its stage cues, replacing the previous stop's."""
        st = self.state
        self._cancel(*STAGE_TIMERS)
        st.panel_open = False
        st.overlay_visible = False
        st.overlay_index = None
        st.explore_hint_visible = False
        st.arrival_flash_visible = False

        loc = self.current_location
        if loc is None:
            logger.debug("No stop at index %d; nothing to fly to", index)
            return
        st.selected_location_id = loc.id
        self._ui("stop", index=index, name=loc.location_name)

        duration = self.cinema.first_fly_duration_ms if first else self.cinema.fly_duration_ms
        plan = self.flight.fly_to_stop(self.locations, index, duration, reset_bearing=first)
        if plan is None:
            plan = StageTimingPlan.for_flight(duration, self.cinema)

        self._schedule("overlay_show", plan.overlay_show_ms, lambda: self._show_overlay(index))
        self._schedule("flash_show", plan.flash_show_ms, self._show_flash)
        self._schedule("explore_hint", plan.explore_hint_ms, self._show_explore_hint)

    def _show_overlay(self, index: int) -> None:
        self.state.overlay_visible = True
        self.state.overlay_index = index
        self._ui("overlay_shown", index=index)
        self._schedule("overlay_hide", self.cinema.overlay_hold_ms, self._hide_overlay)

    def _hide_overlay(self) -> None:
        self.state.overlay_visible = False
        self.state.overlay_index = None
        self._ui("overlay_hidden")

    def _show_flash(self) -> None:
        self.state.arrival_flash_visible = True
        self._ui("arrival_flash")
        self._schedule("flash_hide", self.cinema.arrival_flash_hold_ms, self._hide_flash)

    def _hide_flash(self) -> None:
        self.state.arrival_flash_visible = False

    def _show_explore_hint(self) -> None:
        self.state.explore_hint_visible = True
        self._ui("explore_hint")

    def _set_panel(self, is_open: bool) -> None:
        self.state.panel_open = is_open
        self._ui("panel_opened" if is_open else "panel_closed")

    def _needs_reset(self) -> bool:
        camera = self.flight.camera
        if camera is None or self.state.intro_visible:
            return False
        pose = camera.pose
        bearing = (pose.bearing + 180) % 360 - 180
        rest_pitch = self.cinema.journey_rest_pitch if self.journey_started else 0.0
        tolerance = self.cinema.reset_tolerance_deg
        return abs(bearing) > tolerance or abs(pose.pitch - rest_pitch) > tolerance

    def _ignored(self, action: str) -> bool:
        logger.debug("Ignoring %s in mode %s", action, self.state.mode.value)
        return False

    def _ui(self, action: str, **detail: Any) -> None:
        if self.cues is not None:
            self.cues.record("ui", action, **detail)

    # --- View ---

    def view(self) -> SessionView:
        st = self.state
        client = self.journey.client
        journeying = self.journey_started
        active_id = st.selected_location_id
        if journeying and self.current_location is not None:
            active_id = self.current_location.id

        timeline = [
            TimelineEntry(
                index=i,
                location_id=loc.id,
                title=loc.title,
                location_name=loc.location_name,
                date_from=loc.date_from,
                date_to=loc.date_to,
                active=loc.id == active_id,
            )
            for i, loc in enumerate(self.locations)
        ]

        overlay_words: list[str] = []
        overlay_subtitle = None
        if journeying and st.overlay_visible and st.overlay_index is not None:
            loc = self.locations[st.overlay_index]
            overlay_words = loc.location_name.split()
            overlay_subtitle = loc.title

        selected = None
        selected_media: list[dict[str, Any]] = []
        if st.selected_location_id is not None:
            index = self.journey.index_of(st.selected_location_id)
            if index >= 0:
                selected = self.locations[index].model_dump()
                selected_media = [
                    m.model_dump(mode="json") for m in self.journey.media_for(st.selected_location_id)
                ]

        progress = self._current_route_progress()
        idx = st.current_journey_index
        return SessionView(
            slug=client.slug,
            title=client.title,
            subtitle=client.display_subtitle,
            mode=st.mode,
            current_journey_index=idx,
            cumulative_bearing=st.cumulative_bearing,
            is_muted=st.is_muted,
            journey_started=journeying,
            intro_visible=st.intro_visible,
            enter_available=st.enter_available,
            interaction_blocked=st.interaction_blocked,
            load_progress=st.load_progress,
            header_visible=st.header_visible and not journeying,
            timeline_visible=journeying or st.timeline_visible,
            player_visible=journeying,
            panel_open=st.panel_open,
            overlay_visible=journeying and st.overlay_visible,
            overlay_words=overlay_words,
            overlay_subtitle=overlay_subtitle,
            arrival_flash_visible=journeying and st.arrival_flash_visible,
            explore_hint_visible=journeying and st.explore_hint_visible and not st.panel_open,
            needs_reset=self._needs_reset(),
            route_progress=progress,
            route_points_visible=len(visible_route(self.route, progress)),
            audio_fading=self.audio.fading,
            timeline=timeline,
            selected_location=selected,
            selected_media=selected_media,
            can_prev=journeying and idx > 0,
            can_next=journeying and idx < len(self.locations) - 1,
        )


def _open_track(factory: AudioFactory | None, name: str, url: str | None) -> AudioHandle | None:
    """A channel exists only when its track URL is set."""
    if not url:
        logger.debug("No %s track; channel disabled", name)
        return None
    if factory is None:
        return None
    return factory(name, url)
