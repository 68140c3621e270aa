"""Tests for the playback session state machine."""

import pytest

from storymap.cinema.clock import VirtualClock
from storymap.cinema.engine import CueLog, RecordingAudio, RecordingCamera
from storymap.cinema.rehearsal import new_session
from storymap.cinema.session import PlaybackMode, PlaybackSession
from storymap.cinema.signatures import accumulate_bearing, signature_for
from storymap.config import Config

from conftest import make_journey

# enter at 3500, intro exits 800 later, interaction unblocks 10000 after that
OVERVIEW_AT = 3500 + 800 + 10000


class CountingClock(VirtualClock):
    """Keeps every periodic handle so tests can count live fade timers."""

    def __init__(self) -> None:
        super().__init__()
        self.periodic = []

    def call_every(self, interval_ms, callback):
        handle = super().call_every(interval_ms, callback)
        self.periodic.append(handle)
        return handle

    def live_periodic(self) -> int:
        return sum(1 for h in self.periodic if not h.cancelled)


def loaded(journey=None, config=None):
    session, clock, cues, camera = new_session(journey or make_journey(), config)
    for event in ("styledataloading", "styledata", "load"):
        session.map_event(event)
    return session, clock, cues, camera


def to_overview(journey=None, config=None):
    session, clock, cues, camera = loaded(journey, config)
    clock.advance(3500)
    assert session.enter()
    clock.advance(800 + 10000)
    assert session.mode == PlaybackMode.OVERVIEW
    return session, clock, cues, camera


class TestIntro:
    def test_starts_in_intro(self):
        session, clock, _, _ = loaded()
        view = session.view()
        assert view.mode == PlaybackMode.INTRO
        assert view.intro_visible
        assert view.is_muted
        assert view.interaction_blocked
        assert not view.enter_available

    def test_enter_waits_for_button(self):
        session, clock, _, _ = loaded()
        assert session.enter() is False
        clock.advance(3500)
        assert session.view().enter_available
        assert session.enter() is True
        assert session.mode == PlaybackMode.REVEALING
        assert not session.state.is_muted

    def test_load_progress_never_decreases(self):
        session, clock, _, _ = new_session(make_journey())
        session.map_event("styledataloading")
        assert session.view().load_progress == 30
        session.map_event("styledata")
        assert session.view().load_progress == 70
        session.map_event("load")
        session.map_event("styledataloading")
        assert session.view().load_progress == 100

    def test_reveal_flight_on_enter(self):
        session, clock, cues, camera = loaded()
        clock.advance(3500)
        session.enter()
        fly = cues.filter("camera", "fly_to")
        assert len(fly) == 1
        assert fly[0].detail["zoom"] == 4.5
        assert fly[0].detail["pitch"] == 55
        assert fly[0].detail["bearing"] == -15
        assert fly[0].detail["duration_ms"] == 8000
        assert fly[0].detail["center"] == session.locations[0].lng_lat

    def test_reveal_waits_for_map_load(self):
        session, clock, cues, _ = new_session(make_journey())
        clock.advance(3500)
        session.enter()
        assert cues.filter("camera", "fly_to") == []
        session.map_event("load")
        assert len(cues.filter("camera", "fly_to")) == 1

    def test_reveal_waits_for_camera(self):
        clock = VirtualClock()
        session = PlaybackSession(make_journey(), clock)
        session.map_event("load")
        clock.advance(3500)
        session.enter()
        cues = CueLog(clock)
        session.attach_camera(RecordingCamera(clock, cues))
        assert len(cues.filter("camera", "fly_to")) == 1

    def test_ambient_fades_in_on_enter(self):
        session, clock, _, _ = loaded()
        clock.advance(3500)
        session.enter()
        clock.advance(2100)
        assert session.audio.ambient.volume == 1.0
        assert not session.audio.ambient.paused


class TestReveal:
    def test_overview_after_unblock_delay(self):
        session, clock, _, _ = loaded()
        clock.advance(3500)
        session.enter()
        clock.advance(800)
        assert not session.view().intro_visible
        clock.advance(9999)
        assert session.mode == PlaybackMode.REVEALING
        clock.advance(1)
        view = session.view()
        assert view.mode == PlaybackMode.OVERVIEW
        assert not view.interaction_blocked

    def test_chrome_appears_after_first_reveal_delays(self):
        session, clock, _, _ = loaded()
        clock.advance(3500)
        session.enter()
        clock.advance(800 + 7499)
        assert not session.view().header_visible
        clock.advance(1)
        assert session.view().header_visible
        assert not session.view().timeline_visible
        clock.advance(500)
        assert session.view().timeline_visible

    def test_route_draws_and_freezes(self):
        session, clock, _, _ = loaded()
        clock.advance(3500)
        session.enter()
        clock.advance(4000)
        partial = session.view().route_progress
        assert 0 < partial < 1
        clock.advance(6800)
        view = session.view()
        assert view.route_progress == pytest.approx(1.0)
        assert view.route_points_visible == len(session.route) == 5 * 101
        assert not session.state.route_tracking

    def test_single_stop_has_no_route(self):
        session, clock, _, _ = to_overview(make_journey(stops=1))
        assert session.route == []
        assert session.view().route_points_visible == 0


class TestJourneyNavigation:
    @pytest.mark.parametrize("n", [0, 1, 3, 5, 6, 12])
    def test_n_nexts(self, n):
        session, clock, _, _ = to_overview()
        session.start_journey()
        for _ in range(n):
            session.next()
            clock.advance(250)
        assert session.state.current_journey_index == min(n, len(session.locations) - 1)

    @pytest.mark.parametrize("stops", [1, 2, 6])
    def test_n_nexts_any_length(self, stops):
        session, clock, _, _ = to_overview(make_journey(stops=stops))
        session.start_journey()
        for _ in range(10):
            session.next()
        assert session.state.current_journey_index == stops - 1

    def test_start_only_from_overview(self):
        session, clock, _, _ = loaded()
        assert session.start_journey() is False
        clock.advance(3500)
        session.enter()
        assert session.start_journey() is False
        assert session.mode == PlaybackMode.REVEALING

    def test_next_ignored_outside_journey(self):
        session, _, _, _ = to_overview()
        assert session.next() is False
        assert session.prev() is False
        assert session.state.current_journey_index == 0

    def test_prev_at_start(self):
        session, _, _, _ = to_overview()
        session.start_journey()
        assert session.prev() is False

    def test_select_stop(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        assert session.select_stop(4)
        assert session.state.current_journey_index == 4
        assert session.select_stop(4) is False
        assert session.select_stop(99) is False

    def test_first_flight_is_longer(self):
        session, clock, cues, _ = to_overview()
        session.start_journey()
        clock.advance(7500)
        session.next()
        flights = cues.filter("camera", "fly_to")[-2:]
        assert [f.detail["duration_ms"] for f in flights] == [7000, 6200]
        assert [f.detail["curve"] for f in flights] == [1.55, 1.55]

    def test_start_hides_chrome_and_shows_player(self):
        session, _, _, _ = to_overview()
        session.start_journey()
        view = session.view()
        assert view.journey_started
        assert view.player_visible
        assert not view.header_visible
        assert view.timeline_visible
        assert view.can_next and not view.can_prev
        assert view.timeline[0].active


class TestCameraIntent:
    def test_rapid_changes_never_overlap(self):
        session, clock, cues, camera = to_overview()
        session.start_journey()
        for i in range(20):
            if i % 3 == 2:
                session.prev()
            else:
                session.next()
            clock.advance(120)
        assert camera.fly_overlaps == 0

    def test_every_flight_follows_a_stop(self):
        session, clock, cues, _ = to_overview()
        session.start_journey()
        session.next()
        session.select_stop(4)
        session.stop_journey()
        clock.advance(500)
        camera_cues = cues.filter("camera")
        for i, cue in enumerate(camera_cues):
            if cue.action == "fly_to":
                assert camera_cues[i - 1].action == "stop"

    def test_bearing_accumulates_over_visits(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        visited = [0]
        for _ in range(3):
            session.next()
            visited.append(session.state.current_journey_index)
            clock.advance(1000)
        session.prev()
        visited.append(session.state.current_journey_index)
        expected = accumulate_bearing(0, [signature_for(i).bearing_delta for i in visited])
        assert session.view().cumulative_bearing == pytest.approx(expected)

    def test_bearing_independent_of_timing(self):
        results = []
        for gap in (0, 300, 9000):
            session, clock, _, _ = to_overview()
            session.start_journey()
            for _ in range(5):
                clock.advance(gap)
                session.next()
            results.append(session.state.cumulative_bearing)
        assert results[0] == results[1] == results[2]

    def test_restart_resets_bearing(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        session.next()
        session.stop_journey()
        clock.advance(5000)
        session.start_journey()
        assert session.state.cumulative_bearing == 0


class TestStageCues:
    def test_overlay_window(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        clock.advance(4999)
        assert not session.view().overlay_visible
        clock.advance(1)
        view = session.view()
        assert view.overlay_visible
        assert view.overlay_words == ["Lisbon", "Portugal"]
        assert view.overlay_subtitle == "Born in Lisbon"
        clock.advance(7999)
        assert session.view().overlay_visible
        clock.advance(1)
        assert not session.view().overlay_visible

    def test_overlay_does_not_bleed(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        clock.advance(5000)
        assert session.view().overlay_visible
        session.next()
        assert not session.view().overlay_visible
        clock.advance(4199)
        assert not session.view().overlay_visible
        clock.advance(1)
        assert session.state.overlay_index == 1
        # the first stop's hide time passes without touching the second overlay
        clock.advance(6000)
        view = session.view()
        assert view.overlay_visible
        assert view.overlay_words == ["Coimbra"]
        clock.advance(2000)
        assert not session.view().overlay_visible

    def test_flash_and_explore_hint(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        clock.advance(6700)
        assert session.view().arrival_flash_visible
        clock.advance(399)
        assert not session.view().explore_hint_visible
        clock.advance(1)
        assert session.view().explore_hint_visible
        clock.advance(500)
        assert not session.view().arrival_flash_visible

    def test_stage_timers_replaced_on_arrival(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        session.next()
        session.next()
        names = session.pending_timers
        assert names.count("overlay_show") == 1
        assert "header" not in names

    def test_stop_clears_stage(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        clock.advance(5500)
        session.stop_journey()
        view = session.view()
        assert not view.overlay_visible
        assert not view.panel_open
        assert view.mode == PlaybackMode.OVERVIEW
        assert "overlay_hide" not in session.pending_timers


class TestStopJourney:
    def test_return_flight_after_settle(self):
        session, clock, cues, _ = to_overview()
        session.start_journey()
        clock.advance(8000)
        session.stop_journey()
        stopped_at = clock.now_ms
        clock.advance(299)
        assert cues.filter("camera", "fly_to")[-1].at_ms < stopped_at
        clock.advance(1)
        ret = cues.filter("camera", "fly_to")[-1]
        assert ret.at_ms == stopped_at + 300
        assert ret.detail["zoom"] == 4.5
        assert ret.detail["center"] == session.locations[0].lng_lat

    def test_chrome_returns(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        session.stop_journey()
        clock.advance(3500)
        assert session.view().header_visible
        clock.advance(500)
        assert session.view().timeline_visible

    def test_no_orbit_after_stop(self):
        session, clock, cues, _ = to_overview()
        session.start_journey()
        clock.advance(3000)
        session.stop_journey()
        clock.advance(20000)
        assert cues.filter("camera", "ease_to") == []

    def test_stop_ignored_in_overview(self):
        session, _, _, _ = to_overview()
        assert session.stop_journey() is False


class TestAudio:
    def test_crossfade_to_journey_and_back(self):
        session, clock, _, _ = to_overview()
        ambient, track = session.audio.ambient, session.audio.journey
        session.start_journey()
        clock.advance(4200)
        assert ambient.paused
        assert track.volume == 1.0 and not track.paused
        session.stop_journey()
        clock.advance(4200)
        assert track.paused
        assert ambient.volume == 1.0 and not ambient.paused

    def test_ambient_only(self):
        journey = make_journey(journey_track=None)
        session, clock, cues, _ = to_overview(journey)
        assert session.audio.journey is None
        session.start_journey()
        clock.advance(4200)
        assert session.audio.ambient.paused
        assert cues.filter("audio:journey") == []
        session.stop_journey()
        clock.advance(2100)
        assert session.audio.ambient.volume == 1.0
        assert not session.audio.ambient.paused

    def test_no_audio_urls(self):
        session, clock, _, _ = to_overview(make_journey(ambient=None, journey_track=None))
        session.start_journey()
        session.toggle_mute()
        clock.advance(5000)
        assert not session.view().audio_fading

    def test_muted_start_keeps_silence(self):
        session, clock, cues, _ = to_overview()
        session.toggle_mute()
        clock.advance(2100)
        mark = len(cues)
        session.start_journey()
        clock.advance(4200)
        assert not [c for c in cues.since(mark) if c.channel.startswith("audio")]

    def test_mute_ignored_in_intro(self):
        session, _, _, _ = loaded()
        assert session.toggle_mute() is False
        assert session.state.is_muted

    def test_one_fade_timer_under_mute_storm(self):
        clock = CountingClock()
        cues = CueLog(clock)
        session = PlaybackSession(
            make_journey(),
            clock,
            Config(),
            camera=RecordingCamera(clock, cues),
            audio_factory=lambda name, src: RecordingAudio(name, src, cues),
            cues=cues,
        )
        session.map_event("load")
        actions = [
            (3500, session.enter),
            (3700, session.toggle_mute),
            (3900, session.toggle_mute),
            (OVERVIEW_AT, session.start_journey),
            (OVERVIEW_AT + 900, session.toggle_mute),
            (OVERVIEW_AT + 1000, session.toggle_mute),
            (OVERVIEW_AT + 1100, session.stop_journey),
            (OVERVIEW_AT + 1150, session.toggle_mute),
            (OVERVIEW_AT + 1300, session.start_journey),
            (OVERVIEW_AT + 1400, session.toggle_mute),
        ]
        for at, action in actions:
            while clock.now_ms < at:
                clock.advance(25)
                assert clock.live_periodic() <= 1
            action()
            assert clock.live_periodic() <= 1
        for _ in range(400):
            clock.advance(25)
            assert clock.live_periodic() <= 1

    def test_unmute_after_muted_start_plays_one_channel(self):
        session, clock, _, _ = to_overview()
        ambient, track = session.audio.ambient, session.audio.journey
        clock.advance(3000)
        session.toggle_mute()
        clock.advance(500)
        session.start_journey()
        clock.advance(200)
        session.toggle_mute()
        clock.advance(10000)
        assert ambient.paused and ambient.volume == 0
        assert track.volume == 1.0 and not track.paused

    def test_unmute_after_muted_stop_plays_one_channel(self):
        session, clock, _, _ = to_overview()
        ambient, track = session.audio.ambient, session.audio.journey
        session.start_journey()
        clock.advance(4200)
        session.toggle_mute()
        clock.advance(500)
        session.stop_journey()
        clock.advance(200)
        session.toggle_mute()
        clock.advance(10000)
        assert track.paused and track.volume == 0
        assert ambient.volume == 1.0 and not ambient.paused


class TestOverviewSelection:
    def test_select_location_flies_and_opens_panel(self):
        session, clock, cues, _ = to_overview()
        loc = session.locations[1]
        assert session.select_location(loc.id)
        fly = cues.filter("camera", "fly_to")[-1]
        assert fly.detail["zoom"] == 14
        assert fly.detail["pitch"] == 45
        assert fly.detail["bearing"] == 0
        assert fly.detail["duration_ms"] == 2000
        clock.advance(2199)
        assert not session.view().panel_open
        clock.advance(1)
        view = session.view()
        assert view.panel_open
        assert view.selected_location["id"] == loc.id
        assert len(view.selected_media) == 1
        assert view.timeline[1].active

    def test_unknown_location(self):
        session, _, _, _ = to_overview()
        assert session.select_location(9999) is False

    def test_marker_during_journey_jumps(self):
        session, _, _, _ = to_overview()
        session.start_journey()
        assert session.select_location(session.locations[3].id)
        assert session.state.current_journey_index == 3

    def test_toggle_panel_needs_selection(self):
        session, _, _, _ = to_overview()
        assert session.toggle_panel() is False
        session.select_location(session.locations[0].id)
        assert session.toggle_panel()
        assert session.view().panel_open
        assert session.toggle_panel()
        assert not session.view().panel_open

    def test_panel_hides_explore_hint(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        clock.advance(7200)
        assert session.view().explore_hint_visible
        session.toggle_panel()
        assert not session.view().explore_hint_visible


class TestResetOrientation:
    def test_needs_reset_then_reset(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        clock.advance(8000)
        assert session.view().needs_reset
        assert session.reset_orientation()
        clock.advance(1000)
        pose = session.flight.camera.pose
        assert pose.bearing == pytest.approx(0)
        assert pose.pitch == pytest.approx(45)
        assert not session.view().needs_reset

    def test_hidden_during_intro(self):
        session, _, _, _ = loaded()
        assert not session.view().needs_reset


class TestZeroLocations:
    def test_intro_completes_without_flight(self):
        session, clock, cues, camera = loaded(make_journey(stops=0))
        clock.advance(3500)
        assert session.enter()
        clock.advance(800 + 10000)
        assert session.mode == PlaybackMode.OVERVIEW
        assert session.start_journey()
        clock.advance(20000)
        view = session.view()
        assert view.timeline == []
        assert not view.can_next
        assert cues.filter("camera", "fly_to") == []
        assert session.next() is False


class TestClose:
    def test_close_cancels_everything(self):
        session, clock, _, _ = to_overview()
        session.start_journey()
        clock.advance(1000)
        session.close()
        assert session.pending_timers == []
        assert session.state.closed
        assert session.audio.ambient.paused
        assert session.audio.journey.paused
        assert not session.view().audio_fading

    def test_actions_ignored_after_close(self):
        session, clock, cues, _ = to_overview()
        session.close()
        mark = len(cues)
        assert session.start_journey() is False
        assert session.select_location(session.locations[0].id) is False
        assert session.toggle_mute() is False
        assert session.reset_orientation() is False
        session.map_event("load")
        clock.advance(20000)
        assert session.mode == PlaybackMode.OVERVIEW
        assert session.pending_timers == []
        assert not [c for c in cues.since(mark) if c.action != "settled"]

    def test_journey_actions_ignored_after_close(self):
        session, clock, cues, _ = to_overview()
        session.start_journey()
        clock.advance(1000)
        session.close()
        mark = len(cues)
        assert session.next() is False
        assert session.prev() is False
        assert session.select_stop(2) is False
        assert session.stop_journey() is False
        clock.advance(20000)
        assert session.state.current_journey_index == 0
        assert not [c for c in cues.since(mark) if c.action != "settled"]
