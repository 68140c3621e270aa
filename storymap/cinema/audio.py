"""Audio crossfade engine for the ambient (intro) and journey tracks.

Fades move volume linearly in a fixed number of steps on a repeating timer.
Only one fade runs at a time: starting any fade cancels the one in progress,
so the ambient -> journey crossfade is sequential (out, then in).
"""

import logging
from typing import Callable

from storymap.cinema.clock import Clock, TimerHandle
from storymap.cinema.engine import AudioHandle, CueLog, PlaybackRejected
from storymap.config import AudioConfig

logger = logging.getLogger(__name__)


class AudioCrossfadeEngine:
    def __init__(
        self,
        clock: Clock,
        config: AudioConfig,
        ambient: AudioHandle | None = None,
        journey: AudioHandle | None = None,
        cues: CueLog | None = None,
    ) -> None:
        self.clock = clock
        self.config = config
        self.ambient = ambient
        self.journey = journey
        self.cues = cues
        self._fade_timer: TimerHandle | None = None

    @property
    def fading(self) -> bool:
        return self._fade_timer is not None and not self._fade_timer.cancelled

    def cancel(self) -> None:
        if self._fade_timer is not None:
            self._fade_timer.cancel()
            self._fade_timer = None

    def fade_in(self, track: AudioHandle | None, target_volume: float | None = None) -> bool:
        """Start ``track`` from silence and ramp it up to ``target_volume``."""
        if track is None:
            return False
        self.cancel()
        target = self.config.target_volume if target_volume is None else target_volume
        track.volume = 0.0
        try:
            track.play()
        except PlaybackRejected:
            # Blocked by autoplay policy; the volume still ramps
            logger.debug("Play rejected for %s", track.src)
        step = target / self.config.fade_steps
        self._cue(track, "fade_in", target=target)

        def tick() -> None:
            if track.volume < target - step:
                track.volume = min(target, track.volume + step)
            else:
                track.volume = target
                self.cancel()
                self._cue(track, "fade_done", volume=target)

        self._fade_timer = self.clock.call_every(self.config.fade_interval_ms, tick)
        return True

    def fade_out(
        self,
        track: AudioHandle | None,
        on_done: Callable[[], None] | None = None,
    ) -> bool:
        """Ramp ``track`` down to silence, pause it, then call ``on_done``."""
        if track is None:
            return False
        self.cancel()
        step = track.volume / self.config.fade_steps
        self._cue(track, "fade_out", start=track.volume)

        def tick() -> None:
            if track.volume > step:
                track.volume = max(0.0, track.volume - step)
            else:
                track.volume = 0.0
                track.pause()
                self.cancel()
                self._cue(track, "fade_done", volume=0.0)
                if on_done is not None:
                    on_done()

        self._fade_timer = self.clock.call_every(self.config.fade_interval_ms, tick)
        return True

    # --- Channel-level transitions ---

    def to_journey(self) -> None:
        """Ambient out, then journey in."""
        ambient, journey = self.ambient, self.journey
        if ambient is not None and not ambient.paused:
            self.fade_out(ambient, on_done=lambda: self.fade_in(journey))
        elif journey is not None:
            self.fade_in(journey)
        else:
            logger.debug("No audio channels to crossfade")

    def to_ambient(self) -> None:
        """Journey out, then ambient in."""
        ambient, journey = self.ambient, self.journey
        if journey is not None and not journey.paused:
            self.fade_out(journey, on_done=lambda: self.fade_in(ambient))
        elif ambient is not None:
            self.fade_in(ambient)

    def apply_mute(self, muted: bool, journeying: bool) -> None:
        """Fade the channel that belongs to the current mode down to zero or back up.

        A channel that is not current never keeps playing across a mute toggle:
        a crossfade or mute fade-out cut short leaves it silenced and paused.
        """
        current = self.journey if journeying else self.ambient
        other = self.ambient if journeying else self.journey
        self._stop_outgoing(other)
        if muted:
            self.fade_out(current)
        else:
            self.fade_in(current)

    def _stop_outgoing(self, track: AudioHandle | None) -> None:
        if track is None or track.paused:
            return
        self.cancel()
        track.volume = 0.0
        track.pause()

    def silence(self) -> None:
        """Cancel any fade and pause both channels."""
        self.cancel()
        for track in (self.ambient, self.journey):
            if track is not None and not track.paused:
                track.pause()

    def _cue(self, track: AudioHandle, action: str, **detail: float) -> None:
        if self.cues is None:
            return
        name = "ambient" if track is self.ambient else "journey" if track is self.journey else "track"
        self.cues.record(f"fade:{name}", action, **detail)
