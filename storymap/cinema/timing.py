"""Every cue of a journey stop, derived from its flight duration."""

from dataclasses import dataclass

from storymap.config import CinemaConfig


@dataclass(frozen=True)
class StageTimingPlan:
    """Offsets (ms from flight start) for the UI cues that accompany one flight."""
    flight_ms: float
    overlay_show_ms: float
    overlay_hide_ms: float
    flash_show_ms: float
    flash_hide_ms: float
    explore_hint_ms: float
    orbit_start_ms: float

    @classmethod
    def for_flight(cls, flight_ms: float, cinema: CinemaConfig) -> "StageTimingPlan":
        overlay_show = max(0.0, flight_ms - cinema.overlay_lead_ms)
        flash_show = max(0.0, flight_ms - cinema.arrival_flash_lead_ms)
        return cls(
            flight_ms=flight_ms,
            overlay_show_ms=overlay_show,
            overlay_hide_ms=overlay_show + cinema.overlay_hold_ms,
            flash_show_ms=flash_show,
            flash_hide_ms=flash_show + cinema.arrival_flash_hold_ms,
            explore_hint_ms=flight_ms + cinema.explore_hint_lag_ms,
            orbit_start_ms=max(0.0, flight_ms - cinema.orbit_lead_ms),
        )
