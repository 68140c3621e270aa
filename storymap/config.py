"""Configuration loading for storymap."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


class CinemaConfig(BaseModel):
    # Journey flights
    fly_duration_ms: int = 6200
    first_arrival_bonus_ms: int = 800
    flight_curve: float = 1.55
    # Post-landing orbit
    orbit_degrees: float = 22.0
    orbit_duration_ms: int = 9000
    orbit_lead_ms: int = 100  # orbit begins this long before the flight ends
    orbit_trigger: Literal["timer", "settle"] = "timer"
    # Stage cues derived from each flight
    overlay_lead_ms: int = 2000
    overlay_hold_ms: int = 8000
    arrival_flash_lead_ms: int = 300
    arrival_flash_hold_ms: int = 850
    explore_hint_lag_ms: int = 100
    # Intro and establishing reveal
    intro_button_delay_ms: int = 3500
    intro_exit_ms: int = 800
    reveal_unblock_ms: int = 10000
    reveal_duration_ms: int = 8000
    route_tracking_ms: int = 11000
    overview_zoom: float = 4.5
    overview_pitch: float = 55.0
    overview_bearing: float = -15.0
    globe_zoom: float = 1.5
    return_settle_ms: int = 300
    # Chrome appearance after intro / after a journey ends
    header_delay_first_ms: int = 7500
    timeline_delay_first_ms: int = 8000
    header_delay_ms: int = 3500
    timeline_delay_ms: int = 4000
    # Overview location selection
    select_zoom: float = 14.0
    select_pitch: float = 45.0
    select_duration_ms: int = 2000
    panel_open_delay_ms: int = 2200
    # Reset orientation button
    reset_duration_ms: int = 1000
    journey_rest_pitch: float = 45.0
    reset_tolerance_deg: float = 5.0

    @property
    def first_fly_duration_ms(self) -> int:
        return self.fly_duration_ms + self.first_arrival_bonus_ms


class AudioConfig(BaseModel):
    fade_steps: int = 40
    fade_duration_ms: int = 2000
    target_volume: float = 1.0

    @property
    def fade_interval_ms(self) -> float:
        return self.fade_duration_ms / self.fade_steps


class Config(BaseModel):
    db_path: str = "data/storymap.db"
    preview_dir: str = "data/previews"
    max_sessions: int = 32  # live MCP sessions kept before the least recently used is closed
    cinema: CinemaConfig = Field(default_factory=CinemaConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)

    @property
    def resolved_db_path(self) -> Path:
        """Resolve db_path relative to project root."""
        p = Path(self.db_path)
        if p.is_absolute():
            return p
        return _project_root() / p

    @property
    def resolved_preview_dir(self) -> Path:
        p = Path(self.preview_dir).expanduser()
        if p.is_absolute():
            return p
        return _project_root() / p


def _project_root() -> Path:
    """Return the storymap project root directory."""
    return Path(__file__).parent.parent


def load_config(config_path: Path | None = None) -> Config:
    """Load config from YAML file. Falls back to defaults if file missing."""
    if config_path is None:
        config_path = _project_root() / "config.yaml"

    if config_path.exists():
        raw: dict[str, Any] = yaml.safe_load(config_path.read_text()) or {}
        return Config(**raw)

    return Config()
