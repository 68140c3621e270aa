"""Flight and orbit controllers.

One camera intent at a time: every new transition stops whatever the camera is
doing first, and the latest request always wins. After a journey flight lands,
a slow orbit keeps the scene moving while the viewer reads.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from storymap.cinema.clock import Clock, TimerHandle
from storymap.cinema.easing import cinematic_fly_ease, orbit_ease
from storymap.cinema.engine import CameraHandle, CameraTarget, Easing
from storymap.cinema.signatures import signature_for
from storymap.cinema.timing import StageTimingPlan
from storymap.config import CinemaConfig
from storymap.models import LocationRow

logger = logging.getLogger(__name__)


@dataclass
class CameraState:
    """Camera bookkeeping that outlives a single flight."""
    cumulative_bearing: float = 0.0
    orbiting: bool = False


class OrbitController:
    """Starts the post-landing orbit, at most once per arrival."""

    def __init__(self, cinema: CinemaConfig, state: CameraState) -> None:
        self.cinema = cinema
        self.state = state

    def start(self, camera: CameraHandle | None, landed_bearing: float) -> bool:
        if self.state.orbiting:
            return False
        if camera is None:
            logger.debug("Orbit skipped: no camera")
            return False
        self.state.orbiting = True
        camera.ease_to(
            CameraTarget(bearing=landed_bearing + self.cinema.orbit_degrees),
            self.cinema.orbit_duration_ms,
            orbit_ease,
        )
        return True

    def reset(self) -> None:
        self.state.orbiting = False


class FlightController:
    """Issues camera transitions and hands each journey arrival to the orbit controller."""

    def __init__(
        self,
        clock: Clock,
        cinema: CinemaConfig,
        state: CameraState | None = None,
        camera: CameraHandle | None = None,
    ) -> None:
        self.clock = clock
        self.cinema = cinema
        self.state = state if state is not None else CameraState()
        self.camera = camera
        self.orbit = OrbitController(cinema, self.state)
        self._orbit_timer: TimerHandle | None = None
        self._generation = 0

    def fly_to_stop(
        self,
        locations: Sequence[LocationRow],
        index: int,
        duration_ms: float | None = None,
        reset_bearing: bool = False,
    ) -> StageTimingPlan | None:
        """Fly to a journey stop using its camera signature.

        Returns the stage timing plan for the flight, or None when nothing was
        issued (no stops, index out of range, or no camera yet).
        """
        if not locations:
            logger.debug("Flight skipped: journey has no locations")
            return None
        if not 0 <= index < len(locations):
            logger.debug("Flight skipped: index %d outside %d stops", index, len(locations))
            return None
        camera = self.camera
        if camera is None:
            logger.debug("Flight skipped: camera not initialized")
            return None

        loc = locations[index]
        sig = signature_for(index)
        if reset_bearing:
            self.state.cumulative_bearing = 0.0
        self.state.cumulative_bearing = (self.state.cumulative_bearing + sig.bearing_delta) % 360
        bearing = self.state.cumulative_bearing
        duration = duration_ms if duration_ms is not None else self.cinema.fly_duration_ms

        logger.info(
            "Flying to stop %d (%s) bearing=%.0f duration=%dms",
            index, loc.location_name, bearing, duration,
        )
        self._launch(
            camera,
            CameraTarget(center=loc.lng_lat, zoom=sig.zoom, pitch=sig.pitch, bearing=bearing),
            duration,
            cinematic_fly_ease,
            orbit_bearing=bearing,
        )
        return StageTimingPlan.for_flight(duration, self.cinema)

    def fly_to(
        self,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing = cinematic_fly_ease,
    ) -> bool:
        """A flight with no orbit afterwards (reveal, return, overview selection)."""
        camera = self.camera
        if camera is None:
            logger.debug("Flight skipped: camera not initialized")
            return False
        self._launch(camera, target, duration_ms, easing)
        return True

    def ease_to(
        self,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing,
    ) -> bool:
        camera = self.camera
        if camera is None:
            return False
        self.cancel()
        camera.stop()
        camera.ease_to(target, duration_ms, easing)
        return True

    def cancel(self) -> None:
        """Drop the pending orbit hand-off. Camera motion already issued is left alone."""
        self._generation += 1
        if self._orbit_timer is not None:
            self._orbit_timer.cancel()
            self._orbit_timer = None
        self.orbit.reset()

    def _launch(
        self,
        camera: CameraHandle,
        target: CameraTarget,
        duration_ms: float,
        easing: Easing,
        orbit_bearing: float | None = None,
    ) -> None:
        self.cancel()
        camera.stop()

        if orbit_bearing is None:
            camera.fly_to(target, duration_ms, easing)
            return

        generation = self._generation
        if self.cinema.orbit_trigger == "settle":
            camera.fly_to(
                target, duration_ms, easing,
                curve=self.cinema.flight_curve,
                on_complete=lambda: self._land(generation, orbit_bearing),
            )
        else:
            camera.fly_to(target, duration_ms, easing, curve=self.cinema.flight_curve)
            plan = StageTimingPlan.for_flight(duration_ms, self.cinema)
            self._orbit_timer = self.clock.call_later(
                plan.orbit_start_ms, lambda: self._land(generation, orbit_bearing),
            )

    def _land(self, generation: int, bearing: float) -> None:
        if generation != self._generation:
            return
        self._orbit_timer = None
        self.orbit.start(self.camera, bearing)
