"""Recording session state machine."""

import queue
import threading
import time
from typing import Callable, Optional

from .address import AddressResolver
from .config import Settings
from .detector import AddressChangeDetector
from .geo import median_smooth, total_path_length
from .logger import Logger
from .models import AddressBreakpoint, Location, StepSegment, TrackPoint
from .sensors import LocationSource, StepSource
from .store import TrackStore

IDLE = "idle"
RECORDING = "recording"

_STOP = object()


class SessionTracker:
    """Owns the active recording session.

    Location and step streams deliver on their own threads. Track point
    persistence runs on a single worker thread fed by a queue; address
    checks run through the AddressChangeDetector, which allows one at a time.
    A periodic timer re-checks the address at the latest accurate fix.
    """

    def __init__(self, store: TrackStore, resolver: AddressResolver,
                 location_source: LocationSource, step_source: Optional[StepSource] = None,
                 settings: Optional[Settings] = None, logger: Optional[Logger] = None,
                 clock: Callable[[], float] = time.time,
                 on_address_update: Optional[Callable[[AddressBreakpoint], None]] = None):
        self.store = store
        self.resolver = resolver
        self.location_source = location_source
        self.step_source = step_source
        self.settings = settings or Settings(store)
        self.logger = logger or Logger(echo=False)
        self.clock = clock
        self.detector = AddressChangeDetector(
            store, resolver, settings=self.settings, logger=self.logger,
            clock=clock, on_address_update=on_address_update,
        )

        self.state = IDLE
        self.stopping = False
        self._state_lock = threading.Lock()

        self.section_id: Optional[int] = None
        self.start_time = 0.0
        self.current_steps = 0
        self.track_point_count = 0
        self.has_start_address = False
        self.first_track_id: Optional[int] = None
        self.last_track_id: Optional[int] = None

        self._queue: "queue.Queue" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._timer_stop = threading.Event()
        self._timer: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self.state == RECORDING

    @property
    def capabilities(self) -> dict:
        """Which inputs the host can record from"""
        return {
            "location": bool(self.location_source and self.location_source.available),
            "steps": bool(self.step_source and self.step_source.available),
        }

    def get_state(self) -> dict:
        """Get current state as dict for logging"""
        state = {
            "state": self.state,
            "section_id": self.section_id,
            "steps": self.current_steps,
            "track_points": self.track_point_count,
            "last_address_key": self.detector.last_address_key,
        }
        location = self.detector.last_accurate_location
        if location:
            state["location"] = {"lat": location.lat, "lon": location.lon,
                                 "accuracy": location.accuracy}
        return state

    def start(self) -> bool:
        """Start recording. Returns False (and does nothing) if already recording."""
        with self._state_lock:
            if self.state == RECORDING or self.stopping:
                return False
            self.state = RECORDING

        self.current_steps = 0
        self.track_point_count = 0
        self.has_start_address = False
        self.first_track_id = None
        self.last_track_id = None
        self.start_time = self.clock()

        section = self.store.insert_section(created_at=self.start_time)
        self.section_id = section.id
        self.detector.reset(section.id)

        self._queue = queue.Queue()
        self._worker = threading.Thread(target=self._run_worker, daemon=True)
        self._worker.start()

        if self.step_source is not None:
            if self.step_source.available:
                self.step_source.subscribe(self._on_steps)
            else:
                self.logger.warning("Step sensor unavailable, recording location only")
        if not self.location_source.available:
            self.logger.warning("Location unavailable, recording steps only")
        self.location_source.subscribe(self._on_location)

        self._timer_stop.clear()
        self._timer = threading.Thread(target=self._run_timer, daemon=True)
        self._timer.start()

        self.logger.log("Session started", {"section_id": self.section_id,
                                            "capabilities": self.capabilities})
        return True

    # Stream handlers (called on the stream's delivery thread)

    def _on_steps(self, steps: int):
        if self.state == RECORDING:
            self.current_steps = steps

    def _on_location(self, location: Location):
        if self.state != RECORDING:
            return
        if location.timestamp is None:
            location.timestamp = self.clock()
        self.track_point_count += 1
        self._queue.put(location)

    # Worker thread

    def _run_worker(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._process_location(item)
            except Exception as e:
                self.logger.error("Failed to process location", exc=e)
            finally:
                self._queue.task_done()

    def _process_location(self, location: Location):
        limit = self.settings.accuracy_limit
        if not location.is_accurate(limit):
            self.logger.log("Location below accuracy limit", {"accuracy": location.accuracy,
                                                              "limit": limit})
            return

        point = self.store.insert_track_point(
            timestamp=location.timestamp,
            lat=location.lat,
            lon=location.lon,
            altitude=location.altitude,
            speed=location.speed,
            accuracy=location.accuracy,
            vertical_accuracy=location.vertical_accuracy,
            heading=location.heading,
        )
        self.last_track_id = point.id
        if self.first_track_id is None:
            self.first_track_id = point.id
            self.store.set_section_start_if_unset(self.section_id, point.id)

        moved_far = self.detector.note_accurate_fix(location, point.id)
        if not self.has_start_address:
            self.has_start_address = True
            self.detector.trigger(location, point.id, is_initial=True, prime_locale=True)
        elif moved_far:
            self.detector.trigger(location, point.id)

    # Timer thread

    def _run_timer(self):
        while not self._timer_stop.wait(self.settings.address_check_interval):
            if self.state != RECORDING:
                return
            if self.has_start_address:
                self.detector.trigger()

    def flush(self, timeout: Optional[float] = None):
        """Wait until queued fixes are persisted and no address check is running"""
        self._queue.join()
        self.detector.wait_idle(timeout)

    def stop(self) -> bool:
        """Stop recording and finalise the section. No-op when idle.

        Persistence failures are logged; the tracker always returns to idle.
        """
        with self._state_lock:
            if self.state != RECORDING or self.stopping:
                return False
            self.stopping = True

        try:
            self.location_source.unsubscribe()
            if self.step_source is not None:
                self.step_source.unsubscribe()
            self._timer_stop.set()
            if self._timer and self._timer is not threading.current_thread():
                self._timer.join(timeout=5)

            self._queue.put(_STOP)
            if self._worker and self._worker is not threading.current_thread():
                self._worker.join()
            self.state = IDLE

            end_time = self.clock()
            self._finalize_section(end_time)
        except Exception as e:
            self.logger.error("Error while stopping session", {"section_id": self.section_id}, exc=e)
        finally:
            self.detector.reset(None)
            self.state = IDLE
            self.section_id = None
            self.stopping = False
        return True

    def _finalize_section(self, end_time: float):
        section_id = self.section_id
        steps = self.current_steps
        duration = max(0.0, end_time - self.start_time)

        if self.first_track_id is None:
            # Nothing to close a section on; steps go with it
            with self.store.transaction():
                self.store.delete_section(section_id)
            self.logger.warning("Discarded section without accurate fixes", {
                "section_id": section_id, "steps": steps,
                "track_points": self.track_point_count,
            })
            return

        location = self.detector.last_accurate_location
        if location is not None:
            try:
                self.detector.record_final(location, self.detector.last_accurate_track_id)
            except Exception as e:
                self.logger.error("Could not save final address", {"section_id": section_id}, exc=e)

        try:
            self.store.insert_step_segment(StepSegment(
                section_id=section_id,
                steps=steps,
                start_time=self.start_time,
                end_time=end_time,
            ))
        except Exception as e:
            self.logger.error("Could not save step segment", {"section_id": section_id}, exc=e)

        distance = 0.0
        try:
            distance = self.section_distance(self.first_track_id, self.last_track_id)
        except Exception as e:
            self.logger.error("Could not measure section distance", {"section_id": section_id}, exc=e)
        speed = distance / duration * 3.6 if duration > 0 else None
        self.store.close_section(section_id, self.last_track_id, duration,
                                 distance_meters=distance, average_speed_kmh=speed)

        self.logger.log("Session summary", {
            "section_id": section_id,
            "steps": steps,
            "track_points": self.track_point_count,
            "distance": round(distance, 1),
            "duration": round(duration, 1),
        })

    def section_distance(self, start_id: Optional[int], end_id: Optional[int]) -> float:
        """Length of the smoothed accurate track between two track ids"""
        if start_id is None or end_id is None:
            return 0.0
        points: list[TrackPoint] = self.store.get_accurate_track_points_between(
            start_id, end_id, self.settings.accuracy_limit)
        return total_path_length(median_smooth(points, self.settings.median_window_size))
