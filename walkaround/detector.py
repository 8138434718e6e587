"""Debounced address change detection for a recording session."""

import threading
import time
from typing import Callable, Optional

from .address import AddressResolver, address_key
from .config import Settings
from .geo import distance_meters
from .logger import Logger
from .models import AddressBreakpoint, Location
from .store import TrackStore


class AddressChangeDetector:
    """Decides when to resolve the current address and record a breakpoint.

    At most one evaluation runs at a time. The lock is held across the
    geocoder call, and a trigger that finds it taken is dropped rather than
    queued: the next timer tick or movement re-evaluates from current state.
    """

    def __init__(self, store: TrackStore, resolver: AddressResolver,
                 settings: Optional[Settings] = None, logger: Optional[Logger] = None,
                 clock: Callable[[], float] = time.time,
                 on_address_update: Optional[Callable[[AddressBreakpoint], None]] = None):
        self.store = store
        self.resolver = resolver
        self.settings = settings or Settings(store)
        self.logger = logger or Logger(echo=False)
        self.clock = clock
        self.on_address_update = on_address_update
        self._lock = threading.Lock()
        self._generation = 0
        self.reset(None)

    def reset(self, section_id: Optional[int]):
        """Clear all per-session state and bind to a new section (None deactivates)"""
        self._generation += 1
        self.section_id = section_id
        self.last_accurate_location: Optional[Location] = None
        self.last_accurate_track_id: Optional[int] = None
        self.last_processed_location: Optional[Location] = None
        self.last_address_key: Optional[str] = None
        self.breakpoints_written = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def distance_from_processed(self, location: Location) -> float:
        if self.last_processed_location is None:
            return float("inf")
        return distance_meters(self.last_processed_location, location)

    def note_accurate_fix(self, location: Location, track_id: Optional[int]) -> bool:
        """Remember the latest accurate fix.

        Returns True when it lies far enough from the last judged location
        that the address should be checked now instead of on the next tick.
        """
        self.last_accurate_location = location
        self.last_accurate_track_id = track_id
        return self.distance_from_processed(location) >= self.settings.movement_override_distance

    def on_location_observed(self, location: Location, is_initial: bool = False,
                             track_id: Optional[int] = None) -> Optional[AddressBreakpoint]:
        """Evaluate the address policy for a location in the calling thread.

        Returns the breakpoint written, or None when nothing was written
        (dropped, skipped, unchanged or failed).
        """
        if not self._lock.acquire(blocking=False):
            self.logger.log("Address check dropped (another in progress)")
            return None
        try:
            return self._evaluate(location, track_id, is_initial, self._generation)
        finally:
            self._lock.release()

    def trigger(self, location: Optional[Location] = None, track_id: Optional[int] = None,
                is_initial: bool = False, prime_locale: bool = False) -> bool:
        """Start an evaluation on a background thread.

        The lock is taken here, in the caller, so triggers are ordered by
        arrival. Without a location the latest accurate fix is used. Returns
        False when the trigger was dropped.
        """
        if location is None:
            location = self.last_accurate_location
            track_id = self.last_accurate_track_id
        if location is None:
            return False
        if not self._lock.acquire(blocking=False):
            self.logger.log("Address check dropped (another in progress)",
                            {"initial": is_initial})
            return False
        generation = self._generation

        def run():
            try:
                if prime_locale:
                    self.resolver.prime_locale_cache(location.lat, location.lon)
                self._evaluate(location, track_id, is_initial, generation)
            except Exception as e:
                self.logger.error("Address check failed", exc=e)
            finally:
                self._lock.release()

        threading.Thread(target=run, daemon=True).start()
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no evaluation is in flight"""
        acquired = self._lock.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._lock.release()
        return acquired

    def _evaluate(self, location: Location, track_id: Optional[int], is_initial: bool,
                  generation: int) -> Optional[AddressBreakpoint]:
        """The address policy. Caller holds the lock."""
        distance = self.distance_from_processed(location)
        if (not is_initial
                and distance < self.settings.stationary_skip_distance
                and self.last_processed_location is not None
                and self.last_address_key is not None):
            return None

        self.logger.log("Address check triggered", {
            "distance": None if distance == float("inf") else round(distance, 1),
            "initial": is_initial,
        })

        address = self.resolver.resolve_localized(location.lat, location.lon)
        if generation != self._generation:
            self.logger.log("Discarding address resolved after session ended")
            return None
        if address is None:
            self.logger.warning("Address fetch failed, will retry")
            return None

        self.last_processed_location = location

        current_key = address_key(address)
        changed = current_key != self.last_address_key
        self.logger.log("Comparing address keys", {
            "current": current_key, "last": self.last_address_key, "changed": changed,
        })
        if not (changed or is_initial):
            return None

        record = AddressBreakpoint.from_address(
            address,
            timestamp=self.clock(),
            section_id=self.section_id,
            track_id=track_id,
            lat=location.lat,
            lon=location.lon,
        )
        try:
            record = self.store.insert_breakpoint(record)
        except Exception as e:
            self.logger.error("Could not save address breakpoint", {"key": current_key}, exc=e)
            return None
        self.last_address_key = current_key
        self.breakpoints_written += 1
        self.logger.log("Address breakpoint saved", {"id": record.id, "key": current_key})

        if self.on_address_update:
            try:
                self.on_address_update(record)
            except Exception as e:
                self.logger.error("Address update callback failed", {"id": record.id}, exc=e)
        return record

    def record_final(self, location: Location, track_id: Optional[int]) -> Optional[AddressBreakpoint]:
        """Resolve and save the closing breakpoint of a session.

        Waits for any in-flight evaluation. A breakpoint is written when the
        address differs from the last one recorded, or when the session has
        none yet; the detector is deactivated afterwards either way.
        """
        with self._lock:
            self._generation += 1
            address = self.resolver.resolve_localized(location.lat, location.lon)
            current_key = address_key(address)
            if address is not None and self.breakpoints_written and current_key == self.last_address_key:
                return None
            if address is None and self.breakpoints_written:
                return None
            record = AddressBreakpoint.from_address(
                address,
                timestamp=location.timestamp if location.timestamp is not None else self.clock(),
                section_id=self.section_id,
                track_id=track_id,
                lat=location.lat,
                lon=location.lon,
            )
            record = self.store.insert_breakpoint(record)
            self.last_address_key = current_key
            self.breakpoints_written += 1
            self.logger.log("Final address breakpoint saved", {"id": record.id, "key": current_key})
            return record
