"""Regenerates a section's address breakpoints from its stored track."""

from typing import Optional

from .address import AddressResolver, address_key
from .config import Settings
from .logger import Logger
from .models import AddressBreakpoint, TrackPoint
from .store import TrackStore


class SectionReplaySegmenter:
    """Offline re-analysis of a recorded section.

    The whole track is walked in time order with the interval + key-change
    policy of live tracking; the live 5 m / 200 m shortcuts do not apply.
    Addresses are resolved first, then the old breakpoints are swapped for
    the new ones in one transaction, so readers never see an empty section.
    """

    def __init__(self, store: TrackStore, resolver: AddressResolver,
                 settings: Optional[Settings] = None, logger: Optional[Logger] = None):
        self.store = store
        self.resolver = resolver
        self.settings = settings or Settings(store)
        self.logger = logger or Logger(echo=False)

    def _track_for(self, section_id: int) -> Optional[list[TrackPoint]]:
        section = self.store.get_section(section_id)
        if section is None:
            self.logger.warning("Replay skipped: no such section", {"section_id": section_id})
            return None
        if section.track_start_id is None:
            self.logger.warning("Replay skipped: section has no start point",
                                {"section_id": section_id})
            return None

        end_id = section.track_end_id
        if end_id is None:
            # Still recording: replay up to the newest stored point
            last = self.store.get_last_track_point()
            end_id = last.id if last else None
        if end_id is None:
            self.logger.warning("Replay skipped: section has no end point",
                                {"section_id": section_id})
            return None
        return self.store.get_track_points_between(section.track_start_id, end_id)

    def _breakpoint_at(self, section_id: int, point: TrackPoint, address) -> AddressBreakpoint:
        return AddressBreakpoint.from_address(
            address,
            timestamp=point.timestamp,
            section_id=section_id,
            track_id=point.id,
            lat=point.lat,
            lon=point.lon,
        )

    def compute(self, section_id: int, points: list[TrackPoint]) -> list[AddressBreakpoint]:
        """Breakpoints the change policy yields for a point sequence (nothing is written)"""
        if not points:
            return []
        interval = self.settings.address_check_interval

        first = points[0]
        address = self.resolver.resolve_localized(first.lat, first.lon)
        records = [self._breakpoint_at(section_id, first, address)]
        last_key = address_key(address)
        last_processed_time = first.timestamp
        last_saved_track_id = first.id

        for point in points[1:]:
            if point.timestamp - last_processed_time < interval:
                continue
            address = self.resolver.resolve_localized(point.lat, point.lon)
            if address is None:
                # Retry at the next point
                continue
            last_processed_time = point.timestamp
            key = address_key(address)
            if key != last_key:
                records.append(self._breakpoint_at(section_id, point, address))
                last_key = key
                last_saved_track_id = point.id

        last = points[-1]
        if last_saved_track_id != last.id:
            address = self.resolver.resolve_localized(last.lat, last.lon)
            records.append(self._breakpoint_at(section_id, last, address))
        return records

    def rebuild(self, section_id: int) -> Optional[list[AddressBreakpoint]]:
        """Replace the section's breakpoints with freshly derived ones.

        Returns the saved breakpoints, or None when the section cannot be
        replayed (nothing is changed then).
        """
        points = self._track_for(section_id)
        if points is None:
            return None

        self.logger.log("Replay started", {"section_id": section_id, "points": len(points)})
        records = self.compute(section_id, points)

        with self.store.transaction():
            removed = self.store.delete_breakpoints_for_section(section_id)
            saved = [self.store.insert_breakpoint(r) for r in records]

        self.logger.log("Replay finished", {
            "section_id": section_id,
            "removed": removed,
            "saved": len(saved),
        })
        return saved
