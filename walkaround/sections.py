"""Recorded section queries and maintenance."""

import time
from datetime import datetime
from typing import Optional, Union

from .address import AddressResolver
from .config import Settings
from .dedup import filter_repeated
from .geo import median_smooth, total_path_length
from .logger import Logger
from .models import Address, AddressBreakpoint, Location, Section, SectionGroup, TrackPoint
from .store import TrackStore


class SectionProcessor:
    """Everything done with a section after (or while) it is recorded"""

    def __init__(self, store: TrackStore, resolver: AddressResolver,
                 settings: Optional[Settings] = None, logger: Optional[Logger] = None):
        self.store = store
        self.resolver = resolver
        self.settings = settings or Settings(store)
        self.logger = logger or Logger(echo=False)

    def _section(self, section: Union[Section, int]) -> Optional[Section]:
        if isinstance(section, Section):
            return section
        return self.store.get_section(section)

    def accurate_points(self, section: Section) -> list[TrackPoint]:
        if section.track_start_id is None or section.track_end_id is None:
            return []
        return self.store.get_accurate_track_points_between(
            section.track_start_id, section.track_end_id, self.settings.accuracy_limit)

    def _save_breakpoint_at(self, section_id: int, point: TrackPoint) -> AddressBreakpoint:
        address = self.resolver.resolve_localized(point.lat, point.lon)
        return self.store.insert_breakpoint(AddressBreakpoint.from_address(
            address,
            timestamp=point.timestamp,
            section_id=section_id,
            track_id=point.id,
            lat=point.lat,
            lon=point.lon,
        ))

    def ensure_endpoint_breakpoints(self, section: Section, points: list[TrackPoint]):
        """Resolve and save breakpoints at the first and last accurate points if missing"""
        if not points:
            return
        first = points[0]
        if self.store.get_breakpoint_by_section_and_track(section.id, first.id) is None:
            self.logger.log("Fetching start address", {"section_id": section.id})
            self._save_breakpoint_at(section.id, first)
        if len(points) > 1:
            last = points[-1]
            if self.store.get_breakpoint_by_section_and_track(section.id, last.id) is None:
                self.logger.log("Fetching end address", {"section_id": section.id})
                self._save_breakpoint_at(section.id, last)

    def prepare_track(self, section: Union[Section, int]) -> list[TrackPoint]:
        """Smoothed accurate track of a section, ready for display.

        Also fills in missing start/end breakpoints and stores the distance
        when the section has none yet.
        """
        section = self._section(section)
        if section is None:
            return []
        points = self.accurate_points(section)
        if not points:
            return []

        self.ensure_endpoint_breakpoints(section, points)

        track = median_smooth(points, self.settings.median_window_size)
        if not section.distance_meters and len(track) > 1:
            distance = total_path_length(track)
            self.logger.log("Updating section distance", {"section_id": section.id,
                                                          "distance": round(distance, 1)})
            self.store.update_section_distance(section.id, distance)
        return track

    def section_summaries(self):
        return self.store.get_section_summaries()

    def section_groups(self) -> list[SectionGroup]:
        """Sections, newest first, each with its trimmed breakpoints (oldest first)"""
        groups = []
        for section in self.store.get_sections():
            segments = self.store.get_step_segments_for_section(section.id)
            breakpoints = sorted(self.store.get_breakpoints_for_section(section.id),
                                 key=lambda b: b.timestamp)
            groups.append(SectionGroup(
                section_id=section.id,
                created_at=section.created_at,
                distance_meters=section.distance_meters,
                steps=sum(s.steps for s in segments),
                breakpoints=filter_repeated(breakpoints),
            ))
        return groups

    def today_total_steps(self, now: Optional[float] = None) -> int:
        """Steps of all sections started since local midnight"""
        now = time.time() if now is None else now
        midnight = datetime.fromtimestamp(now).replace(hour=0, minute=0, second=0, microsecond=0)
        return self.store.get_total_steps_since(midnight.timestamp())

    def delete_section(self, section_id: int) -> bool:
        """Delete a section with its track points, breakpoints and step segments"""
        section = self.store.get_section(section_id)
        if section is None:
            self.logger.warning("Delete skipped: no such section", {"section_id": section_id})
            return False
        with self.store.transaction():
            if section.track_start_id is not None and section.track_end_id is not None:
                self.store.delete_track_points_between(section.track_start_id, section.track_end_id)
            self.store.delete_section(section_id)
        self.logger.log("Section deleted", {"section_id": section_id})
        return True

    def current_address(self, recording: bool = False,
                        location: Optional[Location] = None) -> Optional[Address]:
        """Address of where the user is now.

        While recording, the last accurate stored point is used. Otherwise the
        given fix is used if it is accurate enough, after refreshing the
        cached locale from it.
        """
        limit = self.settings.accuracy_limit
        if recording:
            point = self.store.get_last_accurate_track_point(limit)
            if point is None:
                self.logger.warning("No accurate location recorded yet")
                return None
            return self.resolver.resolve_localized(point.lat, point.lon)

        if location is None:
            self.logger.warning("Could not get current location")
            return None
        if not location.is_accurate(limit):
            self.logger.warning("Location not accurate enough", {"accuracy": location.accuracy,
                                                                 "limit": limit})
            return None
        self.resolver.prime_locale_cache(location.lat, location.lon)
        return self.resolver.resolve_localized(location.lat, location.lon)
