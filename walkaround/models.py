"""Data classes for Walkaround."""

import re
from dataclasses import dataclass, asdict, field
from typing import Optional


@dataclass
class Location:
    """A location fix as delivered by a location source"""
    lat: float
    lon: float
    accuracy: Optional[float] = None
    timestamp: Optional[float] = None
    altitude: float = 0.0
    speed: float = 0.0
    vertical_accuracy: Optional[float] = None
    heading: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Location":
        return cls(**d)

    def is_accurate(self, limit: float) -> bool:
        """Fixes without an accuracy estimate are treated as inaccurate"""
        return self.accuracy is not None and self.accuracy <= limit


@dataclass(frozen=True)
class TrackPoint:
    """A persisted location fix. Ids are assigned by the store and increase monotonically."""
    id: int
    timestamp: float
    lat: float
    lon: float
    altitude: float
    speed: float
    accuracy: float
    vertical_accuracy: Optional[float] = None
    heading: Optional[float] = None


@dataclass
class Section:
    """One continuous walking session"""
    id: int
    track_start_id: Optional[int] = None
    track_end_id: Optional[int] = None
    distance_meters: Optional[float] = None
    duration_seconds: Optional[float] = None
    average_speed_kmh: Optional[float] = None
    created_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.track_end_id is None


@dataclass
class Address:
    """A reverse-geocoded address"""
    address_line: Optional[str] = None
    feature_name: Optional[str] = None
    admin_area: Optional[str] = None
    country_name: Optional[str] = None
    country_code: Optional[str] = None
    locality: Optional[str] = None
    sub_locality: Optional[str] = None
    thoroughfare: Optional[str] = None
    sub_thoroughfare: Optional[str] = None
    postal_code: Optional[str] = None


# Feature names made only of digits, punctuation and spaces are house numbers, not names
_NAME_HAS_TEXT = re.compile(r"[^\d\s\W_]")
_TRAILING_BLOCK_NUMBER = re.compile(r"(\d+)(?:[-‐−－]\d+)+$")


def meaningful_name(name: Optional[str]) -> Optional[str]:
    if name and _NAME_HAS_TEXT.search(name):
        return name
    return None


def _strip_suffix(text: str, suffix: str) -> str:
    return text[:-len(suffix)].strip().rstrip(",").strip()


@dataclass
class AddressBreakpoint:
    """The resolved address as of a moment/point of a section"""
    id: Optional[int] = None
    timestamp: float = 0.0
    section_id: Optional[int] = None
    track_id: Optional[int] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    name: Optional[str] = None
    address_line: Optional[str] = None
    admin_area: Optional[str] = None
    country_name: Optional[str] = None
    locality: Optional[str] = None
    sub_locality: Optional[str] = None
    thoroughfare: Optional[str] = None
    sub_thoroughfare: Optional[str] = None
    postal_code: Optional[str] = None

    @classmethod
    def from_address(cls, address: Optional[Address], timestamp: float,
                     section_id: Optional[int] = None, track_id: Optional[int] = None,
                     lat: Optional[float] = None, lon: Optional[float] = None) -> "AddressBreakpoint":
        """Build a breakpoint from a resolved address (which may be None)"""
        record = cls(timestamp=timestamp, section_id=section_id, track_id=track_id,
                     lat=lat, lon=lon)
        if address is None:
            return record
        record.name = meaningful_name(address.feature_name)
        record.address_line = address.address_line
        record.admin_area = address.admin_area
        record.country_name = address.country_name
        record.locality = address.locality
        record.sub_locality = address.sub_locality
        record.thoroughfare = address.thoroughfare
        record.sub_thoroughfare = address.sub_thoroughfare
        record.postal_code = address.postal_code
        return record

    def to_address(self) -> Address:
        return Address(
            address_line=self.address_line,
            feature_name=self.name,
            admin_area=self.admin_area,
            country_name=self.country_name,
            locality=self.locality,
            sub_locality=self.sub_locality,
            thoroughfare=self.thoroughfare,
            sub_thoroughfare=self.sub_thoroughfare,
            postal_code=self.postal_code,
        )

    def city_display(self) -> Optional[str]:
        """Locality down to street level, without house numbers.

        Used as the comparison label when trimming repeated addresses.
        """
        parts = [p for p in (self.locality, self.sub_locality, self.thoroughfare) if p]
        if not parts:
            return None
        display = ", ".join(parts)
        return _TRAILING_BLOCK_NUMBER.sub(r"\1", display)

    def address_display(self) -> Optional[str]:
        """Address line without the country and without a trailing feature name"""
        if self.address_line is None:
            return None
        display = self.address_line
        if self.country_name and display.endswith(self.country_name):
            display = _strip_suffix(display, self.country_name)
        elif self.country_name and display.startswith(self.country_name):
            display = display[len(self.country_name):].strip().lstrip(",").strip()
        if self.name and display.endswith(self.name):
            display = _strip_suffix(display, self.name)
        return display

    def feature_name_display(self) -> Optional[str]:
        base = self.address_display()
        if self.name and base is not None and not base.endswith(self.name):
            return self.name
        return None

    def city_display_with_feature(self) -> Optional[str]:
        city = self.city_display()
        if city is None:
            return None
        feature = self.feature_name_display()
        return f"{city}. {feature}" if feature else city


@dataclass
class StepSegment:
    """Total steps recorded for a section"""
    section_id: int
    steps: int
    start_time: float
    end_time: float
    id: Optional[int] = None


@dataclass
class SectionSummary:
    section_id: int
    start_time: Optional[float]
    steps: int
    track_point_count: int
    distance_meters: Optional[float] = None


@dataclass
class SectionGroup:
    """A section with its (trimmed) breakpoints for listing"""
    section_id: int
    created_at: Optional[float]
    distance_meters: Optional[float]
    steps: int
    breakpoints: list[AddressBreakpoint] = field(default_factory=list)
