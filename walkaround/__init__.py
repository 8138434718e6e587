"""Walkaround - Walk recording with address change tracking."""

from .config import CONFIG, Settings
from .models import (
    Location,
    TrackPoint,
    Section,
    Address,
    AddressBreakpoint,
    StepSegment,
    SectionSummary,
    SectionGroup,
)
from .logger import Logger
from .geo import haversine_distance, distance_meters, total_path_length, median_smooth
from .store import TrackStore
from .geocode import NominatimConfig, NominatimGeocoder
from .address import address_key, locale_for_country, LocaleCache, AddressResolver
from .sensors import (
    LocationSource,
    PushLocationSource,
    TermuxLocationSource,
    LocationRecorder,
    PlaybackLocationSource,
    StepCounter,
    StepSource,
    PushStepSource,
    TermuxStepSource,
)
from .detector import AddressChangeDetector
from .tracker import SessionTracker
from .replay import SectionReplaySegmenter
from .dedup import visible_mask, filter_repeated
from .sections import SectionProcessor
from .section_map import create_section_map
from .__main__ import main

__all__ = [
    "CONFIG",
    "Settings",
    "Location",
    "TrackPoint",
    "Section",
    "Address",
    "AddressBreakpoint",
    "StepSegment",
    "SectionSummary",
    "SectionGroup",
    "Logger",
    "haversine_distance",
    "distance_meters",
    "total_path_length",
    "median_smooth",
    "TrackStore",
    "NominatimConfig",
    "NominatimGeocoder",
    "address_key",
    "locale_for_country",
    "LocaleCache",
    "AddressResolver",
    "LocationSource",
    "PushLocationSource",
    "TermuxLocationSource",
    "LocationRecorder",
    "PlaybackLocationSource",
    "StepCounter",
    "StepSource",
    "PushStepSource",
    "TermuxStepSource",
    "AddressChangeDetector",
    "SessionTracker",
    "SectionReplaySegmenter",
    "visible_mask",
    "filter_repeated",
    "SectionProcessor",
    "create_section_map",
    "main",
]
