"""Reverse geocoding via the OpenStreetMap Nominatim API."""

import threading
import time
from dataclasses import dataclass
from typing import Optional

import requests

from .config import CONFIG
from .logger import Logger
from .models import Address


@dataclass(frozen=True)
class NominatimConfig:
    """Configuration for Nominatim reverse API."""

    base_url: str = CONFIG["nominatim_url"]
    user_agent: str = CONFIG["nominatim_user_agent"]
    zoom: int = 18
    timeout_seconds: float = CONFIG["nominatim_timeout"]
    min_interval_seconds: float = CONFIG["nominatim_min_interval"]


# Nominatim address keys, most specific first, for each Address field
LOCALITY_KEYS = ("city", "town", "village", "municipality", "hamlet")
SUB_LOCALITY_KEYS = ("suburb", "city_district", "quarter", "borough", "neighbourhood")
THOROUGHFARE_KEYS = ("road", "pedestrian", "footway", "path", "square")
ADMIN_AREA_KEYS = ("state", "province", "region", "county")


def _first(values: dict, keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        if values.get(key):
            return values[key]
    return None


def parse_address(data: dict) -> Optional[Address]:
    """Convert a Nominatim jsonv2 response into an Address (None if it has no address)"""
    if not data or "error" in data:
        return None
    details = data.get("address") or {}
    if not details and not data.get("display_name"):
        return None
    country_code = details.get("country_code")
    return Address(
        address_line=data.get("display_name"),
        feature_name=data.get("name") or None,
        admin_area=_first(details, ADMIN_AREA_KEYS),
        country_name=details.get("country"),
        country_code=country_code.upper() if country_code else None,
        locality=_first(details, LOCALITY_KEYS),
        sub_locality=_first(details, SUB_LOCALITY_KEYS),
        thoroughfare=_first(details, THOROUGHFARE_KEYS),
        sub_thoroughfare=details.get("house_number"),
        postal_code=details.get("postcode"),
    )


class NominatimGeocoder:
    """Reverse geocoder using OpenStreetMap Nominatim.

    ``resolve`` returns None when the service has no result or the request
    fails; the caller decides when to try again.
    """

    def __init__(self, config: Optional[NominatimConfig] = None,
                 session: Optional[requests.Session] = None,
                 logger: Optional[Logger] = None):
        self.config = config or NominatimConfig()
        self.logger = logger or Logger(echo=False)
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        })
        self._last_request_at = 0.0
        self._throttle_lock = threading.Lock()

    def resolve(self, lat: float, lon: float, locale: str) -> Optional[Address]:
        params = {
            "format": "jsonv2",
            "lat": f"{lat:.8f}",
            "lon": f"{lon:.8f}",
            "zoom": str(self.config.zoom),
            "addressdetails": "1",
            "accept-language": locale,
        }
        self._sleep_if_needed()
        try:
            response = self.session.get(self.config.base_url, params=params,
                                        timeout=self.config.timeout_seconds)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            self.logger.warning("Reverse geocode request failed",
                                {"lat": lat, "lon": lon, "error": str(e)})
            return None
        return parse_address(data)

    def _sleep_if_needed(self):
        with self._throttle_lock:
            wait = self.config.min_interval_seconds - (time.time() - self._last_request_at)
            if wait > 0:
                time.sleep(wait)
            self._last_request_at = time.time()
