"""Address fingerprints and localized address resolution."""

import threading
from typing import Optional, Protocol

from .config import Settings
from .logger import Logger
from .models import Address

# Primary language for countries whose local names differ from the default locale
COUNTRY_LANGUAGES = {
    "JP": "ja", "KR": "ko", "CN": "zh", "TW": "zh", "HK": "zh",
    "DE": "de", "AT": "de", "CH": "de", "FR": "fr", "BE": "fr",
    "ES": "es", "MX": "es", "AR": "es", "IT": "it", "PT": "pt", "BR": "pt",
    "NL": "nl", "SE": "sv", "NO": "nb", "DK": "da", "FI": "fi",
    "PL": "pl", "CZ": "cs", "RU": "ru", "UA": "uk", "GR": "el", "TR": "tr",
    "TH": "th", "VN": "vi", "ID": "id", "IL": "he",
    "GB": "en", "US": "en", "AU": "en", "NZ": "en", "IE": "en", "CA": "en",
}


def address_key(address: Optional[Address]) -> str:
    """Locality fingerprint of an address.

    Locality, sub-locality and thoroughfare (or sub-thoroughfare when there is
    no thoroughfare) concatenated. Addresses differing only below street level
    share a key.
    """
    if address is None:
        return ""
    street = address.thoroughfare or address.sub_thoroughfare or ""
    return f"{address.locality or ''}{address.sub_locality or ''}{street}"


def locale_for_country(country_code: str) -> str:
    code = country_code.upper()
    language = COUNTRY_LANGUAGES.get(code)
    return f"{language}-{code}" if language else f"und-{code}"


class Geocoder(Protocol):
    def resolve(self, lat: float, lon: float, locale: str) -> Optional[Address]: ...


class LocaleCache:
    """The display locale learned from the user's country, persisted in settings"""

    KEY = "cached_locale"

    def __init__(self, settings: Settings):
        self.settings = settings
        self._locale: Optional[str] = None
        self._loaded = False
        self._lock = threading.Lock()

    def load(self) -> Optional[str]:
        with self._lock:
            if not self._loaded:
                self._locale = self.settings.get(self.KEY)
                self._loaded = True
            return self._locale

    def store(self, locale: str):
        with self._lock:
            self._locale = locale
            self._loaded = True
        self.settings.set(self.KEY, locale)

    def clear(self):
        with self._lock:
            self._locale = None
            self._loaded = True
        self.settings.delete(self.KEY)


class _Flight:
    def __init__(self):
        self.done = threading.Event()
        self.result: Optional[Address] = None


class AddressResolver:
    """Turns coordinates into a best-effort localized address.

    Lookups for the same rounded coordinate and locale that overlap in time
    share one geocoder call. Any failure of the geocoder yields None.
    """

    def __init__(self, geocoder: Geocoder, settings: Optional[Settings] = None,
                 locale_cache: Optional[LocaleCache] = None,
                 logger: Optional[Logger] = None):
        self.geocoder = geocoder
        self.settings = settings or Settings()
        self.locale_cache = locale_cache or LocaleCache(self.settings)
        self.logger = logger or Logger(echo=False)
        self._flights: dict[tuple, _Flight] = {}
        self._flights_lock = threading.Lock()

    @property
    def default_locale(self) -> str:
        return self.settings.get("default_locale")

    def _lookup(self, lat: float, lon: float, locale: str) -> Optional[Address]:
        precision = int(self.settings.get("geocode_precision"))
        key = (round(lat, precision), round(lon, precision), locale)

        with self._flights_lock:
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[key] = flight

        if not leader:
            flight.done.wait()
            return flight.result

        try:
            flight.result = self.geocoder.resolve(lat, lon, locale)
        except Exception as e:
            self.logger.error("Geocoder error", {"lat": lat, "lon": lon, "locale": locale}, exc=e)
            flight.result = None
        finally:
            with self._flights_lock:
                self._flights.pop(key, None)
            flight.done.set()
        return flight.result

    def prime_locale_cache(self, lat: float, lon: float) -> Optional[str]:
        """Learn the display locale from the country at (lat, lon) and cache it"""
        address = self._lookup(lat, lon, self.default_locale)
        if address is None or not address.country_code:
            self.logger.warning("Could not determine country for locale", {"lat": lat, "lon": lon})
            return None
        locale = locale_for_country(address.country_code)
        self.locale_cache.store(locale)
        self.logger.log("Locale updated and cached", {"locale": locale})
        return locale

    def resolve_localized(self, lat: float, lon: float) -> Optional[Address]:
        """Resolve using the cached locale, learning it first if there is none"""
        locale = self.locale_cache.load()
        if locale is None:
            default = self.default_locale
            address = self._lookup(lat, lon, default)
            if address is None:
                return None
            if not address.country_code:
                return address
            locale = locale_for_country(address.country_code)
            self.locale_cache.store(locale)
            self.logger.log("Locale learned", {"locale": locale})
            if locale == default:
                return address
        return self._lookup(lat, lon, locale)
