"""Shared fixtures: in-memory store, fake geocoder and a controllable clock."""

import threading

import pytest

from walkaround.address import AddressResolver
from walkaround.config import Settings
from walkaround.models import Address
from walkaround.store import TrackStore

# Roughly 10 m of latitude
LAT_STEP_10M = 0.00009


def make_address(street, locality="Springfield", sub_locality=None, house=None,
                 country_code=None, country="Freedonia"):
    return Address(
        address_line=f"{house or ''} {street}, {locality}, {country}".strip(),
        admin_area="State",
        country_name=country,
        country_code=country_code,
        locality=locality,
        sub_locality=sub_locality,
        thoroughfare=street,
        sub_thoroughfare=house,
        postal_code="12345",
    )


class FakeGeocoder:
    """Reverse geocoder answering from a function of (lat, lon, locale)"""

    def __init__(self, answer=None):
        self.answer = answer or (lambda lat, lon, locale: make_address("Main St"))
        self.calls = []
        self._lock = threading.Lock()

    def resolve(self, lat, lon, locale):
        with self._lock:
            self.calls.append((lat, lon, locale))
        return self.answer(lat, lon, locale)


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def store():
    store = TrackStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def settings(store):
    return Settings(store)


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def resolver(geocoder, settings):
    return AddressResolver(geocoder, settings=settings)


@pytest.fixture
def clock():
    return FakeClock()
