"""Tests for address display helpers and Nominatim parsing."""

import pytest
import requests

from walkaround.geocode import NominatimConfig, NominatimGeocoder, parse_address
from walkaround.models import Address, AddressBreakpoint, Location


class TestLocation:
    def test_accuracy_gate(self):
        assert Location(0, 0, accuracy=20.0).is_accurate(20.0)
        assert not Location(0, 0, accuracy=20.1).is_accurate(20.0)
        assert not Location(0, 0).is_accurate(20.0)

    def test_dict_round_trip(self):
        fix = Location(35.0, 139.0, accuracy=3.0, timestamp=5.0, heading=90.0)
        assert Location.from_dict(fix.to_dict()) == fix


class TestBreakpointDisplay:
    def _record(self, **fields):
        base = dict(locality="Chiyoda", sub_locality="Marunouchi", thoroughfare=None,
                    address_line="1-9-1 Marunouchi, Chiyoda, Tokyo, Japan",
                    country_name="Japan")
        base.update(fields)
        return AddressBreakpoint.from_address(Address(**base), timestamp=0.0)

    def test_city_display(self):
        assert self._record().city_display() == "Chiyoda, Marunouchi"

    def test_city_display_collapses_block_numbers(self):
        record = self._record(thoroughfare="1-9")
        assert record.city_display() == "Chiyoda, Marunouchi, 1"

    def test_city_display_none_without_parts(self):
        assert AddressBreakpoint(timestamp=0.0).city_display() is None

    def test_address_display_drops_country(self):
        assert self._record().address_display() == "1-9-1 Marunouchi, Chiyoda, Tokyo"

    def test_numeric_feature_names_discarded(self):
        assert self._record(feature_name="1-9-1").name is None
        assert self._record(feature_name="Tokyo Station").name == "Tokyo Station"

    def test_city_with_feature(self):
        record = self._record(feature_name="Tokyo Station")
        assert record.feature_name_display() == "Tokyo Station"
        assert record.city_display_with_feature() == "Chiyoda, Marunouchi. Tokyo Station"

    def test_from_missing_address(self):
        record = AddressBreakpoint.from_address(None, timestamp=3.0, section_id=1, lat=1.0, lon=2.0)
        assert record.locality is None
        assert (record.section_id, record.lat, record.lon) == (1, 1.0, 2.0)


NOMINATIM_RESPONSE = {
    "display_name": "12, Baker Street, Marylebone, London, Greater London, England, United Kingdom",
    "name": "",
    "address": {
        "house_number": "12",
        "road": "Baker Street",
        "suburb": "Marylebone",
        "city": "London",
        "state": "England",
        "postcode": "NW1 6XE",
        "country": "United Kingdom",
        "country_code": "gb",
    },
}


class FakeResponse:
    def __init__(self, data, status=200):
        self.data = data
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.data


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.error:
            raise self.error
        return self.response


class TestNominatim:
    def test_parse_address(self):
        address = parse_address(NOMINATIM_RESPONSE)
        assert address.locality == "London"
        assert address.sub_locality == "Marylebone"
        assert address.thoroughfare == "Baker Street"
        assert address.sub_thoroughfare == "12"
        assert address.country_code == "GB"
        assert address.feature_name is None

    def test_parse_error_response(self):
        assert parse_address({"error": "Unable to geocode"}) is None
        assert parse_address({}) is None

    def test_resolve_sends_locale(self):
        session = FakeSession(FakeResponse(NOMINATIM_RESPONSE))
        geocoder = NominatimGeocoder(NominatimConfig(min_interval_seconds=0), session=session)

        address = geocoder.resolve(51.5237, -0.1585, "en-GB")

        assert address.postal_code == "NW1 6XE"
        (url, params, timeout) = session.requests[0]
        assert params["accept-language"] == "en-GB"
        assert params["format"] == "jsonv2"
        assert session.headers["User-Agent"]

    @pytest.mark.parametrize("session", [
        FakeSession(error=requests.ConnectionError("offline")),
        FakeSession(FakeResponse({}, status=503)),
    ])
    def test_failures_return_none(self, session):
        geocoder = NominatimGeocoder(NominatimConfig(min_interval_seconds=0), session=session)
        assert geocoder.resolve(1.0, 2.0, "en") is None
