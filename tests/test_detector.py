"""Tests for the debounced address change detector."""

import threading

import pytest
from conftest import LAT_STEP_10M, FakeGeocoder, make_address

from walkaround.address import AddressResolver, address_key
from walkaround.detector import AddressChangeDetector
from walkaround.models import Location


def _loc(i, lat0=35.0, lon=139.0, timestamp=None):
    return Location(lat0 + i * LAT_STEP_10M, lon, accuracy=5.0,
                    timestamp=1000.0 + i if timestamp is None else timestamp)


def _keys(store, section_id):
    return [address_key(r.to_address()) for r in store.get_breakpoints_for_section(section_id)]


@pytest.fixture
def section(store):
    return store.insert_section(created_at=0.0)


def _detector(store, geocoder, settings, clock, section, **kwargs):
    resolver = AddressResolver(geocoder, settings=settings)
    detector = AddressChangeDetector(store, resolver, settings=settings, clock=clock, **kwargs)
    detector.reset(section.id)
    return detector


class TestPolicy:
    def test_stationary_user_gets_one_breakpoint(self, store, settings, clock, section):
        geocoder = FakeGeocoder()
        detector = _detector(store, geocoder, settings, clock, section)

        detector.on_location_observed(_loc(0), is_initial=True)
        for i in range(1, 8):
            clock.advance(60)
            detector.on_location_observed(_loc(i))

        assert len(store.get_breakpoints_for_section(section.id)) == 1
        assert len(geocoder.calls) == 8

    def test_alternating_addresses_each_recorded(self, store, settings, clock, section):
        answers = iter(["X St", "Y St", "X St", "Y St"])
        geocoder = FakeGeocoder(lambda lat, lon, locale: make_address(next(answers)))
        detector = _detector(store, geocoder, settings, clock, section)

        detector.on_location_observed(_loc(0), is_initial=True)
        for i in range(1, 4):
            clock.advance(settings.address_check_interval)
            detector.on_location_observed(_loc(i))

        records = store.get_breakpoints_for_section(section.id)
        assert [r.thoroughfare for r in records] == ["X St", "Y St", "X St", "Y St"]
        assert [r.timestamp for r in records] == sorted(r.timestamp for r in records)

    def test_small_movement_skips_lookup(self, store, settings, clock, section):
        geocoder = FakeGeocoder()
        detector = _detector(store, geocoder, settings, clock, section)

        detector.on_location_observed(_loc(0), is_initial=True)
        nearby = Location(35.0 + 0.00002, 139.0, accuracy=5.0, timestamp=1001.0)
        assert detector.on_location_observed(nearby) is None
        assert len(geocoder.calls) == 1

    def test_initial_always_writes(self, store, settings, clock, section):
        detector = _detector(store, FakeGeocoder(), settings, clock, section)
        detector.last_address_key = address_key(make_address("Main St"))

        record = detector.on_location_observed(_loc(0), is_initial=True, track_id=None)

        assert record is not None
        assert record.section_id == section.id
        assert record.timestamp == clock.now

    def test_failed_lookup_leaves_state(self, store, settings, clock, section):
        results = [None, make_address("Main St")]
        geocoder = FakeGeocoder(lambda lat, lon, locale: results.pop(0))
        detector = _detector(store, geocoder, settings, clock, section)

        assert detector.on_location_observed(_loc(0), is_initial=True) is None
        assert detector.last_processed_location is None
        assert detector.last_address_key is None

        assert detector.on_location_observed(_loc(0), is_initial=True) is not None
        assert detector.last_processed_location == _loc(0)

    def test_records_track_id_and_fires_callback(self, store, settings, clock, section):
        seen = []
        detector = _detector(store, FakeGeocoder(), settings, clock, section,
                             on_address_update=seen.append)
        point = store.insert_track_point(1.0, 35.0, 139.0, 0.0, 0.0, 5.0)

        record = detector.on_location_observed(_loc(0), is_initial=True, track_id=point.id)

        assert record.track_id == point.id
        assert seen == [record]

    def test_failing_callback_does_not_raise(self, store, settings, clock, section):
        def broken(record):
            raise ValueError("display gone")

        detector = _detector(store, FakeGeocoder(), settings, clock, section,
                             on_address_update=broken)

        record = detector.on_location_observed(_loc(0), is_initial=True)

        assert record is not None
        assert [r.id for r in store.get_breakpoints_for_section(section.id)] == [record.id]
        assert detector.breakpoints_written == 1

    def test_movement_override(self, store, settings, clock, section):
        detector = _detector(store, FakeGeocoder(), settings, clock, section)
        assert detector.note_accurate_fix(_loc(0), 1) is True

        detector.on_location_observed(_loc(0), is_initial=True)
        assert detector.note_accurate_fix(_loc(10), 2) is False
        assert detector.note_accurate_fix(_loc(25), 3) is True
        assert detector.last_accurate_track_id == 3


class TestSingleFlight:
    def _blocking_geocoder(self):
        release = threading.Event()
        entered = threading.Event()

        def answer(lat, lon, locale):
            entered.set()
            release.wait(5)
            return make_address("Main St")

        return FakeGeocoder(answer), entered, release

    def test_second_trigger_dropped(self, store, settings, clock, section):
        geocoder, entered, release = self._blocking_geocoder()
        detector = _detector(store, geocoder, settings, clock, section)

        assert detector.trigger(_loc(0), is_initial=True) is True
        assert entered.wait(5)
        assert detector.busy
        assert detector.trigger(_loc(30)) is False
        assert detector.on_location_observed(_loc(30)) is None

        release.set()
        assert detector.wait_idle(5)
        assert len(geocoder.calls) == 1
        assert len(store.get_breakpoints_for_section(section.id)) == 1

    def test_trigger_without_fix_is_noop(self, store, settings, clock, section):
        detector = _detector(store, FakeGeocoder(), settings, clock, section)
        assert detector.trigger() is False

    def test_result_after_reset_discarded(self, store, settings, clock, section):
        geocoder, entered, release = self._blocking_geocoder()
        detector = _detector(store, geocoder, settings, clock, section)

        detector.trigger(_loc(0), is_initial=True)
        assert entered.wait(5)
        detector.reset(None)
        release.set()
        assert detector.wait_idle(5)

        assert store.get_breakpoints_for_section(section.id) == []


class TestRecordFinal:
    def test_same_address_not_repeated(self, store, settings, clock, section):
        detector = _detector(store, FakeGeocoder(), settings, clock, section)
        detector.on_location_observed(_loc(0), is_initial=True)

        assert detector.record_final(_loc(3), None) is None
        assert len(store.get_breakpoints_for_section(section.id)) == 1

    def test_new_address_written_with_fix_time(self, store, settings, clock, section):
        streets = iter(["Main St", "Elm St"])
        geocoder = FakeGeocoder(lambda lat, lon, locale: make_address(next(streets)))
        detector = _detector(store, geocoder, settings, clock, section)
        detector.on_location_observed(_loc(0), is_initial=True)

        record = detector.record_final(_loc(40, timestamp=5000.0), 7)

        assert record.thoroughfare == "Elm St"
        assert record.timestamp == 5000.0
        assert record.track_id == 7

    def test_first_breakpoint_written_even_without_address(self, store, settings, clock, section):
        geocoder = FakeGeocoder(lambda lat, lon, locale: None)
        detector = _detector(store, geocoder, settings, clock, section)

        record = detector.record_final(_loc(0), None)

        assert record is not None
        assert record.locality is None
        assert len(store.get_breakpoints_for_section(section.id)) == 1

    def test_deactivates_detector(self, store, settings, clock, section):
        detector = _detector(store, FakeGeocoder(), settings, clock, section)
        generation = detector._generation
        detector.record_final(_loc(0), None)
        assert detector._generation == generation + 1
