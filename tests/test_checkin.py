import pytest

from location_guard.checkin import CheckinStatus, record_visit_event
from location_guard.config import ValidatorConfig
from location_guard.geocode import GeocodingError, ReverseGeocodeResult
from location_guard.models import QualityTier, VisitEvent
from location_guard.visit_log import VisitLogError, VisitLogStore

NOW = 1_757_920_000_000


class FakeGeocoder:
    def __init__(self, address="Whitefield, Bengaluru", exc=None):
        self.address = address
        self.exc = exc
        self.calls = []

    def reverse_geocode(self, lat, lon):
        self.calls.append((lat, lon))
        if self.exc is not None:
            raise self.exc
        return ReverseGeocodeResult(address=self.address, source="fake")


@pytest.fixture
def store(tmp_path):
    return VisitLogStore(tmp_path / "visit_log.csv")


def _fix(lat, lon, ts=NOW, accuracy=8.0):
    return {"latitude": lat, "longitude": lon, "timestamp": ts, "accuracy": accuracy, "source": "gps"}


def test_records_valid_checkin_with_address(store):
    geocoder = FakeGeocoder()

    outcome = record_visit_event(
        store,
        _fix(12.96981234, 77.75),
        ticket_id=42,
        user_id=7,
        event=VisitEvent.STARTED,
        geocoder=geocoder,
        now_ms=NOW,
    )

    assert outcome.status == CheckinStatus.RECORDED
    assert outcome.quality.tier == QualityTier.EXCELLENT
    assert outcome.jump is None
    assert outcome.record.address == "Whitefield, Bengaluru"
    assert outcome.record.latitude == 12.969812
    assert outcome.record.sample_ms == NOW
    assert geocoder.calls == [(12.969812, 77.75)]
    assert outcome.to_dict()["status"] == "recorded"


def test_invalid_sample_is_not_written(store):
    geocoder = FakeGeocoder()

    outcome = record_visit_event(
        store, _fix(95.0, 77.75), ticket_id=42, user_id=7, event="REACHED", geocoder=geocoder, now_ms=NOW
    )

    assert outcome.status == CheckinStatus.INVALID
    assert outcome.validation.errors == ("latitude out of range [-90, 90]: 95.0",)
    assert outcome.record is None
    assert geocoder.calls == []
    assert not store.path.exists()


def test_unrealistic_jump_is_rejected(store):
    record_visit_event(store, _fix(12.9698, 77.75), ticket_id=42, user_id=7, event="STARTED", now_ms=NOW)

    # Delhi one minute later
    outcome = record_visit_event(
        store, _fix(28.6139, 77.2090, ts=NOW + 60_000), ticket_id=42, user_id=7, event="REACHED", now_ms=NOW + 60_000
    )

    assert outcome.status == CheckinStatus.REJECTED_JUMP
    assert outcome.jump.is_unrealistic
    assert "exceeds maximum" in outcome.jump.reason
    assert len(list(store.iter_records())) == 1


def test_jump_can_be_recorded_for_audit(store):
    record_visit_event(store, _fix(12.9698, 77.75), ticket_id=42, user_id=7, event="STARTED", now_ms=NOW)

    outcome = record_visit_event(
        store,
        _fix(28.6139, 77.2090, ts=NOW + 60_000),
        ticket_id=42,
        user_id=7,
        event="REACHED",
        reject_jumps=False,
        now_ms=NOW + 60_000,
    )

    assert outcome.status == CheckinStatus.RECORDED
    assert outcome.jump.is_unrealistic
    assert outcome.record.record_id == 2


def test_plausible_drive_is_recorded(store):
    record_visit_event(store, _fix(12.9698, 77.75), ticket_id=42, user_id=7, event="STARTED", now_ms=NOW)

    # ~14 km in 30 minutes
    later = NOW + 30 * 60_000
    outcome = record_visit_event(
        store, _fix(12.9352, 77.6245, ts=later), ticket_id=42, user_id=7, event="REACHED", now_ms=later
    )

    assert outcome.status == CheckinStatus.RECORDED
    assert not outcome.jump.is_unrealistic


def test_other_technicians_do_not_affect_jump_check(store):
    record_visit_event(store, _fix(28.6139, 77.2090), ticket_id=1, user_id=99, event="STARTED", now_ms=NOW)

    outcome = record_visit_event(store, _fix(12.9698, 77.75, ts=NOW + 1000), ticket_id=2, user_id=7, event="STARTED", now_ms=NOW)

    assert outcome.status == CheckinStatus.RECORDED
    assert outcome.jump is None


def test_geocoding_failure_does_not_block_recording(store):
    geocoder = FakeGeocoder(exc=GeocodingError("nominatim unreachable: timed out"))

    outcome = record_visit_event(
        store, _fix(12.9698, 77.75), ticket_id=42, user_id=7, event="STARTED", geocoder=geocoder, now_ms=NOW
    )

    assert outcome.status == CheckinStatus.RECORDED
    assert outcome.validation.is_valid
    assert outcome.geocode is None
    assert outcome.geocode_error == "nominatim unreachable: timed out"
    assert outcome.record.address is None


def test_custom_config_threshold(store):
    cfg = ValidatorConfig(max_speed_mps=5.0)
    record_visit_event(store, _fix(12.9698, 77.75), ticket_id=42, user_id=7, event="STARTED", config=cfg, now_ms=NOW)

    # ~14 km in 30 minutes is ~8 m/s: too fast for a 5 m/s limit
    later = NOW + 30 * 60_000
    outcome = record_visit_event(
        store, _fix(12.9352, 77.6245, ts=later), ticket_id=42, user_id=7, event="REACHED", config=cfg, now_ms=later
    )

    assert outcome.status == CheckinStatus.REJECTED_JUMP


def test_store_failure_propagates(tmp_path):
    store = VisitLogStore(tmp_path)

    with pytest.raises(VisitLogError):
        record_visit_event(store, _fix(12.9698, 77.75), ticket_id=42, user_id=7, event="STARTED", now_ms=NOW)


def test_unknown_event_is_rejected(store):
    with pytest.raises(ValueError):
        record_visit_event(store, _fix(12.9698, 77.75), ticket_id=42, user_id=7, event="PAUSED", now_ms=NOW)
