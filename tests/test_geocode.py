import io
import json
import urllib.error

import pytest

from location_guard.geocode import (
    GeocodingError,
    JsonDiskCache,
    NominatimConfig,
    NominatimReverseGeocoder,
    coord_key,
    format_address,
    nominatim_reverse_raw,
)

BENGALURU = {
    "display_name": "MG Road, Shanthala Nagar, Bengaluru, Karnataka, 560001, India",
    "address": {
        "road": "MG Road",
        "suburb": "Shanthala Nagar",
        "city": "Bengaluru",
        "state": "Karnataka",
        "postcode": "560001",
        "country": "India",
    },
}


class FakeUrlopen:
    """Stands in for urllib.request.urlopen; records requested URLs."""

    def __init__(self, payload=None, exc=None, body=None):
        self.payload = payload
        self.exc = exc
        self.body = body
        self.urls = []

    def __call__(self, req, timeout=None):
        self.urls.append(req.full_url)
        if self.exc is not None:
            raise self.exc
        body = self.body if self.body is not None else json.dumps(self.payload)
        return io.BytesIO(body.encode("utf-8"))


@pytest.fixture
def cfg():
    return NominatimConfig(min_interval_seconds=0.0)


def _patch(monkeypatch, fake):
    monkeypatch.setattr("location_guard.geocode.urllib.request.urlopen", fake)
    return fake


def test_coord_key():
    assert coord_key(12.971598, 77.594566, 4) == "12.9716,77.5946"


def test_format_address():
    assert format_address(BENGALURU) == "MG Road, Shanthala Nagar, Bengaluru, Karnataka, 560001, India"
    assert format_address({"display_name": "Somewhere"}) == "Somewhere"
    assert format_address({"address": {}, "display_name": "Fallback"}) == "Fallback"
    assert format_address({"address": {"town": "Hosur"}}) == "Hosur"
    assert format_address({}) is None
    assert format_address(None) is None


def test_reverse_geocode_success(monkeypatch, cfg):
    fake = _patch(monkeypatch, FakeUrlopen(payload=BENGALURU))
    geocoder = NominatimReverseGeocoder(cfg)

    res = geocoder.reverse_geocode(12.9716, 77.5946)

    assert res.address == "MG Road, Shanthala Nagar, Bengaluru, Karnataka, 560001, India"
    assert res.source == "nominatim"
    assert res.error is None
    assert "lat=12.97160000" in fake.urls[0]
    assert "key=" not in fake.urls[0]


def test_no_result_is_not_an_exception(monkeypatch, cfg):
    _patch(monkeypatch, FakeUrlopen(payload={"error": "Unable to geocode"}))

    res = NominatimReverseGeocoder(cfg).reverse_geocode(0.0, -160.0)

    assert res.address is None
    assert res.error == "Unable to geocode"
    assert res.to_dict() == {"address": None, "source": "nominatim", "error": "Unable to geocode"}


def test_transport_failure_raises(monkeypatch, cfg):
    _patch(monkeypatch, FakeUrlopen(exc=urllib.error.URLError("connection refused")))

    with pytest.raises(GeocodingError, match="unreachable"):
        NominatimReverseGeocoder(cfg).reverse_geocode(12.9, 77.6)


def test_http_error_raises(monkeypatch, cfg):
    err = urllib.error.HTTPError("https://example.invalid", 503, "Service Unavailable", hdrs=None, fp=None)
    _patch(monkeypatch, FakeUrlopen(exc=err))

    with pytest.raises(GeocodingError, match="HTTP 503"):
        nominatim_reverse_raw(12.9, 77.6, cfg)


def test_locationiq_404_carries_json_error(monkeypatch, cfg):
    body = io.BytesIO(b'{"error": "Unable to geocode"}')
    err = urllib.error.HTTPError("https://example.invalid", 404, "Not Found", hdrs=None, fp=body)
    _patch(monkeypatch, FakeUrlopen(exc=err))

    assert nominatim_reverse_raw(12.9, 77.6, cfg) == {"error": "Unable to geocode"}


def test_non_json_body_raises(monkeypatch, cfg):
    _patch(monkeypatch, FakeUrlopen(body="<html>rate limited</html>"))

    with pytest.raises(GeocodingError, match="non-JSON"):
        nominatim_reverse_raw(12.9, 77.6, cfg)


def test_api_key_is_sent(monkeypatch):
    fake = _patch(monkeypatch, FakeUrlopen(payload=BENGALURU))
    cfg = NominatimConfig(api_key="secret", provider="locationiq", min_interval_seconds=0.0)

    res = NominatimReverseGeocoder(cfg).reverse_geocode(12.9716, 77.5946)

    assert "key=secret" in fake.urls[0]
    assert res.source == "locationiq"


def test_cache_hit_skips_request(monkeypatch, cfg, tmp_path):
    fake = _patch(monkeypatch, FakeUrlopen(payload=BENGALURU))
    cache = JsonDiskCache(tmp_path / "geocode_cache.json")
    geocoder = NominatimReverseGeocoder(cfg, cache=cache)

    first = geocoder.reverse_geocode(12.97161, 77.59461)
    second = geocoder.reverse_geocode(12.97159, 77.59459)  # same rounded key

    assert len(fake.urls) == 1
    assert second.source == "cache"
    assert second.address == first.address


def test_no_result_is_not_cached(monkeypatch, cfg, tmp_path):
    fake = _patch(monkeypatch, FakeUrlopen(payload={"error": "Unable to geocode"}))
    geocoder = NominatimReverseGeocoder(cfg, cache=JsonDiskCache(tmp_path / "c.json"))

    geocoder.reverse_geocode(1.0, 2.0)
    geocoder.reverse_geocode(1.0, 2.0)

    assert len(fake.urls) == 2


def test_empty_answer_is_not_cached(monkeypatch, cfg, tmp_path):
    fake = _patch(monkeypatch, FakeUrlopen(payload={"place_id": 1}))
    cache = JsonDiskCache(tmp_path / "c.json")
    geocoder = NominatimReverseGeocoder(cfg, cache=cache)

    first = geocoder.reverse_geocode(1.0, 2.0)
    geocoder.reverse_geocode(1.0, 2.0)

    assert first.address is None
    assert len(fake.urls) == 2
    assert len(cache) == 0


def test_disk_cache_journal_and_flush(tmp_path):
    path = tmp_path / "geocode_cache.json"
    cache = JsonDiskCache(path)
    cache.set("1.0000,2.0000", {"address": "Somewhere"})

    # a fresh instance recovers unflushed entries from the journal
    reopened = JsonDiskCache(path)
    assert reopened.get("1.0000,2.0000") == {"address": "Somewhere"}

    reopened.flush()
    assert not (tmp_path / "geocode_cache.journal.jsonl").exists()
    assert json.loads(path.read_text(encoding="utf-8")) == {"1.0000,2.0000": {"address": "Somewhere"}}
    assert len(JsonDiskCache(path)) == 1


def test_disk_cache_survives_corrupted_snapshot(tmp_path):
    path = tmp_path / "geocode_cache.json"
    path.write_text("{broken", encoding="utf-8")

    cache = JsonDiskCache(path)

    assert cache.get("x") is None
    assert (tmp_path / "geocode_cache.json.broken").read_text(encoding="utf-8") == "{broken"
