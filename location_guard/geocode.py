"""Reverse geocoding (lat/lon -> street address) for onsite visit logs.

This module uses only the Python standard library for HTTP.

Important:
    - Public reverse-geocoding services are rate-limited.
    - For Nominatim (OpenStreetMap), please respect their usage policy and set a reasonable
      request interval and a descriptive User-Agent.
    - LocationIQ exposes the same API; set ``api_key`` and point ``base_url`` at it.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
LOCATIONIQ_REVERSE_URL = "https://us1.locationiq.com/v1/reverse.php"


class GeocodingError(Exception):
    """The geocoding provider could not be reached or answered garbage."""


@dataclass(frozen=True, slots=True)
class ReverseGeocodeResult:
    """Reverse geocoding outcome.

    ``address`` is None when the provider found nothing; ``error`` then carries its message.
    """

    address: str | None
    source: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"address": self.address, "source": self.source}
        if self.error is not None:
            out["error"] = self.error
        return out


def coord_key(lat: float, lon: float, precision: int) -> str:
    """Build a stable cache key by rounding coordinates.

    Precision=4 is often a good default (lat ~ 11m resolution).
    """

    return f"{round(lat, precision):.{precision}f},{round(lon, precision):.{precision}f}"


_ADDRESS_PARTS = ("house_number", "road", "neighbourhood", "suburb")


def format_address(raw: dict[str, Any] | None) -> str | None:
    """Join the useful address components of a Nominatim-style response."""

    if not raw:
        return None
    address = raw.get("address")
    if not isinstance(address, dict):
        return raw.get("display_name") or None

    parts = [address.get(k) for k in _ADDRESS_PARTS]
    parts.append(address.get("village") or address.get("town") or address.get("city"))
    parts.extend(address.get(k) for k in ("state", "postcode", "country"))
    text = ", ".join(str(p) for p in parts if p)
    return text or raw.get("display_name") or None


class JsonDiskCache:
    """A small JSON cache persisted on disk (key -> result dict).

    Every ``set`` is appended to a journal file next to the snapshot so results survive
    a crash; ``flush`` rewrites the snapshot and drops the journal.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._journal_path = self._path.with_name(f"{self._path.stem}.journal.jsonl")
        self._data: dict[str, dict[str, Any]] = {}
        self._loaded = False

    def load(self) -> None:
        """Load snapshot and replay journal (no-op once loaded)."""

        if self._loaded:
            return
        self._data = {}
        if self._path.exists():
            text = self._path.read_text(encoding="utf-8").strip()
            if text:
                try:
                    self._data = json.loads(text)
                except json.JSONDecodeError:
                    # keep the broken snapshot for inspection and start fresh
                    backup = self._path.with_suffix(self._path.suffix + ".broken")
                    backup.write_text(text, encoding="utf-8")
                    logger.warning("geocode cache %s is corrupted; copied to %s", self._path, backup)
        self._replay_journal()
        self._loaded = True

    def get(self, key: str) -> dict[str, Any] | None:
        self.load()
        return self._data.get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        self.load()
        self._data[key] = value
        self._journal_path.parent.mkdir(parents=True, exist_ok=True)
        with self._journal_path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps({"k": key, "v": value}, ensure_ascii=False) + "\n")

    def __len__(self) -> int:
        self.load()
        return len(self._data)

    def flush(self) -> None:
        """Persist the full snapshot and clear the journal."""

        self.load()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)
        self._journal_path.unlink(missing_ok=True)

    def _replay_journal(self) -> None:
        if not self._journal_path.exists():
            return
        with self._journal_path.open("r", encoding="utf-8") as f:
            for line in f:
                s = line.strip()
                if not s:
                    continue
                try:
                    rec = json.loads(s)
                except json.JSONDecodeError:
                    # broken tail line from an interrupted write
                    continue
                k = rec.get("k")
                v = rec.get("v")
                if isinstance(k, str) and isinstance(v, dict):
                    self._data[k] = v


@dataclass(frozen=True, slots=True)
class NominatimConfig:
    """Configuration for a Nominatim-compatible reverse API."""

    base_url: str = NOMINATIM_REVERSE_URL
    accept_language: str = "en"
    zoom: int = 18
    addressdetails: int = 1
    timeout_seconds: float = 10.0
    min_interval_seconds: float = 1.0
    user_agent: str = "location-guard/0.1.0 (reverse-geocode; please set your own UA)"
    api_key: str | None = None
    provider: str = "nominatim"


def nominatim_reverse_raw(lat: float, lon: float, cfg: NominatimConfig) -> dict[str, Any]:
    """Call the reverse API once and return the parsed JSON body.

    A "no result" answer is still returned as a dict (it carries an ``error`` field).

    Raises:
        GeocodingError: On network failure, HTTP error status or a non-JSON body.
    """

    params = {
        "format": "jsonv2",
        "lat": f"{lat:.8f}",
        "lon": f"{lon:.8f}",
        "zoom": str(cfg.zoom),
        "addressdetails": str(cfg.addressdetails),
        "accept-language": cfg.accept_language,
    }
    if cfg.api_key:
        params["key"] = cfg.api_key
    url = f"{cfg.base_url}?{urllib.parse.urlencode(params)}"
    req = urllib.request.Request(
        url,
        headers={
            "User-Agent": cfg.user_agent,
            "Accept": "application/json",
        },
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=cfg.timeout_seconds) as resp:  # noqa: S310
            body = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        if exc.code == 404:
            # LocationIQ answers "Unable to geocode" with 404 and a JSON body
            return _parse_body(exc.read().decode("utf-8", errors="replace"), cfg)
        raise GeocodingError(f"{cfg.provider} returned HTTP {exc.code}") from exc
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise GeocodingError(f"{cfg.provider} unreachable: {exc}") from exc
    return _parse_body(body, cfg)


def _parse_body(body: str, cfg: NominatimConfig) -> dict[str, Any]:
    try:
        raw = json.loads(body)
    except json.JSONDecodeError as exc:
        raise GeocodingError(f"{cfg.provider} returned a non-JSON response") from exc
    if not isinstance(raw, dict):
        raise GeocodingError(f"{cfg.provider} returned an unexpected response")
    return raw


class NominatimReverseGeocoder:
    """Reverse geocoder using OpenStreetMap Nominatim (or LocationIQ)."""

    def __init__(
        self,
        config: NominatimConfig,
        cache: JsonDiskCache | None = None,
        precision: int = 4,
    ) -> None:
        self._cfg = config
        self._cache = cache
        self._precision = precision
        self._last_request_at = 0.0

    def reverse_geocode(self, lat: float, lon: float) -> ReverseGeocodeResult:
        """Reverse geocode one coordinate.

        Returns:
            ReverseGeocodeResult; ``address`` is None when nothing was found.

        Raises:
            GeocodingError: On transport-level failure. Not retried.
        """

        key = coord_key(lat, lon, self._precision)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return ReverseGeocodeResult(address=cached.get("address") or None, source="cache")

        self._sleep_if_needed()
        logger.info("reverse geocoding %s via %s", key, self._cfg.provider)
        raw = nominatim_reverse_raw(lat, lon, self._cfg)

        if "error" in raw:
            # provider answered but found nothing; not cached so a later lookup may succeed
            return ReverseGeocodeResult(address=None, source=self._cfg.provider, error=str(raw["error"]))

        address = format_address(raw)
        if address is not None and self._cache is not None:
            self._cache.set(key, {"address": address, "display_name": raw.get("display_name")})
        return ReverseGeocodeResult(address=address, source=self._cfg.provider)

    def _sleep_if_needed(self) -> None:
        now = time.time()
        wait = self._cfg.min_interval_seconds - (now - self._last_request_at)
        if wait > 0:
            time.sleep(wait)
        self._last_request_at = time.time()
