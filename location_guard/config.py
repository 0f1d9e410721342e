"""Policy constants for location validation.

Every threshold is a named field so deployments can override it (JSON file or CLI flags)
while the defaults keep the field-service behavior.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Final, Mapping

from location_guard.geo import INDIA_BOUNDS, RegionBounds
from location_guard.models import QualityTier


@dataclass(frozen=True, slots=True)
class QualityBand:
    """Accuracy up to ``max_accuracy_m`` (inclusive) maps to ``tier``/``score``."""

    max_accuracy_m: float
    tier: QualityTier
    score: int
    description: str


DEFAULT_QUALITY_BANDS: Final[tuple[QualityBand, ...]] = (
    QualityBand(10.0, QualityTier.EXCELLENT, 100, "Excellent GPS accuracy"),
    QualityBand(50.0, QualityTier.EXCELLENT, 90, "Excellent GPS accuracy"),
    QualityBand(200.0, QualityTier.GOOD, 80, "Good GPS accuracy"),
    QualityBand(500.0, QualityTier.FAIR, 70, "Fair GPS accuracy (suitable for field service)"),
    QualityBand(1000.0, QualityTier.FAIR, 60, "Acceptable GPS accuracy for field service"),
    QualityBand(3000.0, QualityTier.POOR, 50, "Poor GPS accuracy, usable with caution"),
    QualityBand(math.inf, QualityTier.UNACCEPTABLE, 10, "Unacceptable GPS accuracy"),
)

KMH_PER_MPS: Final[float] = 3.6
DEFAULT_MAX_SPEED_KMH: Final[float] = 200.0

_REGIONS: Final[dict[str, RegionBounds]] = {"india": INDIA_BOUNDS}


@dataclass(frozen=True, slots=True)
class ValidatorConfig:
    """Thresholds used by the location validator."""

    # accuracy (meters)
    max_accuracy_m: float = 3000.0
    coarse_accuracy_m: float = 200.0
    manual_accuracy_m: float = 5.0
    # timestamps (seconds)
    future_tolerance_s: float = 5 * 60.0
    stale_after_s: float = 5 * 60.0
    # jump detection
    max_speed_mps: float = DEFAULT_MAX_SPEED_KMH / KMH_PER_MPS
    stationary_distance_m: float = 1.0
    max_jump_distance_m: float | None = None
    # region
    expected_region: RegionBounds | None = None
    # quality scoring
    quality_bands: tuple[QualityBand, ...] = DEFAULT_QUALITY_BANDS
    age_penalty_after_s: float = 10 * 60.0
    max_age_penalty: int = 20
    out_of_region_penalty: int = 30

    def __post_init__(self) -> None:
        if not (math.isfinite(self.max_speed_mps) and self.max_speed_mps > 0):
            raise ValueError(f"max_speed_mps must be a positive number, got {self.max_speed_mps!r}")
        if self.max_accuracy_m <= 0:
            raise ValueError("max_accuracy_m must be positive")
        if not 0 <= self.coarse_accuracy_m <= self.max_accuracy_m:
            raise ValueError("coarse_accuracy_m must be between 0 and max_accuracy_m")
        if self.future_tolerance_s < 0 or self.stale_after_s < 0:
            raise ValueError("timestamp tolerances must be non-negative")
        if self.stationary_distance_m < 0:
            raise ValueError("stationary_distance_m must be non-negative")
        if self.max_jump_distance_m is not None and self.max_jump_distance_m <= 0:
            raise ValueError("max_jump_distance_m must be positive when set")
        _check_bands(self.quality_bands)

    @property
    def max_speed_kmh(self) -> float:
        return self.max_speed_mps * KMH_PER_MPS

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ValidatorConfig:
        """Build a config from a plain mapping (e.g. parsed JSON).

        ``max_speed_kmh`` is accepted as a convenience alias for ``max_speed_mps``.
        ``expected_region`` may be a region name ("india") or a bounds mapping.

        Raises:
            ValueError: On unknown keys or bad values.
        """

        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in raw.items():
            if key == "max_speed_kmh":
                kwargs["max_speed_mps"] = float(value) / KMH_PER_MPS
            elif key == "expected_region":
                kwargs[key] = region_from_value(value)
            elif key == "quality_bands":
                kwargs[key] = tuple(
                    QualityBand(
                        max_accuracy_m=float(b["max_accuracy_m"]),
                        tier=QualityTier(b["tier"]),
                        score=int(b["score"]),
                        description=str(b.get("description", "")),
                    )
                    for b in value
                )
            elif key in known:
                kwargs[key] = value
            else:
                raise ValueError(f"unknown config key: {key!r}")
        return cls(**kwargs)


def region_from_value(value: Any) -> RegionBounds | None:
    """Resolve a region name or bounds mapping."""

    if value is None:
        return None
    if isinstance(value, RegionBounds):
        return value
    if isinstance(value, str):
        try:
            return _REGIONS[value.lower()]
        except KeyError as exc:
            raise ValueError(f"unknown region: {value!r} (known: {', '.join(_REGIONS)})") from exc
    if isinstance(value, Mapping):
        return RegionBounds(
            min_lat=float(value["min_lat"]),
            max_lat=float(value["max_lat"]),
            min_lon=float(value["min_lon"]),
            max_lon=float(value["max_lon"]),
        )
    raise ValueError(f"unsupported region value: {value!r}")


def load_config(path: str | Path) -> ValidatorConfig:
    """Load a ValidatorConfig from a JSON file."""

    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"config file is not valid JSON: {p}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"config file must contain a JSON object: {p}")
    return ValidatorConfig.from_mapping(raw)


def _check_bands(bands: tuple[QualityBand, ...]) -> None:
    if not bands:
        raise ValueError("quality_bands must not be empty")
    prev: QualityBand | None = None
    for band in bands:
        if prev is not None:
            if band.max_accuracy_m <= prev.max_accuracy_m:
                raise ValueError("quality_bands must have strictly ascending max_accuracy_m")
            # worse accuracy must never grade better
            if band.tier.rank < prev.tier.rank or band.score > prev.score:
                raise ValueError("quality_bands must be monotonic in tier and score")
        prev = band
    if not math.isinf(bands[-1].max_accuracy_m):
        raise ValueError("the last quality band must be open-ended (max_accuracy_m = inf)")


DEFAULT_CONFIG: Final[ValidatorConfig] = ValidatorConfig()
