"""Location integrity checks: structural validation, quality grading and jump detection.

All functions here are pure and synchronous. Any "previous" sample is supplied by the caller.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping

from location_guard.config import DEFAULT_CONFIG, KMH_PER_MPS, ValidatorConfig
from location_guard.geo import haversine_m
from location_guard.models import (
    JumpResult,
    LocationSample,
    LocationSource,
    QualityAssessment,
    QualityTier,
    ValidationResult,
)
from location_guard.timeutils import instant_from_epoch_ms
from location_guard.timeutils import now_ms as _now_ms

logger = logging.getLogger(__name__)

SampleLike = LocationSample | Mapping[str, Any]

_MISSING = object()


def _raw_fields(sample: SampleLike) -> dict[str, Any]:
    """Read the boundary fields from either a LocationSample or a mapping."""

    if isinstance(sample, LocationSample):
        return {
            "latitude": sample.latitude,
            "longitude": sample.longitude,
            "timestamp": sample.timestamp_ms,
            "accuracy": sample.accuracy_m,
            "source": sample.source,
        }
    return {
        "latitude": sample.get("latitude", _MISSING),
        "longitude": sample.get("longitude", _MISSING),
        "timestamp": sample.get("timestamp", _MISSING),
        "accuracy": sample.get("accuracy"),
        "source": sample.get("source"),
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_float(value: int | float) -> float:
    """float(value), with ints beyond float range saturated to +/-inf."""

    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf


def _check_coordinate(name: str, value: Any, limit: float, errors: list[str]) -> bool:
    if value is _MISSING or value is None:
        errors.append(f"{name} is required")
        return False
    if not _is_number(value):
        errors.append(f"{name} must be a number")
        return False
    if isinstance(value, float) and not math.isfinite(value):
        errors.append(f"{name} must be finite")
        return False
    if not -limit <= value <= limit:
        number = _as_float(value)
        shown = value if math.isfinite(number) else number
        errors.append(f"{name} out of range [{-limit:g}, {limit:g}]: {shown}")
        return False
    return True


def validate_location(
    sample: SampleLike,
    config: ValidatorConfig | None = None,
    *,
    now_ms: int | None = None,
) -> ValidationResult:
    """Check that a sample is physically plausible and usable.

    Hard failures go to ``errors``; soft concerns (clock skew, stale fix, coarse accuracy,
    outside the expected region) go to ``warnings`` and never block.

    Args:
        sample: LocationSample or a ``{latitude, longitude, timestamp, accuracy?, source?}`` mapping.
        config: Thresholds; defaults to ``DEFAULT_CONFIG``.
        now_ms: Reference "now" in epoch ms (defaults to wall clock).

    Returns:
        ValidationResult. Never raises for bad sample content.
    """

    cfg = config or DEFAULT_CONFIG
    now = _now_ms() if now_ms is None else now_ms
    raw = _raw_fields(sample)
    errors: list[str] = []
    warnings: list[str] = []

    lat_ok = _check_coordinate("latitude", raw["latitude"], 90.0, errors)
    lon_ok = _check_coordinate("longitude", raw["longitude"], 180.0, errors)

    ts = raw["timestamp"]
    if ts is _MISSING or ts is None:
        errors.append("timestamp is required")
    elif not _is_number(ts) or instant_from_epoch_ms(ts) is None:
        errors.append("timestamp is not a valid instant")
    else:
        age_s = (now - ts) / 1000.0
        if -age_s > cfg.future_tolerance_s:
            warnings.append(f"timestamp is {-age_s:.0f}s in the future (clock skew)")
        elif age_s > cfg.stale_after_s:
            warnings.append(f"stale location: timestamp is {age_s:.0f}s old")

    acc = raw["accuracy"]
    if acc is not None:
        if not _is_number(acc) or (isinstance(acc, float) and not math.isfinite(acc)):
            errors.append("accuracy must be a number")
        elif acc < 0:
            errors.append("accuracy must be non-negative")
        elif acc > cfg.max_accuracy_m:
            errors.append(f"accuracy too coarse: ±{_as_float(acc):g}m (max ±{cfg.max_accuracy_m:g}m)")
        elif acc > cfg.coarse_accuracy_m:
            warnings.append(f"accuracy is coarse: ±{acc:g}m")

    source = raw["source"]
    if source is not None and not isinstance(source, str):
        errors.append("source must be a string")

    if lat_ok and lon_ok and cfg.expected_region is not None:
        if not cfg.expected_region.contains(raw["latitude"], raw["longitude"]):
            warnings.append("location is outside the expected region")

    normalized: LocationSample | None = None
    if not errors:
        normalized = _normalize(raw, cfg)

    result = ValidationResult(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        sample=normalized,
    )
    if errors:
        logger.warning("location validation failed: errors=%s warnings=%s", errors, warnings)
    elif warnings:
        logger.info("location validation passed with warnings: %s", warnings)
    else:
        logger.debug("location validation passed: %s, %s", raw["latitude"], raw["longitude"])
    return result


def _normalize(raw: Mapping[str, Any], cfg: ValidatorConfig) -> LocationSample:
    source = (raw["source"] or LocationSource.GPS.value).lower()
    accuracy = raw["accuracy"]
    if accuracy is None and source == LocationSource.MANUAL:
        accuracy = cfg.manual_accuracy_m
    return LocationSample(
        latitude=round(float(raw["latitude"]), 6),
        longitude=round(float(raw["longitude"]), 6),
        timestamp_ms=int(raw["timestamp"]),
        accuracy_m=None if accuracy is None else float(accuracy),
        source=source,
    )


def sanitize_location(sample: LocationSample, config: ValidatorConfig | None = None) -> LocationSample:
    """Storage form of a sample: 6 decimals, whole-meter accuracy, default source."""

    cfg = config or DEFAULT_CONFIG
    source = sample.source or LocationSource.GPS.value
    accuracy = sample.accuracy_m
    if accuracy is None and source == LocationSource.MANUAL:
        accuracy = cfg.manual_accuracy_m
    return LocationSample(
        latitude=round(sample.latitude, 6),
        longitude=round(sample.longitude, 6),
        timestamp_ms=int(sample.timestamp_ms),
        accuracy_m=None if accuracy is None else float(round(accuracy)),
        source=source,
    )


def get_location_quality(
    sample: LocationSample,
    config: ValidatorConfig | None = None,
    *,
    now_ms: int | None = None,
) -> QualityAssessment:
    """Grade one sample.

    The tier depends only on accuracy and source, so it is monotonic in accuracy. The score
    additionally loses points for an old fix and for being outside the expected region.
    """

    cfg = config or DEFAULT_CONFIG

    if sample.source == LocationSource.MANUAL:
        return QualityAssessment(tier=QualityTier.EXCELLENT, score=95, description="Manually selected location")

    if sample.accuracy_m is None or math.isnan(sample.accuracy_m):
        tier, score, description = QualityTier.UNKNOWN, 0, "Accuracy not reported"
    else:
        band = next(b for b in cfg.quality_bands if sample.accuracy_m <= b.max_accuracy_m)
        tier, score, description = band.tier, band.score, band.description

    now = _now_ms() if now_ms is None else now_ms
    age_s = (now - sample.timestamp_ms) / 1000.0
    if age_s > cfg.age_penalty_after_s:
        over_min = (age_s - cfg.age_penalty_after_s) / 60.0
        score -= min(cfg.max_age_penalty, over_min)
        description += f" ({age_s / 60.0:.0f}min old)"

    if cfg.expected_region is not None and not cfg.expected_region.contains(sample.latitude, sample.longitude):
        score -= cfg.out_of_region_penalty
        description += " (outside expected region)"

    return QualityAssessment(tier=tier, score=max(0, min(100, round(score))), description=description)


def detect_location_jump(
    previous: LocationSample,
    next_sample: LocationSample,
    max_speed_mps: float | None = None,
    config: ValidatorConfig | None = None,
) -> JumpResult:
    """Decide whether moving from ``previous`` to ``next_sample`` is physically plausible.

    Elapsed time is ``next - previous``. A non-positive elapsed time is degenerate: it is
    unrealistic unless the two samples are within ``stationary_distance_m`` of each other,
    in which case it is a duplicate fix and not a jump.

    Raises:
        ValueError: If ``max_speed_mps`` is given and is not a positive finite number.
    """

    cfg = config or DEFAULT_CONFIG
    limit = cfg.max_speed_mps if max_speed_mps is None else max_speed_mps
    if not (math.isfinite(limit) and limit > 0):
        raise ValueError(f"max_speed_mps must be a positive number, got {limit!r}")

    distance = haversine_m(previous.latitude, previous.longitude, next_sample.latitude, next_sample.longitude)
    elapsed = (next_sample.timestamp_ms - previous.timestamp_ms) / 1000.0

    reasons: list[str] = []
    speed = 0.0
    if elapsed <= 0:
        if distance > cfg.stationary_distance_m:
            reasons.append(f"non-positive elapsed time ({elapsed:g}s) for a {distance:.1f}m move")
    else:
        speed = distance / elapsed
        if speed > limit:
            reasons.append(
                f"implied speed {speed:.1f} m/s ({speed * KMH_PER_MPS:.1f} km/h) "
                f"exceeds maximum {limit:.1f} m/s"
            )

    if cfg.max_jump_distance_m is not None and distance > cfg.max_jump_distance_m:
        reasons.append(f"distance {distance:.0f}m exceeds maximum jump distance {cfg.max_jump_distance_m:.0f}m")

    result = JumpResult(
        is_unrealistic=bool(reasons),
        distance_m=distance,
        speed_mps=speed,
        time_elapsed_s=elapsed,
        reason="; ".join(reasons) if reasons else None,
    )
    if result.is_unrealistic:
        logger.warning(
            "unrealistic location jump: %.1fm in %.1fs (%s)", distance, elapsed, result.reason
        )
    else:
        logger.debug("location jump check passed: %.1fm in %.1fs, %.2f m/s", distance, elapsed, speed)
    return result
