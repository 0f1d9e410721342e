"""Data models for location samples, validation results and visit log records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Final, Mapping


class LocationSource(StrEnum):
    """Known positioning sources. Other tags are accepted as plain strings."""

    GPS = "gps"
    NETWORK = "network"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single location fix reported by a tracked technician.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        timestamp_ms: Unix epoch milliseconds when the fix was taken.
        accuracy_m: Horizontal accuracy radius in meters (smaller is better). None if unknown.
        source: Positioning source tag, "gps" unless stated otherwise.
    """

    latitude: float
    longitude: float
    timestamp_ms: int
    accuracy_m: float | None = None
    source: str = LocationSource.GPS.value

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LocationSample:
        """Build a sample from the boundary shape.

        The mapping should already have passed validation; numeric coercion errors propagate.
        """

        accuracy = raw.get("accuracy")
        source = raw.get("source") or LocationSource.GPS.value
        return cls(
            latitude=float(raw["latitude"]),
            longitude=float(raw["longitude"]),
            timestamp_ms=int(raw["timestamp"]),
            accuracy_m=None if accuracy is None else float(accuracy),
            source=str(source).lower(),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp_ms,
            "source": self.source,
        }
        if self.accuracy_m is not None:
            out["accuracy"] = self.accuracy_m
        return out


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of structural and range checks on one sample.

    ``sample`` carries the normalized sample and is only set when the input is valid.
    """

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    sample: LocationSample | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class QualityTier(StrEnum):
    """Coarse quality buckets, best first."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNACCEPTABLE = "unacceptable"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        """0 for the best tier; larger is worse."""

        return _TIER_ORDER.index(self)


_TIER_ORDER: Final[tuple[QualityTier, ...]] = tuple(QualityTier)


@dataclass(frozen=True, slots=True)
class QualityAssessment:
    """Quality grade of a single sample."""

    tier: QualityTier
    score: int
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.tier.value, "score": self.score, "description": self.description}


@dataclass(frozen=True, slots=True)
class JumpResult:
    """Plausibility of the movement between two consecutive samples.

    Attributes:
        is_unrealistic: True if the implied movement is not physically plausible.
        distance_m: Great-circle distance in meters.
        speed_mps: Implied speed in meters/second. 0.0 when elapsed time is not positive.
        time_elapsed_s: Seconds from previous to next sample. May be <= 0 for degenerate input.
        reason: Set only when ``is_unrealistic`` is True.
    """

    is_unrealistic: bool
    distance_m: float
    speed_mps: float
    time_elapsed_s: float
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "isUnrealistic": self.is_unrealistic,
            "distance": self.distance_m,
            "speed": self.speed_mps,
            "timeElapsed": self.time_elapsed_s,
        }
        if self.reason is not None:
            out["reason"] = self.reason
        return out


class VisitEvent(StrEnum):
    """Onsite visit milestones recorded against a ticket."""

    STARTED = "STARTED"
    REACHED = "REACHED"
    ENDED = "ENDED"
    REACHED_BACK = "REACHED_BACK"


@dataclass(frozen=True, slots=True)
class VisitLogRecord:
    """A persisted onsite visit event.

    Note:
        ``sample_ms`` is when the fix was taken; ``created_at`` is when the row was written.
    """

    record_id: int
    ticket_id: int
    user_id: int
    event: VisitEvent
    latitude: float
    longitude: float
    address: str | None
    accuracy_m: float | None
    sample_ms: int
    created_at: datetime

    def to_sample(self) -> LocationSample:
        """The location this record was written from, for jump detection."""

        return LocationSample(
            latitude=self.latitude,
            longitude=self.longitude,
            timestamp_ms=self.sample_ms,
            accuracy_m=self.accuracy_m,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record_id,
            "ticketId": self.ticket_id,
            "userId": self.user_id,
            "event": self.event.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "createdAt": self.created_at.isoformat(),
        }


DEFAULT_TZ: Final[str] = "Asia/Kolkata"
