"""Onsite visit check-in: validate a technician's fix, screen for jumps, geocode, log it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from location_guard.config import DEFAULT_CONFIG, ValidatorConfig
from location_guard.geocode import GeocodingError, ReverseGeocodeResult
from location_guard.models import (
    JumpResult,
    QualityAssessment,
    ValidationResult,
    VisitEvent,
    VisitLogRecord,
)
from location_guard.validation import (
    SampleLike,
    detect_location_jump,
    get_location_quality,
    sanitize_location,
    validate_location,
)
from location_guard.visit_log import VisitLogStore

logger = logging.getLogger(__name__)


class ReverseGeocoder(Protocol):
    def reverse_geocode(self, lat: float, lon: float) -> ReverseGeocodeResult: ...


class CheckinStatus(StrEnum):
    RECORDED = "recorded"
    INVALID = "invalid"
    REJECTED_JUMP = "rejected_jump"


@dataclass(frozen=True, slots=True)
class CheckinOutcome:
    """Everything decided while handling one check-in."""

    status: CheckinStatus
    validation: ValidationResult
    quality: QualityAssessment | None = None
    jump: JumpResult | None = None
    geocode: ReverseGeocodeResult | None = None
    geocode_error: str | None = None
    record: VisitLogRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "validation": self.validation.to_dict(),
            "quality": None if self.quality is None else self.quality.to_dict(),
            "jump": None if self.jump is None else self.jump.to_dict(),
            "geocode": None if self.geocode is None else self.geocode.to_dict(),
            "geocodeError": self.geocode_error,
            "record": None if self.record is None else self.record.to_dict(),
        }


def record_visit_event(
    store: VisitLogStore,
    sample: SampleLike,
    *,
    ticket_id: int,
    user_id: int,
    event: VisitEvent | str,
    geocoder: ReverseGeocoder | None = None,
    config: ValidatorConfig | None = None,
    reject_jumps: bool = True,
    now_ms: int | None = None,
) -> CheckinOutcome:
    """Handle one onsite visit event for a technician.

    Invalid samples and (if ``reject_jumps``) unrealistic jumps from the technician's last
    logged position are not written. Geocoding failure does not block the write; it is
    reported in ``geocode_error``.

    Raises:
        ValueError: On bad ids or an unknown event.
        VisitLogError: If the visit log cannot be read or written.
    """

    cfg = config or DEFAULT_CONFIG
    event = VisitEvent(event)
    validation = validate_location(sample, cfg, now_ms=now_ms)
    if not validation.is_valid or validation.sample is None:
        return CheckinOutcome(status=CheckinStatus.INVALID, validation=validation)

    current = validation.sample
    quality = get_location_quality(current, cfg, now_ms=now_ms)

    jump: JumpResult | None = None
    previous = store.last_for_user(user_id)
    if previous is not None:
        jump = detect_location_jump(previous.to_sample(), current, config=cfg)
        if jump.is_unrealistic and reject_jumps:
            logger.warning(
                "check-in rejected for user=%s ticket=%s event=%s: %s",
                user_id,
                ticket_id,
                event.value,
                jump.reason,
            )
            return CheckinOutcome(
                status=CheckinStatus.REJECTED_JUMP,
                validation=validation,
                quality=quality,
                jump=jump,
            )

    geocode: ReverseGeocodeResult | None = None
    geocode_error: str | None = None
    if geocoder is not None:
        try:
            geocode = geocoder.reverse_geocode(current.latitude, current.longitude)
        except GeocodingError as exc:
            geocode_error = str(exc)
            logger.warning("reverse geocoding failed, recording without address: %s", exc)

    stored = sanitize_location(current, cfg)
    record = store.record(
        ticket_id,
        user_id,
        event,
        stored.latitude,
        stored.longitude,
        None if geocode is None else geocode.address,
        accuracy_m=stored.accuracy_m,
        sample_ms=stored.timestamp_ms,
    )
    return CheckinOutcome(
        status=CheckinStatus.RECORDED,
        validation=validation,
        quality=quality,
        jump=jump,
        geocode=geocode,
        geocode_error=geocode_error,
        record=record,
    )
