"""Audit a recorded track: validate every fix and flag jumps, then export a report."""

from __future__ import annotations

import csv
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from location_guard.config import DEFAULT_CONFIG, ValidatorConfig
from location_guard.models import JumpResult, QualityAssessment, QualityTier, ValidationResult
from location_guard.timeutils import DeltaStats, delta_stats, dt_from_epoch_ms
from location_guard.validation import detect_location_jump, get_location_quality, validate_location


@dataclass(frozen=True, slots=True)
class AuditRow:
    """Audit outcome for one input row.

    ``jump`` compares against the previous *valid* row; it is None for the first valid row
    and for invalid rows.
    """

    row_no: int
    raw: Mapping[str, Any]
    validation: ValidationResult
    quality: QualityAssessment | None
    jump: JumpResult | None


@dataclass(frozen=True, slots=True)
class AuditSummary:
    """Counts over an audited track."""

    rows: int
    valid: int
    invalid: int
    with_warnings: int
    unrealistic_jumps: int
    tiers: dict[str, int] = field(default_factory=dict)
    sampling: DeltaStats | None = None


def audit_samples(
    raw_samples: Iterable[Mapping[str, Any]],
    config: ValidatorConfig | None = None,
    *,
    now_ms: int | None = None,
) -> list[AuditRow]:
    """Validate rows in order and run jump detection between consecutive valid rows."""

    cfg = config or DEFAULT_CONFIG
    rows: list[AuditRow] = []
    prev = None
    for i, raw in enumerate(raw_samples, start=1):
        validation = validate_location(raw, cfg, now_ms=now_ms)
        if validation.sample is None:
            rows.append(AuditRow(row_no=i, raw=raw, validation=validation, quality=None, jump=None))
            continue
        cur = validation.sample
        jump = detect_location_jump(prev, cur, config=cfg) if prev is not None else None
        quality = get_location_quality(cur, cfg, now_ms=now_ms)
        rows.append(AuditRow(row_no=i, raw=raw, validation=validation, quality=quality, jump=jump))
        prev = cur
    return rows


def summarize_audit(rows: Sequence[AuditRow]) -> AuditSummary:
    tiers: Counter[str] = Counter()
    valid_times: list[int] = []
    with_warnings = 0
    jumps = 0
    for r in rows:
        if r.validation.warnings:
            with_warnings += 1
        if r.jump is not None and r.jump.is_unrealistic:
            jumps += 1
        if r.quality is not None:
            tiers[r.quality.tier.value] += 1
        if r.validation.sample is not None:
            valid_times.append(r.validation.sample.timestamp_ms)
    valid = len(valid_times)
    return AuditSummary(
        rows=len(rows),
        valid=valid,
        invalid=len(rows) - valid,
        with_warnings=with_warnings,
        unrealistic_jumps=jumps,
        tiers={t.value: tiers[t.value] for t in QualityTier if tiers[t.value]},
        sampling=delta_stats(sorted(valid_times)),
    )


def audit_row_dict(r: AuditRow, tz_name: str) -> dict[str, Any]:
    """Flatten one audit row for CSV/table output."""

    sample = r.validation.sample
    return {
        "row": r.row_no,
        "time_local": dt_from_epoch_ms(sample.timestamp_ms, tz_name).isoformat(sep=" ") if sample else "",
        "timestamp": r.raw.get("timestamp", ""),
        "latitude": r.raw.get("latitude", ""),
        "longitude": r.raw.get("longitude", ""),
        "accuracy_m": "" if r.raw.get("accuracy") is None else r.raw.get("accuracy"),
        "source": sample.source if sample else (r.raw.get("source") or ""),
        "valid": int(r.validation.is_valid),
        "errors": " | ".join(r.validation.errors),
        "warnings": " | ".join(r.validation.warnings),
        "quality": r.quality.tier.value if r.quality else "",
        "quality_score": r.quality.score if r.quality else "",
        "jump_distance_m": f"{r.jump.distance_m:.1f}" if r.jump else "",
        "jump_speed_mps": f"{r.jump.speed_mps:.2f}" if r.jump else "",
        "jump_elapsed_s": f"{r.jump.time_elapsed_s:.1f}" if r.jump else "",
        "unrealistic_jump": int(bool(r.jump and r.jump.is_unrealistic)),
        "jump_reason": (r.jump.reason or "") if r.jump else "",
    }


AUDIT_FIELDNAMES = [
    "row",
    "time_local",
    "timestamp",
    "latitude",
    "longitude",
    "accuracy_m",
    "source",
    "valid",
    "errors",
    "warnings",
    "quality",
    "quality_score",
    "jump_distance_m",
    "jump_speed_mps",
    "jump_elapsed_s",
    "unrealistic_jump",
    "jump_reason",
]


def write_audit_csv(rows: Iterable[AuditRow], out_path: str | Path, tz_name: str) -> None:
    """Write the audit report, one line per input row."""

    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=AUDIT_FIELDNAMES)
        w.writeheader()
        for r in rows:
            w.writerow(audit_row_dict(r, tz_name))
