"""CSV input for recorded technician tracks."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

logger = logging.getLogger(__name__)

# canonical column -> accepted aliases (first match wins)
_COLUMNS: dict[str, tuple[str, ...]] = {
    "timestamp": ("timestamp", "geoTime"),
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lon", "lng"),
    "accuracy": ("accuracy", "horizontalAccuracy"),
    "source": ("source",),
}


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    fieldnames: Sequence[str]
    rows_with_bad_numbers: int


def _pick(row: dict[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = row.get(name)
        if value is not None and value.strip() != "":
            return value.strip()
    return None


def _number(text: str | None, kind: type) -> Any:
    """Parse a number, keeping the original text when it is not one."""

    if text is None:
        return None
    try:
        return kind(text)
    except ValueError:
        try:
            return kind(float(text)) if kind is int else text
        except (ValueError, OverflowError):
            return text


def parse_track_row(row: dict[str, str]) -> dict[str, Any]:
    """Turn one CSV row into the validator's input mapping.

    Numbers that do not parse are kept as text so validation can report them.
    A negative accuracy is the exporters' "unknown" sentinel and becomes None.
    """

    accuracy = _number(_pick(row, _COLUMNS["accuracy"]), float)
    if isinstance(accuracy, float) and accuracy < 0:
        accuracy = None
    return {
        "timestamp": _number(_pick(row, _COLUMNS["timestamp"]), int),
        "latitude": _number(_pick(row, _COLUMNS["latitude"]), float),
        "longitude": _number(_pick(row, _COLUMNS["longitude"]), float),
        "accuracy": accuracy,
        "source": _pick(row, _COLUMNS["source"]),
    }


def load_track_samples(csv_path: str | Path) -> tuple[list[dict[str, Any]], CsvSummary]:
    """Load all rows of a track CSV as raw sample mappings (file order).

    Raises:
        KeyError: If the file has no latitude/longitude/timestamp column at all.
    """

    p = Path(csv_path)
    samples: list[dict[str, Any]] = []
    bad = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames: Sequence[str] = reader.fieldnames or ()
        for column in ("timestamp", "latitude", "longitude"):
            if not any(alias in fieldnames for alias in _COLUMNS[column]):
                raise KeyError(f"track CSV is missing a {column!r} column; found: {list(fieldnames)}")
        for row in reader:
            sample = parse_track_row(row)
            if any(isinstance(sample[k], str) for k in ("timestamp", "latitude", "longitude", "accuracy")):
                bad += 1
            samples.append(sample)

    summary = CsvSummary(rows_total=len(samples), fieldnames=fieldnames, rows_with_bad_numbers=bad)
    if bad > 0:
        logger.warning("%s rows in %s have unparseable numbers", bad, p)
    return samples, summary
