"""Onsite visit log persisted as an append-only CSV file."""

from __future__ import annotations

import csv
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

from location_guard.models import VisitEvent, VisitLogRecord
from location_guard.timeutils import epoch_ms_from_dt

logger = logging.getLogger(__name__)

FIELDNAMES = [
    "id",
    "ticket_id",
    "user_id",
    "event",
    "latitude",
    "longitude",
    "address",
    "accuracy_m",
    "sample_epoch_ms",
    "created_at",
]


class VisitLogError(Exception):
    """The visit log could not be read or written."""


def _positive_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return value


def _row_to_record(row: dict[str, str]) -> VisitLogRecord:
    accuracy = row.get("accuracy_m") or ""
    return VisitLogRecord(
        record_id=int(row["id"]),
        ticket_id=int(row["ticket_id"]),
        user_id=int(row["user_id"]),
        event=VisitEvent(row["event"]),
        latitude=float(row["latitude"]),
        longitude=float(row["longitude"]),
        address=row.get("address") or None,
        accuracy_m=float(accuracy) if accuracy else None,
        sample_ms=int(row["sample_epoch_ms"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class VisitLogStore:
    """CSV-backed store of onsite visit events (one row per event).

    Single writer only: ``record`` derives the next id by scanning the file and takes no
    lock, so concurrent writers to the same path can hand out duplicate ids.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def iter_records(self) -> Iterator[VisitLogRecord]:
        """Yield all records in write order.

        Raises:
            VisitLogError: If the file cannot be read or holds a malformed row.
        """

        if not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8", newline="") as f:
                for line_no, row in enumerate(csv.DictReader(f), start=2):
                    try:
                        yield _row_to_record(row)
                    except (KeyError, ValueError, TypeError) as exc:
                        raise VisitLogError(f"{self._path}:{line_no}: malformed visit log row") from exc
        except OSError as exc:
            raise VisitLogError(f"cannot read visit log {self._path}: {exc}") from exc

    def last_for_user(self, user_id: int) -> VisitLogRecord | None:
        """Most recent event written for a technician, if any."""

        last: VisitLogRecord | None = None
        for rec in self.iter_records():
            if rec.user_id == user_id:
                last = rec
        return last

    def last_for_ticket(self, ticket_id: int, event: VisitEvent | None = None) -> VisitLogRecord | None:
        """Most recent event for a ticket, optionally of one kind."""

        last: VisitLogRecord | None = None
        for rec in self.iter_records():
            if rec.ticket_id == ticket_id and (event is None or rec.event == event):
                last = rec
        return last

    def record(
        self,
        ticket_id: int,
        user_id: int,
        event: VisitEvent | str,
        latitude: float,
        longitude: float,
        address: str | None = None,
        *,
        accuracy_m: float | None = None,
        sample_ms: int | None = None,
        created_at: datetime | None = None,
    ) -> VisitLogRecord:
        """Append one event and return the persisted record.

        Raises:
            ValueError: On bad ids or an unknown event.
            VisitLogError: If the log cannot be written.
        """

        ticket_id = _positive_int("ticket_id", ticket_id)
        user_id = _positive_int("user_id", user_id)
        try:
            event = VisitEvent(event)
        except ValueError as exc:
            raise ValueError(f"unknown visit event: {event!r}") from exc

        created = created_at or datetime.now(UTC)
        next_id = 1
        for rec in self.iter_records():
            next_id = max(next_id, rec.record_id + 1)

        record = VisitLogRecord(
            record_id=next_id,
            ticket_id=ticket_id,
            user_id=user_id,
            event=event,
            latitude=float(latitude),
            longitude=float(longitude),
            address=address,
            accuracy_m=accuracy_m,
            sample_ms=epoch_ms_from_dt(created) if sample_ms is None else int(sample_ms),
            created_at=created,
        )

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self._path.exists() or self._path.stat().st_size == 0
            with self._path.open("a", encoding="utf-8", newline="") as f:
                w = csv.DictWriter(f, fieldnames=FIELDNAMES)
                if write_header:
                    w.writeheader()
                w.writerow(
                    {
                        "id": record.record_id,
                        "ticket_id": record.ticket_id,
                        "user_id": record.user_id,
                        "event": record.event.value,
                        "latitude": f"{record.latitude:.7f}",
                        "longitude": f"{record.longitude:.7f}",
                        "address": record.address or "",
                        "accuracy_m": "" if record.accuracy_m is None else record.accuracy_m,
                        "sample_epoch_ms": record.sample_ms,
                        "created_at": record.created_at.isoformat(),
                    }
                )
        except OSError as exc:
            raise VisitLogError(f"cannot write visit log {self._path}: {exc}") from exc

        logger.info(
            "visit event %s recorded: ticket=%s user=%s id=%s",
            record.event.value,
            record.ticket_id,
            record.user_id,
            record.record_id,
        )
        return record
