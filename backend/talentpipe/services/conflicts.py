"""Interviewer double-booking detection.

Pure functions over booking windows: no I/O, no session, safe to call on
synthetic lists. Windows are half-open ``[start, start + duration)``, so
back-to-back slots that only touch do not conflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Protocol


class Booking(Protocol):
    scheduled_at: datetime
    duration: int


@dataclass(frozen=True)
class ConflictDecision:
    conflicting: Any | None = None

    @property
    def has_conflict(self) -> bool:
        return self.conflicting is not None


NO_CONFLICT = ConflictDecision()


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def booking_end(booking: Booking) -> datetime:
    return booking.scheduled_at + timedelta(minutes=booking.duration)


def find_conflict(existing: Iterable[Booking], start: datetime, duration_minutes: int) -> ConflictDecision:
    """Return the earliest-starting existing booking that overlaps the proposed window."""
    end = start + timedelta(minutes=duration_minutes)
    clashes = [item for item in existing if overlaps(start, end, item.scheduled_at, booking_end(item))]
    if not clashes:
        return NO_CONFLICT
    earliest = min(clashes, key=lambda item: (item.scheduled_at, getattr(item, "interview_id", 0) or 0))
    return ConflictDecision(conflicting=earliest)
