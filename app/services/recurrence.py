# app/services/recurrence.py

"""
Expansion of a recurring-create request into concrete occurrences.

Every occurrence of one series shares a freshly generated recurrence id, the
title, the paid flag and the duration; only start/end move by one period per
step. Arithmetic is done on UTC datetimes with a fixed ``timedelta``, so a
one-hour appointment stays exactly one hour long across DST changes.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional


class UnsupportedRepeatPolicy(ValueError):
    pass


class SeriesOutOfRange(ValueError):
    pass


class RepeatPolicy(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def period(self) -> timedelta:
        return timedelta(days=1) if self is RepeatPolicy.DAILY else timedelta(weeks=1)

    @classmethod
    def parse(cls, value: str) -> "RepeatPolicy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(repr(p.value) for p in cls)
            raise UnsupportedRepeatPolicy(f"Unsupported repeat value {value!r}; expected one of {allowed}")


@dataclass(frozen=True)
class Occurrence:
    title: str
    start: datetime
    end: Optional[datetime]
    recurrence_id: uuid.UUID
    paid: bool = False

    def as_row(self) -> dict:
        return {
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "recurrence_id": self.recurrence_id,
            "paid": self.paid,
        }


def is_recurring(repeat: Optional[str], times: Optional[int]) -> bool:
    """A create request is recurring only with a repeat policy and more than one occurrence."""
    return bool(repeat and repeat.strip()) and times is not None and times > 1


def expand_recurrence(
    title: str,
    start: datetime,
    end: Optional[datetime],
    repeat: str,
    times: int,
    paid: bool = False,
    *,
    recurrence_id: Optional[uuid.UUID] = None,
) -> List[Occurrence]:
    """Return ``times`` occurrences, the first one at ``start``/``end`` verbatim."""
    if times < 1:
        raise ValueError("times must be at least 1")

    period = RepeatPolicy.parse(repeat).period
    duration = end - start if end is not None else None
    series_id = recurrence_id or uuid.uuid4()

    occurrences = []
    try:
        for i in range(times):
            s = start + period * i
            occurrences.append(Occurrence(
                title=title,
                start=s,
                end=s + duration if duration is not None else None,
                recurrence_id=series_id,
                paid=paid,
            ))
    except OverflowError:
        raise SeriesOutOfRange(f"Series of {times} occurrences runs past year 9999")
    return occurrences
