# app/crud/appointment.py

from __future__ import annotations

import math
import operator
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.appointment import Appointment
from app.services.recurrence import Occurrence
from app.utils.dates import parse_datetime

STATS_WINDOW = timedelta(days=30)

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}

# OFFSET is bound as a signed 64-bit integer
MAX_OFFSET = 2 ** 63 - 1


@dataclass(frozen=True)
class AppointmentFilters:
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    paid: Optional[bool] = None


@dataclass(frozen=True)
class ListParams:
    filters: AppointmentFilters
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _positive_int(value: Optional[str], default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def parse_list_params(
    *,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    paid: Optional[str] = None,
    default_limit: int = 50,
    max_limit: int = 500,
) -> ListParams:
    """Lenient parsing of list query parameters: anything malformed is ignored."""
    limit = min(_positive_int(limit, default_limit), max_limit)
    page_number = _positive_int(page, 1)
    if (page_number - 1) * limit > MAX_OFFSET:
        page_number = 1
    return ListParams(
        filters=AppointmentFilters(
            start_date=parse_datetime(start_date),
            end_date=parse_datetime(end_date),
            paid=_parse_bool(paid),
        ),
        page=page_number,
        limit=limit,
    )


# (parameter name, column, comparison) in the order the clauses are ANDed
_FILTER_PREDICATES = (
    ("start_date", Appointment.start, operator.ge),
    ("end_date", Appointment.start, operator.le),
    ("paid", Appointment.paid, operator.eq),
)


def build_filter_clauses(filters: AppointmentFilters) -> list:
    """Predicates for the filters that were supplied; every value is a bound parameter."""
    clauses = []
    for name, column, compare in _FILTER_PREDICATES:
        value = getattr(filters, name)
        if value is None:
            continue
        clauses.append(compare(column, sa.bindparam(name, value, type_=column.type)))
    return clauses


def build_list_statements(params: ListParams) -> Tuple[sa.Select, sa.Select]:
    """Count and page statements sharing one WHERE clause."""
    clauses = build_filter_clauses(params.filters)

    count_stmt = sa.select(sa.func.count()).select_from(Appointment).where(*clauses)
    data_stmt = (
        sa.select(Appointment)
        .where(*clauses)
        .order_by(Appointment.start.desc(), Appointment.id.desc())
        .limit(params.limit)
        .offset(params.offset)
    )
    return count_stmt, data_stmt


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


@asynccontextmanager
async def _write(db: AsyncSession):
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def list_appointments(db: AsyncSession, params: ListParams) -> Tuple[Sequence[Appointment], int]:
    count_stmt, data_stmt = build_list_statements(params)
    total = await db.scalar(count_stmt)
    rows = (await db.scalars(data_stmt)).all()
    return rows, int(total or 0)


async def get_appointment(db: AsyncSession, appointment_id: int) -> Optional[Appointment]:
    return await db.get(Appointment, appointment_id)


async def create_appointment(
    db: AsyncSession,
    *,
    title: str,
    start: datetime,
    end: Optional[datetime] = None,
    paid: bool = False,
) -> Appointment:
    appt = Appointment(title=title, start=start, end=end, paid=paid)
    async with _write(db):
        db.add(appt)
    # load server-side defaults (created_at, updated_at)
    await db.refresh(appt)
    return appt


async def create_series(db: AsyncSession, occurrences: Sequence[Occurrence]) -> list[Appointment]:
    """Insert every occurrence of a series in one transaction."""
    rows = [Appointment(**o.as_row()) for o in occurrences]
    async with _write(db):
        db.add_all(rows)
        await db.flush()
    return rows


async def update_appointment(
    db: AsyncSession,
    appointment_id: int,
    *,
    title: str,
    start: datetime,
    end: Optional[datetime] = None,
    paid: bool = False,
) -> int:
    """Returns the number of updated rows (0 when the id doesn't exist)."""
    stmt = (
        sa.update(Appointment)
        .where(Appointment.id == appointment_id)
        .values(title=title, start=start, end=end, paid=paid, updated_at=sa.func.now())
        .execution_options(synchronize_session=False)
    )
    async with _write(db):
        result = await db.execute(stmt)
    return result.rowcount


async def delete_appointment(db: AsyncSession, appointment_id: int) -> int:
    stmt = (
        sa.delete(Appointment)
        .where(Appointment.id == appointment_id)
        .execution_options(synchronize_session=False)
    )
    async with _write(db):
        result = await db.execute(stmt)
    return result.rowcount


async def delete_series_from(db: AsyncSession, recurrence_id: uuid.UUID, appointment_id: int) -> Optional[int]:
    """
    Delete the occurrences of a series starting at or after the given appointment.

    Returns None when ``appointment_id`` doesn't exist, else the deleted row count.
    """
    async with _write(db):
        target_start = await db.scalar(
            sa.select(Appointment.start).where(Appointment.id == appointment_id)
        )
        if target_start is None:
            return None
        result = await db.execute(
            sa.delete(Appointment)
            .where(Appointment.recurrence_id == recurrence_id, Appointment.start >= target_start)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount


def _start_day(dialect_name: str):
    # SQLite stores naive UTC text; Postgres would use the session TimeZone
    if dialect_name == "sqlite":
        return sa.func.date(Appointment.start)
    return sa.func.date(sa.func.timezone("UTC", Appointment.start))


def _duration_hours(dialect_name: str):
    if dialect_name == "sqlite":
        return (sa.func.julianday(Appointment.end) - sa.func.julianday(Appointment.start)) * 24
    return sa.extract("epoch", Appointment.end - Appointment.start) / 3600


def build_statistics_statement(dialect_name: str, since: datetime) -> sa.Select:
    """Aggregate row for appointments starting at or after ``since``; days are UTC days."""
    return sa.select(
        sa.func.count().label("total"),
        sa.func.sum(sa.case((Appointment.paid, 1), else_=0)).label("pagas"),
        sa.func.sum(sa.case((sa.not_(Appointment.paid), 1), else_=0)).label("nao_pagas"),
        sa.func.count(sa.distinct(_start_day(dialect_name))).label("dias_com_atendimento"),
        sa.func.avg(_duration_hours(dialect_name)).label("duracao_media_horas"),
    ).where(Appointment.start >= sa.bindparam("since", since, type_=Appointment.start.type))


async def get_statistics(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Counts and average duration over the trailing 30 days."""
    since = (now or datetime.now(timezone.utc)) - STATS_WINDOW
    stmt = build_statistics_statement(db.get_bind().dialect.name, since)

    row = (await db.execute(stmt)).one()
    return {
        "total": int(row.total or 0),
        "pagas": int(row.pagas or 0),
        "nao_pagas": int(row.nao_pagas or 0),
        "dias_com_atendimento": int(row.dias_com_atendimento or 0),
        "duracao_media_horas": float(row.duracao_media_horas) if row.duracao_media_horas is not None else None,
    }


async def ping(db: AsyncSession):
    await db.execute(sa.text("SELECT 1"))
