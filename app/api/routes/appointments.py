# app/api/routes/appointments.py

from __future__ import annotations

import uuid
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_context, get_session, require_token
from app.core.context import AppContext
from app.core.errors import ErrorSeverity, NotFound, StoreUnavailable, ValidationFailed, log_error
from app.core.logging import get_logger
from app.crud.appointment import (
    create_appointment,
    create_series,
    delete_appointment,
    delete_series_from,
    list_appointments,
    page_count,
    parse_list_params,
    update_appointment,
)
from app.schemas.appointment import (
    AppointmentCreate,
    AppointmentCreated,
    AppointmentOut,
    AppointmentPage,
    AppointmentUpdate,
    Deleted,
    Pagination,
    SeriesCreated,
    Updated,
)
from app.services.recurrence import (
    SeriesOutOfRange,
    UnsupportedRepeatPolicy,
    expand_recurrence,
    is_recurring,
)

router = APIRouter(prefix="/atendimentos", tags=["atendimentos"], dependencies=[Depends(require_token)])
logger = get_logger(__name__)

REQUIRED_FIELDS_MESSAGE = "Title and start fields are required"


def _store_failure(e: Exception, endpoint: str) -> StoreUnavailable:
    log_error(e, {"endpoint": endpoint}, ErrorSeverity.MEDIUM)
    return StoreUnavailable()


@router.get("", response_model=AppointmentPage)
async def get_appointments(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="Lower bound on start (ISO8601)"),
    end_date: Optional[str] = Query(None, description="Upper bound on start (ISO8601)"),
    paid: Optional[str] = Query(None, description="true/false"),
    db: AsyncSession = Depends(get_session),
    ctx: AppContext = Depends(get_context),
):
    # Query params are strings so malformed values are dropped instead of rejected
    params = parse_list_params(
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        paid=paid,
        default_limit=ctx.settings.DEFAULT_PAGE_SIZE,
        max_limit=ctx.settings.MAX_PAGE_SIZE,
    )
    try:
        rows, total = await list_appointments(db, params)
    except SQLAlchemyError as e:
        raise _store_failure(e, "GET /atendimentos")

    return AppointmentPage(
        data=[AppointmentOut.model_validate(r) for r in rows],
        pagination=Pagination(
            page=params.page,
            limit=params.limit,
            total=total,
            pages=page_count(total, params.limit),
        ),
    )


@router.post("", response_model=Union[SeriesCreated, AppointmentCreated])
async def post_appointment(
    payload: AppointmentCreate,
    db: AsyncSession = Depends(get_session),
    ctx: AppContext = Depends(get_context),
):
    if not payload.has_required:
        raise ValidationFailed(REQUIRED_FIELDS_MESSAGE)

    if is_recurring(payload.repeat, payload.times):
        if payload.times > ctx.settings.MAX_OCCURRENCES:
            raise ValidationFailed(f"times must be at most {ctx.settings.MAX_OCCURRENCES}")
        try:
            occurrences = expand_recurrence(
                payload.title, payload.start, payload.end,
                payload.repeat, payload.times, payload.paid,
            )
        except (UnsupportedRepeatPolicy, SeriesOutOfRange) as e:
            raise ValidationFailed(str(e))

        try:
            rows = await create_series(db, occurrences)
        except SQLAlchemyError as e:
            raise _store_failure(e, "POST /atendimentos series")

        recurrence_id = occurrences[0].recurrence_id
        logger.info("series_created", recurrence_id=str(recurrence_id), count=len(rows),
                    repeat=payload.repeat)
        return SeriesCreated(
            message=f"Created {len(rows)} recurring events",
            recurrenceId=recurrence_id,
            count=len(rows),
        )

    try:
        appt = await create_appointment(
            db, title=payload.title, start=payload.start, end=payload.end, paid=payload.paid
        )
    except SQLAlchemyError as e:
        raise _store_failure(e, "POST /atendimentos")

    logger.info("appointment_created", appointment_id=appt.id)
    return AppointmentCreated(id=appt.id)


@router.put("/{appointment_id}", response_model=Updated)
async def put_appointment(
    appointment_id: int,
    payload: AppointmentUpdate,
    db: AsyncSession = Depends(get_session),
):
    if not payload.has_required:
        raise ValidationFailed(REQUIRED_FIELDS_MESSAGE)

    try:
        updated = await update_appointment(
            db, appointment_id,
            title=payload.title, start=payload.start, end=payload.end, paid=payload.paid,
        )
    except SQLAlchemyError as e:
        raise _store_failure(e, "PUT /atendimentos/{id}")

    if updated == 0:
        raise NotFound()
    logger.info("appointment_updated", appointment_id=appointment_id)
    return Updated(updated=updated)


@router.delete("/{appointment_id}", response_model=Deleted)
async def remove_appointment(appointment_id: int, db: AsyncSession = Depends(get_session)):
    try:
        deleted = await delete_appointment(db, appointment_id)
    except SQLAlchemyError as e:
        raise _store_failure(e, "DELETE /atendimentos/{id}")

    if deleted == 0:
        raise NotFound()
    logger.info("appointment_deleted", appointment_id=appointment_id)
    return Deleted(deleted=deleted)


@router.delete("/recurrence/{recurrence_id}/from/{appointment_id}", response_model=Deleted)
async def remove_series_from(
    recurrence_id: uuid.UUID,
    appointment_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Delete this occurrence and every later one of the same series."""
    try:
        deleted = await delete_series_from(db, recurrence_id, appointment_id)
    except SQLAlchemyError as e:
        raise _store_failure(e, "DELETE /atendimentos/recurrence")

    if deleted is None:
        raise NotFound()
    logger.info("series_deleted", recurrence_id=str(recurrence_id),
                from_appointment=appointment_id, deleted=deleted)
    return Deleted(deleted=deleted)
