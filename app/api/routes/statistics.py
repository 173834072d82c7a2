# app/api/routes/statistics.py

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session, require_token
from app.core.errors import ErrorSeverity, StoreUnavailable, log_error
from app.crud.appointment import get_statistics
from app.schemas.appointment import Statistics

router = APIRouter(prefix="/estatisticas", tags=["estatisticas"], dependencies=[Depends(require_token)])


@router.get("", response_model=Statistics)
async def statistics(db: AsyncSession = Depends(get_session)):
    """Totals, paid/unpaid split, active days and mean duration for the last 30 days."""
    try:
        return Statistics(**await get_statistics(db))
    except SQLAlchemyError as e:
        log_error(e, {"endpoint": "GET /estatisticas"}, ErrorSeverity.MEDIUM)
        raise StoreUnavailable()
