# app/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool

from app.api.deps import get_context, get_session
from app.core.context import AppContext
from app.core.errors import ErrorSeverity, log_error
from app.crud.appointment import ping
from app.schemas.health import WakeUp

router = APIRouter(tags=["health"])


def pool_stats(pool) -> tuple[int, int]:
    """(open connections, idle connections); zeros for pools that don't count."""
    if isinstance(pool, QueuePool):
        return pool.checkedin() + pool.checkedout(), pool.checkedin()
    return 0, 0


@router.get("/wake-up", response_model=WakeUp)
async def wake_up(ctx: AppContext = Depends(get_context), db=Depends(get_session)):
    try:
        await ping(db)
    except SQLAlchemyError as e:
        log_error(e, {"endpoint": "GET /wake-up"}, ErrorSeverity.MEDIUM)
        return JSONResponse({"error": "Database not responding"}, status_code=500)

    size, idle = pool_stats(ctx.engine.pool)
    return WakeUp(time=datetime.now(timezone.utc), poolSize=size, idleCount=idle)
