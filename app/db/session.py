# app/db/session.py

import os
import signal
import time
from typing import AsyncIterator, Callable, Optional

from sqlalchemy import event, exc
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import Settings
from app.core.errors import ErrorSeverity, log_error


# Declarative Base: all models inherit from this
class Base(DeclarativeBase):
    pass


def _terminate():
    # uvicorn turns SIGTERM into a lifespan shutdown, then exits
    os.kill(os.getpid(), signal.SIGTERM)


class IdleExpiry:
    """Discard pooled connections that sat idle longer than ``timeout`` seconds."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self.clock = clock

    def on_checkin(self, dbapi_connection, connection_record):
        connection_record.info["checked_in_at"] = self.clock()

    def on_checkout(self, dbapi_connection, connection_record, connection_proxy):
        checked_in_at = connection_record.info.pop("checked_in_at", None)
        if checked_in_at is not None and self.clock() - checked_in_at > self.timeout:
            # the pool closes this connection and opens a fresh one
            raise exc.DisconnectionError("idle connection expired")

    def install(self, engine: AsyncEngine):
        event.listen(engine.sync_engine.pool, "checkin", self.on_checkin)
        event.listen(engine.sync_engine.pool, "checkout", self.on_checkout)


class PoolFailFast:
    """
    Stop the process when a pooled idle connection turns out to be broken.

    The pre-ping on checkout is the first thing to touch a connection that sat
    in the pool, so a disconnect seen there means the pool state can't be
    trusted any more.
    """

    def __init__(self, on_fatal: Optional[Callable[[], None]] = None):
        self.on_fatal = on_fatal or _terminate

    def __call__(self, context):
        if not (context.is_pre_ping and context.is_disconnect):
            return
        log_error(context.original_exception, {"component": "db_pool", "endpoint": "pool"},
                  ErrorSeverity.CRITICAL)
        self.on_fatal()

    def install(self, engine: AsyncEngine):
        event.listen(engine.sync_engine, "handle_error", self)


def build_engine(settings: Settings, on_pool_fatal: Optional[Callable[[], None]] = None) -> AsyncEngine:
    """One engine per app: async, bounded pool, pre-pinged connections."""
    kwargs = {"pool_pre_ping": True}
    if not settings.is_sqlite:
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,  # wait this long for a free connection
            pool_recycle=settings.DB_POOL_RECYCLE,  # age limit, idleness is IdleExpiry's job
        )
        if settings.use_ssl:
            # encrypted, certificate not verified (managed Postgres)
            kwargs["connect_args"] = {"ssl": "require"}
    engine = create_async_engine(settings.async_db_uri, **kwargs)

    IdleExpiry(settings.DB_IDLE_TIMEOUT).install(engine)
    if settings.DB_FAIL_FAST:
        PoolFailFast(on_pool_fatal).install(engine)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Short-lived sessions per request; keep objects usable after commit
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def session_scope(factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Yield a session and close it (returning its connection) on every exit path."""
    async with factory() as session:
        yield session
