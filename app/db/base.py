# app/db/base.py

"""
Imports all the ORM models so Alembic and create_all can discover them.
"""
from sqlalchemy.ext.asyncio import AsyncEngine

from app.db.models.appointment import Appointment  # noqa: F401
from app.db.session import Base


async def init_db(engine: AsyncEngine):
    """Create tables and indexes that don't exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
