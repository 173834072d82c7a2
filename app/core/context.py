# app/core/context.py

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.config import Settings
from app.core.security import AdminCredentials
from app.db.session import build_engine, build_sessionmaker


@dataclass
class AppContext:
    """Everything a request handler needs that lives for the whole process.

    Built once in the app lifespan and kept on ``app.state.context``.
    """

    settings: Settings
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]
    admin: AdminCredentials

    @classmethod
    def create(cls, settings: Settings) -> "AppContext":
        engine = build_engine(settings)
        return cls(
            settings=settings,
            engine=engine,
            sessionmaker=build_sessionmaker(engine),
            admin=AdminCredentials.from_plain(
                settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD, rounds=settings.SALT_ROUNDS
            ),
        )

    async def close(self):
        await self.engine.dispose()
