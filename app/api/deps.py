# app/api/deps.py

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import AppContext
from app.core.errors import AuthenticationFailed
from app.core.security import decode_access_token
from app.db.session import session_scope


def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_session(ctx: AppContext = Depends(get_context)) -> AsyncIterator[AsyncSession]:
    """One session per request; its connection goes back to the pool however the request ends."""
    async for session in session_scope(ctx.sessionmaker):
        yield session


def require_token(
    request: Request,
    authorization: Optional[str] = Header(None),
    ctx: AppContext = Depends(get_context),
) -> dict:
    """
    Require a valid ``Authorization: Bearer <token>`` header.

    Returns the decoded claims and keeps them on ``request.state.user``.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationFailed("Token not provided")

    claims = decode_access_token(
        token.strip(), ctx.settings.JWT_SECRET, algorithm=ctx.settings.JWT_ALGORITHM
    )
    request.state.user = claims
    return claims
