# app/api/routes/auth.py

from typing import Optional

from fastapi import APIRouter, Depends

from app.api.deps import get_context
from app.core.context import AppContext
from app.core.errors import AuthenticationFailed, ValidationFailed
from app.core.logging import get_logger
from app.core.security import create_access_token
from app.schemas.auth import LoginRequest, Token

router = APIRouter(tags=["auth"])
logger = get_logger(__name__)


@router.post("/login", response_model=Token)
async def login(payload: Optional[LoginRequest] = None, ctx: AppContext = Depends(get_context)):
    payload = payload or LoginRequest()
    if not payload.username or not payload.password:
        raise ValidationFailed("Username and password are required", key="message")

    if not ctx.admin.check(payload.username, payload.password):
        logger.warning("login_failed", username=payload.username[:50])
        raise AuthenticationFailed("Invalid username or password")

    token = create_access_token(
        payload.username,
        ctx.settings.JWT_SECRET,
        ctx.settings.token_lifetime,
        algorithm=ctx.settings.JWT_ALGORITHM,
    )
    logger.info("login_succeeded", username=payload.username)
    return Token(token=token)
