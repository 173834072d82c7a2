# app/main.py
from __future__ import annotations

# Load .env early so settings and os.getenv agree
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes.appointments import router as appointments_router
from app.api.routes.auth import router as auth_router
from app.api.routes.health import router as health_router
from app.api.routes.statistics import router as statistics_router
from app.core.config import Settings, get_settings
from app.core.context import AppContext
from app.core.errors import ApiError, ErrorSeverity, log_error
from app.core.logging import LoggingMiddleware, get_logger, setup_logging
from app.core.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from app.db.base import init_db

logger = get_logger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse(exc.to_body(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _validation_message(exc)}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # a known path with the wrong method is just another unknown route
        if exc.status_code in (404, 405):
            return JSONResponse({"error": "Route not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code,
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_error(exc, {"endpoint": request.url.path, "method": request.method}, ErrorSeverity.CRITICAL)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(
        debug=settings.is_development,
        max_log_length=settings.MAX_LOG_LENGTH,
        level=settings.LOG_LEVEL,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = AppContext.create(settings)
        app.state.context = ctx
        logger.info("startup", env=settings.APP_ENV, admin=settings.ADMIN_USERNAME,
                    pool_size=settings.DB_POOL_SIZE)

        if settings.AUTO_CREATE_TABLES:
            try:
                await init_db(ctx.engine)
                logger.info("database_initialized")
            except Exception as e:
                # Keep serving; /wake-up reports the store as down
                log_error(e, {"component": "init_db"}, ErrorSeverity.CRITICAL)

        try:
            yield
        finally:
            logger.info("shutdown")
            await ctx.close()

    app = FastAPI(
        title="Atendimentos API",
        description="Appointments with recurring series, filtering and statistics",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Added innermost first: the last one added runs first
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.RATE_LIMIT_MAX,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    app.middleware("http")(LoggingMiddleware(
        log_requests=settings.LOG_REQUESTS,
        slow_threshold=settings.SLOW_REQUEST_THRESHOLD,
    ))

    # -------- Routers --------
    app.include_router(auth_router)
    app.include_router(health_router)
    app.include_router(appointments_router)
    app.include_router(statistics_router)

    return app


app = create_app()
