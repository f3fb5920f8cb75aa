"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from jabuspark.api.auth import router as auth_router
from jabuspark.api.banks import router as banks_router
from jabuspark.api.me import router as me_router
from jabuspark.api.practice import router as practice_router
from jabuspark.api.progress import router as progress_router
from jabuspark.api.setup import router as setup_router
from jabuspark.core.config import Settings, get_settings
from jabuspark.core.database import build_engine, init_db, make_session_factory
from jabuspark.core.errors import ApiError

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid payload"
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    field = ".".join(loc) or "body"
    if first.get("type") == "missing":
        return f"Missing field: {field}"
    if first.get("type") == "json_invalid":
        return "Invalid JSON body"
    return f"Invalid field: {field}: {first.get('msg', 'invalid value')}"


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME}...")
        if settings.AUTO_CREATE_TABLES:
            init_db(engine)
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")
        engine.dispose()

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)

    origins = settings.cors_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        max_age=86400,
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
            return _error(exc.status_code, ApiError.default_message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(422, _validation_message(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    prefix = settings.API_PREFIX.rstrip("/")
    app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(me_router, prefix=f"{prefix}/me", tags=["me"])
    app.include_router(banks_router, prefix=f"{prefix}/banks", tags=["banks"])
    app.include_router(practice_router, prefix=f"{prefix}/practice", tags=["practice"])
    app.include_router(progress_router, prefix=prefix, tags=["progress"])
    app.include_router(setup_router, prefix=f"{prefix}/setup", tags=["setup"])

    @app.get(f"{prefix}/health", tags=["health"])
    def health():
        return {"success": True, "data": {"status": "ok"}}

    return app


configure_logging(get_settings())
app = create_app()
