"""FormRelay: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog must run before the other formrelay imports:
# structlog caches the processor chain on first use.
from formrelay.core.config import get_settings as _get_settings_early
from formrelay.core.logging import configure_structlog

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog  # noqa: E402
from fastapi import FastAPI, Request  # noqa: E402
from fastapi.encoders import jsonable_encoder  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from starlette.exceptions import HTTPException  # noqa: E402

from formrelay.api.routes import api_router  # noqa: E402
from formrelay.core.config import get_settings  # noqa: E402
from formrelay.core.exceptions import FormRelayError  # noqa: E402
from formrelay.db import close_db, init_db  # noqa: E402
from formrelay.middleware.correlation import get_correlation_id, setup_correlation_middleware  # noqa: E402

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so /api/health returns 503 while connections drain
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    yield

    logger.info("shutdown_begin")
    await close_db()
    logger.info("shutdown_complete")


HTTP_ERROR_CODES = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def _request_context(request: Request) -> dict:
    return {
        "debug_id": str(uuid.uuid4()),
        "correlation_id": get_correlation_id(),
        "path": request.url.path,
        "method": request.method,
        "user_id": getattr(request.state, "user_id", None),
    }


def _error_body(code: str, message: str, debug_id: str, details: dict | None = None) -> dict:
    return {"code": code, "message": message, "details": details or {}, "debug_id": debug_id}


async def formrelay_exception_handler(request: Request, exc: FormRelayError) -> JSONResponse:
    """Render domain errors as ``{code, message, details, debug_id}``."""
    context = _request_context(request)
    log = logger.error if exc.status_code >= 500 else logger.info
    log("domain_error", code=exc.code, status_code=exc.status_code, message=exc.message, **context)
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "debug_id": context["debug_id"]},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Auth failures and unknown routes; ``detail`` is kept alongside the structured fields."""
    context = _request_context(request)
    logger.info("http_exception", status_code=exc.status_code, detail=exc.detail, **context)
    body = _error_body(
        HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        str(exc.detail),
        context["debug_id"],
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={**body, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    context = _request_context(request)
    errors = jsonable_encoder(exc.errors())
    logger.info("request_validation_failed", error_count=len(errors), **context)
    return JSONResponse(
        status_code=422,
        content=_error_body("validation_error", "Request validation failed", context["debug_id"], {"errors": errors}),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors: full traceback in the logs, generic 500 to the client."""
    context = _request_context(request)
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
        **context,
    )
    return JSONResponse(
        status_code=500,
        content=_error_body("internal_error", "Internal server error", context["debug_id"]),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(FormRelayError)(formrelay_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant form backend",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, *settings.clerk_allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last so it runs first on incoming requests
    setup_correlation_middleware(app)

    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "formrelay.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
