"""
CardLink Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn cardlink.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌─────────────┐ ┌──────────┐ ┌─────────┐ ┌───────────┐  │
    │  │ Rate Limit  │→│ Req ID   │→│ Logging │→│ GZip/CORS │  │
    │  └─────────────┘ └──────────┘ └─────────┘ └───────────┘  │
    │                                                          │
    │  Routes:                                                 │
    │  /api/clients/*   /api/public/*   /vcard/*   /api/logs   │
    │  /api/upload-photo                /health                │
    │                                                          │
    │  Exception Handlers (all answer with the envelope):      │
    │  Validation→400 │ NotFound→404 │ Busy→503 │ Media→502    │
    │  PdfRender→500  │ Database→500 │ anything else→500       │
    └──────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cardlink import __version__
from cardlink.config import settings
from cardlink.database import dispose_engine
from cardlink.exceptions import (
    CardLinkError,
    DatabaseError,
    MediaFetchError,
    MediaUploadError,
    NotFoundError,
    PdfRenderError,
    RenderBusyError,
    ValidationError,
)
from cardlink.middleware.logging import RequestLoggingMiddleware
from cardlink.middleware.rate_limit import RateLimitMiddleware
from cardlink.middleware.request_id import RequestIDMiddleware, request_id_var
from cardlink.routes import clients, health, logs, public
from cardlink.schemas.common import envelope

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: 2024-01-15T12:00:00 [INFO] cardlink.services.client_service: message
    Output goes to stdout for the container runtime to collect.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # These log every connection and upload at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:  logging, configuration check, ready banner.
    Shutdown: dispose the database engine (close pooled connections).
    """
    setup_logging()
    logger.info("=" * 60)
    logger.info("CardLink Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: health checks and read endpoints still work
        logger.error("Configuration error: %s", str(e))
        logger.error("Uploads and emails will fail until the configuration is fixed.")

    logger.info(
        "PDF render gate: capacity 1, wait %dms; PDF on create: %s",
        settings.pdf_gate_timeout_ms,
        settings.generate_pdf_on_create,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("CardLink Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Failure envelope: success=false, data=null, machine code and request id in meta."""
    meta: Dict[str, Any] = {"error": code, "request_id": request_id_var.get("")}
    if details:
        meta["details"] = details
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope(success=False, message=message, meta=meta)),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes.

    Handler hierarchy:
        ValidationError / InvalidTransitionError → 400
        RequestValidationError                   → 400
        NotFoundError                            → 404
        RenderBusyError                          → 503 + Retry-After
        MediaUploadError / MediaFetchError       → 502
        PdfRenderError                           → 500
        DatabaseError                            → 500 (generic message)
        CardLinkError (base)                     → 500
        Exception (fallback)                     → 500 (generic message)

    Internal details (stack traces, SQL, storage errors) are logged
    server-side only; `details` carries caller-safe context.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return error_response(400, "validation_error", exc.message, details=exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), errors)
        return error_response(400, "validation_error", "Invalid request data.", details={"errors": errors})

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(404, "not_found", exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = "not_found" if exc.status_code == 404 else "http_error"
        return error_response(exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RenderBusyError)
    async def handle_render_busy(request: Request, exc: RenderBusyError):
        logger.warning("[%s] Render slot busy: %s", request_id_var.get(""), exc.context)
        return error_response(
            503,
            "service_busy",
            exc.message,
            details={"retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(MediaUploadError)
    async def handle_media_upload(request: Request, exc: MediaUploadError):
        logger.error("[%s] Media upload failed: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(502, "upload_failed", exc.message)

    @app.exception_handler(MediaFetchError)
    async def handle_media_fetch(request: Request, exc: MediaFetchError):
        logger.error("[%s] Media fetch failed: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(502, "fetch_failed", exc.message)

    @app.exception_handler(PdfRenderError)
    async def handle_pdf_render(request: Request, exc: PdfRenderError):
        logger.error("[%s] PDF render failed: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, "pdf_render_failed", exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(CardLinkError)
    async def handle_app_error(request: Request, exc: CardLinkError):
        logger.error("[%s] Application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Middleware executes in REVERSE order of addition: the rate limiter
    (added last) sees the request first.
    """
    app = FastAPI(
        title="CardLink API",
        description=(
            "Digital business cards: client submissions, admin review, "
            "vCard/QR/PDF generation and delivery."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
            "Content-Disposition",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(clients.router)
    app.include_router(public.router)
    app.include_router(logs.router)
    app.include_router(health.router)

    return app


# uvicorn cardlink.main:app
app = create_app()
