"""
Notekeeper Backend - FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers, routers and the
       long-lived services; the lifespan builds and closes the storage
       engine when none was injected.
Who:   uvicorn (`uvicorn notekeeper.main:app`) and the test suite.

Application Architecture:
    ┌───────────────────────────────────────────────────────────────┐
    │  Middleware: RateLimit → RequestID → Logging → GZip → CORS    │
    │              → Session                                        │
    │                                                               │
    │  Routes:  /api/notes (JSON)   /notes (HTML)   /signin /logout │
    │           {image_base_url}/{path}   /health                   │
    │                                                               │
    │  Services: NoteStore ── StorageClient (sql | memory)          │
    │            OwnerScopedNotes, ImageService                     │
    └───────────────────────────────────────────────────────────────┘

Error rendering:
    Paths under /api/ and /health get JSON error bodies. Everything else is
    a browser page: AuthenticationError redirects to /signin and a missing
    or foreign note renders a plain "Not Found" page.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from notekeeper import __version__
from notekeeper.config import Settings, settings as default_settings
from notekeeper.dependencies import templates
from notekeeper.exceptions import (
    AuthenticationError,
    FileStorageError,
    InvalidCursorError,
    NotekeeperError,
    NotFoundError,
    RateLimitExceededError,
    StorageUnavailableError,
    ValidationError,
)
from notekeeper.middleware.logging import RequestLoggingMiddleware
from notekeeper.middleware.rate_limit import RateLimitMiddleware
from notekeeper.middleware.request_id import RequestIDMiddleware, request_id_var
from notekeeper.routes import api, auth, health, images, notes
from notekeeper.services.image_service import ImageService
from notekeeper.services.note_store import NoteStore
from notekeeper.storage import StorageClient, create_storage_client

logger = logging.getLogger(__name__)

JSON_PREFIXES = ("/api/", "/health")


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] notekeeper.services.note_store: Note 7 created
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-statement and per-request chatter from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

def _attach_storage(app: FastAPI, client: StorageClient) -> None:
    app.state.storage_client = client
    app.state.note_store = NoteStore(client)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: logging, configuration check, storage engine (unless injected).
    Shutdown: close the engine this lifespan created.
    """
    config: Settings = app.state.settings
    setup_logging(config.log_level)
    logger.info("Notekeeper %s starting up (backend=%s)", __version__, config.data_backend)

    try:
        config.validate_required_for_production()
    except ValueError as e:
        # Development keeps running with the default secret
        logger.warning("Configuration warning: %s", str(e))

    owned_client: Optional[StorageClient] = None
    if getattr(app.state, "storage_client", None) is None:
        owned_client = await create_storage_client(config)
        _attach_storage(app, owned_client)

    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)

    yield

    logger.info("Notekeeper shutting down...")
    if owned_client is not None:
        await owned_client.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _wants_json(request: Request) -> bool:
    return request.url.path.startswith(JSON_PREFIXES)


def _error_body(error: str, message: str, **extra) -> dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    body.update(extra)
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception taxonomy to responses.

        ValidationError          → 400
        InvalidCursorError       → 400
        AuthenticationError      → 401 JSON, or redirect to /signin
        NotFoundError            → 404 (JSON carries internalCode 404)
        RateLimitExceededError   → 429
        FileStorageError         → 500
        StorageUnavailableError  → 503
        NotekeeperError          → 500
        Exception                → 500

    Context dicts are logged, never returned, except for validation
    failures whose context only names the offending fields.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        if not _wants_json(request):
            return HTMLResponse(f"Bad Request: {exc.message}", status_code=400)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, details=exc.context),
        )

    @app.exception_handler(InvalidCursorError)
    async def handle_invalid_cursor(request: Request, exc: InvalidCursorError):
        logger.warning("[%s] Invalid page token: %s", request_id_var.get(""), exc.context)
        if not _wants_json(request):
            return HTMLResponse(f"Bad Request: {exc.message}", status_code=400)
        return JSONResponse(status_code=400, content=_error_body("invalid_cursor", exc.message))

    @app.exception_handler(AuthenticationError)
    async def handle_authentication(request: Request, exc: AuthenticationError):
        if not _wants_json(request):
            return RedirectResponse(url="/signin", status_code=302)
        return JSONResponse(status_code=401, content=_error_body("unauthenticated", exc.message))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        if not _wants_json(request):
            return templates.TemplateResponse(
                request, "not_found.html", {"user": None}, status_code=404
            )
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message, internalCode=404),
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=_error_body("rate_limit_exceeded", exc.message, details=exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        rid = request_id_var.get("")
        logger.error("[%s] File storage error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(StorageUnavailableError)
    async def handle_storage_unavailable(request: Request, exc: StorageUnavailableError):
        rid = request_id_var.get("")
        logger.error("[%s] Storage unavailable: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=503,
            content=_error_body("storage_unavailable", exc.message),
        )

    @app.exception_handler(NotekeeperError)
    async def handle_notekeeper_error(request: Request, exc: NotekeeperError):
        rid = request_id_var.get("")
        logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    storage_client: Optional[StorageClient] = None,
    config: Settings = default_settings,
    image_service: Optional[ImageService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        storage_client: Engine to use instead of building one from settings.
            The caller keeps ownership and closes it.
        config: Settings override.
        image_service: Image storage override.
    """
    app = FastAPI(
        title="Notekeeper",
        description="Personal notes with an owner-scoped web UI and a JSON CRUD API.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.storage_client = None
    app.state.image_service = image_service or ImageService(config=config)
    if storage_client is not None:
        _attach_storage(app, storage_client)

    # Executed in reverse order of addition: RateLimit runs first, Session last
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.secret_key,
        session_cookie=config.session_cookie,
        same_site="lax",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.rate_limit_requests,
        window=config.rate_limit_window,
    )

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(api.router)
    app.include_router(notes.router)
    app.include_router(
        images.router, prefix=images.route_prefix(app.state.image_service.base_url)
    )
    app.include_router(health.router)

    return app


app = create_app()
