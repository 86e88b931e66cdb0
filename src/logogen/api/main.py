"""LogoGen -- FastAPI Application.

This module builds the FastAPI ``app``, defines all REST routes, and provides
the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
The application is assembled by :func:`create_app` from an explicit
:class:`~logogen.core.config.LogogenConfig`; there is no module-level app or
configuration singleton.

- **Prompt enhancement**, **image generation** and **image processing** are
  separate components sharing one ``httpx.AsyncClient``.
- **Orchestration** lives in :class:`~logogen.core.service.GenerationService`.
- **Artifacts** are plain files under ``generated/`` served at
  ``/generated/...`` by ``StaticFiles``.
- **Persistence logging** is optional; when enabled, a JSON-file record
  store receives transactions, API request logs and system events.

Endpoints
---------
========  =======================  =========================================
Method    Path                     Purpose
========  =======================  =========================================
GET       ``/``                    Serve the HTML page
POST      ``/api/generate``        Generate a logo or icon
GET       ``/api/health``          Liveness, config flags, directory checks
GET       ``/api/images``          Stored processed artifacts, newest first
GET       ``/api/config``          Client-safe configuration
GET       ``/api/stats``           Record store statistics (logging only)
GET       ``/api/transactions``    Recent transactions (logging only)
GET       ``/api/events``          Recent system events (logging only)
========  =======================  =========================================

Every error response is ``{"success": false, "error": "<message>"}``.

Usage
-----
CLI (installed entry point)::

    logogen

Direct invocation::

    python -m logogen.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import httpx
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError as FastAPIValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from logogen import __version__
from logogen.api.models import GeneratePayload
from logogen.api.request_log import log_api_requests
from logogen.core.config import LogogenConfig, load_config
from logogen.core.enhancement import PromptEnhancer
from logogen.core.errors import LogogenError
from logogen.core.generation import ImageGenerationClient
from logogen.core.models import ImageKind
from logogen.core.processing import SUPPORTED_FORMATS, ImageProcessor
from logogen.core.service import GenerationService
from logogen.core.storage import FileStore
from logogen.records import ActivityLog, RecordStore, open_record_store
from logogen.records.models import ClientInfo

logger = logging.getLogger(__name__)

TEMPLATES_DIR: Path = Path(__file__).resolve().parent.parent / "templates"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


# ---------------------------------------------------------------------------
# Core routes.
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Serve the single-page frontend.

    Raises:
        HTTPException: 404 if ``index.html`` is missing from the package.
    """
    index_path = TEMPLATES_DIR / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise StarletteHTTPException(status_code=404, detail="index.html not found")


@router.post("/api/generate")
async def generate_image(payload: GeneratePayload, request: Request) -> dict:
    """Generate a logo or icon.

    This endpoint:

    1. Validates the prompt and image type (400 on failure, nothing logged).
    2. Optionally enhances the prompt with the LLM.
    3. Applies the kind-specific style and calls the image API.
    4. Downloads, resizes and stores the original and processed images.

    Returns:
        ``{"success": true, "data": {...}}`` with artifact metadata and the
        prompt lineage.

    Raises:
        LogogenError: Any failure after validation; rendered as an error
            envelope by the application's exception handler.
    """
    service: GenerationService = request.app.state.service
    generation_request = service.validate(
        payload.prompt, payload.image_type, payload.enhancement_flag()
    )
    client = ClientInfo(
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    try:
        result = await service.generate(generation_request, client)
    except LogogenError:
        raise
    except Exception as exc:
        logger.exception("Unexpected error during image generation")
        config: LogogenConfig = request.app.state.config
        message = "Failed to generate image" if config.is_production else str(exc)
        raise LogogenError(message) from exc

    return {"success": True, "data": result.model_dump(mode="json", by_alias=True)}


@router.get("/api/health")
async def health(request: Request):
    """Report liveness, non-secret configuration and directory checks."""
    state = request.app.state
    config: LogogenConfig = state.config
    enhancer: PromptEnhancer = state.service.enhancer
    try:
        llm = config.llm
        return {
            "status": "healthy",
            "timestamp": _utcnow(),
            "version": __version__,
            "config": {
                "apiBaseUrl": config.image_api.base_url,
                "modelName": config.model_name,
                "hasApiKey": bool(config.api_key),
                "logoSize": config.logo_size,
                "iconSize": config.icon_size,
                "llmEnhancement": {
                    "enabled": llm.enabled,
                    "llmBaseUrl": llm.base_url,
                    "llmModel": llm.model_name,
                    "hasLlmApiKey": bool(llm.api_key),
                    "usingSharedKey": llm.use_shared_key,
                    "available": enhancer.available,
                },
                "imageProcessing": state.service.processor.processing_config(),
                "databaseLogging": config.database.enabled,
            },
            "directories": state.files.check_directories(),
            "database": state.activity.health(),
        }
    except Exception as exc:
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=500,
            content={"status": "unhealthy", "error": str(exc), "timestamp": _utcnow()},
        )


@router.get("/api/images")
async def list_images(request: Request):
    """List stored processed artifacts, newest first."""
    files: FileStore = request.app.state.files
    try:
        images = files.list_artifacts()
    except OSError:
        logger.exception("Error listing images")
        return _failure(500, "Failed to list images")
    return {
        "success": True,
        "count": len(images),
        "images": [image.model_dump() for image in images],
    }


@router.get("/api/config")
async def get_config(request: Request) -> dict:
    """Return the client-safe configuration used by the frontend."""
    config: LogogenConfig = request.app.state.config
    enhancer: PromptEnhancer = request.app.state.service.enhancer
    return {
        "success": True,
        "config": {
            "imageTypes": ImageKind.values(),
            "imageSizes": {
                ImageKind.LOGO.value: config.logo_size,
                ImageKind.ICON.value: config.icon_size,
            },
            "maxFileSize": config.max_file_size,
            "promptEnhancement": enhancer.client_config(),
            "supportedFormats": SUPPORTED_FORMATS,
            "databaseLogging": config.database.enabled,
        },
    }


# ---------------------------------------------------------------------------
# Persistence logging routes (registered only when logging is enabled).
# ---------------------------------------------------------------------------

logging_router = APIRouter(prefix="/api")


@logging_router.get("/stats")
async def get_stats(request: Request) -> dict:
    """Record counts per collection plus a transaction summary."""
    activity: ActivityLog = request.app.state.activity
    return {"success": True, "stats": activity.stats()}


@logging_router.get("/transactions")
async def get_transactions(
    request: Request,
    limit: int = Query(default=50, ge=1, le=1000),
) -> dict:
    """Most recent generation transactions, newest first."""
    activity: ActivityLog = request.app.state.activity
    transactions = activity.recent_transactions(limit)
    return {"success": True, "count": len(transactions), "transactions": transactions}


@logging_router.get("/events")
async def get_events(
    request: Request,
    limit: int = Query(default=50, ge=1, le=1000),
    level: str | None = None,
) -> dict:
    """Most recent system events, optionally filtered by level."""
    activity: ActivityLog = request.app.state.activity
    events = activity.recent_events(limit, level)
    return {"success": True, "count": len(events), "events": events}


# ---------------------------------------------------------------------------
# Error envelopes.
# ---------------------------------------------------------------------------


def _install_exception_handlers(app: FastAPI, config: LogogenConfig) -> None:
    @app.exception_handler(LogogenError)
    async def _logogen_error(request: Request, exc: LogogenError) -> JSONResponse:
        return _failure(exc.status_code, exc.message)

    @app.exception_handler(FastAPIValidationError)
    async def _validation_error(request: Request, exc: FastAPIValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _failure(400, f"Invalid request: {detail}")

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            logger.info("404 - Route not found: %s %s", request.method, request.url.path)
            return _failure(404, "Route not found")
        return _failure(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        request.app.state.activity.record_event(
            "application_error",
            "FastAPI",
            "error",
            str(exc),
            {"path": request.url.path, "method": request.method},
        )
        message = "Internal server error" if config.is_production else str(exc)
        return _failure(500, message)


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    config: LogogenConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
    record_store: RecordStore | None = None,
    prompt_templates: dict[str, str] | None = None,
) -> FastAPI:
    """Assemble the FastAPI application from an explicit configuration.

    Args:
        config: Validated settings (see :func:`~logogen.core.config.load_config`).
        http_client: Shared client for all upstream calls.  When omitted one
            is created and closed with the application.
        record_store: Backend override for persistence logging.  Defaults
            to the backend selected by ``DATABASE_TYPE``.
        prompt_templates: Enhancement template override (kind -> template).

    Returns:
        The configured application.  Directories are created and the record
        store is connected when the application starts.
    """
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(follow_redirects=True)

    files = FileStore(config.directories)
    store = record_store if record_store is not None else open_record_store(config.database)
    activity = ActivityLog(
        store,
        config.database,
        environment=config.environment,
        version=__version__,
    )
    service = GenerationService(
        enhancer=PromptEnhancer(config.llm, client, templates=prompt_templates),
        generator=ImageGenerationClient(config.image_api, client),
        processor=ImageProcessor(config.image, files, client),
        activity=activity,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        files.ensure_directories()
        activity.start()
        config.log_summary()
        activity.record_event(
            "app_startup",
            "Application",
            "info",
            "Application initialized successfully",
            {
                "environment": config.environment,
                "port": config.port,
                "api_base_url": config.image_api.base_url,
                "llm_enabled": config.enable_prompt_enhancement,
            },
        )

        yield

        # --- Shutdown ------------------------------------------------------
        activity.record_event("server_shutdown", "Application", "info", "Server shutting down")
        activity.stop()
        if owns_client:
            await client.aclose()

    app = FastAPI(
        title="LogoGen",
        description="Logo and icon generation with optional LLM prompt enhancement.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.files = files
    app.state.activity = activity
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_api_requests)
    _install_exception_handlers(app, config)

    app.include_router(router)
    if config.database.enabled:
        app.include_router(logging_router)

    # Directories may not exist until startup runs, hence check_dir=False.
    app.mount(
        config.directories.public_prefix,
        StaticFiles(directory=str(config.generated_dir), check_dir=False),
        name="generated",
    )
    return app


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Loads and validates configuration first; a missing credential terminates
    the process before the server starts.  Host and port come from
    ``SERVER_HOST`` and ``PORT`` (default ``0.0.0.0:3000``).

    Registered as the ``logogen`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = load_config()
    uvicorn.run(
        create_app(config),
        host=config.server_host,
        port=config.port,
    )


if __name__ == "__main__":
    main()
