"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from onetime import __version__
from onetime.clock import Clock, unix_ms
from onetime.config import Settings, get_settings
from onetime.errors import EntropySourceUnavailable, ExhaustedRetries, StorageError
from onetime.files.routes import router as files_router
from onetime.files.service import FileService
from onetime.links.routes import download_router, router as links_router
from onetime.links.service import LinkService
from onetime.storage import StorageProvider, UnavailableStorage, build_storage

log = logging.getLogger(__name__)


def _setup_logging(settings: Settings) -> None:
    """Configure logging from settings (stderr always; optional file)."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("onetime")
    root.setLevel(level)
    root.handlers.clear()
    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root.addHandler(sh)
    if settings.log_file and str(settings.log_file).strip():
        try:
            fh = logging.FileHandler(settings.log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(fmt)
            root.addHandler(fh)
            root.info("Logging to file %s", settings.log_file)
        except OSError as e:
            root.warning("Could not open log file %s: %s", settings.log_file, e)
    else:
        root.debug("Logging to stderr only (no log_file set)")


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[StorageProvider] = None,
    clock: Clock = unix_ms,
) -> FastAPI:
    """
    Build the app. The storage provider is built from settings at startup unless one is
    passed in, and is shared by the file and link services for the app's lifetime.
    """
    settings = settings or get_settings()
    _setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build and initialize storage on startup; close it on shutdown."""
        log.info("Startup: initializing storage provider=%s", settings.provider)
        store = storage if storage is not None else build_storage(settings)
        try:
            await store.init()
        except StorageError as e:
            log.error("Storage %s failed to initialize: %s", store.name, e)
            await store.close()
            store = UnavailableStorage(f"Invalid {store.name} storage provider: {e}")
        app.state.storage = store
        app.state.file_service = FileService(store, settings, clock)
        app.state.link_service = LinkService(store, settings, clock)
        log.info("Startup complete (storage=%s)", store.name)
        yield
        log.info("Shutdown")
        await store.close()

    app = FastAPI(title="Onetime Downloader API", version=__version__, lifespan=lifespan)
    app.state.settings = settings

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        """Add security headers to all responses."""
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        """Backend unreachable or timed out: 503, distinct from an already-used link."""
        log.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})

    @app.exception_handler(ExhaustedRetries)
    @app.exception_handler(EntropySourceUnavailable)
    async def token_error_handler(request: Request, exc: Exception):
        log.error("Could not issue token on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Could not issue link"})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Return generic 500 without leaking stack trace or internals."""
        if isinstance(exc, HTTPException):
            raise exc
        log.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    app.include_router(files_router)
    app.include_router(links_router)
    app.include_router(download_router)

    @app.get("/health")
    def health() -> JSONResponse:
        """Liveness check. No auth."""
        return JSONResponse(content={"status": "ok"})

    return app


app = create_app()
