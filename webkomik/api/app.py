"""
FastAPI application for the WebKomik catalog.

This is the HTTP API the reader frontend and creator tools talk to.
Routes only wire requests to the catalog services; authorization and
tree assembly live in webkomik.auth and webkomik.services.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Path, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from webkomik import __version__
from webkomik.auth import (
    AuthError,
    RequestContext,
    TokenVerifier,
    require_auth,
    require_content_manager,
)
from webkomik.config import Settings, get_settings
from webkomik.core.errors import CatalogError, ValidationError
from webkomik.core.models import ID_MAX, WorkCreate, WorkUpdate
from webkomik.integrations import sentry
from webkomik.services.catalog import CatalogReader, WorkService
from webkomik.storage import CatalogStorage, StorageError, create_storage

logger = logging.getLogger(__name__)

AUTH_FAILED_DETAIL = "Invalid or missing authentication token"

# Out-of-range ids are rejected as input errors before reaching storage
WorkId = Annotated[int, Path(ge=1, le=ID_MAX)]


# =============================================================================
# Dependencies
# =============================================================================


def get_storage(request: Request) -> CatalogStorage:
    return request.app.state.storage


def get_reader(request: Request) -> CatalogReader:
    return request.app.state.reader


def get_work_service(request: Request) -> WorkService:
    return request.app.state.works


def install_storage(app: FastAPI, storage: CatalogStorage) -> None:
    """Attach a storage backend and the services built on it."""
    settings: Settings = app.state.settings
    app.state.storage = storage
    app.state.reader = CatalogReader(storage, page_fetch_concurrency=settings.page_fetch_concurrency)
    app.state.works = WorkService(storage)


# =============================================================================
# Health Check
# =============================================================================

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health_check():
    """Liveness: the process is up."""
    return {"status": "healthy", "service": "webkomik-api"}


@health_router.get("/ping")
async def ping(storage: CatalogStorage = Depends(get_storage)):
    """Readiness: round-trip to storage."""
    try:
        db_time = await storage.ping()
    except StorageError:
        logger.exception("Storage ping failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "pong, but db connection error", "db_status": "error"},
        )

    return {
        "message": "pong",
        "version": __version__,
        "db_time": db_time.isoformat(),
        "db_status": "ok",
    }


# =============================================================================
# Works
# =============================================================================

api_router = APIRouter(prefix="/api", tags=["works"])


@api_router.get("/works")
async def list_works(reader: CatalogReader = Depends(get_reader)):
    """List all works, newest first."""
    works = await reader.list_works()
    return {"data": [work.model_dump(mode="json") for work in works]}


@api_router.get("/works/{work_id}")
async def get_work(work_id: WorkId, reader: CatalogReader = Depends(get_reader)):
    """
    Get a work with all its chapters and pages.

    A chapter whose pages could not be loaded is returned with an empty
    page list rather than failing the whole request.
    """
    detail = await reader.get_work_detail(work_id)
    return {"data": detail.model_dump(mode="json")}


@api_router.post("/works", status_code=status.HTTP_201_CREATED)
async def create_work(
    data: WorkCreate,
    ctx: RequestContext = Depends(require_content_manager()),
    works: WorkService = Depends(get_work_service),
):
    """Create a work. Admins and creators only; the caller becomes the owner."""
    work = await works.create_work(ctx, data)
    return {"data": work.model_dump(mode="json")}


@api_router.put("/works/{work_id}")
async def update_work(
    work_id: WorkId,
    data: WorkUpdate,
    ctx: RequestContext = Depends(require_content_manager()),
    works: WorkService = Depends(get_work_service),
):
    """
    Update a work.

    Admins can update any work, creators only their own. Fields left out
    of the body are not touched.
    """
    result = await works.update_work(ctx, work_id, data)
    body = {"data": result.work.model_dump(mode="json")}
    if not result.changed:
        body["message"] = "No changes were made"
    return body


@api_router.get("/me")
async def get_me(ctx: RequestContext = Depends(require_auth())):
    """Who the bearer token says the caller is."""
    return {
        "message": "Authenticated",
        "user_id": ctx.subject_id,
        "role": ctx.role.value,
    }


# =============================================================================
# Error Handling
# =============================================================================


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    if isinstance(exc, AuthError):
        # Same answer for every authentication failure; the cause is logged
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": AUTH_FAILED_DETAIL},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("Invalid input", details=jsonable_encoder(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Starlette re-raises after this handler; the Sentry ASGI integration reports it
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# =============================================================================
# App Setup
# =============================================================================


def create_app(settings: Settings | None = None, storage: CatalogStorage | None = None) -> FastAPI:
    """
    Build the application.

    When ``storage`` is given it is used as-is and left open on shutdown
    (the caller owns it). Otherwise the lifespan creates storage from the
    settings and closes it when the server stops.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sentry.init_sentry(settings)

        owned = None
        if storage is None:
            owned = await create_storage(settings)
            install_storage(app, owned)

        logger.info("WebKomik API starting in %s mode", settings.environment)
        yield

        if owned is not None:
            await owned.close()
        logger.info("WebKomik API shut down")

    app = FastAPI(
        title="WebKomik API",
        description="Catalog of works, chapters and pages",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.verifier = TokenVerifier.from_settings(settings)
    if storage is not None:
        install_storage(app, storage)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
        expose_headers=["Content-Length"],
        max_age=12 * 60 * 60,
    )

    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health_router)
    app.include_router(api_router)
    return app
