from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.auth import TokenAuthenticator, get_authenticator, require_token
from src.api.config import Settings
from src.api.db import get_engine, resolve_database_url
from src.api.errors import AuthFailure, CorruptStoreFailure, GalleryFailure, StoreFailure, ValidationFailure
from src.api.repository import PhotoRepository
from src.api.schemas import (
    DeleteResponse,
    HealthResponse,
    Photo,
    PhotoOut,
    ReorderRequest,
    TokenResponse,
)
from src.api.storage import IMAGES_URL_PREFIX, BlobStore, resolve_url
from src.api.store import DurableStore

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"

openapi_tags = [
    {"name": "health", "description": "Service health and diagnostics."},
    {"name": "auth", "description": "Admin login (opaque bearer tokens)."},
    {"name": "photos", "description": "Photo listing, creation, editing, deletion and reordering."},
]


# PUBLIC_INTERFACE
def configure_logging(level: str = "INFO") -> None:
    """Set up root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# =============================================================================
# Dependencies
# =============================================================================


def get_repository(request: Request) -> PhotoRepository:
    return request.app.state.repository


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@dataclass
class PhotoSubmission:
    """Fields and optional upload sent to the create and patch routes."""

    fields: dict[str, Any] = field(default_factory=dict)
    upload: Optional[UploadFile] = None


async def read_photo_submission(request: Request) -> PhotoSubmission:
    """Accept either a multipart/urlencoded form (with an optional `file`) or a JSON object."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        submission = PhotoSubmission()
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == "file" and value.filename:
                    submission.upload = value
            else:
                submission.fields[key] = value
        return submission

    body = await request.body()
    if not body.strip():
        return PhotoSubmission()
    try:
        data = json.loads(body)
    except ValueError:
        raise ValidationFailure("Request body must be a JSON object or form data")
    if not isinstance(data, dict):
        raise ValidationFailure("Request body must be a JSON object or form data")
    return PhotoSubmission(fields=data)


def _format_photo(photo: Photo, settings: Settings) -> PhotoOut:
    return PhotoOut(**photo.model_dump(), url=resolve_url(photo.filename, settings.public_api_base_url))


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()


# PUBLIC_INTERFACE
@router.get("/", response_model=HealthResponse, tags=["health"], summary="Health check", description="Basic liveness endpoint.")
def health_check() -> HealthResponse:
    return HealthResponse(message="Healthy")


# PUBLIC_INTERFACE
@router.post(
    "/api/login",
    response_model=TokenResponse,
    tags=["auth"],
    summary="Login",
    description="Exchange the admin username/password for a bearer token.",
)
def login(
    payload: Any = Body(None, examples=[{"username": "admin", "password": "change-me"}]),
    authenticator: TokenAuthenticator = Depends(get_authenticator),
) -> TokenResponse:
    # A missing or malformed body is just a failed login.
    credentials = payload if isinstance(payload, dict) else {}
    return TokenResponse(token=authenticator.login(credentials.get("username"), credentials.get("password")))


# PUBLIC_INTERFACE
@router.get(
    "/api/photos",
    response_model=List[PhotoOut],
    tags=["photos"],
    summary="List photos",
    description="All photos sorted by displayOrder, then title.",
)
def list_photos(
    repository: PhotoRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> List[PhotoOut]:
    return [_format_photo(p, settings) for p in repository.list()]


# PUBLIC_INTERFACE
@router.post(
    "/api/photos",
    response_model=PhotoOut,
    status_code=status.HTTP_201_CREATED,
    tags=["photos"],
    summary="Create photo",
    description=(
        "Create a photo from JSON or multipart form fields: title, description, filename. "
        "An uploaded `file` part is stored and takes precedence over `filename`."
    ),
    dependencies=[Depends(require_token)],
)
def create_photo(
    submission: PhotoSubmission = Depends(read_photo_submission),
    repository: PhotoRepository = Depends(get_repository),
    blobs: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings),
) -> PhotoOut:
    fields = submission.fields
    filename = fields.get("filename")
    stored = None
    if submission.upload is not None:
        stored = blobs.save_upload(submission.upload)
        filename = stored

    try:
        photo = repository.create(fields.get("title"), fields.get("description"), filename)
    except Exception:
        if stored:
            blobs.discard(stored)
        raise
    return _format_photo(photo, settings)


# PUBLIC_INTERFACE
@router.post(
    "/api/photos/reorder",
    response_model=List[PhotoOut],
    tags=["photos"],
    summary="Reorder photos",
    description=(
        "Rank the listed photo IDs first, in the given sequence. "
        "Photos not listed follow in their previous relative order."
    ),
    dependencies=[Depends(require_token)],
)
def reorder_photos(
    payload: ReorderRequest,
    repository: PhotoRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> List[PhotoOut]:
    return [_format_photo(p, settings) for p in repository.reorder(payload.order)]


# PUBLIC_INTERFACE
@router.patch(
    "/api/photos/{photo_id}",
    response_model=PhotoOut,
    tags=["photos"],
    summary="Update photo",
    description="Partially update a photo. Only supplied fields change; an uploaded `file` replaces the filename.",
    dependencies=[Depends(require_token)],
)
def update_photo(
    photo_id: str,
    submission: PhotoSubmission = Depends(read_photo_submission),
    repository: PhotoRepository = Depends(get_repository),
    blobs: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings),
) -> PhotoOut:
    patch = dict(submission.fields)
    stored = None
    if submission.upload is not None:
        stored = blobs.save_upload(submission.upload)
        patch["filename"] = stored

    try:
        photo = repository.update(photo_id, patch)
    except Exception:
        if stored:
            blobs.discard(stored)
        raise
    return _format_photo(photo, settings)


# PUBLIC_INTERFACE
@router.delete(
    "/api/photos/{photo_id}",
    response_model=DeleteResponse,
    tags=["photos"],
    summary="Delete photo",
    description="Remove a photo from the collection. The image file itself is left in place.",
    dependencies=[Depends(require_token)],
)
def delete_photo(
    photo_id: str,
    repository: PhotoRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> DeleteResponse:
    removed = repository.delete(photo_id)
    return DeleteResponse(message="Photo removed", photo=_format_photo(removed, settings))


# =============================================================================
# Error handlers
# =============================================================================


async def _handle_gallery_failure(request: Request, exc: GalleryFailure) -> JSONResponse:
    if isinstance(exc, StoreFailure) or exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.to_dict()}", exc_info=exc)
        return JSONResponse(status_code=500, content={"message": INTERNAL_ERROR_MESSAGE})

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthFailure) else None
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Invalid request body"})


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} failed unexpectedly", exc_info=exc)
    return JSONResponse(status_code=500, content={"message": INTERNAL_ERROR_MESSAGE})


# =============================================================================
# App factory
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Prepare the store and blob directory.

    The service still starts when the database is unreachable; photo routes
    then answer 500 until it comes back. Unreadable seed data stops startup,
    since a later save would make the seed import skip it for good.
    """
    settings: Settings = app.state.settings
    store: DurableStore = app.state.store
    try:
        store.ensure_schema()
        if settings.seed_file:
            store.import_seed_file(Path(settings.seed_file))
    except CorruptStoreFailure:
        logger.exception(f"Refusing to start: collection data is corrupt (seed file: {settings.seed_file})")
        raise
    except StoreFailure as exc:
        logger.warning(f"Startup store initialization skipped: {exc}")
    app.state.blob_store.ensure_root()

    yield

    store.engine.dispose()


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API with its own store, repository, token registry and blob store."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Photo Gallery Backend",
        description=(
            "Backend for an ordered photo gallery. Provides admin bearer-token login, "
            "photo CRUD, drag-and-drop reordering and a durable collection store."
        ),
        version="1.0.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )

    store = DurableStore(get_engine(resolve_database_url(settings)))
    blob_store = BlobStore(settings.image_storage_dir)
    app.state.settings = settings
    app.state.store = store
    app.state.repository = PhotoRepository(store)
    app.state.authenticator = TokenAuthenticator.from_settings(settings)
    app.state.blob_store = blob_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        # Bearer tokens travel in a header, so credentials are not needed.
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GalleryFailure, _handle_gallery_failure)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected)

    app.include_router(router)
    app.mount(IMAGES_URL_PREFIX, StaticFiles(directory=blob_store.images_root, check_dir=False), name="images")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.api.main:app", host="0.0.0.0", port=app.state.settings.port)
