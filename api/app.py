"""
Gallery HTTP API.

JSON in, JSON out. Public routes serve the published projection and health;
everything under /api/admin/ needs `Authorization: Bearer <token>` obtained
from /api/auth/login. Route functions are plain `def` so FastAPI runs them on
its threadpool; the Collection Store serializes mutations with its own lock.

Shared objects live on `app.state`: settings, store, blob client, tokens.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from api.auth import TokenAuthority, bearer_token, password_matches
from models.photo import AdminPhoto, PhotoPatch, PublicPhoto
from settings import Settings
from store.backing import BackingStore, CloudinaryBacking, LocalFileBacking
from store.collection_store import CollectionStore
from store.errors import GalleryError, Unauthorized, UpstreamUnavailable
from store.local_cache import LocalCache
from utils.cloudinary_client import CloudinaryClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    password: str | None = None


class RegisterRequest(BaseModel):
    # Older admin front-ends post the Cloudinary field names.
    blob_ref: str = Field(validation_alias=AliasChoices("blobRef", "cloudinaryId", "blob_ref"))
    original_name: str | None = Field(
        default=None, validation_alias=AliasChoices("originalName", "original_name")
    )
    width: int | None = Field(default=None, validation_alias=AliasChoices("width", "w"))
    height: int | None = Field(default=None, validation_alias=AliasChoices("height", "h"))


class IdsRequest(BaseModel):
    ids: list[str] | None = None


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_store(settings: Settings, client: CloudinaryClient) -> CollectionStore:
    """Local cache in front of Cloudinary when configured, else a local backing file."""
    backing: BackingStore
    if settings.cloudinary_configured:
        backing = CloudinaryBacking(client, settings.snapshot_public_id)
        lookup = client.resource_dimensions
    else:
        backing = LocalFileBacking(settings.backing_path)
        lookup = None
    return CollectionStore(
        cache=LocalCache(settings.cache_path),
        backing=backing,
        renderer=client,
        dimension_lookup=lookup,
    )


def create_app(
    settings: Settings,
    client: CloudinaryClient | None = None,
    store: CollectionStore | None = None,
) -> FastAPI:
    client = client or CloudinaryClient.from_settings(settings)
    store = store or build_store(settings, client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            settings.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Data directory %s unavailable: %s", settings.data_dir, exc)
        logger.info("Gallery API ready (storage: %s, cloud: %s)",
                    store.backing.name, settings.cloudinary_cloud_name or "not configured")
        yield
        client.close()

    app = FastAPI(title="Atelier Portfolio", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.blob_client = client
    app.state.tokens = TokenAuthority(settings.token_secret, settings.token_ttl_days)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    _install_error_handlers(app)
    app.include_router(public_router)
    app.include_router(admin_router)
    return app


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GalleryError)
    async def gallery_error(request: Request, exc: GalleryError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(p) for p in e["loc"][1:]) or "body" for e in exc.errors()})
        return JSONResponse({"error": f"Invalid request: {', '.join(fields)}"}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_store(request: Request) -> CollectionStore:
    return request.app.state.store


def require_admin(request: Request, authorization: str | None = Header(default=None)) -> dict:
    return request.app.state.tokens.verify(bearer_token(authorization))


def _destroy_blobs(request: Request, blob_refs: list[str]) -> int:
    """Best-effort removal of binaries; returns how many were confirmed gone."""
    settings: Settings = request.app.state.settings
    if not settings.cloudinary_configured:
        logger.info("Cloudinary not configured; leaving %d blobs in place", len(blob_refs))
        return 0
    client: CloudinaryClient = request.app.state.blob_client
    removed = 0
    for blob_ref in blob_refs:
        try:
            client.destroy(blob_ref)
            removed += 1
        except UpstreamUnavailable as exc:
            logger.warning("Blob cleanup failed for %s: %s", blob_ref, exc)
    return removed


# ---------------------------------------------------------------------------
# Public routes
# ---------------------------------------------------------------------------

public_router = APIRouter(prefix="/api")


@public_router.post("/auth/login")
def login(request: Request, body: LoginRequest):
    settings: Settings = request.app.state.settings
    if not password_matches(body.password, settings.admin_password):
        logger.warning("Failed admin login from %s", request.client.host if request.client else "?")
        raise Unauthorized("Incorrect password")
    return {"token": request.app.state.tokens.issue()}


@public_router.get("/photos", response_model=list[PublicPhoto])
def public_photos(store: CollectionStore = Depends(get_store)):
    return store.public_photos()


@public_router.get("/health")
def health(request: Request, store: CollectionStore = Depends(get_store)) -> dict[str, Any]:
    settings: Settings = request.app.state.settings
    return {
        "status": "ok",
        "photos": store.count(),
        "storage": store.backing.name,
        "cloud": settings.cloudinary_cloud_name or "not configured",
    }


# ---------------------------------------------------------------------------
# Admin routes
# ---------------------------------------------------------------------------

admin_router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


@admin_router.get("/sign")
def sign_upload(request: Request):
    settings: Settings = request.app.state.settings
    if not settings.cloudinary_configured:
        raise UpstreamUnavailable("Cloudinary is not configured")
    return request.app.state.blob_client.signed_upload_params(settings.photos_folder)


@admin_router.post("/photos/register", response_model=AdminPhoto)
def register_photo(body: RegisterRequest, store: CollectionStore = Depends(get_store)):
    return store.register(body.blob_ref, body.original_name, body.width, body.height)


@admin_router.post("/photos/repair")
def repair_photos(store: CollectionStore = Depends(get_store)):
    return {"ok": True, "repaired": store.repair_dimensions()}


@admin_router.get("/photos", response_model=list[AdminPhoto])
def admin_photos(store: CollectionStore = Depends(get_store)):
    return store.admin_photos()


@admin_router.put("/photos/{photo_id}")
def update_photo(photo_id: str, patch: PhotoPatch, store: CollectionStore = Depends(get_store)):
    store.update(photo_id, patch)
    return {"ok": True}


@admin_router.delete("/photos/{photo_id}")
def delete_photo(photo_id: str, request: Request, store: CollectionStore = Depends(get_store)):
    blob_ref = store.delete(photo_id)
    _destroy_blobs(request, [blob_ref])
    return {"ok": True}


@admin_router.delete("/photos")
def clear_photos(request: Request, store: CollectionStore = Depends(get_store)):
    records = store.clear()
    _destroy_blobs(request, [r.blob_ref for r in records])
    return {"ok": True, "deleted": len(records)}


@admin_router.post("/publish")
def publish(body: IdsRequest | None = None, store: CollectionStore = Depends(get_store)):
    """Publish the listed ids in list order, or everything when `ids` is absent or null.

    Any other `ids` value (a string, an object) is a 400. The Node service
    published everything in that case.
    """
    published = store.bulk_publish(body.ids if body else None)
    return {"ok": True, "published": published}


@admin_router.post("/reorder")
def reorder(body: IdsRequest | None = None, store: CollectionStore = Depends(get_store)):
    store.reorder_all(body.ids if body else None)
    return {"ok": True}
