import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

# Configure application logging so background task logs are visible
logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s: %(message)s")
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from openmam.asset.router import router as asset_router
from openmam.collection.router import router as collection_router
from openmam.config import Settings
from openmam.middleware import (
    error_envelope_middleware,
    http_exception_handler,
    request_id_middleware,
    validation_exception_handler,
)
from openmam.rate_limit import limiter
from openmam.storage.router import router as storage_router
from openmam.task_queue import PipelineQueue
from openmam.tenancy import TenantRegistry


# ── OpenAPI metadata ──────────────────────────────────────────────────────────

_DESCRIPTION = """
## OpenMAM — Media Asset Management on Open Source Cloud

Each tenant brings their own Open Source Cloud account. On first request the
service provisions (or finds) the tenant's object storage and key-value
instances and keeps all asset data there.

* **Upload** — presigned PUT URLs for direct uploads to the tenant's storage.
* **Derived artifacts** — FFmpeg jobs on the platform produce a browser-playable
  proxy and a thumbnail for every video (pending → processing → ready/failed).
* **Metadata** — titles, descriptions, tags, custom fields, collections.
* **Search** — word-level AND search over title, description and tags.

### Authentication
All `/api` endpoints require:
```
Authorization: Bearer <Open Source Cloud personal access token>
```

### Error shape
```json
{ "error": "Human-readable message", "request_id": "..." }
```
"""

_TAGS_METADATA = [
    {"name": "assets", "description": "Upload, describe, search and download media assets."},
    {"name": "collections", "description": "Group assets into named collections."},
    {"name": "storage", "description": "Storage usage and instance health."},
]


# ── Health schema ─────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    service: str


# ── App factory ───────────────────────────────────────────────────────────────

def get_settings() -> Settings:
    return Settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    queue: PipelineQueue | None = app.state.pipeline_queue
    if queue is not None:
        await queue.start()
    yield
    if queue is not None:
        await queue.close()
    await app.state.registry.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="OpenMAM",
        version="1.0.0",
        description=_DESCRIPTION,
        openapi_tags=_TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = TenantRegistry(settings)
    app.state.pipeline_queue = (
        PipelineQueue(settings.redis_url) if settings.pipeline_backend == "queue" else None
    )

    # Attach rate limiter state before middleware
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Middleware (applied in reverse-registration order: last added = outermost)
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(error_envelope_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    app.include_router(asset_router, prefix="/api")
    app.include_router(collection_router, prefix="/api")
    app.include_router(storage_router, prefix="/api")

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="openmam")

    return app


app = create_app()
