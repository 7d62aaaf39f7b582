"""
# Tasting Notes API - Main Application Module

Entry point of the FastAPI application: lifespan (database connection and indexes),
error translation, request logging, metrics and router registration.

## Startup & Shutdown

The `lifespan()` context manager:

1.  Connects to MongoDB through `db_manager` and creates the feed indexes, unless
    `STORE_BACKEND=memory` (tests and local runs), in which case nothing is connected.
2.  Yields to serve requests.
3.  Disconnects on shutdown.

## Error Translation

Services raise the domain errors in `tasting_notes.exceptions`. A single handler maps
each one to its HTTP status with a body of `{"detail": message, "code": code}`:

| Error                   | Status |
|-------------------------|--------|
| `NotFoundError`         | 404    |
| `PermissionDeniedError` | 403    |
| `InvalidStateError`     | 409    |
| `ValidationError`       | 422    |
| `UnavailableError`      | 503    |

## Running

```bash
uvicorn tasting_notes.main:app --reload --host 0.0.0.0 --port 8000
```
"""

from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from tasting_notes.config import settings
from tasting_notes.database import db_manager, get_document_store
from tasting_notes.exceptions import TastingNotesError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.routes.activity import router as activity_router
from tasting_notes.routes.catalog import router as catalog_router
from tasting_notes.routes.notes import router as notes_router
from tasting_notes.routes.notifications import router as notifications_router
from tasting_notes.routes.users import requests_router as follow_requests_router
from tasting_notes.routes.users import router as users_router

logger = get_logger(prefix="[MAIN]")
request_logger = get_logger(prefix="[REQUEST]")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Connect the persistence layer before serving and release it on shutdown.

    Raises:
        ConnectionError: If MongoDB cannot be reached after the configured retries.
    """
    startup_start_time = time.time()
    uses_mongo = settings.STORE_BACKEND == "mongo"
    logger.info(
        "Starting Tasting Notes API (backend=%s, environment=%s)",
        settings.STORE_BACKEND,
        "production" if settings.is_production else "development",
    )

    if uses_mongo:
        await db_manager.connect()
        await db_manager.create_indexes()
    logger.info("Startup completed in %.3fs", time.time() - startup_start_time)

    yield

    if uses_mongo:
        await db_manager.disconnect()
    logger.info("Shutdown completed")


app = FastAPI(
    title="Tasting Notes API",
    description="Record restaurant visits and recipes, follow friends and share notes.",
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False,
    openapi_tags=[
        {"name": "notes", "description": "Tasting notes, feeds, sharing, likes, comments and bookmarks"},
        {"name": "users", "description": "Profiles, following and family members"},
        {"name": "follow-requests", "description": "Requests to follow private profiles"},
        {"name": "activity", "description": "Activity feed of followed principals"},
        {"name": "notifications", "description": "Notification inbox"},
        {"name": "catalog", "description": "Restaurants, menu items and recipe creators for autocomplete"},
        {"name": "system", "description": "Health checks"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else [],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TastingNotesError)
async def handle_domain_error(request: Request, exc: TastingNotesError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.debug("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    request_logger.info(
        "%s %s -> %d (%.1fms)", request.method, request.url.path, response.status_code, (time.time() - start) * 1000
    )
    return response


@app.get("/health", tags=["system"])
async def health_check():
    healthy = await get_document_store().health_check()
    if not healthy:
        return JSONResponse(status_code=503, content={"status": "unhealthy", "backend": settings.STORE_BACKEND})
    return {"status": "healthy", "backend": settings.STORE_BACKEND}


routers_config = [
    ("notes", notes_router),
    ("users", users_router),
    ("follow_requests", follow_requests_router),
    ("activity", activity_router),
    ("notifications", notifications_router),
    ("catalog", catalog_router),
]
for router_name, router in routers_config:
    app.include_router(router)
    logger.debug("Included %s router", router_name)

Instrumentator(should_group_status_codes=True, should_ignore_untemplated=True).instrument(app).expose(
    app, include_in_schema=False, endpoint="/metrics"
)

if __name__ == "__main__":
    uvicorn.run("tasting_notes.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG, log_level="info")
