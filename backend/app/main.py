"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import settings
from app.database import async_session, engine, get_db
from app.exceptions import FileStorageError, file_storage_exception_handler
from app.models import Base
from app.services.blob_store import BlobStore

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, build the blob store, start the purge worker."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.blob_store = BlobStore.from_settings(async_session)

    purge_task = None
    if settings.PURGE_ENABLED:
        from app.services.purge_worker import purge_worker_loop
        purge_task = asyncio.create_task(
            purge_worker_loop(
                app.state.blob_store,
                retention_days=settings.RETENTION_DAYS,
                interval_seconds=settings.PURGE_INTERVAL_SECONDS,
            )
        )

    yield

    # Cleanup
    if purge_task:
        purge_task.cancel()
    await engine.dispose()


app = FastAPI(
    title="File Storage API",
    version="1.0.0",
    description="Authenticated file upload, download and trash backed by chunked blob storage.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(FileStorageError, file_storage_exception_handler)


@app.exception_handler(Exception)
async def handle_unexpected_exception(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from app.routes.files import router as files_router
app.include_router(files_router)
