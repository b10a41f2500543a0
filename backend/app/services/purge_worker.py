"""Background purge of soft-deleted files.

Runs as an asyncio task within the FastAPI process. Each pass erases files
whose deleted_at is older than the retention window; a failed pass is logged
and retried on the next tick.
"""
import asyncio
import logging
from datetime import timedelta

from app.exceptions import StorageBackendUnavailableError
from app.services.blob_store import BlobStore

logger = logging.getLogger(__name__)


async def run_purge_pass(store: BlobStore, retention_days: int) -> int:
    """Purge once. Returns the number of files erased."""
    purged = await store.purge_deleted_older_than(timedelta(days=retention_days))
    if purged:
        logger.info(f"Purge pass erased {purged} file(s) past {retention_days}-day retention")
    return purged


async def purge_worker_loop(store: BlobStore, retention_days: int, interval_seconds: float):
    """Main purge loop. Runs a pass every ``interval_seconds`` until cancelled."""
    logger.info(f"Purge worker started (retention={retention_days}d, interval={interval_seconds}s)")
    while True:
        try:
            await run_purge_pass(store, retention_days)
        except StorageBackendUnavailableError as e:
            logger.warning(f"Purge pass skipped: {e.message} ({e.details.get('error')})")
        except Exception as e:
            logger.error(f"Purge worker error: {e}")

        await asyncio.sleep(interval_seconds)
