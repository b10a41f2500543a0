"""Chunked blob storage for uploaded files.

A file is one ``blob_files`` row plus its payload split into fixed-size
``blob_chunks`` rows. Both are written in a single transaction, so a rejected,
oversized or interrupted upload leaves nothing behind.

Lifecycle: active -> deleted (soft delete, bytes kept) -> purged once the
retention window has passed. Deleted files are invisible to every public
operation; only ``read_payload_unchecked`` still reaches their bytes.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Iterable, Optional, Protocol

from sqlalchemy import delete, desc, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.exceptions import (
    AccessForbiddenError,
    InvalidContentTypeError,
    InvalidInputError,
    ObjectNotFoundError,
    PayloadTooLargeError,
    StorageBackendUnavailableError,
    UploadInterruptedError,
)
from app.models.stored_object import BlobChunk, StoredObject
from app.services.storage_keys import build_storage_key, normalize_content_type

logger = logging.getLogger(__name__)

# asyncpg surfaces refused connections as OSError, everything else as SQLAlchemyError
_BACKEND_ERRORS = (SQLAlchemyError, OSError)

MAX_FILENAME_LENGTH = 255
# Matches the owner_id column width
MAX_OWNER_ID_LENGTH = 100


class AsyncReadable(Protocol):
    """Anything with an async ``read(size)``, e.g. FastAPI's UploadFile."""

    async def read(self, size: int = -1) -> bytes: ...


def ensure_owner(record: StoredObject, requester_id: str, expose_forbidden: bool = False) -> None:
    """Raise unless ``requester_id`` owns ``record``.

    Unless ``expose_forbidden`` is set, a foreign object is reported as not
    found so callers can't probe for other users' storage keys.
    """
    if record.owner_id == requester_id:
        return
    if expose_forbidden:
        raise AccessForbiddenError(record.storage_key)
    raise ObjectNotFoundError(record.storage_key)


class BlobStore:
    """File storage core. Construct once at startup and share it.

    Holds nothing but configuration and a session factory; every operation
    opens its own session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        key_prefix: str = "wbkost",
        chunk_size: int = 255 * 1024,
        max_bytes: int = 50 * 1024 * 1024,
        allowed_content_types: Iterable[str] = (),
        expose_forbidden: bool = False,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._session_factory = session_factory
        self.key_prefix = key_prefix
        self.chunk_size = chunk_size
        self.max_bytes = max_bytes
        self.allowed_content_types = frozenset(normalize_content_type(t) for t in allowed_content_types)
        self.expose_forbidden = expose_forbidden

    @classmethod
    def from_settings(cls, session_factory: async_sessionmaker[AsyncSession]) -> "BlobStore":
        return cls(
            session_factory,
            key_prefix=settings.BLOB_KEY_PREFIX,
            chunk_size=settings.BLOB_CHUNK_SIZE,
            max_bytes=settings.MAX_UPLOAD_BYTES,
            allowed_content_types=settings.allowed_content_types_list,
            expose_forbidden=settings.EXPOSE_FORBIDDEN,
        )

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session, turning database failures into StorageBackendUnavailableError."""
        try:
            async with self._session_factory() as session:
                yield session
        except _BACKEND_ERRORS as e:
            logger.error(f"Blob store {operation} failed: {e}")
            raise StorageBackendUnavailableError(operation, str(e)) from e

    # ── Upload ───────────────────────────────────────────────────

    async def store(
        self,
        owner_id: str,
        original_name: str,
        content_type: Optional[str],
        stream: AsyncReadable,
        declared_size: Optional[int] = None,
    ) -> StoredObject:
        """Write ``stream`` as a new file owned by ``owner_id``.

        Validation happens before the stream is touched. The payload is read
        one chunk at a time and never held in memory as a whole.
        """
        if not owner_id or len(owner_id) > MAX_OWNER_ID_LENGTH:
            raise InvalidInputError(
                f"Owner id must be 1 to {MAX_OWNER_ID_LENGTH} characters",
                details={"length": len(owner_id or "")},
            )
        if not original_name or not original_name.strip():
            raise InvalidInputError("Original filename must not be empty")
        if len(original_name) > MAX_FILENAME_LENGTH:
            raise InvalidInputError(
                f"Filename is longer than {MAX_FILENAME_LENGTH} characters",
                details={"length": len(original_name)},
            )
        mime_type = normalize_content_type(content_type)
        if mime_type not in self.allowed_content_types:
            logger.warning(f"Rejected upload of {original_name!r} from {owner_id}: type {content_type!r}")
            raise InvalidContentTypeError(content_type or "", sorted(self.allowed_content_types))
        if declared_size is not None and declared_size > self.max_bytes:
            raise PayloadTooLargeError(declared_size, self.max_bytes)

        record = StoredObject(
            id=uuid.uuid4(),
            storage_key=build_storage_key(self.key_prefix, original_name),
            owner_id=owner_id,
            original_name=original_name,
            content_type=mime_type,
            size_bytes=0,
            chunk_size=self.chunk_size,
            deleted=False,
            created_at=datetime.now(timezone.utc),
        )

        async with self._session("store") as session:
            async with session.begin():
                session.add(record)
                await session.flush()
                written = await self._write_chunks(session, record.id, stream)
                if declared_size is not None and written != declared_size:
                    raise InvalidInputError(
                        "Uploaded size does not match the declared size",
                        details={"declared_size": declared_size, "received_size": written},
                    )
                record.size_bytes = written

        logger.info(f"Stored {record.storage_key} ({record.size_bytes} bytes) for {owner_id}")
        return record

    async def _write_chunks(self, session: AsyncSession, file_id: uuid.UUID, stream: AsyncReadable) -> int:
        """Copy ``stream`` into chunk rows. Returns the number of bytes written."""
        buffer = bytearray()
        written = 0
        n = 0
        while True:
            try:
                data = await stream.read(self.chunk_size)
            except OSError as e:
                # The upload source failed, not the database
                logger.warning(f"Upload {file_id} interrupted after {written} bytes: {e}")
                raise UploadInterruptedError(written, str(e)) from e
            if not data:
                break
            written += len(data)
            if written > self.max_bytes:
                logger.warning(f"Aborted upload {file_id}: passed {self.max_bytes} bytes")
                raise PayloadTooLargeError(written, self.max_bytes)
            buffer.extend(data)
            while len(buffer) >= self.chunk_size:
                await self._insert_chunk(session, file_id, n, bytes(buffer[:self.chunk_size]))
                del buffer[:self.chunk_size]
                n += 1
        if buffer:
            await self._insert_chunk(session, file_id, n, bytes(buffer))
        return written

    @staticmethod
    async def _insert_chunk(session: AsyncSession, file_id: uuid.UUID, n: int, data: bytes) -> None:
        # Core insert so finished chunks don't pile up in the identity map
        await session.execute(insert(BlobChunk).values(file_id=file_id, n=n, data=data))

    # ── Reads ────────────────────────────────────────────────────

    @staticmethod
    async def _get_active(session: AsyncSession, storage_key: str) -> StoredObject:
        result = await session.execute(
            select(StoredObject).where(StoredObject.storage_key == storage_key)
        )
        record = result.scalar_one_or_none()
        if record is None or record.deleted:
            raise ObjectNotFoundError(storage_key)
        return record

    async def list_objects(self, owner_id: str) -> list[StoredObject]:
        """Active files of ``owner_id``, newest first."""
        async with self._session("list") as session:
            result = await session.execute(
                select(StoredObject)
                .where(StoredObject.owner_id == owner_id, StoredObject.deleted.is_(False))
                .order_by(desc(StoredObject.created_at), desc(StoredObject.storage_key))
            )
            return list(result.scalars().all())

    async def inspect(self, storage_key: str, requester_id: str) -> StoredObject:
        """Metadata of an active file owned by ``requester_id``."""
        async with self._session("inspect") as session:
            record = await self._get_active(session, storage_key)
        ensure_owner(record, requester_id, self.expose_forbidden)
        return record

    async def fetch(self, storage_key: str, requester_id: str) -> tuple[StoredObject, AsyncIterator[bytes]]:
        """Metadata plus a lazy chunk iterator over the payload.

        Ownership is settled before the iterator exists, so a foreign caller
        never receives a byte.
        """
        record = await self.inspect(storage_key, requester_id)
        return record, self._iter_chunks(record)

    async def _iter_chunks(self, record: StoredObject) -> AsyncIterator[bytes]:
        # One chunk per query keeps memory flat; abandoning the iterator just closes the session
        async with self._session("download") as session:
            for n in range(record.chunk_count):
                result = await session.execute(
                    select(BlobChunk.data).where(BlobChunk.file_id == record.id, BlobChunk.n == n)
                )
                data = result.scalar_one_or_none()
                if data is None:
                    logger.error(f"Chunk {n} of {record.storage_key} is missing")
                    raise StorageBackendUnavailableError("download", f"missing chunk {n} of {record.storage_key}")
                yield data

    async def read_payload_unchecked(self, storage_key: str) -> bytes:
        """Full payload regardless of owner or deleted flag.

        Internal use only (purge and admin tooling); never exposed over HTTP.
        """
        async with self._session("read") as session:
            file_id = (await session.execute(
                select(StoredObject.id).where(StoredObject.storage_key == storage_key)
            )).scalar_one_or_none()
            if file_id is None:
                raise ObjectNotFoundError(storage_key)
            result = await session.execute(
                select(BlobChunk.data).where(BlobChunk.file_id == file_id).order_by(BlobChunk.n)
            )
            return b"".join(result.scalars().all())

    # ── Deletion ─────────────────────────────────────────────────

    async def soft_delete(self, storage_key: str, requester_id: str) -> None:
        """Mark an active file as deleted. Its bytes stay until purge.

        A file that is already deleted is reported as not found.
        """
        async with self._session("delete") as session:
            async with session.begin():
                record = await self._get_active(session, storage_key)
                ensure_owner(record, requester_id, self.expose_forbidden)
                result = await session.execute(
                    update(StoredObject)
                    .where(StoredObject.id == record.id, StoredObject.deleted.is_(False))
                    .values(deleted=True, deleted_at=datetime.now(timezone.utc))
                )
                if result.rowcount == 0:
                    logger.debug(f"{storage_key} was deleted concurrently")
        logger.info(f"Soft-deleted {storage_key} for {requester_id}")

    async def purge_deleted_older_than(self, retention: timedelta) -> int:
        """Erase deleted files whose deleted_at is older than ``retention``.

        Chunks and metadata go in one transaction. Returns the number of
        files purged.
        """
        cutoff = datetime.now(timezone.utc) - retention
        expired = (StoredObject.deleted.is_(True), StoredObject.deleted_at < cutoff)
        async with self._session("purge") as session:
            async with session.begin():
                file_ids = list((await session.execute(
                    select(StoredObject.id).where(*expired)
                )).scalars().all())
                if not file_ids:
                    return 0
                await session.execute(
                    delete(BlobChunk).where(BlobChunk.file_id.in_(file_ids))
                )
                await session.execute(
                    delete(StoredObject)
                    .where(StoredObject.id.in_(file_ids), *expired)
                    .execution_options(synchronize_session=False)
                )
        logger.info(f"Purged {len(file_ids)} file(s) deleted before {cutoff.isoformat()}")
        return len(file_ids)
