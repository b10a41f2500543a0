"""Files API routes.

Every route needs a bearer token; the token's user id is the only identity
the storage core ever sees.
"""
from urllib.parse import quote

from fastapi import APIRouter, Depends, UploadFile, File as FastAPIFile
from fastapi.responses import StreamingResponse

from app.auth import get_current_user_id
from app.config import settings
from app.dependencies import get_blob_store
from app.models.stored_object import StoredObject
from app.schemas.file import (
    DeleteResponse,
    FileEnvelope,
    FileListEnvelope,
    FileResponse,
    FileSummary,
)
from app.services.blob_store import BlobStore

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("/upload", response_model=FileEnvelope, status_code=201)
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    user_id: str = Depends(get_current_user_id),
    store: BlobStore = Depends(get_blob_store),
):
    """Upload a file to blob storage."""
    record = await store.store(
        owner_id=user_id,
        original_name=file.filename or "",
        content_type=file.content_type,
        stream=file,
        declared_size=file.size,
    )
    return {
        "success": True,
        "message": "File uploaded successfully",
        "data": _to_response(record),
    }


@router.get("/my-files", response_model=FileListEnvelope)
async def list_my_files(
    user_id: str = Depends(get_current_user_id),
    store: BlobStore = Depends(get_blob_store),
):
    """List the caller's files, newest first."""
    records = await store.list_objects(user_id)
    files = [FileSummary.model_validate(r) for r in records]
    return {
        "success": True,
        "data": {
            "files": files,
            "total_files": len(files),
            "total_size": sum(f.size_bytes for f in files),
        },
    }


@router.get("/download/{storage_key}")
async def download_file(
    storage_key: str,
    user_id: str = Depends(get_current_user_id),
    store: BlobStore = Depends(get_blob_store),
):
    """Stream a file's bytes back to its owner."""
    record, chunks = await store.fetch(storage_key, user_id)
    return StreamingResponse(
        chunks,
        media_type=record.content_type,
        headers={
            "Content-Disposition": content_disposition(record.original_name),
            "Content-Length": str(record.size_bytes),
        },
    )


@router.get("/info/{storage_key}", response_model=FileEnvelope)
async def get_file_info(
    storage_key: str,
    user_id: str = Depends(get_current_user_id),
    store: BlobStore = Depends(get_blob_store),
):
    """Get file metadata."""
    record = await store.inspect(storage_key, user_id)
    return {"success": True, "data": _to_response(record)}


@router.delete("/{storage_key}", response_model=DeleteResponse)
async def delete_file(
    storage_key: str,
    user_id: str = Depends(get_current_user_id),
    store: BlobStore = Depends(get_blob_store),
):
    """Move a file to trash. The purge worker erases it after the retention window."""
    await store.soft_delete(storage_key, user_id)
    return {
        "success": True,
        "message": (
            "File moved to trash. It will be permanently deleted "
            f"after {settings.RETENTION_DAYS} days."
        ),
    }


def content_disposition(filename: str) -> str:
    """Attachment header carrying the original filename.

    Names with anything URL-unsafe, path separators included, go in the
    RFC 5987 ``filename*`` form.
    """
    quoted = quote(filename, safe="")
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def _to_response(record: StoredObject) -> FileResponse:
    return FileResponse.model_validate(record)
