"""File request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from app.schemas.base import CamelModel, CamelORMModel


class FileResponse(CamelORMModel):
    id: uuid.UUID
    storage_key: str
    original_name: str
    content_type: str
    size_bytes: int
    created_at: datetime
    owner_id: str


class FileSummary(FileResponse):
    download_url: str
    is_in_use: bool = False


class FileEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: FileResponse


class FileListData(CamelModel):
    files: list[FileSummary]
    total_files: int
    total_size: int


class FileListEnvelope(CamelModel):
    success: bool = True
    data: FileListData


class DeleteResponse(CamelModel):
    success: bool = True
    message: str
