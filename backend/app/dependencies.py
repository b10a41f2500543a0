"""Shared FastAPI dependencies."""
from fastapi import Request

from app.services.blob_store import BlobStore


def get_blob_store(request: Request) -> BlobStore:
    """Return the blob store constructed during startup."""
    return request.app.state.blob_store
