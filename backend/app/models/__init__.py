"""Import all models so SQLAlchemy metadata knows about them."""
from app.models.base import Base
from app.models.stored_object import StoredObject, BlobChunk

__all__ = ["Base", "StoredObject", "BlobChunk"]
