from typing import List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel
from uuid import uuid4

# Metadata list fields matched by keyword search
SEARCHABLE_LIST_FIELDS = ("tags", "objects", "scenes", "colors")

def new_id() -> str:
    """Generates a new unique record ID."""
    return str(uuid4())

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def to_iso(value: datetime) -> str:
    """Fixed-width ISO timestamp, so stored values sort chronologically."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")

class ImageRecord(BaseModel):
    id: str
    user_id: str
    storage_path: str
    file_name: str
    content_type: str
    size: int
    url: str
    created_at: datetime

class MetadataRecord(BaseModel):
    id: str
    image_id: str
    tags: List[str] = []
    objects: List[str] = []
    scenes: List[str] = []
    colors: List[str] = []
    description: str = ""
    created_at: datetime

class ImageWithMetadata(ImageRecord):
    metadata: Optional[MetadataRecord] = None

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int

class SearchResponse(BaseModel):
    images: List[ImageWithMetadata]
    pagination: Pagination

class UploadResponse(BaseModel):
    image: ImageRecord
    metadata: Optional[MetadataRecord] = None
    warning: Optional[str] = None
