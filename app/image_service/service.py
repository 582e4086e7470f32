from typing import Any, Dict, Optional
import base64
import logging
import time
from botocore.exceptions import BotoCoreError, ClientError

from app.analysis.gemini import GeminiAnalyzer
from app.storage.dynamodb import DynamoDBService
from app.storage.s3 import S3Service, ObjectExistsError
from app.image_service.models import (
    ImageRecord, MetadataRecord, UploadResponse, SEARCHABLE_LIST_FIELDS, new_id, utc_now, to_iso,
)
from app.exceptions import InvalidInputException, StorageException, StoreException

log = logging.getLogger(__name__)

ANALYSIS_WARNING = "Image was uploaded, but AI analysis failed."

def validate_content_type(content_type: Optional[str]) -> str:
    """Only image/* uploads are accepted."""
    if not content_type or not content_type.startswith("image/"):
        raise InvalidInputException("Only image files are allowed")
    return content_type

def build_storage_key(user_id: str, file_name: str, timestamp_ms: Optional[int] = None) -> str:
    """Derives the object key from the owner, upload time and file extension."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    extension = file_name.rsplit(".", 1)[-1]
    return f"{user_id}/{user_id}_{timestamp_ms}.{extension}"

def ingest_image(
    db: DynamoDBService,
    s3: S3Service,
    analyzer: GeminiAnalyzer,
    user_id: str,
    file_bytes: bytes,
    file_name: str,
    content_type: Optional[str],
    size: Optional[int] = None,
) -> UploadResponse:
    """
        Stores an upload and its AI-generated metadata.

        The image row is the commit point. Everything after it is best
        effort: analysis or metadata failures only add a warning.
    """
    content_type = validate_content_type(content_type)
    storage_path = build_storage_key(user_id, file_name)

    try:
        stored = s3.put(storage_path, file_bytes, content_type, overwrite=False)
    except (BotoCoreError, ClientError, ObjectExistsError) as e:
        log.error(f"S3 upload failed: {e}")
        raise StorageException("Failed to upload image")

    image = ImageRecord(
        id=new_id(),
        user_id=user_id,
        storage_path=storage_path,
        file_name=file_name,
        content_type=content_type,
        size=size if size is not None else len(file_bytes),
        url=stored["url"],
        created_at=utc_now(),
    )
    item = image.model_dump()
    item["created_at"] = to_iso(image.created_at)
    try:
        db.put_image(item)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB put_image failed: {e}")
        raise StoreException("Failed to save image metadata")
    log.info("Saved image %s for user %s", image.id, user_id)

    metadata = analyze_and_store(db, analyzer, image, file_bytes)
    if metadata is None:
        return UploadResponse(image=image, metadata=None, warning=ANALYSIS_WARNING)
    return UploadResponse(image=image, metadata=metadata)

def analyze_and_store(
    db: DynamoDBService,
    analyzer: GeminiAnalyzer,
    image: ImageRecord,
    file_bytes: bytes,
) -> Optional[MetadataRecord]:
    """Runs the analyzer and persists its output; returns None on any failure."""
    try:
        analysis = analyzer.analyze(base64.b64encode(file_bytes).decode("ascii"), image.content_type)
        metadata = MetadataRecord(
            id=new_id(),
            image_id=image.id,
            tags=analysis.get("tags") or [],
            objects=analysis.get("objects") or [],
            scenes=analysis.get("scenes") or [],
            colors=analysis.get("colors") or [],
            description=analysis.get("description") or "",
            created_at=utc_now(),
        )
        db.put_metadata(metadata_item(metadata, owner_id=image.user_id))
    except Exception as e:
        # Analysis is best effort: the image is already committed
        log.warning("Analysis failed for image %s: %s", image.id, e, exc_info=e)
        return None
    log.info("Saved metadata %s for image %s", metadata.id, image.id)
    return metadata

def metadata_item(metadata: MetadataRecord, owner_id: str) -> Dict[str, Any]:
    """Store representation: the record plus owner and lowercased search copies."""
    item = metadata.model_dump()
    item["created_at"] = to_iso(metadata.created_at)
    item["user_id"] = owner_id
    item["search_description"] = metadata.description.lower()
    for field in SEARCHABLE_LIST_FIELDS:
        item[f"search_{field}"] = [value.lower() for value in getattr(metadata, field)]
    return item
