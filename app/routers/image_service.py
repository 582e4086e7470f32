from fastapi import APIRouter, Depends, UploadFile, File, Query, Response
from starlette.concurrency import run_in_threadpool
from typing import Optional
import logging

from app.analysis.gemini import GeminiAnalyzer
from app.storage.dynamodb import DynamoDBService
from app.storage.s3 import S3Service
from app.dependencies.dependencies import (
    get_s3_service, get_dynamodb_service, get_analyzer, get_current_user_id, get_settings,
)
from app.image_service.service import ingest_image, validate_content_type
from app.image_service.search import search_images
from app.image_service.models import UploadResponse, SearchResponse
from app.exceptions import InvalidInputException
from app.settings import Settings

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["images"]
)

@router.post("/upload", response_model=UploadResponse, response_model_exclude_unset=True)
async def upload_image(
    response: Response,
    file: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
    analyzer: GeminiAnalyzer = Depends(get_analyzer),
):
    """Uploads one image, then tags it with the vision model."""
    response.headers["X-Content-Type-Options"] = "nosniff"

    if file is None or not file.filename:
        raise InvalidInputException("No file provided")
    # Reject before reading the body or touching storage
    validate_content_type(file.content_type)

    contents = await file.read()
    return await run_in_threadpool(
        ingest_image,
        db=db,
        s3=s3,
        analyzer=analyzer,
        user_id=user_id,
        file_bytes=contents,
        file_name=file.filename,
        content_type=file.content_type,
        size=file.size if file.size is not None else len(contents),
    )

@router.get("/search", response_model=SearchResponse)
def search_images_handler(
    query: str = Query(""),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(get_current_user_id),
    db: DynamoDBService = Depends(get_dynamodb_service),
    config: Settings = Depends(get_settings),
):
    """Lists the caller's images, optionally filtered by a keyword query."""
    limit = min(limit or config.default_page_limit, config.max_page_limit)
    return search_images(
        db,
        user_id=user_id,
        query=query,
        page=page,
        limit=limit,
        mode=config.search_mode,
        case_sensitive_elements=config.search_case_sensitive_elements,
    )
