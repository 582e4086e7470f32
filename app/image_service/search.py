"""
Keyword search over a user's images and their generated metadata.

Two filtering strategies are supported for keyword queries:

* ``application`` - every metadata record of the user is fetched and filtered
  in process. The description and each tag/object/scene/color element are
  matched as case-insensitive substrings.
* ``pushdown`` - DynamoDB evaluates the filter. The description is matched as
  a case-insensitive substring, but tags/objects/scenes/colors only match when
  one element equals the query (``contains`` on a list is membership).

A query of "sunset" therefore finds a tag "sunsets" in application mode but
not in pushdown mode. Both report the real number of matches as ``total``.
"""
from typing import Any, Dict, Iterable, List, Optional
import logging
import math
from boto3.dynamodb.conditions import Attr, ConditionBase
from botocore.exceptions import BotoCoreError, ClientError

from app.storage.dynamodb import DynamoDBService
from app.image_service.models import ImageWithMetadata, Pagination, SearchResponse, SEARCHABLE_LIST_FIELDS
from app.exceptions import InvalidInputException, StoreException

log = logging.getLogger(__name__)

SEARCH_MODES = ("application", "pushdown")

def search_images(
    db: DynamoDBService,
    user_id: str,
    query: str = "",
    page: int = 1,
    limit: int = 20,
    mode: str = "application",
    case_sensitive_elements: bool = False,
) -> SearchResponse:
    """
        Returns one page of the user's images, newest first.

        Without a query every image is listed (with or without metadata).
        With a query only images whose metadata matches are returned.
    """
    if page < 1 or limit < 1:
        raise InvalidInputException("page and limit must be positive integers")
    if mode not in SEARCH_MODES:
        raise ValueError(f"Unknown search mode: {mode}")

    query = (query or "").strip()
    offset = (page - 1) * limit
    try:
        if not query:
            rows, total = list_user_images(db, user_id, offset, limit)
        elif mode == "pushdown":
            rows, total = search_pushdown(db, user_id, query, offset, limit, case_sensitive_elements)
        else:
            rows, total = search_application(db, user_id, query, offset, limit)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB search failed: {e}")
        raise StoreException("Failed to search images")

    return SearchResponse(
        images=rows,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            totalPages=total_pages(total, limit),
        ),
    )

def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0

def list_user_images(db: DynamoDBService, user_id: str, offset: int, limit: int):
    images = db.query_user_items(db.images, user_id, offset, limit)
    total = db.count_user_items(db.images, user_id)
    metadata = db.batch_get_metadata(image["id"] for image in images)
    rows = [to_row(image, metadata.get(image["id"])) for image in images]
    return rows, total

def search_pushdown(
    db: DynamoDBService,
    user_id: str,
    query: str,
    offset: int,
    limit: int,
    case_sensitive_elements: bool = False,
):
    condition = pushdown_filter(query, case_sensitive_elements)
    matches = db.query_user_items(db.metadata, user_id, offset, limit, condition)
    total = db.count_user_items(db.metadata, user_id, condition)
    return join_images(db, user_id, matches), total

def pushdown_filter(query: str, case_sensitive_elements: bool = False) -> ConditionBase:
    """Description substring OR exact element of any of the list fields."""
    needle = query.lower()
    condition = Attr("search_description").contains(needle)
    for field in SEARCHABLE_LIST_FIELDS:
        if case_sensitive_elements:
            condition = condition | Attr(field).contains(query)
        else:
            condition = condition | Attr(f"search_{field}").contains(needle)
    return condition

def search_application(db: DynamoDBService, user_id: str, query: str, offset: int, limit: int):
    matches = [
        item for item in db.iter_user_items(db.metadata, user_id)
        if matches_query(item, query)
    ]
    page_items = matches[offset:offset + limit]
    return join_images(db, user_id, page_items), len(matches)

def matches_query(metadata: Dict[str, Any], query: str) -> bool:
    """Case-insensitive substring match on description and list elements."""
    needle = query.lower()
    if needle in (metadata.get("description") or "").lower():
        return True
    return any(
        needle in str(value).lower()
        for field in SEARCHABLE_LIST_FIELDS
        for value in metadata.get(field) or []
    )

def join_images(db: DynamoDBService, user_id: str, metadata_items: Iterable[Dict[str, Any]]) -> List[ImageWithMetadata]:
    metadata_items = list(metadata_items)
    images = db.batch_get_images(item["image_id"] for item in metadata_items)
    rows = []
    for item in metadata_items:
        image = images.get(item["image_id"])
        if image is None or image.get("user_id") != user_id:
            log.warning("Skipping metadata %s without a matching image", item.get("id"))
            continue
        rows.append(to_row(image, item))
    return rows

def to_row(image: Dict[str, Any], metadata: Optional[Dict[str, Any]]) -> ImageWithMetadata:
    """Image fields merged with a nested ``metadata`` object (or None)."""
    return ImageWithMetadata.model_validate({**image, "metadata": metadata})
