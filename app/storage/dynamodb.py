import boto3
from typing import Optional, Dict, Any, List, Iterable, Iterator
from boto3.dynamodb.conditions import Key, ConditionBase
from botocore.exceptions import ClientError
from app.settings import Settings, settings
import logging

log = logging.getLogger(__name__)

USER_INDEX = "UserCreatedIndex"
BATCH_GET_MAX_KEYS = 100

# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    """
        Images and their metadata live in two tables, each with a
        (user_id, created_at) index so listings come back newest first.
        Metadata is keyed by image_id, which keeps it 1:1 with images.
    """
    def __init__(self, config: Settings = settings):
        self.images_table_name = config.images_table
        self.metadata_table_name = config.metadata_table
        session = boto3.session.Session(region_name=config.aws_region)
        kwargs = {
            "aws_access_key_id": config.aws_access_key_id,
            "aws_secret_access_key": config.aws_secret_access_key,
        }
        if config.aws_endpoint_url:
            kwargs["endpoint_url"] = config.aws_endpoint_url

        self.resource = session.resource("dynamodb", **kwargs)
        log.info("Initialized DynamoDB resource")

        # Ensure tables exist at initialization
        self.ensure_tables()

    @property
    def images(self):
        return self.resource.Table(self.images_table_name)

    @property
    def metadata(self):
        return self.resource.Table(self.metadata_table_name)

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_tables(self):
        self.ensure_table(self.images_table_name, "id")
        self.ensure_table(self.metadata_table_name, "image_id")

    def ensure_table(self, table_name: str, hash_key: str):
        try:
            table = self.resource.Table(table_name)
            table.load()
        except ClientError:
            table = self.resource.create_table(**table_definition(table_name, hash_key))
            table.wait_until_exists()
            log.info("Created table %s", table_name)

    # -- writes --

    def put_image(self, item: Dict[str, Any]):
        self.images.put_item(Item=item)
        log.debug("Inserted image %s", item.get("id"))

    def put_metadata(self, item: Dict[str, Any]):
        # An image never gets a second metadata record
        self.metadata.put_item(
            Item=item,
            ConditionExpression="attribute_not_exists(image_id)",
        )
        log.debug("Inserted metadata %s for image %s", item.get("id"), item.get("image_id"))

    # -- reads --

    def get_image(self, image_id: str) -> Optional[Dict[str, Any]]:
        resp = self.images.get_item(Key={"id": image_id})
        return resp.get("Item")

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        resp = self.metadata.get_item(Key={"image_id": image_id})
        return resp.get("Item")

    def batch_get_images(self, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        return self._batch_get(self.images_table_name, "id", ids)

    def batch_get_metadata(self, image_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        return self._batch_get(self.metadata_table_name, "image_id", image_ids)

    def _batch_get(self, table_name: str, key_name: str, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        unique_ids = list(dict.fromkeys(ids))
        found: Dict[str, Dict[str, Any]] = {}
        for start in range(0, len(unique_ids), BATCH_GET_MAX_KEYS):
            chunk = unique_ids[start:start + BATCH_GET_MAX_KEYS]
            request = {table_name: {"Keys": [{key_name: i} for i in chunk]}}
            while request:
                resp = self.resource.batch_get_item(RequestItems=request)
                for item in resp.get("Responses", {}).get(table_name, []):
                    found[item[key_name]] = item
                request = resp.get("UnprocessedKeys") or None
        return found

    def iter_user_items(
        self,
        table,
        user_id: str,
        filter_expression: Optional[ConditionBase] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Yields a user's items newest first, following LastEvaluatedKey."""
        query_kwargs = {
            "IndexName": USER_INDEX,
            "KeyConditionExpression": Key("user_id").eq(user_id),
            "ScanIndexForward": False,
        }
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression
        while True:
            resp = table.query(**query_kwargs)
            yield from resp.get("Items", [])
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return
            query_kwargs["ExclusiveStartKey"] = last_key

    def query_user_items(
        self,
        table,
        user_id: str,
        offset: int,
        limit: int,
        filter_expression: Optional[ConditionBase] = None,
    ) -> List[Dict[str, Any]]:
        """Returns the [offset, offset+limit) slice of a user's items."""
        page: List[Dict[str, Any]] = []
        for position, item in enumerate(self.iter_user_items(table, user_id, filter_expression)):
            if position >= offset + limit:
                break
            if position >= offset:
                page.append(item)
        return page

    def count_user_items(
        self,
        table,
        user_id: str,
        filter_expression: Optional[ConditionBase] = None,
    ) -> int:
        query_kwargs = {
            "IndexName": USER_INDEX,
            "KeyConditionExpression": Key("user_id").eq(user_id),
            "Select": "COUNT",
        }
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression
        total = 0
        while True:
            resp = table.query(**query_kwargs)
            total += resp.get("Count", 0)
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return total
            query_kwargs["ExclusiveStartKey"] = last_key

    def close(self):
        log.info("Closed DynamoDB resource")


def table_definition(table_name: str, hash_key: str) -> Dict[str, Any]:
    """create_table arguments for a table with the per-user listing index."""
    attributes = {hash_key, "user_id", "created_at"}
    return {
        "TableName": table_name,
        "KeySchema": [{"AttributeName": hash_key, "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": "S"} for name in sorted(attributes)
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": USER_INDEX,
                "KeySchema": [
                    {"AttributeName": "user_id", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }
