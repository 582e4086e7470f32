import os
import itertools
from datetime import datetime, timedelta, timezone
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient
from jose import jwt

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)

from app.main import app
from app.settings import Settings
from app.storage.s3 import S3Service
from app.storage.dynamodb import DynamoDBService
from app.exceptions import AnalysisException
from app.image_service import service
from app.image_service.models import ImageRecord, MetadataRecord, new_id, to_iso

JWT_SECRET = "test-jwt-secret"


class FakeAnalyzer:
    """Stands in for GeminiAnalyzer; returns a fixed result or raises."""
    def __init__(self, result=None, error=None):
        self.result = result if result is not None else {
            "description": "A red square",
            "tags": ["red", "square"],
            "objects": ["square"],
            "scenes": ["abstract"],
            "colors": ["red"],
        }
        self.error = error
        self.calls = []

    def analyze(self, base64_image, mime_type):
        self.calls.append((base64_image, mime_type))
        if self.error is not None:
            raise self.error
        return self.result

    def close(self):
        pass


def make_token(user_id: str, secret: str = JWT_SECRET, audience: str = "authenticated", expires_in: int = 3600) -> str:
    claims = {
        "sub": user_id,
        "aud": audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture(scope="function")
def config():
    return Settings(
        aws_region="us-east-1",
        aws_endpoint_url=None,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        s3_bucket="image-search-test",
        images_table="images",
        metadata_table="image_metadata",
        public_base_url=None,
        supabase_jwt_secret=JWT_SECRET,
        gemini_api_key=None,
        search_mode="application",
    )


@pytest.fixture(scope="function")
def aws():
    with mock_aws():
        yield


@pytest.fixture(scope="function")
def s3_service(aws, config):
    return S3Service(config)


@pytest.fixture(scope="function")
def db_service(aws, config):
    return DynamoDBService(config)


@pytest.fixture(scope="function")
def analyzer():
    return FakeAnalyzer()


@pytest.fixture(scope="function")
def unique_keys(mocker):
    """Gives every upload in a test its own timestamp in the storage key."""
    original = service.build_storage_key
    counter = itertools.count(1_700_000_000_000)
    return mocker.patch.object(
        service,
        "build_storage_key",
        side_effect=lambda user_id, file_name: original(user_id, file_name, next(counter)),
    )


@pytest.fixture(scope="function")
def test_client(config, s3_service, db_service, analyzer, unique_keys):
    app.state.settings = config
    app.state.s3 = s3_service
    app.state.db = db_service
    app.state.analyzer = analyzer

    with TestClient(app) as client:
        yield client


class Seeder:
    """Writes images (and optional metadata) straight into the tables, one second apart."""
    def __init__(self, db):
        self.db = db
        self.clock = itertools.count()
        self.start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self):
        return self.start + timedelta(seconds=next(self.clock))

    def image(self, user_id, file_name="photo.jpg", metadata=None):
        image = ImageRecord(
            id=new_id(),
            user_id=user_id,
            storage_path=f"{user_id}/{file_name}",
            file_name=file_name,
            content_type="image/jpeg",
            size=123,
            url=f"https://cdn.example.com/{user_id}/{file_name}",
            created_at=self._tick(),
        )
        item = image.model_dump()
        item["created_at"] = to_iso(image.created_at)
        self.db.put_image(item)
        if metadata is not None:
            record = MetadataRecord(
                id=new_id(),
                image_id=image.id,
                tags=metadata.get("tags", []),
                objects=metadata.get("objects", []),
                scenes=metadata.get("scenes", []),
                colors=metadata.get("colors", []),
                description=metadata.get("description", ""),
                created_at=self._tick(),
            )
            self.db.put_metadata(service.metadata_item(record, owner_id=user_id))
        return image


@pytest.fixture(scope="function")
def seeder(db_service):
    return Seeder(db_service)


@pytest.fixture(scope="function")
def failing_analyzer():
    return FakeAnalyzer(error=AnalysisException("model unavailable"))
