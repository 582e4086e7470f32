import boto3
from botocore.exceptions import ClientError
from app.settings import Settings, settings
import logging

log = logging.getLogger(__name__)

class ObjectExistsError(Exception):
    """Raised when a put without overwrite targets an existing key."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object already exists: {key}")

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    def __init__(self, config: Settings = settings):
        self.config = config
        self.bucket = config.s3_bucket
        session = boto3.session.Session(region_name=config.aws_region)
        kwargs = {
            "aws_access_key_id": config.aws_access_key_id,
            "aws_secret_access_key": config.aws_secret_access_key,
        }
        if config.aws_endpoint_url:
            kwargs["endpoint_url"] = config.aws_endpoint_url

        self.client = session.client("s3", **kwargs)
        log.info("Initialized S3 client")

        # Ensure bucket exists at initialization
        self.ensure_bucket()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            error_code = int(e.response["Error"]["Code"])
            if error_code == 404:
                self.client.create_bucket(Bucket=self.bucket)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def put(self, key: str, data: bytes, content_type: str, overwrite: bool = False) -> dict:
        """Stores ``data`` under ``key`` and returns ``{"url": public_url}``."""
        put_kwargs = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if not overwrite:
            # S3 rejects the write atomically when the key already exists
            put_kwargs["IfNoneMatch"] = "*"
        try:
            self.client.put_object(**put_kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] == "PreconditionFailed":
                raise ObjectExistsError(key) from e
            raise
        log.debug("Uploaded %s to s3://%s/%s", key, self.bucket, key)
        return {"url": self.public_url(key)}

    def public_url(self, key: str) -> str:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        if self.config.aws_endpoint_url:
            return f"{self.config.aws_endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.config.aws_region}.amazonaws.com/{key}"

    def close(self):
        log.info("Closed S3 client")
