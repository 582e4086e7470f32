import pytest
from botocore.exceptions import ClientError

from app.storage.s3 import ObjectExistsError


# ------------------------------
# S3Service.put
# ------------------------------

def test_put_returns_public_url(s3_service):
    stored = s3_service.put("u1/a.png", b"data", "image/png")
    assert stored == {"url": f"https://{s3_service.bucket}.s3.us-east-1.amazonaws.com/u1/a.png"}


def test_second_put_on_same_key_fails(s3_service):
    s3_service.put("u1/u1_1.png", b"first", "image/png")

    with pytest.raises(ObjectExistsError):
        s3_service.put("u1/u1_1.png", b"second", "image/png")

    stored = s3_service.client.get_object(Bucket=s3_service.bucket, Key="u1/u1_1.png")
    assert stored["Body"].read() == b"first"


def test_put_is_conditional_unless_overwrite(s3_service, mocker):
    put_object = mocker.patch.object(s3_service.client, "put_object")

    s3_service.put("k1", b"x", "image/png")
    s3_service.put("k2", b"x", "image/png", overwrite=True)

    assert put_object.call_args_list[0].kwargs["IfNoneMatch"] == "*"
    assert "IfNoneMatch" not in put_object.call_args_list[1].kwargs


def test_overwrite_replaces_existing_object(s3_service):
    s3_service.put("u1/b.png", b"old", "image/png")
    s3_service.put("u1/b.png", b"new", "image/png", overwrite=True)

    stored = s3_service.client.get_object(Bucket=s3_service.bucket, Key="u1/b.png")
    assert stored["Body"].read() == b"new"


def test_other_client_errors_propagate(s3_service, mocker):
    mocker.patch.object(
        s3_service.client,
        "put_object",
        side_effect=ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject"),
    )
    with pytest.raises(ClientError):
        s3_service.put("k", b"x", "image/png")
