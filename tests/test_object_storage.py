"""S3ObjectStorage against a mocked boto3 client."""
import time
import pytest
from unittest.mock import MagicMock
from botocore.exceptions import ClientError, EndpointConnectionError
from framework.storage import StorageError
from framework.storage.s3 import MAX_DELETE_KEYS, S3ObjectStorage


def _client_error(code="InternalError"):
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, "Operation")


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def storage(client) -> S3ObjectStorage:
    return S3ObjectStorage(bucket="models", timeout_seconds=5, client=client)


@pytest.mark.asyncio
async def test_put_sends_bucket_key_and_metadata(storage, client):
    client.put_object.return_value = {"ETag": '"abc123"'}

    result = await storage.put("1/m/v1/source/a.stl", b"solid", content_type="model/stl", metadata={"tenant-id": "1"})

    client.put_object.assert_called_once_with(
        Bucket="models",
        Key="1/m/v1/source/a.stl",
        Body=b"solid",
        ContentType="model/stl",
        Metadata={"tenant-id": "1"},
    )
    assert result.size == 5
    assert result.etag == "abc123"


@pytest.mark.asyncio
async def test_put_failure_raises_storage_error(storage, client):
    client.put_object.side_effect = _client_error()

    with pytest.raises(StorageError):
        await storage.put("k", b"x")


@pytest.mark.asyncio
async def test_delete_files_chunks_at_provider_limit(storage, client):
    keys = [f"1/obj-{i}" for i in range(MAX_DELETE_KEYS + 5)]
    client.delete_objects.side_effect = lambda Bucket, Delete: {
        "Deleted": [{"Key": o["Key"]} for o in Delete["Objects"]]
    }

    result = await storage.delete_files(keys)

    assert client.delete_objects.call_count == 2
    sizes = [len(call.kwargs["Delete"]["Objects"]) for call in client.delete_objects.call_args_list]
    assert sizes == [MAX_DELETE_KEYS, 5]
    assert result.deleted == keys
    assert result.failed == []


@pytest.mark.asyncio
async def test_delete_files_reports_per_key_errors(storage, client):
    client.delete_objects.return_value = {
        "Deleted": [{"Key": "a"}],
        "Errors": [{"Key": "b", "Code": "AccessDenied", "Message": "Access Denied"}],
    }

    result = await storage.delete_files(["a", "b"])

    assert result.deleted == ["a"]
    assert [(f.key, f.error) for f in result.failed] == [("b", "Access Denied")]


@pytest.mark.asyncio
async def test_delete_files_transport_error_fails_whole_chunk(storage, client):
    client.delete_objects.side_effect = _client_error("SlowDown")

    result = await storage.delete_files(["a", "b"])

    assert result.deleted == []
    assert [f.key for f in result.failed] == ["a", "b"]


@pytest.mark.asyncio
async def test_list_files_maps_contents_and_token(storage, client):
    client.list_objects_v2.return_value = {
        "Contents": [{"Key": "1/a", "Size": 10, "ETag": '"e1"'}],
        "IsTruncated": True,
        "NextContinuationToken": "next",
    }

    page = await storage.list_files("1/", limit=1, continuation_token="prev")

    client.list_objects_v2.assert_called_once_with(
        Bucket="models", Prefix="1/", MaxKeys=1, ContinuationToken="prev"
    )
    assert [(f.key, f.size, f.etag) for f in page.files] == [("1/a", 10, "e1")]
    assert page.is_truncated is True
    assert page.continuation_token == "next"


@pytest.mark.asyncio
async def test_list_files_failure_raises(storage, client):
    client.list_objects_v2.side_effect = _client_error()

    with pytest.raises(StorageError):
        await storage.list_files("1/")


@pytest.mark.asyncio
async def test_exists(storage, client):
    assert await storage.exists("present") is True

    client.head_object.side_effect = _client_error("404")
    assert await storage.exists("missing") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [_client_error("AccessDenied"), EndpointConnectionError(endpoint_url="https://r2.test")])
async def test_exists_wraps_transport_errors(storage, client, error):
    client.head_object.side_effect = error

    with pytest.raises(StorageError):
        await storage.exists("1/a")


@pytest.mark.asyncio
async def test_exists_wraps_timeouts(client):
    client.head_object.side_effect = lambda **kwargs: time.sleep(0.2)
    slow = S3ObjectStorage(bucket="models", timeout_seconds=0.01, client=client)

    with pytest.raises(StorageError):
        await slow.exists("1/a")


@pytest.mark.asyncio
async def test_download_url_uses_ttl(storage, client):
    client.generate_presigned_url.return_value = "https://signed"

    url = await storage.generate_download_url("1/a", ttl_minutes=15)

    assert url == "https://signed"
    client.generate_presigned_url.assert_called_once_with(
        "get_object", Params={"Bucket": "models", "Key": "1/a"}, ExpiresIn=900
    )
