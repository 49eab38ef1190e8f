"""Unit tests for S3 storage backend."""

from __future__ import annotations

import io
from datetime import UTC, datetime
from typing import Any

import pytest
from botocore.exceptions import ClientError

from remi.errors import InvalidArgumentError, StorageError, UninitializedError
from remi.storage.base import ListBlobsRequest, UploadRequest
from remi.storage.s3 import S3Config, S3Provider, S3StorageService

MODIFIED = datetime(2024, 1, 1, tzinfo=UTC)


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    def __init__(self, bucket_exists: bool = True) -> None:
        self.objects: dict[str, tuple[bytes, str | None]] = {}
        self.bucket_exists = bucket_exists
        self.created_buckets: list[dict[str, Any]] = []
        self.put_calls: list[dict[str, Any]] = []
        self.list_calls: list[dict[str, Any]] = []
        self.delete_markers: set[str] = set()
        self.broken_keys: set[str] = set()
        self.closed = False

    def head_bucket(self, Bucket: str) -> dict[str, Any]:
        if not self.bucket_exists:
            raise _client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, **kwargs: Any) -> dict[str, Any]:
        self.created_buckets.append(kwargs)
        self.bucket_exists = True
        return {}

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        self.list_calls.append(kwargs)
        prefix = kwargs.get("Prefix", "")
        keys = sorted(key for key in self.objects if key.startswith(prefix))
        start = int(kwargs.get("ContinuationToken", "0"))
        end = start + kwargs["MaxKeys"]
        response: dict[str, Any] = {
            "Contents": [
                {
                    "Key": key,
                    "Size": len(self.objects[key][0]),
                    "ETag": f'"etag-{key}"',
                    "LastModified": MODIFIED,
                }
                for key in keys[start:end]
            ],
            "IsTruncated": end < len(keys),
        }
        if end < len(keys):
            response["NextContinuationToken"] = str(end)
        return response

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        if Key in self.broken_keys:
            raise _client_error("AccessDenied", "GetObject")
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        data, content_type = self.objects[Key]
        response: dict[str, Any] = {
            "Body": io.BytesIO(data),
            "ETag": f'"etag-{Key}"',
            "LastModified": MODIFIED,
        }
        if content_type:
            response["ContentType"] = content_type
        return response

    def head_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        if Key in self.delete_markers:
            return {"DeleteMarker": True}
        if Key not in self.objects:
            raise _client_error("404", "HeadObject")
        return {"ContentLength": len(self.objects[Key][0])}

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.put_calls.append(kwargs)
        self.objects[kwargs["Key"]] = (kwargs["Body"], kwargs.get("ContentType"))
        return {}

    def delete_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        self.objects.pop(Key, None)
        return {}

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_service(s3_client: FakeS3Client, resolver: Any) -> S3StorageService:
    service = S3StorageService(
        S3Config(bucket="test-bucket", page_size=2),
        content_type_resolver=resolver,
        client=s3_client,
    )
    service.init()
    return service


def test_s3_roundtrip(s3_service: S3StorageService) -> None:
    """Upload, check, read and delete a blob through a mocked client."""
    s3_service.upload(UploadRequest.from_bytes("owo.txt", b"owo da uwu", "text/plain"))
    assert s3_service.exists("owo.txt") is True

    stream = s3_service.open("owo.txt")
    assert stream is not None
    assert stream.read() == b"owo da uwu"

    blob = s3_service.blob("owo.txt")
    assert blob is not None
    assert blob.name == "owo.txt"
    assert blob.path == "s3://owo.txt"
    assert blob.content_type == "text/plain"
    assert blob.etag == '"etag-owo.txt"'
    assert blob.read() == b"owo da uwu"

    assert s3_service.delete("owo.txt") is True
    assert s3_service.exists("owo.txt") is False
    assert s3_service.delete("owo.txt") is False


class TestLifecycle:
    """Test init and close against the bucket."""

    def test_requires_init(self, s3_client: FakeS3Client) -> None:
        service = S3StorageService(S3Config(), client=s3_client)
        assert service.name == "remi:s3"
        with pytest.raises(UninitializedError):
            service.exists("a")

    def test_init_creates_missing_bucket_with_acl(self) -> None:
        client = FakeS3Client(bucket_exists=False)
        service = S3StorageService(
            S3Config(bucket="new", region="eu-west-1", default_bucket_acl="public-read"),
            client=client,
        )
        service.init()

        assert client.created_buckets == [
            {
                "Bucket": "new",
                "ACL": "public-read",
                "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"},
            }
        ]

    def test_custom_provider_omits_location_constraint(self) -> None:
        client = FakeS3Client(bucket_exists=False)
        config = S3Config(
            bucket="minio", region="eu-west-1", provider="custom", endpoint="http://minio:9000"
        )
        S3StorageService(config, client=client).init()
        assert "CreateBucketConfiguration" not in client.created_buckets[0]

    def test_init_propagates_access_errors(self) -> None:
        client = FakeS3Client()

        def forbidden(Bucket: str) -> None:
            raise _client_error("403", "HeadBucket")

        client.head_bucket = forbidden  # type: ignore[method-assign]
        with pytest.raises(StorageError):
            S3StorageService(S3Config(), client=client).init()

    def test_injected_client_is_not_closed(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        s3_service.close()
        assert not s3_client.closed
        assert not s3_service.initialized


class TestListing:
    """Test paginated listing and filtering."""

    def test_drains_all_pages(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        for i in range(5):
            s3_client.objects[f"batch/item-{i}"] = (b"x" * i, None)
        s3_client.objects["other/item"] = (b"y", None)

        blobs = s3_service.blobs(ListBlobsRequest(prefix="batch/"))

        assert sorted(b.path for b in blobs) == [f"s3://batch/item-{i}" for i in range(5)]
        assert [call.get("ContinuationToken") for call in s3_client.list_calls] == [None, "2", "4"]
        assert all(call["Prefix"] == "batch/" for call in s3_client.list_calls)

    def test_metadata_only_listing(
        self, s3_service: S3StorageService, s3_client: FakeS3Client, resolver: Any
    ) -> None:
        s3_client.objects["a.txt"] = (b"abc", "text/plain")

        [blob] = s3_service.blobs()
        assert blob.size == 3
        assert blob.content is None
        assert blob.content_type == "unknown"
        assert blob.last_modified_at == MODIFIED
        assert resolver.calls == 0

    def test_skips_directory_markers(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        s3_client.objects["photos/"] = (b"", None)
        s3_client.objects["photos/cat.png"] = (b"\x89PNG", None)

        assert [b.name for b in s3_service.blobs()] == ["photos/cat.png"]

    def test_filters_are_applied(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        for key in ["x", "x.txt", "a.txt", "a.md"]:
            s3_client.objects[key] = (b"1", None)

        request = ListBlobsRequest.build(extensions=["txt"], exclude=["x"])
        assert sorted(b.name for b in s3_service.blobs(request)) == ["a.txt", "x.txt"]

    def test_include_content_skips_failed_entries(
        self,
        s3_service: S3StorageService,
        s3_client: FakeS3Client,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        s3_client.objects["good.txt"] = (b"good", None)
        s3_client.objects["bad.txt"] = (b"bad", None)
        s3_client.broken_keys.add("bad.txt")

        blobs = s3_service.blobs(ListBlobsRequest(include_content=True))

        assert [b.name for b in blobs] == ["good.txt"]
        assert blobs[0].read() == b"good"
        assert blobs[0].content_type == "text/plain"
        assert "bad.txt" in caplog.text

    def test_listing_failure_raises(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        def fail(**kwargs: Any) -> None:
            raise _client_error("InternalError", "ListObjectsV2")

        s3_client.list_objects_v2 = fail  # type: ignore[method-assign]
        with pytest.raises(StorageError):
            s3_service.blobs()


class TestOperations:
    def test_upload_sends_length_type_and_acl(self, s3_client: FakeS3Client) -> None:
        service = S3StorageService(
            S3Config(default_object_acl="public-read"), client=s3_client
        )
        service.init()
        request = UploadRequest.from_bytes("k.bin", b"12345")
        service.upload(request)

        [call] = s3_client.put_calls
        assert call["ContentLength"] == 5
        assert call["ContentType"] == "application/octet-stream"
        assert call["ACL"] == "public-read"
        assert request.consumed

    def test_blob_sniffs_missing_content_type(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        s3_client.objects["raw"] = (b"\xff\xfe", None)
        blob = s3_service.blob("raw")
        assert blob is not None
        assert blob.content_type == "application/octet-stream"

    def test_missing_objects(self, s3_service: S3StorageService) -> None:
        assert s3_service.blob("missing") is None
        assert s3_service.open("missing") is None
        assert s3_service.exists("missing") is False

    def test_blob_rejects_directory_marker(self, s3_service: S3StorageService) -> None:
        with pytest.raises(InvalidArgumentError):
            s3_service.blob("photos/")

    def test_delete_marker_means_absent(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        s3_client.delete_markers.add("gone")
        assert s3_service.exists("gone") is False
        assert s3_service.delete("gone") is False

    def test_delete_prefix(self, s3_service: S3StorageService, s3_client: FakeS3Client) -> None:
        for i in range(3):
            s3_client.objects[f"dir/{i}"] = (b"x", None)
        s3_client.objects["keep"] = (b"x", None)

        assert s3_service.delete("dir/") is True
        assert sorted(s3_client.objects) == ["keep"]
        assert s3_service.delete("dir/") is False

    def test_unexpected_errors_become_storage_errors(
        self, s3_service: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        s3_client.objects["k"] = (b"x", None)
        s3_client.broken_keys.add("k")
        with pytest.raises(StorageError):
            s3_service.blob("k")


class TestKeyPrefix:
    """Keys are namespaced under the configured prefix."""

    @pytest.fixture
    def prefixed(self, s3_client: FakeS3Client, resolver: Any) -> S3StorageService:
        service = S3StorageService(
            S3Config(bucket="test-bucket", page_size=2, prefix="/tenant-a/"),
            content_type_resolver=resolver,
            client=s3_client,
        )
        service.init()
        return service

    def test_roundtrip_stays_inside_prefix(
        self, prefixed: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        prefixed.upload(UploadRequest.from_bytes("owo.txt", b"owo da uwu", "text/plain"))
        assert list(s3_client.objects) == ["tenant-a/owo.txt"]
        assert prefixed.exists("owo.txt") is True

        blob = prefixed.blob("owo.txt")
        assert blob is not None
        assert blob.name == "owo.txt"
        assert blob.path == "s3://owo.txt"
        assert blob.read() == b"owo da uwu"

        stream = prefixed.open("owo.txt")
        assert stream is not None
        assert stream.read() == b"owo da uwu"

        assert prefixed.delete("owo.txt") is True
        assert s3_client.objects == {}

    def test_listing_hides_prefix_and_other_tenants(
        self, prefixed: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        for key in ["tenant-a/a.txt", "tenant-a/docs/b.txt", "tenant-b/c.txt", "root.txt"]:
            s3_client.objects[key] = (b"1", None)

        blobs = prefixed.blobs(ListBlobsRequest(include_content=True))
        assert sorted(b.name for b in blobs) == ["a.txt", "docs/b.txt"]
        assert all(b.read() == b"1" for b in blobs)

        [docs] = prefixed.blobs(ListBlobsRequest(prefix="docs/"))
        assert docs.path == "s3://docs/b.txt"
        assert s3_client.list_calls[-1]["Prefix"] == "tenant-a/docs/"

    def test_delete_prefix_inside_namespace(
        self, prefixed: S3StorageService, s3_client: FakeS3Client
    ) -> None:
        for key in ["tenant-a/dir/1", "tenant-a/dir/2", "tenant-a/keep", "tenant-b/dir/1"]:
            s3_client.objects[key] = (b"x", None)

        assert prefixed.delete("dir/") is True
        assert sorted(s3_client.objects) == ["tenant-a/keep", "tenant-b/dir/1"]


class TestClientCreation:
    @pytest.fixture
    def created(self, monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
        calls: list[dict[str, Any]] = []

        def fake_client(service_name: str, **kwargs: Any) -> FakeS3Client:
            calls.append(kwargs)
            return FakeS3Client()

        monkeypatch.setattr("remi.storage.s3.boto3.client", fake_client)
        return calls

    def test_path_style_addressing(self, created: list[dict[str, Any]]) -> None:
        service = S3StorageService(
            S3Config(provider="custom", endpoint="http://localhost:9000", path_style=True)
        )
        service.init()

        [kwargs] = created
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["config"].s3 == {"addressing_style": "path"}

    def test_virtual_hosted_addressing_by_default(self, created: list[dict[str, Any]]) -> None:
        S3StorageService(S3Config()).init()

        [kwargs] = created
        assert kwargs["config"] is None


class TestS3Config:
    def test_key_prefix_is_normalized(self) -> None:
        assert S3Config().key_prefix == ""
        assert S3Config(prefix="/").key_prefix == ""
        assert S3Config(prefix="a/b").key_prefix == "a/b/"
        assert S3Config(prefix="/a/b/").key_prefix == "a/b/"

    def test_custom_provider_requires_endpoint(self) -> None:
        with pytest.raises(ValueError):
            S3Config(provider=S3Provider.CUSTOM)

    def test_endpoint_url(self) -> None:
        assert S3Config().endpoint_url is None
        assert S3Config(provider="wasabi").endpoint_url == "https://s3.wasabisys.com"
        assert S3Config(endpoint="http://localhost:9000").endpoint_url == "http://localhost:9000"
