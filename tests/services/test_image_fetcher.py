"""Tests for image fetching over HTTP and S3."""
from contextlib import asynccontextmanager

import httpx
import pytest
from botocore.exceptions import ClientError

from guest_tagger.core.exceptions import FetchError, StorageError
from guest_tagger.services.aws.s3 import S3Service, parse_s3_uri
from guest_tagger.services.image_fetcher import ImageFetcher


class FakeBody:
    def __init__(self, content: bytes):
        self.content = content

    async def read(self) -> bytes:
        return self.content


class FakeS3Client:
    def __init__(self, objects):
        self.objects = objects

    async def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": FakeBody(self.objects[(Bucket, Key)])}


class FakeS3Service(S3Service):
    def __init__(self, objects):
        super().__init__(bucket_name="wedding-photos", region_name="us-east-1")
        self._client = FakeS3Client(objects)

    @asynccontextmanager
    async def _get_client(self):
        yield self._client


def http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestImageFetcher:

    async def test_fetches_http_image(self):
        client = http_client(lambda request: httpx.Response(200, content=b"jpeg-bytes"))
        fetcher = ImageFetcher(client=client)

        assert await fetcher.fetch("https://cdn.example.com/a.jpg") == b"jpeg-bytes"
        await client.aclose()

    @pytest.mark.parametrize("status_code", [403, 404, 500])
    async def test_error_status_is_a_fetch_error(self, status_code):
        client = http_client(lambda request: httpx.Response(status_code))
        fetcher = ImageFetcher(client=client)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://cdn.example.com/a.jpg")
        assert exc_info.value.details["status_code"] == status_code
        await client.aclose()

    async def test_transport_error_is_a_fetch_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = ImageFetcher(client=http_client(handler))

        with pytest.raises(FetchError):
            await fetcher.fetch("https://cdn.example.com/a.jpg")

    async def test_empty_body_is_a_fetch_error(self):
        fetcher = ImageFetcher(client=http_client(lambda request: httpx.Response(200, content=b"")))

        with pytest.raises(FetchError):
            await fetcher.fetch("https://cdn.example.com/a.jpg")

    async def test_fetches_s3_object(self):
        fetcher = ImageFetcher(s3_service=FakeS3Service({("wedding-photos", "uploads/a.jpg"): b"s3-bytes"}))

        assert await fetcher.fetch("s3://wedding-photos/uploads/a.jpg") == b"s3-bytes"
        await fetcher.aclose()

    async def test_missing_s3_object_is_a_fetch_error(self):
        fetcher = ImageFetcher(s3_service=FakeS3Service({}))

        with pytest.raises(FetchError):
            await fetcher.fetch("s3://wedding-photos/uploads/missing.jpg")
        await fetcher.aclose()

    async def test_s3_reference_without_s3_service_is_a_fetch_error(self):
        fetcher = ImageFetcher()

        with pytest.raises(FetchError):
            await fetcher.fetch("s3://wedding-photos/uploads/a.jpg")
        await fetcher.aclose()

    async def test_unsupported_reference_is_a_fetch_error(self):
        fetcher = ImageFetcher()

        with pytest.raises(FetchError):
            await fetcher.fetch("/var/uploads/a.jpg")
        await fetcher.aclose()


class TestParseS3Uri:

    def test_splits_bucket_and_key(self):
        assert parse_s3_uri("s3://wedding-photos/uploads/2024/a.jpg") == ("wedding-photos", "uploads/2024/a.jpg")

    @pytest.mark.parametrize("uri", ["s3://wedding-photos", "https://bucket/key", "s3:///key"])
    def test_invalid_uri_is_rejected(self, uri):
        with pytest.raises(StorageError):
            parse_s3_uri(uri)
