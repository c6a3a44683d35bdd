"""Fetch uploaded photo bytes from the blob store."""
from typing import Optional

import httpx

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import FetchError, StorageError
from guest_tagger.core.logging import get_logger
from guest_tagger.domain.interfaces.storage.image_source import ImageSource
from guest_tagger.services.aws.s3 import S3Service

logger = get_logger(__name__)


class ImageFetcher(ImageSource):
    """Fetch images by reference.

    ``http(s)://`` references are downloaded with a shared httpx client,
    ``s3://bucket/key`` references are read through the S3 service. Any
    failure, including a non-2xx response, surfaces as FetchError.
    """

    def __init__(
        self,
        s3_service: Optional[S3Service] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.FETCH_TIMEOUT_SECONDS,
    ) -> None:
        self._s3_service = s3_service
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def fetch(self, image_ref: str) -> bytes:
        if image_ref.startswith(("http://", "https://")):
            return await self._fetch_http(image_ref)
        if image_ref.startswith("s3://"):
            return await self._fetch_s3(image_ref)
        raise FetchError(f"Unsupported image reference: {image_ref}")

    async def _fetch_http(self, url: str) -> bytes:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Image request returned an error status",
                url=url,
                status_code=e.response.status_code
            )
            raise FetchError(
                f"Failed to fetch image: HTTP {e.response.status_code}",
                details={"url": url, "status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Image request failed", url=url, error=str(e))
            raise FetchError(f"Failed to fetch image: {str(e)}", details={"url": url}) from e

        if not response.content:
            raise FetchError("Image response was empty", details={"url": url})
        return response.content

    async def _fetch_s3(self, uri: str) -> bytes:
        if self._s3_service is None:
            raise FetchError(f"S3 is not configured, cannot fetch {uri}")
        try:
            content = await self._s3_service.get_file_by_uri(uri)
        except StorageError as e:
            raise FetchError(f"Failed to fetch image: {str(e)}", details={"uri": uri}) from e
        if not content:
            raise FetchError("Image object was empty", details={"uri": uri})
        return content

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self._client.aclose()
