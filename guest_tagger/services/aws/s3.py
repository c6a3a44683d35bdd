"""
S3 service for reading uploaded photos using aioboto3.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional, Tuple
from urllib.parse import urlparse

import aioboto3
from botocore.exceptions import ClientError, NoCredentialsError

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import StorageError
from guest_tagger.core.logging import get_logger

logger = get_logger(__name__)


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """Split an s3://bucket/key URI into bucket and key.

    Raises:
        StorageError: If the URI has no bucket or no key
    """
    parsed = urlparse(uri)
    bucket = parsed.netloc
    key = parsed.path.lstrip("/")
    if parsed.scheme != "s3" or not bucket or not key:
        raise StorageError(f"Invalid S3 URI: {uri}")
    return bucket, key


class S3Service:
    """Service for reading objects from AWS S3 using aioboto3."""

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        region_name: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None
    ):
        """Store configuration; a client is opened per operation."""
        self.bucket_name = bucket_name or settings.AWS_S3_BUCKET
        self.region_name = region_name or settings.AWS_REGION
        self.access_key_id = access_key_id or settings.AWS_ACCESS_KEY_ID
        self.secret_access_key = secret_access_key or settings.AWS_SECRET_ACCESS_KEY
        self._session = aioboto3.Session()

    @asynccontextmanager
    async def _get_client(self) -> AsyncGenerator[Any, None]:
        """Async context manager yielding an S3 client."""
        client_args = {
            'region_name': self.region_name or "us-east-1"
        }
        if self.access_key_id and self.secret_access_key:
            client_args['aws_access_key_id'] = self.access_key_id
            client_args['aws_secret_access_key'] = self.secret_access_key
        else:
            logger.debug(
                "Allowing aioboto3 to discover AWS credentials automatically")

        try:
            async with self._session.client("s3", **client_args) as s3:
                yield s3
        except NoCredentialsError as e:
            logger.error("AWS credentials not found", error=str(e))
            raise StorageError(
                "AWS credentials not found or configured correctly.") from e

    async def get_file(self, bucket: Optional[str], key: str) -> bytes:
        """
        Get file contents from S3 asynchronously.

        Args:
            bucket: S3 bucket name (defaults to the configured bucket)
            key: S3 object key

        Returns:
            File contents as bytes

        Raises:
            StorageError: If file cannot be retrieved (e.g., not found, access denied)
        """
        target_bucket = bucket or self.bucket_name
        if not target_bucket:
            raise StorageError(f"No bucket given for key: {key}")

        try:
            async with self._get_client() as s3:
                response = await s3.get_object(Bucket=target_bucket, Key=key)
                body = response['Body']
                return await body.read()
        except StorageError:
            raise
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code in ('NoSuchKey', '404'):
                logger.warning("File not found in S3",
                               bucket=target_bucket, key=key)
                raise StorageError(f"File not found: {key}") from e
            elif error_code == 'NoSuchBucket':
                logger.error("Bucket not found", bucket=target_bucket)
                raise StorageError(f"Bucket not found: {target_bucket}") from e
            elif error_code in ('403', 'AccessDenied'):
                logger.error("Access denied when getting file",
                             bucket=target_bucket, key=key)
                raise StorageError(f"Access denied for file: {key}") from e
            else:
                logger.error("Failed to get file from S3 due to client error",
                             bucket=target_bucket, key=key, error=str(e), exc_info=True)
                raise StorageError(
                    f"Failed to retrieve file '{key}' due to S3 error: {e}") from e
        except Exception as e:
            logger.error("Unexpected error getting file from S3",
                         bucket=target_bucket, key=key, error=str(e), exc_info=True)
            raise StorageError(
                f"Unexpected error retrieving file: {key}") from e

    async def get_file_by_uri(self, uri: str) -> bytes:
        """Get file contents for an s3://bucket/key URI."""
        bucket, key = parse_s3_uri(uri)
        return await self.get_file(bucket, key)
