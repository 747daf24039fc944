"""
S3 Storage Service - Uploads merged videos and thumbnails to S3.
"""

import asyncio
import logging
import os
from typing import Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from clipmerge.config import Settings, get_settings

logger = logging.getLogger(__name__)


class S3StorageService:
    """
    Durable object storage backed by S3.

    Features:
    - Lazy client creation
    - Blocking boto3 calls run in the default executor
    - Public URL and presigned URL generation
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.bucket = bucket or self.settings.s3_bucket
        self.region = region or self.settings.aws_region
        self._client = None

    @property
    def client(self):
        """Lazy-initialize S3 client."""
        if self._client is None:
            config = {
                "region_name": self.region,
            }
            if self.settings.aws_access_key_id and self.settings.aws_secret_access_key:
                config["aws_access_key_id"] = self.settings.aws_access_key_id
                config["aws_secret_access_key"] = self.settings.aws_secret_access_key

            self._client = boto3.client("s3", **config)
            logger.info(f"S3 client initialized for bucket: {self.bucket}")

        return self._client

    def url_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def upload(self, local_path: str, key: str, content_type: str) -> str:
        """
        Upload a local file.

        Args:
            local_path: File to upload
            key: Destination object key
            content_type: MIME type stored with the object

        Returns:
            Public object URL

        Raises:
            S3StorageError: If the file is missing or the upload fails
        """
        if not os.path.isfile(local_path):
            raise S3StorageError(f"File not found: {local_path}")

        file_size = os.path.getsize(local_path)
        logger.info(f"Uploading {local_path} to s3://{self.bucket}/{key} ({file_size / 1024 / 1024:.1f} MB)")

        # Upload (use thread pool for sync boto3 call)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.client.upload_file(
                    local_path,
                    self.bucket,
                    key,
                    ExtraArgs={"ContentType": content_type},
                ),
            )
        except (S3UploadFailedError, ClientError, BotoCoreError) as e:
            raise S3StorageError(f"Upload to s3://{self.bucket}/{key} failed: {e}") from e

        url = self.url_for(key)
        logger.info(f"Upload complete: {url}")
        return url

    async def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.client.delete_object(Bucket=self.bucket, Key=key),
            )
        except (ClientError, BotoCoreError) as e:
            raise S3StorageError(f"Delete of s3://{self.bucket}/{key} failed: {e}") from e
        logger.info(f"Deleted s3://{self.bucket}/{key}")

    async def exists(self, key: str) -> bool:
        """Check if an object exists in S3."""
        try:
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(
                None,
                lambda: self.client.head_object(
                    Bucket=self.bucket,
                    Key=key,
                ),
            )
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise S3StorageError(f"Could not check s3://{self.bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise S3StorageError(f"Could not check s3://{self.bucket}/{key}: {e}") from e

    async def signed_url(self, key: str, expires_in: int = 3600) -> str:
        """
        Generate a presigned URL for downloading an object.

        Args:
            key: S3 object key
            expires_in: URL validity in seconds

        Returns:
            Presigned download URL
        """
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(
                None,
                lambda: self.client.generate_presigned_url(
                    "get_object",
                    Params={
                        "Bucket": self.bucket,
                        "Key": key,
                    },
                    ExpiresIn=expires_in,
                ),
            )
        except (ClientError, BotoCoreError) as e:
            raise S3StorageError(f"Could not sign s3://{self.bucket}/{key}: {e}") from e


class S3StorageError(Exception):
    """Exception raised when an S3 operation fails."""
    pass
