"""Remote media storage on S3 for avatars and cover images."""

import asyncio
import mimetypes
import os
from functools import partial
from pathlib import Path
from typing import Optional
from uuid import uuid4

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from vidtube.config import get_settings

logger = structlog.get_logger(__name__)


class MediaService:
    """Uploads staged local files to S3 and deletes replaced objects.

    boto3 is blocking, so every call runs in the default executor.
    """

    def __init__(self, client=None):
        self.settings = get_settings()
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self.settings.aws_access_key_id or None,
                aws_secret_access_key=self.settings.aws_secret_access_key or None,
                region_name=self.settings.aws_region,
            )
        return self._client

    @property
    def base_url(self) -> str:
        return (
            f"https://{self.settings.s3_bucket_name}"
            f".s3.{self.settings.aws_region}.amazonaws.com/"
        )

    def _key_for(self, local_path: Path) -> str:
        return f"{self.settings.media_folder}/{uuid4()}{local_path.suffix.lower()}"

    def key_from_url(self, url: str) -> Optional[str]:
        """Return the object key for a URL in our bucket, or None for foreign URLs."""
        if not url or not url.startswith(self.base_url):
            return None
        return url[len(self.base_url):] or None

    async def upload(self, local_path: Optional[str]) -> Optional[str]:
        """Upload a staged file and return its public URL.

        The staged file is removed afterwards whether or not the upload
        succeeded.

        Returns:
            The object URL, or None if there was nothing to upload or the
            upload failed
        """
        if not local_path:
            return None

        path = Path(local_path)
        key = self._key_for(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        loop = asyncio.get_running_loop()

        try:
            await loop.run_in_executor(
                None,
                partial(
                    self.client.upload_file,
                    str(path),
                    self.settings.s3_bucket_name,
                    key,
                    ExtraArgs={"ContentType": content_type},
                ),
            )
        except (BotoCoreError, ClientError, OSError) as e:
            logger.error("media_upload_failed", file=path.name, error=str(e))
            return None
        finally:
            self.discard(path)

        url = f"{self.base_url}{key}"
        logger.info("media_uploaded", key=key, content_type=content_type)
        return url

    async def delete(self, url: str) -> bool:
        """Delete the object behind a URL previously returned by ``upload``.

        Returns:
            True if a delete request was issued and succeeded
        """
        key = self.key_from_url(url)
        if key is None:
            return False

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                partial(
                    self.client.delete_object,
                    Bucket=self.settings.s3_bucket_name,
                    Key=key,
                ),
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning("media_delete_failed", key=key, error=str(e))
            return False

        logger.info("media_deleted", key=key)
        return True

    @staticmethod
    def discard(local_path) -> None:
        """Remove a staged upload file if it is still on disk."""
        if not local_path:
            return
        path = Path(local_path)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("staged_file_cleanup_failed", file=path.name, error=str(e))
