"""Model media storage in the Firebase Storage bucket."""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Optional

from firebase_admin import storage
from google.api_core.exceptions import NotFound

logger = logging.getLogger(__name__)

DOWNLOAD_URL_EXPIRATION = timedelta(hours=1)


def media_path(model_id: str, slot: str, index: int, filename: str) -> str:
    """
    Storage path for one media file.

    slot is one of sfw_images, nsfw_images, sfw_videos, nsfw_videos and maps
    to models/{model_id}/{sfw|nsfw}/{images|videos}/.
    """
    rating, kind = slot.split("_", 1)
    safe_name = filename.replace("/", "_").replace("\\", "_")
    return f"models/{model_id}/{rating}/{kind}/{index:02d}_{safe_name}"


class MediaStorage:
    """Uploads, deletes and signs media files."""

    def __init__(self, bucket: Optional[Any] = None, bucket_name: Optional[str] = None):
        """
        Args:
            bucket: google.cloud.storage Bucket (uses the Firebase default bucket if None)
            bucket_name: Bucket to use when no bucket object is given
        """
        self.bucket = bucket or storage.bucket(bucket_name)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        blob = self.bucket.blob(path)
        await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        logger.info(f"Uploaded {path} ({len(data)} bytes)")
        return path

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self.bucket.blob(path).delete)
        except NotFound:
            logger.warning(f"Media file already removed: {path}")

    async def signed_url(self, path: str, expiration: timedelta = DOWNLOAD_URL_EXPIRATION) -> str:
        blob = self.bucket.blob(path)
        return await asyncio.to_thread(blob.generate_signed_url, expiration=expiration, version="v4")
