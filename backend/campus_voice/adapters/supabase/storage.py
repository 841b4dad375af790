"""Supabase Storage service for ticket attachments."""
import inspect
from typing import Optional

from supabase import AsyncClient, StorageException

from campus_voice.core.exceptions import StoreError
from campus_voice.core.logging import get_logger

logger = get_logger(__name__)


class SupabaseBlobStorage:
    """Service for managing files in Supabase Storage."""

    def __init__(self, client: AsyncClient, bucket_name: str):
        self.client = client
        self.bucket_name = bucket_name
        logger.info(f"Supabase Storage Service initialized with bucket: {self.bucket_name}")

    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        """
        Upload raw bytes to Supabase Storage.

        Args:
            path: Object path inside the bucket
            content: File bytes
            content_type: MIME type stored with the object

        Returns:
            Public URL of the uploaded file
        """
        try:
            await self.client.storage.from_(self.bucket_name).upload(
                path=path,
                file=content,
                file_options={"content-type": content_type or "application/octet-stream"},
            )
        except StorageException as e:
            logger.error(f"Error uploading file to Supabase: {e}")
            raise StoreError(f"Failed to upload file: {e}") from e

        logger.info(f"File uploaded successfully: {path}")
        return await self.public_url(path)

    async def public_url(self, path: str) -> str:
        """
        Get public URL for a file (the bucket is public).

        Args:
            path: Object path inside the bucket

        Returns:
            Public URL string
        """
        pub = self.client.storage.from_(self.bucket_name).get_public_url(path)
        if inspect.isawaitable(pub):
            pub = await pub
        # Adapt to client response shape
        if isinstance(pub, dict):
            return pub.get("publicURL") or pub.get("publicUrl") or path
        return pub
