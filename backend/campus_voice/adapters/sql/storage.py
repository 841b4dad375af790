from pathlib import Path
from typing import Optional

from campus_voice.core.config import settings
from campus_voice.core.exceptions import StoreError
from campus_voice.core.logging import get_logger

logger = get_logger(__name__)


class LocalBlobStorage:
    """Stores uploads under UPLOAD_DIR; the app serves them at /uploads."""

    def __init__(self, root: Optional[str] = None, url_prefix: str = "/uploads"):
        self.root = Path(root or settings.UPLOAD_DIR).resolve()
        self.url_prefix = url_prefix.rstrip("/")

    def _resolve(self, path: str) -> Path:
        dest = (self.root / path).resolve()
        if self.root not in dest.parents:
            raise StoreError(f"Invalid storage path: {path}")
        return dest

    async def upload(self, path: str, content: bytes, content_type: Optional[str] = None) -> str:
        dest = self._resolve(path)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(content)
        except OSError as e:
            logger.error(f"Error writing upload {path}: {e}")
            raise StoreError(f"Failed to upload file: {e}") from e
        logger.info(f"File uploaded successfully: {path}")
        return await self.public_url(path)

    async def public_url(self, path: str) -> str:
        return f"{self.url_prefix}/{path.lstrip('/')}"
