"""
Storage Service - Single Responsibility: upload video files to blob storage.
"""
from pathlib import Path
from typing import Optional
from urllib.parse import quote
import logging
import mimetypes

from ..models import AnalyzerConfig
from ..protocols import IAPIClient, IBlobStorage

logger = logging.getLogger(__name__)


class StorageService(IBlobStorage):
    """
    Service for uploading files to the storage bucket.

    Objects are keyed by record id so each analysis owns its own prefix.
    """

    def __init__(self, api_client: IAPIClient, config: Optional[AnalyzerConfig] = None):
        """
        Initialize storage service.

        Args:
            api_client: HTTP client for API calls
            config: Bucket naming
        """
        self._api = api_client
        self._config = config or AnalyzerConfig()

    def object_key(self, path: Path, record_id: str) -> str:
        return f"{record_id}/{quote(Path(path).name)}"

    def public_url(self, key: str) -> str:
        base = getattr(self._api, "base_url", "")
        return f"{base}/storage/v1/object/public/{self._config.storage_bucket}/{key}"

    async def upload_blob(self, path: Path, record_id: str) -> str:
        """
        Upload video to storage.

        Args:
            path: Path to file
            record_id: Owning analysis record

        Returns:
            Public URL of the stored object
        """
        path = Path(path)
        key = self.object_key(path, record_id)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        logger.info("Uploading %s to bucket %s", path.name, self._config.storage_bucket)
        await self._api.upload(
            f"/storage/v1/object/{self._config.storage_bucket}/{key}",
            path,
            content_type,
        )
        url = self.public_url(key)
        logger.debug("Stored %s at %s", path.name, url)
        return url
