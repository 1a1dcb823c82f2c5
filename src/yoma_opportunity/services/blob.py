"""Resolves stored blob keys to public URLs."""

from typing import Optional

from yoma_opportunity.config import BlobSettings


class BlobService:
    """URL resolution only; uploads are handled by the storage provider."""

    def __init__(self, settings: BlobSettings):
        self._settings = settings

    def get_url(self, storage_type: Optional[str], key: Optional[str]) -> Optional[str]:
        if not storage_type or not key:
            return None
        base_url = self._settings.base_urls.get(storage_type)
        if not base_url:
            raise ValueError(f"Blob storage type '{storage_type}' is not configured")
        return f"{base_url.rstrip('/')}/{key.lstrip('/')}"
