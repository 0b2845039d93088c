# controller/blob_store.py

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0


class BlobStoreError(RuntimeError):
    """Raised when the blob store cannot serve or accept an object."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BlobStore(ABC):
    """
    Abstract blob store interface.

    Fetches are plain HTTP GETs of public URLs. Uploads must be idempotent:
    writing the same path twice replaces the object.
    """

    @abstractmethod
    async def fetch(self, url: str) -> bytes:
        """Return the object body. Raise BlobStoreError on non-2xx or timeout."""
        raise NotImplementedError

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str, *, upsert: bool = True) -> str:
        """Store `data` at `path` and return its public URL."""
        raise NotImplementedError


class SupabaseBlobStore(BlobStore):
    """
    Supabase Storage over its REST API.

    A fresh AsyncClient is opened per call so the store can be shared by
    requests running on different event loops.
    """

    def __init__(
            self,
            base_url: str,
            bucket: str,
            service_key: str,
            *,
            timeout: float = DEFAULT_TIMEOUT_SECONDS,
            transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._bucket = bucket
        self._service_key = service_key
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{quote(path)}"

    async def fetch(self, url: str) -> bytes:
        async with self._client() as client:
            try:
                response = await client.get(url, follow_redirects=True)
            except httpx.TimeoutException as e:
                raise BlobStoreError(f"Timed out fetching {url}") from e
            except httpx.HTTPError as e:
                raise BlobStoreError(f"Failed to fetch {url}: {e}") from e

        if not response.is_success:
            raise BlobStoreError(
                f"Fetching {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    async def upload(self, path: str, data: bytes, content_type: str, *, upsert: bool = True) -> str:
        endpoint = f"{self._base_url}/storage/v1/object/{self._bucket}/{quote(path)}"
        headers = {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }

        async with self._client() as client:
            try:
                response = await client.post(endpoint, content=data, headers=headers)
            except httpx.TimeoutException as e:
                raise BlobStoreError(f"Timed out uploading {path}") from e
            except httpx.HTTPError as e:
                raise BlobStoreError(f"Failed to upload {path}: {e}") from e

        if not response.is_success:
            logger.warning(
                "Upload of %s to bucket %s failed: HTTP %s %s",
                path,
                self._bucket,
                response.status_code,
                response.text[:200],
            )
            raise BlobStoreError(
                f"Uploading {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        return self.public_url(path)
