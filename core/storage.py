# core/storage.py
"""
Core Storage Backends.

Adapters between the image gateway and a remote object store. Each backend
exposes the same four coroutines (ensure_container, put_blob, delete_blob,
list_blobs) and raises on any failure; converting failures into result
objects is the gateway's job, not the backend's.

Two backends are available, selected by ``settings.STORAGE_BACKEND``:

- ``azure``: Azure Blob Storage through the async ``azure-storage-blob`` client.
  Containers are created with public-read blob access.
- ``supabase``: Supabase Storage through the (synchronous) supabase client,
  run in worker threads. Containers map to public buckets.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import List

from azure.core.exceptions import ResourceExistsError
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from core.config import settings, logger as core_logger
from core.models import StoredImage
from core.supabase_client import get_supabase_client

logger = core_logger.getChild("Storage")


class StorageConfigError(ValueError):
    """Raised when the credentials for the configured backend are missing."""


class StorageBackend(ABC):
    """Interface every object-store adapter implements."""

    name: str = "abstract"

    @abstractmethod
    async def ensure_container(self, container: str) -> None:
        """Create the container with public-read access if it does not exist yet."""

    @abstractmethod
    async def put_blob(self, container: str, blob_name: str, data: bytes, content_type: str) -> str:
        """Write bytes under blob_name and return the object's public URL."""

    @abstractmethod
    async def delete_blob(self, container: str, blob_name: str) -> None:
        """Delete one object; raise if it does not exist."""

    @abstractmethod
    async def list_blobs(self, container: str, max_results: int) -> List[StoredImage]:
        """Enumerate at most max_results objects, in the store's order, with their properties."""


# --- Azure Blob Storage ---

class AzureBlobBackend(StorageBackend):
    name = "azure"

    def __init__(self, connection_string: str):
        self._connection_string = connection_string

    def _service_client(self) -> BlobServiceClient:
        # A fresh client per call; it is closed by the `async with` at each call site.
        return BlobServiceClient.from_connection_string(self._connection_string)

    async def ensure_container(self, container: str) -> None:
        async with self._service_client() as service:
            container_client = service.get_container_client(container)
            if await container_client.exists():
                return
            try:
                await container_client.create_container(public_access="blob")
                logger.info(f"Created container '{container}' with public blob access.")
            except ResourceExistsError:
                # Another request created it between the check and the create
                logger.debug(f"Container '{container}' already exists.")

    async def put_blob(self, container: str, blob_name: str, data: bytes, content_type: str) -> str:
        async with self._service_client() as service:
            blob_client = service.get_container_client(container).get_blob_client(blob_name)
            await blob_client.upload_blob(
                data,
                overwrite=False,
                content_settings=ContentSettings(content_type=content_type),
            )
            logger.debug(f"Uploaded {len(data)} bytes to {container}/{blob_name}")
            return blob_client.url

    async def delete_blob(self, container: str, blob_name: str) -> None:
        async with self._service_client() as service:
            await service.get_container_client(container).delete_blob(blob_name)
            logger.debug(f"Deleted blob {container}/{blob_name}")

    async def list_blobs(self, container: str, max_results: int) -> List[StoredImage]:
        entries: List[StoredImage] = []
        if max_results <= 0:
            return entries
        async with self._service_client() as service:
            container_client = service.get_container_client(container)
            async for blob in container_client.list_blobs(results_per_page=max_results):
                if len(entries) >= max_results:
                    break
                blob_client = container_client.get_blob_client(blob.name)
                properties = await blob_client.get_blob_properties()
                content_settings = getattr(properties, "content_settings", None)
                entries.append(StoredImage(
                    name=blob.name,
                    url=blob_client.url,
                    content_type=(content_settings.content_type if content_settings else None) or "unknown",
                    size_bytes=properties.size or 0,
                ))
        return entries


# --- Supabase Storage ---

class SupabaseStorageBackend(StorageBackend):
    name = "supabase"

    async def _storage(self):
        supabase = await get_supabase_client()
        return supabase.storage

    async def ensure_container(self, container: str) -> None:
        storage = await self._storage()

        def bucket_call():
            existing = {bucket.name for bucket in storage.list_buckets()}
            if container in existing:
                return False
            try:
                storage.create_bucket(container, options={"public": True})
            except Exception as e:
                # Lost the race to another request; the bucket is there either way
                if "exist" in str(e).lower():
                    return False
                raise
            return True

        if await asyncio.to_thread(bucket_call):
            logger.info(f"Created public Supabase bucket '{container}'.")

    async def put_blob(self, container: str, blob_name: str, data: bytes, content_type: str) -> str:
        storage = await self._storage()

        def upload_call():
            bucket = storage.from_(container)
            bucket.upload(
                path=blob_name,
                file=data,
                file_options={"content-type": content_type, "upsert": "false"},
            )
            return bucket.get_public_url(blob_name)

        url = await asyncio.to_thread(upload_call)
        logger.debug(f"Uploaded {len(data)} bytes to Supabase {container}/{blob_name}")
        return url.rstrip("?")

    async def delete_blob(self, container: str, blob_name: str) -> None:
        storage = await self._storage()
        removed = await asyncio.to_thread(lambda: storage.from_(container).remove([blob_name]))
        # remove() reports missing objects as an empty list instead of raising
        if not removed:
            raise FileNotFoundError(f"Blob '{blob_name}' not found in container '{container}'")

    async def list_blobs(self, container: str, max_results: int) -> List[StoredImage]:
        if max_results <= 0:
            return []
        storage = await self._storage()

        def list_call():
            bucket = storage.from_(container)
            items = bucket.list(path="", options={"limit": max_results})
            entries = []
            for item in items[:max_results]:
                if item.get("id") is None: # folder placeholder, not an object
                    continue
                metadata = item.get("metadata") or {}
                entries.append(StoredImage(
                    name=item["name"],
                    url=bucket.get_public_url(item["name"]).rstrip("?"),
                    content_type=metadata.get("mimetype") or "unknown",
                    size_bytes=metadata.get("size") or 0,
                ))
            return entries

        return await asyncio.to_thread(list_call)


# --- Backend Factory ---

def get_storage_backend() -> StorageBackend:
    """Returns the configured backend, or raises StorageConfigError if its credentials are missing."""
    backend_key = settings.STORAGE_BACKEND.lower()
    if backend_key == "azure":
        if not settings.AZURE_STORAGE_CONNECTION_STRING:
            raise StorageConfigError("Azure Storage connection string not provided.")
        return AzureBlobBackend(settings.AZURE_STORAGE_CONNECTION_STRING)
    if backend_key == "supabase":
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
            raise StorageConfigError("Supabase URL or Service Role Key not provided.")
        return SupabaseStorageBackend()
    raise StorageConfigError(f"Unsupported storage backend: {settings.STORAGE_BACKEND}")
