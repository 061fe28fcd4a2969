# services/image_gateway/app/actions.py
"""
Gateway operations: upload, delete and list images in a blob container.

Every operation returns a StorageResult and never raises; store, auth and
configuration errors are logged here and handed to the caller as
``StorageResult(success=False, error=...)``. The gateway performs no
validation of file type or size and never retries.
"""
from typing import Dict, Optional

from core.config import settings, logger as core_logger
from core.models import StorageResult
from core.storage import get_storage_backend
from core.utils import extract_blob_name, generate_unique_blob_name, is_image_blob

logger = core_logger.getChild("ImageGateway").getChild("Actions")

# --- Change Signal ---
# Bumped on every successful write so views listing a container can tell their data changed.
_container_revisions: Dict[str, int] = {}


def revalidate_container(container: str) -> int:
    _container_revisions[container] = _container_revisions.get(container, 0) + 1
    logger.debug(f"Container '{container}' revalidated (revision {_container_revisions[container]})")
    return _container_revisions[container]


def get_container_revision(container: str) -> int:
    return _container_revisions.get(container, 0)


def _error_message(e: Exception) -> str:
    return str(e) or "An unknown error occurred"


# --- Operations ---

async def upload_image(
    file_bytes: bytes,
    file_name: str,
    mime_type: str,
    container: Optional[str] = None,
) -> StorageResult:
    """Uploads bytes under a freshly generated name, creating the container on first use."""
    container = settings.DEFAULT_CONTAINER if container is None else container
    if not container:
        return StorageResult.failure("Container name must not be empty.")

    try:
        backend = get_storage_backend()
        await backend.ensure_container(container)
        blob_name = generate_unique_blob_name(file_name)
        url = await backend.put_blob(container, blob_name, file_bytes, mime_type)
        logger.info(f"Uploaded '{file_name}' ({len(file_bytes)} bytes) to '{container}' as '{blob_name}'")
        revalidate_container(container)
        return StorageResult(success=True, url=url)
    except Exception as e:
        logger.error(f"Error uploading image '{file_name}' to '{container}': {e}", exc_info=True)
        return StorageResult.failure(_error_message(e))


async def delete_image(blob_url: str, container: Optional[str] = None) -> StorageResult:
    """Deletes the blob named by the final path segment of blob_url."""
    container = settings.DEFAULT_CONTAINER if container is None else container
    if not container:
        return StorageResult.failure("Container name must not be empty.")

    try:
        backend = get_storage_backend()
        blob_name = extract_blob_name(blob_url)
        await backend.delete_blob(container, blob_name)
        logger.info(f"Deleted '{blob_name}' from '{container}'")
        revalidate_container(container)
        return StorageResult(success=True)
    except Exception as e:
        logger.error(f"Error deleting image '{blob_url}' from '{container}': {e}", exc_info=True)
        return StorageResult.failure(_error_message(e))


async def list_images(container: Optional[str] = None, max_results: Optional[int] = None) -> StorageResult:
    """Lists up to max_results objects and keeps the ones that look like images."""
    container = settings.DEFAULT_CONTAINER if container is None else container
    max_results = settings.LIST_MAX_RESULTS if max_results is None else max_results
    if not container:
        return StorageResult.failure("Container name must not be empty.")

    try:
        backend = get_storage_backend()
        entries = await backend.list_blobs(container, max_results)
        images = [entry for entry in entries if is_image_blob(entry.name, entry.content_type)]
        logger.info(f"Listed {len(entries)} object(s) in '{container}', {len(images)} image(s)")
        return StorageResult(success=True, images=images)
    except Exception as e:
        logger.error(f"Error listing images in '{container}': {e}", exc_info=True)
        return StorageResult.failure(_error_message(e))
