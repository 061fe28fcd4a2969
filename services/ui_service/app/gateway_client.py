# services/ui_service/app/gateway_client.py
"""
Clients the UI widgets use to reach the image gateway.

Both clients expose the same coroutines (upload, delete, list, revision) and
always answer with a StorageResult: transport failures are converted here so
nothing from the gateway boundary reaches a widget as an exception.
"""
import httpx
import logging
from typing import Optional

from core.config import settings
from core.models import StorageResult
from services.image_gateway.app import actions

logger = logging.getLogger("IMS_Core").getChild("UIService").getChild("GatewayClient")


class HttpGatewayClient:
    """Calls the image gateway service over HTTP."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url or settings.IMAGE_GATEWAY_URL
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.GATEWAY_HTTP_TIMEOUT if timeout is None else timeout,
            transport=transport,
        )

    async def _call(self, method: str, endpoint: str, **kwargs) -> StorageResult:
        """Helper to call the gateway and turn any failure into a StorageResult."""
        try:
            response = await self._client.request(method, endpoint, **kwargs)
            response.raise_for_status()
            return StorageResult(**response.json())
        except httpx.HTTPStatusError as e:
            downstream_error = e.response.text
            try: downstream_error = e.response.json().get('detail', e.response.text)
            except Exception: pass
            logger.error(f"Gateway error ({e.response.status_code}) calling {endpoint}: {downstream_error}")
            return StorageResult.failure(f"Gateway error ({e.response.status_code}): {downstream_error}")
        except httpx.RequestError as e:
            logger.error(f"Network error calling image gateway endpoint {endpoint}: {e}")
            return StorageResult.failure(f"Cannot reach image gateway at {self.base_url}")
        except Exception as e:
            logger.error(f"Unexpected error calling image gateway endpoint {endpoint}: {e}", exc_info=True)
            return StorageResult.failure(f"An unexpected error occurred while contacting the image gateway: {e}")

    async def upload(self, file_bytes: bytes, file_name: str, mime_type: str, container: str) -> StorageResult:
        return await self._call(
            "POST", "/images/upload",
            files={"file": (file_name, file_bytes, mime_type)},
            data={"container": container},
        )

    async def delete(self, url: str, container: str) -> StorageResult:
        return await self._call("POST", "/images/delete", json={"url": url, "container": container})

    async def list(self, container: str, max_results: int) -> StorageResult:
        return await self._call("GET", "/images", params={"container": container, "max_results": max_results})

    async def revision(self, container: str) -> Optional[int]:
        try:
            response = await self._client.get("/images/revision", params={"container": container})
            response.raise_for_status()
            return response.json().get("revision")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not read revision for '{container}': {e}")
            return None

    async def aclose(self):
        await self._client.aclose()


class LocalGatewayClient:
    """Calls the gateway actions in-process, for single-process deployments."""

    async def upload(self, file_bytes: bytes, file_name: str, mime_type: str, container: str) -> StorageResult:
        return await actions.upload_image(file_bytes, file_name, mime_type, container)

    async def delete(self, url: str, container: str) -> StorageResult:
        return await actions.delete_image(url, container)

    async def list(self, container: str, max_results: int) -> StorageResult:
        return await actions.list_images(container, max_results)

    async def revision(self, container: str) -> Optional[int]:
        return actions.get_container_revision(container)

    async def aclose(self):
        pass


_gateway_client = None

def get_gateway_client():
    """Returns the process-wide gateway client for the configured GATEWAY_MODE."""
    global _gateway_client
    if _gateway_client is None:
        if settings.GATEWAY_MODE == "local":
            logger.info("Using in-process image gateway.")
            _gateway_client = LocalGatewayClient()
        else:
            logger.info(f"Using image gateway at {settings.IMAGE_GATEWAY_URL}")
            _gateway_client = HttpGatewayClient()
    return _gateway_client
