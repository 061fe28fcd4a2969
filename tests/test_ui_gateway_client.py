import json
import httpx
import pytest
from unittest.mock import AsyncMock, patch

from core.models import StorageResult
from services.ui_service.app.gateway_client import HttpGatewayClient, LocalGatewayClient

GATEWAY_URL = "http://gateway.test"


def make_client(handler) -> HttpGatewayClient:
    return HttpGatewayClient(base_url=GATEWAY_URL, timeout=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_http_upload_posts_multipart():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200, json={"success": True, "url": "https://acct.blob.core.windows.net/pets/1-1.png"})

    client = make_client(handler)
    result = await client.upload(b"PNGDATA", "cat.png", "image/png", "pets")
    await client.aclose()

    assert result == StorageResult(success=True, url="https://acct.blob.core.windows.net/pets/1-1.png")
    assert seen["path"] == "/images/upload"
    assert b'filename="cat.png"' in seen["body"]
    assert b"PNGDATA" in seen["body"]
    assert b'name="container"' in seen["body"]

@pytest.mark.asyncio
async def test_http_delete_and_list_requests():
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        if request.url.path == "/images/delete":
            return httpx.Response(200, json={"success": True})
        return httpx.Response(200, json={"success": True, "images": [
            {"name": "a.png", "url": "https://acct.blob.core.windows.net/pets/a.png", "content_type": "image/png", "size_bytes": 3},
        ]})

    client = make_client(handler)
    deleted = await client.delete("https://acct.blob.core.windows.net/pets/a.png", "pets")
    listed = await client.list("pets", 20)
    await client.aclose()

    assert deleted.success is True
    assert json.loads(requests[0].content) == {"url": "https://acct.blob.core.windows.net/pets/a.png", "container": "pets"}
    assert requests[1].url.params["container"] == "pets"
    assert requests[1].url.params["max_results"] == "20"
    assert [image.name for image in listed.images] == ["a.png"]

@pytest.mark.asyncio
async def test_http_error_status_becomes_failure():
    def handler(request: httpx.Request):
        return httpx.Response(413, json={"detail": "Upload body exceeds 8.0MB limit"})

    client = make_client(handler)
    result = await client.upload(b"x", "big.png", "image/png", "pets")
    await client.aclose()

    assert result.success is False
    assert result.error == "Gateway error (413): Upload body exceeds 8.0MB limit"

@pytest.mark.asyncio
async def test_http_unreachable_gateway_becomes_failure():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("Connection refused", request=request)

    client = make_client(handler)
    result = await client.list("pets", 20)
    await client.aclose()

    assert result.success is False
    assert result.error == f"Cannot reach image gateway at {GATEWAY_URL}"

@pytest.mark.asyncio
async def test_http_revision():
    def handler(request: httpx.Request):
        if request.url.params["container"] == "missing":
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"container": "pets", "revision": 7})

    client = make_client(handler)
    assert await client.revision("pets") == 7
    assert await client.revision("missing") is None
    await client.aclose()

@pytest.mark.asyncio
async def test_local_client_calls_actions_in_process():
    expected = StorageResult(success=True, images=[])
    with patch("services.ui_service.app.gateway_client.actions.list_images", new_callable=AsyncMock) as mock_list, \
         patch("services.ui_service.app.gateway_client.actions.get_container_revision", return_value=3):
        mock_list.return_value = expected
        client = LocalGatewayClient()
        assert await client.list("pets", 5) is expected
        assert await client.revision("pets") == 3
    mock_list.assert_awaited_once_with("pets", 5)

@pytest.mark.asyncio
async def test_http_revision_with_non_json_body():
    def handler(request: httpx.Request):
        return httpx.Response(200, text="<html>Bad Gateway</html>")

    client = make_client(handler)
    assert await client.revision("pets") is None
    await client.aclose()
