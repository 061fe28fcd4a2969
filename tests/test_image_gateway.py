import re
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from services.image_gateway.app.main import app as image_gateway_app
from services.image_gateway.app import actions
from core.config import settings
from core.models import StoredImage
from core.storage import StorageBackend, StorageConfigError

ACCOUNT_URL = "https://testaccount.blob.core.windows.net"


@pytest.fixture
def backend():
    mock_backend = AsyncMock(spec=StorageBackend)
    mock_backend.put_blob.side_effect = lambda container, blob_name, data, content_type: f"{ACCOUNT_URL}/{container}/{blob_name}"
    with patch("services.image_gateway.app.actions.get_storage_backend", return_value=mock_backend):
        yield mock_backend

@pytest.fixture
def client():
    with TestClient(image_gateway_app) as test_client:
        yield test_client


# --- Upload ---

@pytest.mark.asyncio
async def test_upload_image_success(backend):
    before = actions.get_container_revision("upload-ok")

    result = await actions.upload_image(b"\x89PNG data", "cat.png", "image/png", "upload-ok")

    assert result.success is True
    assert result.error is None
    backend.ensure_container.assert_awaited_once_with("upload-ok")
    container, blob_name, data, content_type = backend.put_blob.await_args.args
    assert container == "upload-ok"
    assert re.match(r"^\d+-\d{1,3}\.png$", blob_name)
    assert data == b"\x89PNG data"
    assert content_type == "image/png"
    assert result.url == f"{ACCOUNT_URL}/upload-ok/{blob_name}"
    assert actions.get_container_revision("upload-ok") == before + 1

@pytest.mark.asyncio
async def test_upload_image_defaults_container(backend):
    result = await actions.upload_image(b"gif", "anim.gif", "image/gif")
    assert result.success is True
    backend.ensure_container.assert_awaited_once_with(settings.DEFAULT_CONTAINER)

@pytest.mark.asyncio
async def test_upload_image_store_error_becomes_failure(backend):
    backend.put_blob.side_effect = Exception("The specified blob already exists.")
    before = actions.get_container_revision("upload-fail")

    result = await actions.upload_image(b"x", "cat.png", "image/png", "upload-fail")

    assert result.success is False
    assert result.url is None
    assert result.error == "The specified blob already exists."
    assert actions.get_container_revision("upload-fail") == before

@pytest.mark.asyncio
async def test_upload_image_without_credentials():
    with patch("services.image_gateway.app.actions.get_storage_backend",
               side_effect=StorageConfigError("Azure Storage connection string not provided.")):
        result = await actions.upload_image(b"x", "cat.png", "image/png", "no-creds")
    assert result.success is False
    assert result.error == "Azure Storage connection string not provided."

@pytest.mark.asyncio
async def test_upload_image_empty_container_rejected(backend):
    result = await actions.upload_image(b"x", "cat.png", "image/png", "")
    assert result.success is False
    assert "Container name" in result.error
    backend.put_blob.assert_not_awaited()

@pytest.mark.asyncio
async def test_upload_error_without_message_gets_generic_text(backend):
    backend.ensure_container.side_effect = RuntimeError()
    result = await actions.upload_image(b"x", "cat.png", "image/png", "upload-generic")
    assert result.error == "An unknown error occurred"


# --- Delete ---

@pytest.mark.asyncio
async def test_delete_image_success(backend):
    before = actions.get_container_revision("delete-ok")
    result = await actions.delete_image(f"{ACCOUNT_URL}/delete-ok/1718000000000-7.jpg", "delete-ok")
    assert result.success is True
    backend.delete_blob.assert_awaited_once_with("delete-ok", "1718000000000-7.jpg")
    assert actions.get_container_revision("delete-ok") == before + 1

@pytest.mark.asyncio
async def test_delete_image_malformed_url_never_reaches_store(backend):
    result = await actions.delete_image(f"{ACCOUNT_URL}/delete-bad/", "delete-bad")
    assert result.success is False
    assert result.error == "Invalid blob URL"
    backend.delete_blob.assert_not_awaited()

@pytest.mark.asyncio
async def test_delete_image_missing_blob(backend):
    backend.delete_blob.side_effect = Exception("The specified blob does not exist.")
    before = actions.get_container_revision("delete-missing")
    result = await actions.delete_image(f"{ACCOUNT_URL}/delete-missing/ghost.png", "delete-missing")
    assert result.success is False
    assert "does not exist" in result.error
    assert actions.get_container_revision("delete-missing") == before


# --- List ---

def _entry(name, content_type, size=10):
    return StoredImage(name=name, url=f"{ACCOUNT_URL}/gallery/{name}", content_type=content_type, size_bytes=size)

@pytest.mark.asyncio
async def test_list_images_filters_non_images(backend):
    backend.list_blobs.return_value = [
        _entry("a.png", "image/png"),
        _entry("b.txt", "text/plain"),
        _entry("c.JPG", "application/octet-stream"),
        _entry("d.pdf", "application/pdf"),
        _entry("e.json", "application/json"),
    ]

    result = await actions.list_images("gallery", 5)

    assert result.success is True
    assert [image.name for image in result.images] == ["a.png", "c.JPG"]
    backend.list_blobs.assert_awaited_once_with("gallery", 5)

@pytest.mark.asyncio
async def test_list_images_empty_container(backend):
    backend.list_blobs.return_value = []
    result = await actions.list_images("empty")
    assert result.success is True
    assert result.images == []
    backend.list_blobs.assert_awaited_once_with("empty", settings.LIST_MAX_RESULTS)

@pytest.mark.asyncio
async def test_list_images_store_error(backend):
    backend.list_blobs.side_effect = Exception("AuthenticationFailed")
    result = await actions.list_images("gallery")
    assert result.success is False
    assert result.images is None
    assert result.error == "AuthenticationFailed"


# --- HTTP Routes ---

def test_health_check(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    json_response = response.json()
    assert json_response["status"] == "success"
    assert "Image Gateway is running" in json_response["message"]
    assert json_response["data"]["default_container"] == settings.DEFAULT_CONTAINER

def test_read_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert "Welcome to the Image Gateway" in response.json()["message"]

def test_route_upload_image(client: TestClient, backend):
    response = client.post(
        "/images/upload",
        files={"file": ("dog.webp", b"RIFFxxxxWEBP", "image/webp")},
        data={"container": "route-upload"},
    )
    assert response.status_code == 200
    json_response = response.json()
    assert json_response["success"] is True
    assert json_response["url"].startswith(f"{ACCOUNT_URL}/route-upload/")
    assert "error" not in json_response
    assert backend.put_blob.await_args.args[3] == "image/webp"

def test_route_upload_rejects_oversized_body(client: TestClient, backend):
    with patch.object(settings, "UPLOAD_BODY_LIMIT_MB", 0.0001):  # ~104 bytes
        response = client.post(
            "/images/upload",
            files={"file": ("big.png", b"0" * 200, "image/png")},
            data={"container": "route-big"},
        )
    assert response.status_code == 413
    backend.put_blob.assert_not_awaited()

def test_route_upload_failure_is_reported_in_body(client: TestClient, backend):
    backend.ensure_container.side_effect = Exception("AuthorizationFailure")
    response = client.post(
        "/images/upload",
        files={"file": ("dog.png", b"png", "image/png")},
        data={"container": "route-fail"},
    )
    assert response.status_code == 200
    assert response.json() == {"success": False, "error": "AuthorizationFailure"}

def test_route_delete_image(client: TestClient, backend):
    response = client.post("/images/delete", json={"url": f"{ACCOUNT_URL}/route-delete/1-1.png", "container": "route-delete"})
    assert response.status_code == 200
    assert response.json() == {"success": True}
    backend.delete_blob.assert_awaited_once_with("route-delete", "1-1.png")

def test_route_list_images(client: TestClient, backend):
    backend.list_blobs.return_value = [_entry("a.png", "image/png", 1234), _entry("b.csv", "text/csv")]
    response = client.get("/images", params={"container": "route-list", "max_results": 3})
    assert response.status_code == 200
    json_response = response.json()
    assert json_response["success"] is True
    assert json_response["images"] == [{
        "name": "a.png", "url": f"{ACCOUNT_URL}/gallery/a.png", "content_type": "image/png", "size_bytes": 1234,
    }]
    backend.list_blobs.assert_awaited_once_with("route-list", 3)

def test_route_list_rejects_negative_max_results(client: TestClient, backend):
    response = client.get("/images", params={"max_results": -1})
    assert response.status_code == 422
    backend.list_blobs.assert_not_awaited()

def test_route_revision_moves_after_upload(client: TestClient, backend):
    first = client.get("/images/revision", params={"container": "route-revision"}).json()
    client.post(
        "/images/upload",
        files={"file": ("a.gif", b"GIF89a", "image/gif")},
        data={"container": "route-revision"},
    )
    second = client.get("/images/revision", params={"container": "route-revision"}).json()
    assert first["container"] == "route-revision"
    assert second["revision"] == first["revision"] + 1
