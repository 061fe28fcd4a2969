import pytest
from PIL import Image
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from core.models import StorageResult, StoredImage
from services.ui_service.app.main import (
    UISession, app as ui_app, gallery_items, gallery_status, handle_delete_request,
    handle_form_file, handle_gallery_refresh, handle_multi_remove, handle_multi_select, handle_page_load,
    read_upload
)

URL_BASE = "https://testaccount.blob.core.windows.net/product-dashboard"


@pytest.fixture
def gateway():
    mock_gateway = AsyncMock()
    mock_gateway.revision.return_value = 0
    mock_gateway.list.return_value = StorageResult(success=True, images=[
        StoredImage(name="a.png", url=f"{URL_BASE}/a.png", content_type="image/png", size_bytes=2048),
    ])
    return mock_gateway

@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "cat.png"
    Image.new("RGB", (4, 4), color="orange").save(path, format="PNG")
    return str(path)


def test_read_upload_guesses_mime_type(image_file, tmp_path):
    incoming = read_upload(image_file)
    assert incoming.file_name == "cat.png"
    assert incoming.mime_type == "image/png"
    assert incoming.data.startswith(b"\x89PNG")

    unknown = tmp_path / "blob"
    unknown.write_bytes(b"?")
    assert read_upload(str(unknown)).mime_type == "application/octet-stream"

def test_ui_root_endpoint():
    response = TestClient(ui_app).get("/")
    assert response.status_code == 200
    assert "/ui" in response.json()["message"]

@pytest.mark.asyncio
async def test_gallery_refresh_handler(gateway):
    items, status, session = await handle_gallery_refresh(UISession(gateway=gateway))
    assert items == [(f"{URL_BASE}/a.png", "a.png (2.0 KB)")]
    assert status.startswith("1 image(s)")
    assert gallery_items(session.manager.gallery) == items

@pytest.mark.asyncio
async def test_gallery_status_reports_errors(gateway):
    gateway.list.return_value = StorageResult.failure("Failed to load images")
    session = UISession(gateway=gateway)
    await session.manager.gallery.refresh()
    assert gallery_status(session.manager.gallery) == "**Error:** Failed to load images"

@pytest.mark.asyncio
async def test_delete_request_needs_selection(gateway):
    _, prompt, _ = await handle_delete_request(UISession(gateway=gateway))
    assert prompt == "Select an image to delete first."

@pytest.mark.asyncio
async def test_form_file_handler_stages_without_upload(gateway, image_file):
    preview, status, session = await handle_form_file(image_file, UISession(gateway=gateway))
    assert preview.size == (4, 4)
    assert "cat.png" in status
    gateway.upload.assert_not_awaited()

@pytest.mark.asyncio
async def test_multi_select_and_remove_handlers(gateway, image_file, tmp_path):
    text_file = tmp_path / "notes.txt"
    text_file.write_text("hello")
    session = UISession(gateway=gateway)

    cleared, previews, status, _, session = await handle_multi_select([image_file, str(text_file)], session)

    assert cleared is None
    assert len(previews) == 1
    assert "File type not allowed: notes.txt" in status

    pending_id = session.multi_form.uploader.pending[0].local_id
    previews, status, _, session = await handle_multi_remove(pending_id, session)
    assert previews == []
    gateway.upload.assert_not_awaited()

@pytest.mark.asyncio
async def test_page_load_fills_both_galleries_in_one_session(gateway):
    with patch("services.ui_service.app.main.get_gateway_client", return_value=gateway):
        manager_items, _, form_items, form_status, session = await handle_page_load(None)

    assert manager_items == form_items == [(f"{URL_BASE}/a.png", "a.png (2.0 KB)")]
    assert form_status == "Click to select or upload an image."
    assert len(session.manager.gallery.images) == 1
    assert len(session.form.selector.gallery.images) == 1

    # Selection and delete work right after load, without a manual refresh
    await session.manager.gallery.select(f"{URL_BASE}/a.png")
    _, prompt, same_session = await handle_delete_request(session)
    assert prompt == "Are you sure you want to delete this image?"
    assert same_session is session
