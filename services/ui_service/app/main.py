# services/ui_service/app/main.py

import gradio as gr
import fastapi
import io
import logging
import mimetypes
import os
from PIL import Image, UnidentifiedImageError
from typing import List, Optional
from core.config import settings
from core.models import PendingFile
from core.utils import format_file_size
from .gateway_client import get_gateway_client
from .gallery import ImageGallery
from .selector import ImageSelector
from .uploaders import IncomingFile, MultiImageUploader, SingleImageUploader
from .forms import ImageManager, ImageUploadForm, MultiImageUploadForm

# Setup logger
logger = logging.getLogger("IMS_Core").getChild("UIService")

DELETE_PROMPT = "Are you sure you want to delete this image?"


# --- Per-Session Widgets ---

class UISession:
    """Widgets owned by one browser session; nothing here is shared between sessions."""

    def __init__(self, gateway=None):
        gateway = gateway or get_gateway_client()
        self.manager = ImageManager(
            gallery=ImageGallery(gateway, selectable=True, deletable=True),
            uploader=SingleImageUploader(gateway, auto_upload=True),
            initial_view="gallery",
        )
        self.form = ImageUploadForm(ImageSelector(gateway))
        self.multi_form = MultiImageUploadForm(MultiImageUploader(gateway))


def _session(state: Optional[UISession]) -> UISession:
    return state if state is not None else UISession()


def read_upload(file_path: str) -> IncomingFile:
    """Reads a file Gradio stored in its temp dir; the MIME type is guessed from the name."""
    file_name = os.path.basename(file_path)
    mime_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
    with open(file_path, "rb") as f:
        data = f.read()
    return IncomingFile(file_name=file_name, data=data, mime_type=mime_type)


def preview_image(pending: Optional[PendingFile]):
    """Decodes staged bytes for display; files Pillow cannot read get no preview."""
    if pending is None:
        return None
    try:
        return Image.open(io.BytesIO(pending.raw_bytes))
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"No preview for '{pending.file_name}': {e}")
        return None


def gallery_items(gallery: ImageGallery):
    return [(image.url, f"{image.name} ({format_file_size(image.size_bytes)})") for image in gallery.images]


def gallery_status(gallery: ImageGallery) -> str:
    if gallery.error:
        return f"**Error:** {gallery.error}"
    if not gallery.images:
        return "No images found in this container."
    selected = f"\n\nSelected: `{gallery.selected_url}`" if gallery.selected_url else ""
    return f"{len(gallery.images)} image(s) in `{gallery.container}`.{selected}"


def _view_updates(manager: ImageManager):
    return (
        gr.update(value=manager.view),
        gr.update(visible=manager.view == "gallery"),
        gr.update(visible=manager.view == "upload"),
    )


# --- Image Manager Tab ---

async def handle_gallery_refresh(state):
    session = _session(state)
    await session.manager.gallery.refresh()
    gallery = session.manager.gallery
    return gallery_items(gallery), gallery_status(gallery), session

async def handle_gallery_tick(state):
    # Polling only makes sense for sessions that already loaded their gallery
    if state is None:
        return gr.update(), gr.update(), state
    return await handle_gallery_refresh(state)

async def handle_gallery_select(state, evt: gr.SelectData):
    session = _session(state)
    gallery = session.manager.gallery
    if evt.index is not None and 0 <= evt.index < len(gallery.images):
        await gallery.select(gallery.images[evt.index].url)
    return gallery_status(gallery), session

async def handle_delete_request(state):
    session = _session(state)
    if not session.manager.gallery.selected_url:
        return gr.update(visible=False), "Select an image to delete first.", session
    return gr.update(visible=True), DELETE_PROMPT, session

async def handle_delete_confirm(state):
    session = _session(state)
    gallery = session.manager.gallery
    url = gallery.selected_url
    if url:
        # The user already answered the prompt by pressing "Yes, delete"
        await gallery.delete(url, confirm=lambda _: True)
    return gallery_items(gallery), gallery_status(gallery), gr.update(visible=False), session

async def handle_delete_cancel():
    return gr.update(visible=False), ""

async def handle_page_load(state):
    # One handler so both galleries land in the same session on first load
    session = _session(state)
    await session.manager.gallery.refresh()
    await session.form.selector.gallery.refresh()
    manager_gallery, form_gallery = session.manager.gallery, session.form.selector.gallery
    return gallery_items(manager_gallery), gallery_status(manager_gallery), gallery_items(form_gallery), _form_status(session.form), session

async def handle_view_change(view: str, state):
    session = _session(state)
    session.manager.show(view)
    return (*_view_updates(session.manager), session)

async def handle_manager_upload(file_path, state, progress=gr.Progress()):
    session = _session(state)
    manager = session.manager
    if not file_path:
        return "Please select an image.", None, gallery_items(manager.gallery), gallery_status(manager.gallery), *_view_updates(manager), session

    incoming = read_upload(file_path)
    logger.info(f"Manager upload: '{incoming.file_name}' ({incoming.mime_type}, {len(incoming.data)} bytes)")
    manager.uploader.on_progress = lambda value: progress(value / 100, desc=f"Uploading... {value}%")
    await manager.uploader.select_file(incoming.file_name, incoming.data, incoming.mime_type)
    uploader = manager.uploader
    if uploader.error:
        status = f"**Error:** {uploader.error}"
    elif uploader.uploaded_url:
        status = f"Upload successful! `{uploader.uploaded_url}`"
    else:
        status = "Upload did not complete."
    return status, uploader.uploaded_url or preview_image(uploader.pending), gallery_items(manager.gallery), gallery_status(manager.gallery), *_view_updates(manager), session


# --- Single Image Form Tab ---

def _form_status(form: ImageUploadForm) -> str:
    if form.submit_error:
        return f"**Error:** {form.submit_error}"
    if form.selector.error:
        return f"**Error:** {form.selector.error}"
    if form.submit_success:
        return f"Image successfully uploaded! `{form.image_url}`"
    if form.selector.selected_url:
        return f"Image selected: `{form.selector.selected_url}`"
    if form.selector.has_pending():
        return f"Ready to upload `{form.selector.uploader.pending.file_name}` on save."
    return "Click to select or upload an image."

async def handle_form_load(state):
    session = _session(state)
    await session.form.selector.gallery.refresh()
    return gallery_items(session.form.selector.gallery), _form_status(session.form), session

async def handle_form_choose(state, evt: gr.SelectData):
    session = _session(state)
    gallery = session.form.selector.gallery
    if evt.index is not None and 0 <= evt.index < len(gallery.images):
        await session.form.selector.choose_existing(gallery.images[evt.index].url)
    return session.form.selector.selected_url, _form_status(session.form), session

async def handle_form_file(file_path, state):
    session = _session(state)
    if file_path:
        incoming = read_upload(file_path)
        await session.form.selector.select_file(incoming.file_name, incoming.data, incoming.mime_type)
    return preview_image(session.form.selector.uploader.pending), _form_status(session.form), session

async def handle_form_submit(state, progress=gr.Progress()):
    session = _session(state)
    selector = session.form.selector
    selector.uploader.on_progress = lambda value: progress(value / 100, desc=f"Uploading... {value}%")
    await session.form.submit()
    return _form_status(session.form), session

async def handle_form_reset(state):
    session = _session(state)
    session.form.reset()
    return None, None, _form_status(session.form), session


# --- Multi Image Form Tab ---

def _multi_outputs(form: MultiImageUploadForm):
    uploader = form.uploader
    previews = []
    for f in uploader.pending:
        image = preview_image(f)
        if image is not None:
            previews.append((image, f"{f.file_name} ({format_file_size(f.size_bytes)})"))
    lines: List[str] = []
    if uploader.error:
        lines.append(f"**Error:** {uploader.error}")
    if form.submit_error and form.submit_error != uploader.error:
        lines.append(f"**Error:** {form.submit_error}")
    for rejected in uploader.rejected:
        lines.append(f"- {rejected.validation_error}")
    if form.submit_success:
        lines.append("**Uploaded:**")
        lines.extend(f"- `{url}`" for url in form.uploaded_urls)
    if not lines:
        lines.append(f"{len(uploader.pending)} of {uploader.max_files} file(s) selected.")
    choices = [(f.file_name, f.local_id) for f in uploader.pending + uploader.rejected]
    return previews, "\n".join(lines), gr.update(choices=choices, value=None)

async def handle_multi_select(file_paths, state):
    session = _session(state)
    if file_paths:
        await session.multi_form.uploader.select_files([read_upload(path) for path in file_paths])
    return (None, *_multi_outputs(session.multi_form), session)

async def handle_multi_remove(local_id, state):
    session = _session(state)
    if local_id:
        session.multi_form.uploader.remove_file(local_id)
    return (*_multi_outputs(session.multi_form), session)

async def handle_multi_submit(state, progress=gr.Progress()):
    session = _session(state)
    session.multi_form.uploader.on_progress = lambda current, total, value: progress(
        value / 100, desc=f"Uploading {current} of {total}... {value}%"
    )
    await session.multi_form.submit()
    return (*_multi_outputs(session.multi_form), session)

async def handle_multi_reset(state):
    session = _session(state)
    session.multi_form.reset()
    return (None, *_multi_outputs(session.multi_form), session)


# --- Build Gradio Interface ---
image_types = [f".{t.split('/')[-1]}" for t in settings.ALLOWED_MIME_TYPES] + [".jpg"]

with gr.Blocks(theme=gr.themes.Soft(), title="Image Manager") as demo:
    gr.Markdown("# Image Manager")
    gr.Markdown(f"Upload, browse, select and delete images in `{settings.DEFAULT_CONTAINER}`. Max {settings.MAX_UPLOAD_SIZE_MB:g}MB per file.")
    session_state = gr.State(None)
    with gr.Tabs():
        with gr.TabItem("Image Manager"):
            view_radio = gr.Radio(label="View", choices=list(ImageManager.VIEWS), value="gallery")
            with gr.Column(visible=True) as gallery_view:
                with gr.Row(): refresh_button = gr.Button("🔄 Refresh"); delete_button = gr.Button("🗑️ Delete Selected", variant="stop")
                with gr.Row(visible=False) as confirm_row:
                    confirm_button = gr.Button("Yes, delete", variant="stop"); cancel_button = gr.Button("Cancel")
                delete_prompt = gr.Markdown("")
                manager_gallery = gr.Gallery(label="Images", columns=4, height="auto", allow_preview=True)
                manager_status = gr.Markdown("Loading images...")
            with gr.Column(visible=False) as upload_view:
                with gr.Row():
                    with gr.Column(scale=2): manager_file = gr.File(label="Click to select an image", file_types=image_types, type="filepath")
                    with gr.Column(scale=3): manager_preview = gr.Image(label="Preview", interactive=False); manager_upload_status = gr.Markdown("")
        with gr.TabItem("Image Form"):
            gr.Markdown("Select an existing image or stage a new one; it is uploaded when you save.")
            with gr.Row():
                with gr.Column(scale=3): form_gallery = gr.Gallery(label="Choose an existing image", columns=4, height="auto", allow_preview=False)
                with gr.Column(scale=2): form_file = gr.File(label="Upload New Image", file_types=image_types, type="filepath"); form_preview = gr.Image(label="Preview", interactive=False)
            form_status = gr.Markdown("")
            with gr.Row(): form_submit = gr.Button("Save Image", variant="primary"); form_reset = gr.Button("Reset")
        with gr.TabItem("Multi-Image Form"):
            multi_files = gr.File(label=f"Add Images (max {settings.MAX_BATCH_FILES})", file_count="multiple", file_types=image_types, type="filepath")
            multi_previews = gr.Gallery(label="Selected images", columns=5, height="auto")
            multi_status = gr.Markdown("")
            with gr.Row(): multi_remove_choice = gr.Dropdown(label="Remove a file", choices=[], interactive=True); multi_remove = gr.Button("Remove")
            with gr.Row(): multi_submit = gr.Button("Upload Images", variant="primary"); multi_reset = gr.Button("Reset")

    # --- Connect UI elements to functions ---
    demo.load(handle_page_load, inputs=[session_state], outputs=[manager_gallery, manager_status, form_gallery, form_status, session_state])
    refresh_button.click(handle_gallery_refresh, inputs=[session_state], outputs=[manager_gallery, manager_status, session_state])
    manager_gallery.select(handle_gallery_select, inputs=[session_state], outputs=[manager_status, session_state])
    delete_button.click(handle_delete_request, inputs=[session_state], outputs=[confirm_row, delete_prompt, session_state])
    confirm_button.click(handle_delete_confirm, inputs=[session_state], outputs=[manager_gallery, manager_status, confirm_row, session_state]).then(lambda: "", outputs=[delete_prompt])
    cancel_button.click(handle_delete_cancel, outputs=[confirm_row, delete_prompt])
    view_radio.change(handle_view_change, inputs=[view_radio, session_state], outputs=[view_radio, gallery_view, upload_view, session_state])
    manager_file.upload(handle_manager_upload, inputs=[manager_file, session_state], outputs=[manager_upload_status, manager_preview, manager_gallery, manager_status, view_radio, gallery_view, upload_view, session_state])
    if settings.GALLERY_REFRESH_INTERVAL:
        gallery_timer = gr.Timer(value=settings.GALLERY_REFRESH_INTERVAL)
        gallery_timer.tick(handle_gallery_tick, inputs=[session_state], outputs=[manager_gallery, manager_status, session_state])

    form_gallery.select(handle_form_choose, inputs=[session_state], outputs=[form_preview, form_status, session_state])
    form_file.upload(handle_form_file, inputs=[form_file, session_state], outputs=[form_preview, form_status, session_state])
    form_submit.click(handle_form_submit, inputs=[session_state], outputs=[form_status, session_state]).then(handle_form_load, inputs=[session_state], outputs=[form_gallery, form_status, session_state])
    form_reset.click(handle_form_reset, inputs=[session_state], outputs=[form_file, form_preview, form_status, session_state])

    multi_files.upload(handle_multi_select, inputs=[multi_files, session_state], outputs=[multi_files, multi_previews, multi_status, multi_remove_choice, session_state])
    multi_remove.click(handle_multi_remove, inputs=[multi_remove_choice, session_state], outputs=[multi_previews, multi_status, multi_remove_choice, session_state])
    multi_submit.click(handle_multi_submit, inputs=[session_state], outputs=[multi_previews, multi_status, multi_remove_choice, session_state])
    multi_reset.click(handle_multi_reset, inputs=[session_state], outputs=[multi_files, multi_previews, multi_status, multi_remove_choice, session_state])


# --- Mount Gradio app within FastAPI ---
app = fastapi.FastAPI()
@app.get("/")
async def root():
    return {"message": "Image Manager UI is running. Access the Gradio interface at /ui"}
app = gr.mount_gradio_app(app, demo, path="/ui")
logger.info("UI Service Ready. Gradio interface available at /ui")
