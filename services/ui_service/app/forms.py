# services/ui_service/app/forms.py
"""
Composite flows wiring the widgets together. They hold no logic of their own
beyond deciding when to trigger an upload and what to report afterwards.
"""
import logging
from typing import Any, Callable, List, Optional

from core.models import UploadHandle
from .gallery import ImageGallery
from .selector import ImageSelector
from .uploaders import MultiImageUploader, SingleImageUploader, notify

logger = logging.getLogger("IMS_Core").getChild("UIService").getChild("Forms")


class ImageManager:
    """Gallery and upload views over one container; a finished upload refreshes the gallery."""

    VIEWS = ("gallery", "upload")

    def __init__(
        self,
        gallery: ImageGallery,
        uploader: SingleImageUploader,
        initial_view: str = "gallery",
        on_image_selected: Optional[Callable[[str], Any]] = None,
    ):
        if initial_view not in self.VIEWS:
            raise ValueError(f"Unknown view '{initial_view}', expected one of {self.VIEWS}")
        self.gallery = gallery
        self.uploader = uploader
        self.view = initial_view
        self.on_image_selected = on_image_selected
        self.uploader.on_upload_success = self._handle_upload_success

    def show(self, view: str):
        if view not in self.VIEWS:
            raise ValueError(f"Unknown view '{view}', expected one of {self.VIEWS}")
        self.view = view

    async def _handle_upload_success(self, url: str):
        await self.gallery.refresh()
        self.view = "gallery"
        await notify(self.on_image_selected, url)


class ImageUploadForm:
    """Single-image form: the upload is deferred until submit()."""

    def __init__(self, selector: ImageSelector, on_success: Optional[Callable[[str], Any]] = None):
        self.selector = selector
        self.handle: UploadHandle = selector.handle()
        self.on_success = on_success
        self.is_submitting = False
        self.submit_error: Optional[str] = None
        self.submit_success = False
        self.image_url: Optional[str] = None

    async def submit(self) -> Optional[str]:
        if not self.handle.has_pending() and not self.selector.selected_url:
            self.submit_error = "Please select an image first"
            return None

        self.is_submitting = True
        self.submit_error = None
        self.submit_success = False
        try:
            image_url = await self.handle.trigger_upload()
            if image_url:
                self.image_url = image_url
                self.submit_success = True
                logger.info(f"Image form submitted with {image_url}")
                await notify(self.on_success, image_url)
                return image_url
            self.submit_error = "Failed to upload image. Please try again."
            return None
        except Exception as e:
            logger.error(f"Image form submission failed: {e}", exc_info=True)
            self.submit_error = str(e) or "An error occurred during image upload"
            return None
        finally:
            self.is_submitting = False

    def reset(self):
        self.handle.reset()
        self.image_url = None
        self.submit_error = None
        self.submit_success = False


class MultiImageUploadForm:
    """Batch form: every pending file is uploaded, in order, on submit()."""

    def __init__(self, uploader: MultiImageUploader, on_success: Optional[Callable[[List[str]], Any]] = None):
        self.uploader = uploader
        self.handle: UploadHandle = uploader.handle()
        self.on_success = on_success
        self.is_submitting = False
        self.submit_error: Optional[str] = None
        self.submit_success = False
        self.uploaded_urls: List[str] = []

    async def submit(self) -> List[str]:
        if not self.handle.has_pending():
            self.submit_error = "Please select at least one image first"
            return []

        self.is_submitting = True
        self.submit_error = None
        self.submit_success = False
        try:
            urls = await self.handle.trigger_upload()
            self.uploaded_urls = urls
            if urls and self.uploader.error is None:
                self.submit_success = True
                logger.info(f"Uploaded image URLs: {urls}")
                await notify(self.on_success, urls)
            else:
                self.submit_error = self.uploader.error or "Failed to upload images. Please try again."
            return urls
        except Exception as e:
            logger.error(f"Batch form submission failed: {e}", exc_info=True)
            self.submit_error = str(e) or "An error occurred during image upload"
            return []
        finally:
            self.is_submitting = False

    def reset(self):
        self.handle.reset()
        self.uploaded_urls = []
        self.submit_error = None
        self.submit_success = False
