# services/ui_service/app/selector.py
import logging
from typing import Any, Callable, Optional, Sequence

from core.config import settings
from core.models import UploadHandle
from .gallery import ImageGallery
from .uploaders import SingleImageUploader, notify

logger = logging.getLogger("IMS_Core").getChild("UIService").getChild("Selector")


class ImageSelector:
    """
    Pick an already stored image, or stage a new file whose upload is deferred
    until the owning form submits.

    Choosing an existing image drops any staged file and vice versa, so at most
    one source is active at a time.
    """

    def __init__(
        self,
        gateway,
        container: Optional[str] = None,
        max_size_mb: Optional[float] = None,
        allowed_types: Optional[Sequence[str]] = None,
        max_gallery_images: Optional[int] = None,
        on_image_selected: Optional[Callable[[str], Any]] = None,
        on_progress: Optional[Callable[[int], Any]] = None,
        progress_interval: Optional[float] = None,
    ):
        self.container = container or settings.DEFAULT_CONTAINER
        self.on_image_selected = on_image_selected
        self.selected_url: Optional[str] = None
        self.uploader = SingleImageUploader(
            gateway,
            container=self.container,
            max_size_mb=max_size_mb,
            allowed_types=allowed_types,
            auto_upload=False,
            on_progress=on_progress,
            progress_interval=progress_interval,
        )
        self.gallery = ImageGallery(
            gateway,
            container=self.container,
            max_images=max_gallery_images,
            selectable=True,
            deletable=False,
            on_select=self._on_gallery_select,
        )

    @property
    def error(self) -> Optional[str]:
        return self.uploader.error

    @property
    def preview_url(self) -> Optional[str]:
        return self.uploader.preview_url

    async def _on_gallery_select(self, url: str):
        self.uploader.reset()
        self.selected_url = url
        await notify(self.on_image_selected, url)

    async def choose_existing(self, url: str) -> bool:
        return await self.gallery.select(url)

    async def select_file(self, file_name: str, data: bytes, mime_type: str) -> bool:
        accepted = await self.uploader.select_file(file_name, data, mime_type)
        if accepted:
            self.selected_url = None
            self.gallery.selected_url = None
        return accepted

    async def upload_file(self) -> Optional[str]:
        """Upload the staged file, or hand back the chosen image when nothing is staged."""
        if not self.uploader.has_pending():
            return self.selected_url
        url = await self.uploader.trigger_upload()
        if url:
            self.selected_url = url
            self.uploader.reset()
            await notify(self.on_image_selected, url)
        return url

    def reset(self):
        self.uploader.reset()
        self.selected_url = None
        self.gallery.selected_url = None

    def has_pending(self) -> bool:
        return self.uploader.has_pending()

    def handle(self) -> UploadHandle:
        return UploadHandle(trigger_upload=self.upload_file, reset=self.reset, has_pending=self.has_pending)
