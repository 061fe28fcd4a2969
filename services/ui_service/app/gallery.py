# services/ui_service/app/gallery.py
import asyncio
import contextlib
import logging
from typing import Any, Callable, List, Optional

from core.config import settings
from core.models import StoredImage
from .uploaders import notify

logger = logging.getLogger("IMS_Core").getChild("UIService").getChild("Gallery")


class ImageGallery:
    """
    The list of images currently stored in a container, as one session sees it.

    refresh() replaces the displayed set wholesale; delete() removes an item
    locally only after the gateway confirms, without refetching.
    """

    def __init__(
        self,
        gateway,
        container: Optional[str] = None,
        max_images: Optional[int] = None,
        refresh_interval: Optional[float] = None,
        selectable: bool = False,
        deletable: bool = True,
        on_select: Optional[Callable[[str], Any]] = None,
    ):
        self.gateway = gateway
        self.container = container or settings.DEFAULT_CONTAINER
        self.max_images = settings.GALLERY_MAX_IMAGES if max_images is None else max_images
        self.refresh_interval = refresh_interval
        self.selectable = selectable
        self.deletable = deletable
        self.on_select = on_select

        self.images: List[StoredImage] = []
        self.loading = False
        self.error: Optional[str] = None
        self.selected_url: Optional[str] = None
        self.deleting_url: Optional[str] = None
        self._seen_revision: Optional[int] = None
        self._poll_task: Optional[asyncio.Task] = None

    async def _read_revision(self) -> Optional[int]:
        # Staleness is advisory; an unreadable revision never blocks listing
        try:
            return await self.gateway.revision(self.container)
        except Exception as e:
            logger.warning(f"Could not read revision for '{self.container}': {e}")
            return None

    async def refresh(self) -> bool:
        self.loading = True
        try:
            revision = await self._read_revision()
            result = await self.gateway.list(self.container, self.max_images)
            if result.success:
                self.images = list(result.images or [])
                self.error = None
                self._seen_revision = revision
                logger.debug(f"Gallery for '{self.container}' refreshed: {len(self.images)} image(s)")
                return True
            self.error = result.error or "Failed to load images"
            logger.warning(f"Gallery refresh for '{self.container}' failed: {self.error}")
            return False
        except Exception as e:
            logger.error(f"Error fetching images for '{self.container}': {e}", exc_info=True)
            self.error = "An error occurred while fetching images"
            return False
        finally:
            self.loading = False

    async def is_stale(self) -> bool:
        """True when the gateway has recorded writes to the container since the last refresh."""
        revision = await self._read_revision()
        return revision is not None and revision != self._seen_revision

    async def select(self, url: str) -> bool:
        if not self.selectable:
            return False
        self.selected_url = url
        await notify(self.on_select, url)
        return True

    async def delete(self, url: str, confirm: Callable[[str], bool]) -> bool:
        """Delete once confirm(url) agrees; the local list changes only when the gateway succeeds."""
        if not self.deletable:
            return False
        if not confirm(url):
            logger.debug(f"Deletion of {url} cancelled by user.")
            return False

        self.deleting_url = url
        try:
            result = await self.gateway.delete(url, self.container)
            if result.success:
                self.images = [image for image in self.images if image.url != url]
                if self.selected_url == url:
                    self.selected_url = None
                self.error = None
                logger.info(f"Deleted {url}")
                return True
            self.error = f"Failed to delete image: {result.error}"
            logger.warning(self.error)
            return False
        except Exception as e:
            logger.error(f"Error deleting image: {e}", exc_info=True)
            self.error = "An error occurred while deleting the image"
            return False
        finally:
            self.deleting_url = None

    # --- Polling ---

    def start_polling(self):
        if not self.refresh_interval or (self._poll_task and not self._poll_task.done()):
            return
        self._poll_task = asyncio.create_task(self._poll())

    async def _poll(self):
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()

    async def stop_polling(self):
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._poll_task
        self._poll_task = None
