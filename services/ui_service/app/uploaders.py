# services/ui_service/app/uploaders.py
"""
Upload widgets: the per-session state behind the single and multi-file uploaders.

Widgets hold files the user picked (PendingFile), validate them before any
network call, and push them through the gateway client. Neither widget
retries on its own, and reset() only clears local state: a call already
issued to the gateway runs to completion and its result is dropped.
"""
import inspect
import logging
import time
from typing import Any, Callable, List, NamedTuple, Optional, Sequence

from core.config import settings
from core.models import PendingFile, UploadHandle, UploadState
from core.utils import to_data_uri
from .progress import batch_base_progress, batch_progress, run_with_progress, simulated_progress

logger = logging.getLogger("IMS_Core").getChild("UIService").getChild("Uploaders")


class IncomingFile(NamedTuple):
    """A file as handed over by the browser: name, bytes, MIME type."""
    file_name: str
    data: bytes
    mime_type: str


async def notify(callback: Optional[Callable[..., Any]], *args) -> None:
    """Invoke an optional callback, awaiting it if it is a coroutine function."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class LocalIdGenerator:
    """Ids unique within one widget instance: file-<epoch-millis>-<counter>."""

    def __init__(self):
        self._counter = 0

    def next_id(self) -> str:
        local_id = f"file-{int(time.time() * 1000)}-{self._counter}"
        self._counter += 1
        return local_id


def max_size_bytes(max_size_mb: float) -> int:
    return int(max_size_mb * 1024 * 1024)


def _format_mb(max_size_mb: float) -> str:
    return f"{max_size_mb:g}"


class SingleImageUploader:
    """
    Selects, previews, validates and uploads one file.

    States: IDLE -> PREVIEWING -> UPLOADING -> UPLOADED | FAILED, with reset()
    returning to IDLE. In auto_upload mode a valid selection is uploaded right
    away; otherwise the owner calls trigger_upload() (usually through handle()).
    """

    def __init__(
        self,
        gateway,
        container: Optional[str] = None,
        max_size_mb: Optional[float] = None,
        allowed_types: Optional[Sequence[str]] = None,
        auto_upload: bool = True,
        on_upload_success: Optional[Callable[[str], Any]] = None,
        on_upload_error: Optional[Callable[[str], Any]] = None,
        on_progress: Optional[Callable[[int], Any]] = None,
        progress_interval: Optional[float] = None,
    ):
        self.gateway = gateway
        self.container = container or settings.DEFAULT_CONTAINER
        self.max_size_mb = settings.MAX_UPLOAD_SIZE_MB if max_size_mb is None else max_size_mb
        self.allowed_types = list(allowed_types or settings.ALLOWED_MIME_TYPES)
        self.auto_upload = auto_upload
        self.on_upload_success = on_upload_success
        self.on_upload_error = on_upload_error
        self.on_progress = on_progress
        self.progress_interval = progress_interval

        self.state = UploadState.IDLE
        self.pending: Optional[PendingFile] = None
        self.uploaded_url: Optional[str] = None
        self.error: Optional[str] = None
        self.progress = 0
        self._ids = LocalIdGenerator()
        self._generation = 0 # bumped by reset() so late results from a dropped upload are ignored

    @property
    def preview_url(self) -> Optional[str]:
        return self.pending.preview_data_uri if self.pending else None

    @property
    def is_uploading(self) -> bool:
        return self.state == UploadState.UPLOADING

    def validate(self, file_name: str, size: int, mime_type: str) -> Optional[str]:
        if mime_type not in self.allowed_types:
            return f"File type not allowed. Please use: {', '.join(self.allowed_types)}"
        if size > max_size_bytes(self.max_size_mb):
            return f"File size exceeds {_format_mb(self.max_size_mb)}MB limit"
        return None

    async def select_file(self, file_name: str, data: bytes, mime_type: str) -> bool:
        """Stage a file; returns False (and sets error) if it fails validation."""
        if self.is_uploading:
            logger.warning(f"Ignoring selection of '{file_name}' while an upload is running.")
            return False

        self.error = None
        self.pending = None
        self.uploaded_url = None
        self.progress = 0
        self.state = UploadState.IDLE

        validation_error = self.validate(file_name, len(data), mime_type)
        if validation_error:
            logger.info(f"Rejected '{file_name}': {validation_error}")
            self.error = validation_error
            return False

        self.pending = PendingFile(
            local_id=self._ids.next_id(),
            file_name=file_name,
            mime_type=mime_type,
            raw_bytes=data,
            preview_data_uri=to_data_uri(data, mime_type),
        )
        self.state = UploadState.PREVIEWING
        if self.auto_upload:
            await self.trigger_upload()
        return True

    def _set_progress(self, value: int):
        self.progress = value
        if self.on_progress:
            self.on_progress(value)

    async def trigger_upload(self) -> Optional[str]:
        """Upload the staged file; returns its URL, or None on failure or when nothing is staged."""
        if self.pending is None or self.is_uploading:
            return None

        pending = self.pending
        generation = self._generation
        self.state = UploadState.UPLOADING
        self.error = None
        self._set_progress(0)

        try:
            result = await run_with_progress(
                self.gateway.upload(pending.raw_bytes, pending.file_name, pending.mime_type, self.container),
                simulated_progress(),
                self._set_progress,
                self.progress_interval,
            )
            success, url, error = result.success and bool(result.url), result.url, result.error
        except Exception as e:
            logger.error(f"Upload of '{pending.file_name}' raised: {e}", exc_info=True)
            success, url, error = False, None, str(e)

        if generation != self._generation:
            logger.info(f"Upload of '{pending.file_name}' finished after reset; result discarded.")
            return url if success else None

        self._set_progress(100)
        if success:
            self.uploaded_url = url
            self.pending = None
            self.state = UploadState.UPLOADED
            logger.info(f"Uploaded '{pending.file_name}' to {url}")
            await notify(self.on_upload_success, url)
            return url

        self.error = error or "Upload failed"
        self.state = UploadState.FAILED
        logger.warning(f"Upload of '{pending.file_name}' failed: {self.error}")
        await notify(self.on_upload_error, self.error)
        return None

    def reset(self):
        self._generation += 1
        self.state = UploadState.IDLE
        self.pending = None
        self.uploaded_url = None
        self.error = None
        self.progress = 0

    def has_pending(self) -> bool:
        return self.pending is not None

    def handle(self) -> UploadHandle:
        return UploadHandle(trigger_upload=self.trigger_upload, reset=self.reset, has_pending=self.has_pending)


class MultiImageUploader:
    """
    An ordered batch of files uploaded one after another.

    Valid selections are appended to `pending`; files failing validation are
    kept in `rejected` for display and never uploaded. The first failed upload
    stops the queue: earlier files stay uploaded, later ones stay pending.
    """

    def __init__(
        self,
        gateway,
        container: Optional[str] = None,
        max_size_mb: Optional[float] = None,
        allowed_types: Optional[Sequence[str]] = None,
        max_files: Optional[int] = None,
        on_images_selected: Optional[Callable[[List[PendingFile]], Any]] = None,
        on_upload_complete: Optional[Callable[[List[str]], Any]] = None,
        on_progress: Optional[Callable[[int, int, int], Any]] = None,
        progress_interval: Optional[float] = None,
    ):
        self.gateway = gateway
        self.container = container or settings.DEFAULT_CONTAINER
        self.max_size_mb = settings.MAX_UPLOAD_SIZE_MB if max_size_mb is None else max_size_mb
        self.allowed_types = list(allowed_types or settings.ALLOWED_MIME_TYPES)
        self.max_files = settings.MAX_BATCH_FILES if max_files is None else max_files
        self.on_images_selected = on_images_selected
        self.on_upload_complete = on_upload_complete
        self.on_progress = on_progress
        self.progress_interval = progress_interval

        self.pending: List[PendingFile] = []
        self.rejected: List[PendingFile] = []
        self.error: Optional[str] = None
        self.is_uploading = False
        self.progress = 0
        self.current_index = 0
        self.total_uploads = 0
        self._ids = LocalIdGenerator()
        self._generation = 0

    def validate(self, file_name: str, size: int, mime_type: str) -> Optional[str]:
        if mime_type not in self.allowed_types:
            return f"File type not allowed: {file_name}"
        if size > max_size_bytes(self.max_size_mb):
            return f"File size exceeds {_format_mb(self.max_size_mb)}MB limit: {file_name}"
        return None

    async def select_files(self, files: Sequence[IncomingFile]) -> bool:
        """Append a batch; the whole batch is refused if it would exceed max_files."""
        if not files:
            return False
        self.error = None

        if len(self.pending) + len(files) > self.max_files:
            self.error = f"You can only upload a maximum of {self.max_files} files at once."
            logger.info(f"Rejected batch of {len(files)} file(s): {self.error}")
            return False

        for incoming in files:
            validation_error = self.validate(incoming.file_name, len(incoming.data), incoming.mime_type)
            pending_file = PendingFile(
                local_id=self._ids.next_id(),
                file_name=incoming.file_name,
                mime_type=incoming.mime_type,
                raw_bytes=incoming.data,
                preview_data_uri=None if validation_error else to_data_uri(incoming.data, incoming.mime_type),
                validation_error=validation_error,
            )
            if validation_error:
                self.rejected.append(pending_file)
            else:
                self.pending.append(pending_file)

        logger.debug(f"Selection now holds {len(self.pending)} pending and {len(self.rejected)} rejected file(s).")
        await notify(self.on_images_selected, list(self.pending))
        return True

    def remove_file(self, local_id: str) -> bool:
        before = len(self.pending) + len(self.rejected)
        self.pending = [f for f in self.pending if f.local_id != local_id]
        self.rejected = [f for f in self.rejected if f.local_id != local_id]
        return len(self.pending) + len(self.rejected) < before

    def _report_progress(self, value: int):
        self.progress = value
        if self.on_progress:
            self.on_progress(self.current_index, self.total_uploads, value)

    async def upload_all(self) -> List[str]:
        """Upload every pending file in order; returns the URLs committed by this run."""
        if not self.pending or self.is_uploading:
            return []

        queue = list(self.pending)
        generation = self._generation
        uploaded_urls: List[str] = []
        self.is_uploading = True
        self.error = None
        self.total_uploads = len(queue)
        self.current_index = 0
        self.progress = 0

        try:
            for i, pending_file in enumerate(queue):
                if generation != self._generation:
                    logger.info(f"Batch upload stopped by reset before file {i + 1} of {len(queue)}.")
                    break
                self.current_index = i + 1
                self._report_progress(batch_base_progress(i, len(queue)))

                try:
                    result = await run_with_progress(
                        self.gateway.upload(pending_file.raw_bytes, pending_file.file_name, pending_file.mime_type, self.container),
                        batch_progress(i, len(queue)),
                        self._report_progress,
                        self.progress_interval,
                    )
                except Exception as e:
                    logger.error(f"Upload of '{pending_file.file_name}' raised: {e}", exc_info=True)
                    result = None
                    failure = str(e)
                else:
                    failure = None if (result.success and result.url) else (result.error or f"Failed to upload image {i + 1}")

                if failure is not None:
                    if generation == self._generation:
                        self.error = failure
                    logger.warning(f"Batch upload halted at file {i + 1} of {len(queue)}: {failure}")
                    break

                uploaded_urls.append(result.url)
                logger.info(f"Uploaded image: {result.url}")
                if generation == self._generation:
                    self.pending = [f for f in self.pending if f.local_id != pending_file.local_id]

            if self.error is None and generation == self._generation and len(uploaded_urls) == len(queue):
                self._report_progress(100)
                await notify(self.on_upload_complete, uploaded_urls)
        finally:
            self.is_uploading = False

        return uploaded_urls

    def reset(self):
        logger.debug("Reset called - clearing all selected files")
        self._generation += 1
        self.pending = []
        self.rejected = []
        self.error = None
        self.progress = 0
        self.current_index = 0
        self.total_uploads = 0

    def has_pending(self) -> bool:
        return len(self.pending) > 0

    def get_files(self) -> List[PendingFile]:
        return list(self.pending)

    def handle(self) -> UploadHandle:
        return UploadHandle(trigger_upload=self.upload_all, reset=self.reset, has_pending=self.has_pending)
