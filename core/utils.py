# core/utils.py
"""
Core Utility Functions.

Helpers shared by the gateway and the UI widgets: blob name generation,
blob name extraction from URLs, the permissive image filter used when listing,
size formatting and preview data URIs.
"""
import base64
import random
import re
import time
from typing import Optional
from urllib.parse import unquote, urlsplit

IMAGE_EXTENSION_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)


class InvalidBlobUrlError(ValueError):
    """Raised when a URL carries no blob name in its final path segment."""


def generate_unique_blob_name(original_name: str) -> str:
    """Builds '<epoch-millis>-<0..999>.<ext>' from the original file name."""
    timestamp = int(time.time() * 1000)
    suffix = random.randint(0, 999)
    extension = original_name.rsplit(".", 1)[-1]
    return f"{timestamp}-{suffix}.{extension}"


def extract_blob_name(blob_url: str) -> str:
    """Returns the final path segment of a blob URL."""
    path = urlsplit(blob_url or "").path
    blob_name = unquote(path.split("/")[-1]) if path else ""
    if not blob_name:
        raise InvalidBlobUrlError("Invalid blob URL")
    return blob_name


def is_image_blob(name: str, content_type: Optional[str]) -> bool:
    # Either signal is enough; an image extension with a non-image content type still counts.
    if content_type and content_type.startswith("image/"):
        return True
    return bool(IMAGE_EXTENSION_PATTERN.search(name))


def format_file_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Self-contained base64 representation used for local previews."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
