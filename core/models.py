# core/models.py
from pydantic import BaseModel, Field
from typing import List, Optional, Any, Callable, Awaitable
from enum import Enum

# --- Core Data Models ---

class StoredImage(BaseModel):
    """Represents one image object in a remote container."""
    name: str = Field(..., description="Unique blob name within the container")
    url: str = Field(..., description="Publicly resolvable URL, derived from container + name")
    content_type: str = Field(default="unknown", description="MIME type reported by the store")
    size_bytes: int = Field(default=0, ge=0)

    class Config:
        from_attributes = True


class PendingFile(BaseModel):
    """A file chosen in a widget but not yet confirmed uploaded."""
    local_id: str = Field(..., description="Session-unique id, e.g. file-1718000000000-3")
    file_name: str
    mime_type: str
    raw_bytes: bytes = Field(default=b"", repr=False)
    preview_data_uri: Optional[str] = Field(default=None, repr=False)
    validation_error: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.raw_bytes)

    @property
    def is_valid(self) -> bool:
        return self.validation_error is None


class UploadState(str, Enum):
    IDLE = "idle"
    PREVIEWING = "previewing"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


class UploadHandle(BaseModel):
    """Commands an upload widget exposes to the form or manager that owns it."""
    trigger_upload: Callable[[], Awaitable[Any]]
    reset: Callable[[], None]
    has_pending: Callable[[], bool]


# --- Gateway Request/Response Models ---

class StorageResult(BaseModel):
    """Tagged result returned by every gateway operation."""
    success: bool
    url: Optional[str] = None
    images: Optional[List[StoredImage]] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: Optional[str]) -> "StorageResult":
        return cls(success=False, error=error or "An unknown error occurred")


class DeleteImageRequest(BaseModel):
    """Request to delete a blob by its public URL."""
    url: str
    container: Optional[str] = None


class ContainerRevision(BaseModel):
    """Change counter for a container, bumped on every successful write."""
    container: str
    revision: int = 0


class GatewayResponse(BaseModel):
    """Standard response wrapper for the gateway's meta endpoints."""
    status: str = Field(description="'success' or 'error'")
    data: Any | None = Field(default=None, description="Optional payload")
    message: Optional[str] = Field(default=None, description="Optional status message or error details")
