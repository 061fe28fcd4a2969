# services/image_gateway/app/routers/images.py
from fastapi import APIRouter, HTTPException, Body, File, Form, Query, UploadFile
from core.models import StorageResult, DeleteImageRequest, ContainerRevision
from core.config import settings
import logging
from typing import Optional
from .. import actions

logger = logging.getLogger("IMS_Core").getChild("ImageGateway").getChild("ImageRouter")

router = APIRouter()


def _dump(result: StorageResult) -> dict:
    # Unset keys are left out so the wire shape stays {success, url?, images?, error?}
    return result.model_dump(exclude_none=True)


@router.post("/upload")
async def route_upload_image(
    file: UploadFile = File(...),
    container: Optional[str] = Form(None),
):
    """Store one uploaded file and return its URL."""
    body_limit = int(settings.UPLOAD_BODY_LIMIT_MB * 1024 * 1024)
    file_bytes = await file.read()
    if len(file_bytes) > body_limit:
        logger.warning(f"Rejected upload '{file.filename}': {len(file_bytes)} bytes exceeds body limit of {body_limit}")
        raise HTTPException(status_code=413, detail=f"Upload body exceeds {settings.UPLOAD_BODY_LIMIT_MB}MB limit")

    mime_type = file.content_type or "application/octet-stream"
    logger.info(f"Upload request: file='{file.filename}', type={mime_type}, size={len(file_bytes)}, container={container}")
    result = await actions.upload_image(file_bytes, file.filename or "upload", mime_type, container)
    return _dump(result)


@router.post("/delete")
async def route_delete_image(payload: DeleteImageRequest = Body(...)):
    """Delete the blob addressed by a previously returned URL."""
    logger.info(f"Delete request: url='{payload.url}', container={payload.container}")
    result = await actions.delete_image(payload.url, payload.container)
    return _dump(result)


@router.get("")
async def route_list_images(
    container: Optional[str] = Query(None),
    max_results: Optional[int] = Query(None, ge=0),
):
    """List image objects in a container."""
    result = await actions.list_images(container, max_results)
    return _dump(result)


@router.get("/revision", response_model=ContainerRevision)
async def route_container_revision(container: Optional[str] = Query(None)):
    """Current change counter for a container; it moves whenever an upload or delete succeeds."""
    container = container or settings.DEFAULT_CONTAINER
    return ContainerRevision(container=container, revision=actions.get_container_revision(container))
