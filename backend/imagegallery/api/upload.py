from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response
from starlette.datastructures import UploadFile

from imagegallery.api.deps import get_blob_client, get_image_service, get_settings
from imagegallery.api.forms import form_text, validate_metadata_form
from imagegallery.core.config import Settings
from imagegallery.core.errors import ApiError, ErrorCode
from imagegallery.core.logging import get_logger
from imagegallery.core.metrics import observe_upload
from imagegallery.services.images import ImageService
from imagegallery.storage.blob_client import BlobStorageClient, StorageRequestError
from imagegallery.web.templates import render

log = get_logger(__name__)

router = APIRouter()


def blob_name_for(filename: str | None) -> str:
    return (filename or "").strip().strip('"')


@router.get("/upload")
async def upload_form(request: Request) -> Response:
    return render(request, "upload/index.html", title="Upload")


@router.post("/upload")
async def upload_image(
    request: Request,
    service: ImageService = Depends(get_image_service),
    blob_client: BlobStorageClient = Depends(get_blob_client),
    settings: Settings = Depends(get_settings),
) -> Response:
    content_type = (request.headers.get("content-type") or "").lower()
    if not content_type.startswith("multipart/form-data"):
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Expected a multipart form upload", status_code=400)

    form = await request.form()
    file_obj = next((value for _, value in form.multi_items() if isinstance(value, UploadFile)), None)
    if file_obj is None:
        observe_upload(result="empty")
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Missing file part", status_code=400)

    data = await file_obj.read()
    blob_name = blob_name_for(file_obj.filename)
    if not data or not blob_name:
        observe_upload(result="empty")
        raise ApiError(code=ErrorCode.EMPTY_UPLOAD, message="", status_code=400)

    meta = validate_metadata_form({"title": form_text(form, "title"), "tags": form_text(form, "tags") or ""})

    container = blob_client.container(settings.storage_container)
    try:
        if await container.create_if_not_exists():
            await container.set_public_access("blob")
        await container.delete_blob_if_exists(blob_name, include_snapshots=True)
        blob = await container.upload_blob(blob_name, data, content_type=file_obj.content_type)
    except StorageRequestError as exc:
        log.error(
            "upload_storage_failed blob=%s status=%s code=%s client_request_id=%s",
            blob_name,
            exc.status_code,
            exc.error_code,
            exc.client_request_id,
        )
        observe_upload(result="storage_error")
        raise ApiError(code=ErrorCode.STORAGE_ERROR, message="", status_code=500) from exc

    try:
        image = await service.set_image(meta.title, meta.tags, blob.url)
    except Exception as exc:
        # The blob stays in the container; nothing links it to a row yet.
        log.exception("upload_record_failed blob=%s", blob_name)
        observe_upload(result="error")
        raise ApiError(code=ErrorCode.INTERNAL_ERROR, message="", status_code=500) from exc

    observe_upload(result="ok")
    log.info("upload_ok id=%s blob=%s bytes=%s", image.id, blob_name, len(data))
    return RedirectResponse(url="/gallery", status_code=303)
