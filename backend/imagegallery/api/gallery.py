from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response

from imagegallery.api.deps import get_image_service, get_settings
from imagegallery.api.forms import form_text, validate_metadata_form
from imagegallery.core.config import Settings
from imagegallery.core.errors import ApiError, ErrorCode
from imagegallery.core.logging import get_logger
from imagegallery.core.paging import PagedList
from imagegallery.core.result import Found, NotFound
from imagegallery.services.images import ImageEdit, ImageService
from imagegallery.web.templates import gallery_url, render
from imagegallery.web.view_models import GalleryDetailModel

log = get_logger(__name__)

router = APIRouter()

MAX_PAGE_SIZE = 200


def _not_found(image_id: int) -> ApiError:
    return ApiError(
        code=ErrorCode.NOT_FOUND,
        message=f"Image {image_id} does not exist.",
        status_code=404,
        details={"image_id": image_id},
    )


async def _require_image(service: ImageService, image_id: int) -> GalleryDetailModel:
    result = await service.get_by_id(image_id)
    if isinstance(result, NotFound):
        raise _not_found(image_id)
    return GalleryDetailModel.from_image(result.value)


@router.get("/gallery")
async def gallery_index(
    request: Request,
    searchString: str | None = None,
    currentFilter: str | None = None,
    tag: str | None = None,
    pageNumber: int = 1,
    pageSize: int | None = None,
    service: ImageService = Depends(get_image_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    page_size = int(pageSize) if pageSize is not None else int(settings.gallery_page_size)
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Unsupported pageSize", status_code=400)

    if pageNumber < 1:
        return RedirectResponse(url=gallery_url(pageNumber=1), status_code=302)

    if searchString is not None:
        page_number = 1
    else:
        searchString = currentFilter
        page_number = int(pageNumber)

    tag_filter = (tag or "").strip()
    images = await service.get_with_tag(tag_filter) if tag_filter else await service.get_all()
    models = [GalleryDetailModel.from_image(img) for img in images]
    if searchString:
        models = [m for m in models if searchString in m.title]

    page = PagedList.create(models, page_number, page_size)
    return render(
        request,
        "gallery/index.html",
        title="Gallery",
        page=page,
        current_filter=searchString or "",
        active_tag=tag_filter,
    )


@router.get("/gallery/{image_id}")
async def gallery_detail(
    request: Request,
    image_id: int,
    service: ImageService = Depends(get_image_service),
) -> Response:
    image = await _require_image(service, image_id)
    return render(request, "gallery/detail.html", title=image.title, image=image)


@router.get("/gallery/{image_id}/edit")
async def gallery_edit_form(
    request: Request,
    image_id: int,
    service: ImageService = Depends(get_image_service),
) -> Response:
    image = await _require_image(service, image_id)
    return render(request, "gallery/edit.html", title="Edit", image=image)


@router.post("/gallery/{image_id}/edit")
async def gallery_edit(
    request: Request,
    image_id: int,
    service: ImageService = Depends(get_image_service),
) -> Response:
    form = await request.form()
    data = validate_metadata_form({"title": form_text(form, "title"), "tags": form_text(form, "tags") or ""})
    edit = ImageEdit(id=image_id, title=data.title, tags=data.tag_list())

    try:
        result = await service.update_image(edit)
    except Exception:
        log.exception("image_update_failed id=%s", image_id)
        current = await service.get_by_id(image_id)
        url = current.value.url if isinstance(current, Found) else ""
        submitted = GalleryDetailModel(id=image_id, title=edit.title, url=url, created=None, tags=edit.tags)
        return render(
            request,
            "gallery/edit.html",
            title="Edit",
            image=submitted,
            error="The changes could not be saved. Try again.",
        )

    if isinstance(result, NotFound):
        raise _not_found(image_id)
    return RedirectResponse(url="/gallery", status_code=303)


@router.get("/gallery/{image_id}/delete")
async def gallery_delete_form(
    request: Request,
    image_id: int,
    service: ImageService = Depends(get_image_service),
) -> Response:
    image = await _require_image(service, image_id)
    return render(request, "gallery/delete.html", title="Delete", image=image)


@router.post("/gallery/{image_id}/delete")
async def gallery_delete(
    request: Request,
    image_id: int,
    service: ImageService = Depends(get_image_service),
) -> Response:
    try:
        result = await service.delete_image(image_id)
    except Exception:
        log.exception("image_delete_failed id=%s", image_id)
        image = await _require_image(service, image_id)
        return render(
            request,
            "gallery/delete.html",
            title="Delete",
            image=image,
            error="The image could not be deleted. Try again.",
        )

    if isinstance(result, NotFound):
        raise _not_found(image_id)
    return RedirectResponse(url="/gallery", status_code=303)
