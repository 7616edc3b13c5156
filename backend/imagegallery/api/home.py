from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from imagegallery.api.deps import get_image_service
from imagegallery.core.errors import ErrorCode
from imagegallery.services.images import ImageService
from imagegallery.web.templates import render, render_error
from imagegallery.web.view_models import GalleryDetailModel

router = APIRouter()


@router.get("/")
async def home_index(
    request: Request,
    q: str | None = None,
    service: ImageService = Depends(get_image_service),
) -> Response:
    search_query = (q or "").strip()
    images = [GalleryDetailModel.from_image(img) for img in await service.get_all()]
    if search_query:
        images = [img for img in images if search_query in img.title]
    return render(request, "home/index.html", images=images, search_query=search_query)


@router.get("/about")
async def home_about(request: Request) -> Response:
    return render(request, "home/about.html", title="About", message="Upload, tag and browse images kept in blob storage.")


@router.get("/contact")
async def home_contact(request: Request) -> Response:
    return render(request, "home/contact.html", title="Contact", message="Questions about the gallery go to the site maintainers.")


@router.get("/error")
async def home_error(request: Request) -> Response:
    return render_error(request, code=ErrorCode.INTERNAL_ERROR, message=None, status_code=500)
