from __future__ import annotations

from fastapi import Request

from imagegallery.core.config import Settings
from imagegallery.services.images import ImageService
from imagegallery.storage.blob_client import BlobStorageClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_image_service(request: Request) -> ImageService:
    return request.app.state.image_service


def get_blob_client(request: Request) -> BlobStorageClient:
    client = getattr(request.app.state, "blob_client", None)
    if client is None:
        raise RuntimeError("blob client is not started")
    return client
