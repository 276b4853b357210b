"""
Notekeeper Backend - Image Serving Route
=========================================

What:  Serves uploaded note images at {image_base_url}/{path} (default /images).
How:   The router carries no prefix; create_app mounts it under the path part
       of the image service's base URL, so the URLs ImageService hands out
       are the ones this route answers. ImageService.resolve() confines the
       path to the storage root; anything outside it, or missing, is a 404.
"""

from urllib.parse import urlparse

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from notekeeper.dependencies import get_image_service
from notekeeper.services.image_service import ImageService

DEFAULT_PREFIX = "/images"

router = APIRouter(tags=["Images"], include_in_schema=False)


def route_prefix(base_url: str) -> str:
    """
    Mount path for a public image base URL.

    "/media" and "https://cdn.example.com/media" both mount at "/media".
    A base URL with no path (a bare CDN host) falls back to /images.
    """
    path = urlparse(base_url).path.rstrip("/")
    return path or DEFAULT_PREFIX


@router.get("/{file_path:path}")
async def serve_image(
    file_path: str,
    images: ImageService = Depends(get_image_service),
) -> FileResponse:
    path = images.resolve(file_path)
    return FileResponse(
        path=str(path),
        media_type=images.media_type(path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
