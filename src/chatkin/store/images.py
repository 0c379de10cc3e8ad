"""Image attachment loading for prompt building."""

from __future__ import annotations

import base64
from dataclasses import dataclass

import httpx
from loguru import logger

from chatkin.errors import ImageFetchError

SUPPORTED_MEDIA_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
DEFAULT_MEDIA_TYPE = "image/jpeg"
TEMP_FILES_MARKER = "/api/temp-files/"


@dataclass(frozen=True)
class ImageData:
    data: str  # base64
    media_type: str


def normalize_media_type(content_type: str | None) -> str:
    """Map a content type to one the model accepts, defaulting to JPEG."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type in SUPPORTED_MEDIA_TYPES:
        return media_type
    logger.debug("image.media_type.default content_type={}", content_type)
    return DEFAULT_MEDIA_TYPE


def filename_from_url(url: str) -> str:
    filename = url.split("?", 1)[0].rsplit("/", 1)[-1]
    if not filename:
        raise ImageFetchError(f"Invalid file URL: {url}")
    return filename


def is_temporary(url: str) -> bool:
    return TEMP_FILES_MARKER in url


class HttpImageFetcher:
    """Loads attachment bytes from permanent or temporary file storage."""

    def __init__(self, permanent_base_url: str, temp_base_url: str, *, http: httpx.AsyncClient | None = None) -> None:
        self._permanent_base_url = permanent_base_url.rstrip("/")
        self._temp_base_url = temp_base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=30.0)

    def resolve(self, url: str) -> str:
        base = self._temp_base_url if is_temporary(url) else self._permanent_base_url
        return f"{base}/{filename_from_url(url)}"

    async def fetch(self, url: str) -> ImageData:
        location = self.resolve(url)
        try:
            response = await self._http.get(location)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ImageFetchError(f"Failed to load image {url}: {exc}") from exc
        if response.status_code == 404:
            raise ImageFetchError(f"File not found in storage: {url}")
        if response.is_error:
            raise ImageFetchError(f"Failed to load image {url}: status {response.status_code}")

        media_type = normalize_media_type(response.headers.get("content-type"))
        return ImageData(data=base64.b64encode(response.content).decode("ascii"), media_type=media_type)

    async def aclose(self) -> None:
        await self._http.aclose()
