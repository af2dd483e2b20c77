"""Upload and cleanup of images hosted on Cloudinary.

Images sent to the API as multipart files are uploaded here and only their
delivery URLs are stored. An upload that fails fails the request. When a
listing or ad drops an image, the hosted copy is destroyed best-effort:
failures are logged and never fail the request.
"""

import hashlib
import re
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
import structlog

from marketplace.config import Settings, get_settings
from marketplace.errors import MediaUploadError

logger = structlog.get_logger(__name__)

CLOUDINARY_HOST = "res.cloudinary.com"
CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
VERSION_SEGMENT = re.compile(r"^v\d+$")

# Widest delivered size per upload folder; larger images are scaled down
UPLOAD_MAX_WIDTHS = {
    "products": 1200,
    "ads": 1200,
    "categories": 500,
    "users": 500,
}


@dataclass
class PendingImage:
    """An image file received from a client, not yet uploaded."""

    filename: str
    content_type: str
    content: bytes


def extract_public_id(url: str) -> Optional[str]:
    """Return the Cloudinary public id of a delivery URL.

    ``https://res.cloudinary.com/demo/image/upload/v1712/market/ads/banner.jpg``
    has the public id ``market/ads/banner``. Anything that is not a
    Cloudinary upload URL yields None.
    """
    parsed = urlparse(url or "")
    if not parsed.netloc.endswith(CLOUDINARY_HOST):
        return None

    segments = [s for s in parsed.path.split("/") if s]
    if "upload" not in segments:
        return None

    rest = segments[segments.index("upload") + 1:]
    if rest and VERSION_SEGMENT.match(rest[0]):
        rest = rest[1:]
    if not rest:
        return None

    rest[-1] = rest[-1].rsplit(".", 1)[0]
    return "/".join(rest) or None


def sign_params(params: dict, api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 of sorted params plus secret."""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class MediaService:
    """Client for uploading and destroying hosted images."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.media_timeout_seconds),
            transport=self._transport,
        )

    def _endpoint(self, action: str) -> str:
        return f"{CLOUDINARY_API_BASE}/{self.settings.cloudinary_cloud_name}/image/{action}"

    async def upload_image(self, image: PendingImage, folder: str) -> str:
        """Upload an image and return its HTTPS delivery URL.

        Args:
            image: File received from the client
            folder: Upload folder, one of UPLOAD_MAX_WIDTHS

        Raises:
            MediaUploadError: If uploads are not configured or the media
                service rejects the file
        """
        if not self.settings.media_enabled:
            logger.warning("media_upload_unavailable", filename=image.filename)
            raise MediaUploadError("Image uploads are not configured")

        params = {
            "folder": f"{self.settings.media_folder}/{folder}",
            "timestamp": int(time.time()),
            "transformation": f"c_limit,w_{UPLOAD_MAX_WIDTHS[folder]}",
        }
        data = {
            **params,
            "api_key": self.settings.cloudinary_api_key,
            "signature": sign_params(params, self.settings.cloudinary_api_secret),
        }
        files = {"file": (image.filename, image.content, image.content_type)}

        try:
            async with self._client() as client:
                response = await client.post(self._endpoint("upload"), data=data, files=files)
                response.raise_for_status()
                url = response.json().get("secure_url")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "media_upload_failed",
                filename=image.filename,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MediaUploadError() from e

        if not url:
            logger.error("media_upload_unconfirmed", filename=image.filename)
            raise MediaUploadError()

        logger.info("media_uploaded", folder=params["folder"], size=len(image.content))
        return url

    async def upload_images(self, images: list[PendingImage], folder: str) -> list[str]:
        """Upload several images in order.

        If one fails, the ones already uploaded are destroyed before the
        error propagates.
        """
        urls: list[str] = []
        try:
            for image in images:
                urls.append(await self.upload_image(image, folder))
        except MediaUploadError:
            await self.delete_images(urls)
            raise
        return urls

    async def delete_image(self, url: Optional[str]) -> bool:
        """Destroy a hosted image.

        Args:
            url: Delivery URL of the image

        Returns:
            True if the media service confirmed deletion, False if the image
            was skipped or the call failed
        """
        public_id = extract_public_id(url) if url else None
        if public_id is None:
            logger.debug("media_delete_skipped", reason="not_hosted", url=url)
            return False

        if not self.settings.media_enabled:
            logger.debug("media_delete_skipped", reason="not_configured", public_id=public_id)
            return False

        params = {"public_id": public_id, "timestamp": int(time.time())}
        data = {
            **params,
            "api_key": self.settings.cloudinary_api_key,
            "signature": sign_params(params, self.settings.cloudinary_api_secret),
        }

        try:
            async with self._client() as client:
                response = await client.post(self._endpoint("destroy"), data=data)
                response.raise_for_status()
                result = response.json().get("result")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "media_delete_failed",
                public_id=public_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if result != "ok":
            logger.warning("media_delete_unconfirmed", public_id=public_id, result=result)
            return False

        logger.info("media_deleted", public_id=public_id)
        return True

    async def delete_images(self, urls: list[str]) -> int:
        """Destroy several images; returns how many were confirmed."""
        deleted = 0
        for url in urls:
            if await self.delete_image(url):
                deleted += 1
        return deleted
