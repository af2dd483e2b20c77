"""Request bodies that may carry image files.

Create and update routes for listings, ads, categories and profiles accept
either a JSON body or a form (multipart or URL-encoded). In a form, the
image field holds uploaded files, delivery URLs kept from before, or both.
Files are checked here and held in memory; routes upload them once the
caller is authorized.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Type, TypeVar

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from marketplace.errors import ValidationError
from marketplace.services.media_service import MediaService, PendingImage

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_IMAGE_FILES = 10
FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


@dataclass
class ImagePayload:
    """A parsed request body plus any image files sent with it."""

    data: dict[str, Any]
    image_field: str
    many: bool = False
    images: list[PendingImage] = field(default_factory=list)

    def _merge(self, uploaded: list[str]) -> Any:
        if not self.many:
            return uploaded[-1]
        kept = self.data.get(self.image_field) or []
        if isinstance(kept, str):
            kept = [kept]
        return list(kept) + uploaded

    def validate(self, model: Type[M]) -> M:
        """Validate the body against ``model``.

        Pending files stand in for their eventual URLs, so count and
        presence rules on the image field apply before anything is uploaded.
        """
        data = dict(self.data)
        if self.images:
            data[self.image_field] = self._merge(
                [f"pending:{image.filename}" for image in self.images]
            )
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise RequestValidationError(e.errors(include_url=False)) from e

    async def upload(self, validated: M, media: MediaService, folder: str) -> M:
        """Upload pending files and put their URLs into ``validated``."""
        if not self.images:
            return validated
        urls = await media.upload_images(self.images, folder)
        return validated.model_copy(update={self.image_field: self._merge(urls)})


async def _read_image(upload: UploadFile) -> PendingImage:
    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed")

    content = await upload.read(MAX_IMAGE_BYTES + 1)
    if len(content) > MAX_IMAGE_BYTES:
        raise ValidationError("File too large. Maximum size is 5MB.")

    return PendingImage(
        filename=upload.filename or "upload",
        content_type=content_type,
        content=content,
    )


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body", e.pos), "msg": "JSON decode error"}]
        ) from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def image_payload(
    image_field: str,
    max_files: int = 1,
    list_fields: tuple[str, ...] = (),
) -> Callable:
    """Dependency factory parsing a JSON or form body.

    Args:
        image_field: Form field carrying image files or URLs
        max_files: Most files accepted in one request
        list_fields: Form fields that hold lists
    """
    many = image_field in list_fields

    async def dependency(request: Request) -> ImagePayload:
        content_type = request.headers.get("content-type", "")
        if not content_type.startswith(FORM_CONTENT_TYPES):
            return ImagePayload(await _json_body(request), image_field, many)

        data: dict[str, Any] = {}
        files: list[UploadFile] = []
        async with request.form() as form:
            for key, value in form.multi_items():
                if not isinstance(value, str):
                    if key != image_field:
                        raise ValidationError("Unexpected field name in upload.")
                    files.append(value)
                elif value == "":
                    continue
                elif key in list_fields:
                    data.setdefault(key, []).append(value)
                else:
                    data[key] = value

            if len(files) > max_files:
                noun = "file" if max_files == 1 else "files"
                raise ValidationError(
                    f"Too many files uploaded. Maximum is {max_files} {noun}."
                )

            images = [await _read_image(upload) for upload in files]

        if images:
            logger.debug("images_received", field=image_field, count=len(images))
        return ImagePayload(data, image_field, many, images)

    return dependency
