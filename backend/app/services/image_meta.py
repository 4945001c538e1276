from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError

_FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}


class UnreadableImageError(ValueError):
    pass


@dataclass(frozen=True)
class ImageInfo:
    width: int
    height: int
    mime_type: str | None


def read_image_info(image_bytes: bytes) -> ImageInfo:
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            image.verify()
            width, height = image.size
            image_format = image.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as exc:
        raise UnreadableImageError(str(exc)) from exc

    return ImageInfo(width=width, height=height, mime_type=_FORMAT_MIME_TYPES.get(image_format or ""))
