import base64
import binascii
import io
import logging
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from .errors import ValidationError

logger = logging.getLogger(__name__)

# Image types Gemini accepts as-is
SUPPORTED_IMAGE_MIME = frozenset({
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/heic",
    "image/heif",
})
FALLBACK_IMAGE_MIME = "image/png"

MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}


def decode_data_url(value: str, field: str = "image") -> Tuple[bytes, str]:
    """
    Split a ``data:<mime>;base64,<payload>`` string into bytes and MIME type.
    A bare base64 string is accepted and labelled with the fallback type.
    """
    if not value or not value.strip():
        raise ValidationError(f"{field} is required")

    mime_type = ""
    payload = value.strip()
    if payload.startswith("data:"):
        header, _, payload = payload.partition(",")
        mime_type = header[len("data:"):].split(";")[0].strip().lower()

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"{field} is not valid base64", details=str(e))

    if not data:
        raise ValidationError(f"{field} is empty")

    return data, mime_type or FALLBACK_IMAGE_MIME


def normalize_mime(data: bytes, mime_type: str) -> Tuple[bytes, str]:
    """
    Map an upload onto a MIME type the remote service accepts.

    Non-image types pass through untouched. Image types outside the supported
    set are converted to PNG when Pillow can read them; otherwise the original
    bytes are sent under the PNG label. Nothing is rejected here.
    """
    mime_type = (mime_type or FALLBACK_IMAGE_MIME).strip().lower()
    mime_type = MIME_ALIASES.get(mime_type, mime_type)

    if not mime_type.startswith("image/") or mime_type in SUPPORTED_IMAGE_MIME:
        return data, mime_type

    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            buffer = io.BytesIO()
            img.save(buffer, format="PNG")
        logger.info(f"🎨 Converted {mime_type} upload to PNG")
        return buffer.getvalue(), FALLBACK_IMAGE_MIME
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"⚠️ Could not convert {mime_type} to PNG, relabelling only: {e}")
        return data, FALLBACK_IMAGE_MIME
