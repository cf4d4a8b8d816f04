import base64
import io

import pytest
from PIL import Image

from creative_engine.errors import ValidationError
from creative_engine.media import FALLBACK_IMAGE_MIME, decode_data_url, normalize_mime

from conftest import PNG_1PX


def _gif_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), (255, 0, 0)).save(buffer, format="GIF")
    return buffer.getvalue()


class TestDecodeDataUrl:
    def test_data_url(self, png_data_url):
        data, mime = decode_data_url(png_data_url)
        assert mime == "image/png"
        assert data.startswith(b"\x89PNG")

    def test_bare_base64_gets_fallback_type(self):
        data, mime = decode_data_url(PNG_1PX)
        assert mime == FALLBACK_IMAGE_MIME
        assert data == base64.b64decode(PNG_1PX)

    def test_missing_value(self):
        with pytest.raises(ValidationError) as exc:
            decode_data_url("", "productImage")
        assert exc.value.status_code == 400
        assert "productImage" in exc.value.error

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            decode_data_url("data:image/png;base64,@@not-base64@@")


class TestNormalizeMime:
    def test_jpg_alias(self):
        data, mime = normalize_mime(b"jpeg-bytes", "image/jpg")
        assert mime == "image/jpeg"
        assert data == b"jpeg-bytes"

    @pytest.mark.parametrize("mime", ["image/png", "image/jpeg", "image/webp", "image/heic", "image/heif"])
    def test_supported_types_pass_through(self, mime):
        assert normalize_mime(b"raw", mime) == (b"raw", mime)

    def test_non_image_passes_through(self):
        assert normalize_mime(b"video", "video/mp4") == (b"video", "video/mp4")

    def test_missing_type_defaults_to_png(self):
        assert normalize_mime(b"raw", "") == (b"raw", "image/png")

    def test_unsupported_image_is_converted(self):
        data, mime = normalize_mime(_gif_bytes(), "image/gif")
        assert mime == "image/png"
        assert data.startswith(b"\x89PNG")

    def test_unreadable_image_is_relabelled_not_rejected(self):
        data, mime = normalize_mime(b"definitely not an image", "image/x-weird")
        assert mime == "image/png"
        assert data == b"definitely not an image"
