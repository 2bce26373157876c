"""
Tests for ImageConverters
"""

import io

import numpy as np
import pytest
from PIL import Image

from image_ecolo.core.enums import ErrorKind
from image_ecolo.core.exceptions import DecodeFailure
from image_ecolo.core.image import ImageConverters


class TestDecodeBytes:
    """Test decoding of source bytes"""

    def test_decode_jpeg(self, jpeg_bytes, test_image):
        """Test decoding an opaque JPEG"""
        pixels, source_format = ImageConverters.decode_bytes(jpeg_bytes)

        assert source_format == "JPEG"
        assert pixels.shape == test_image.shape
        assert pixels.dtype == np.uint8

    def test_decode_png_lossless(self, png_bytes, test_image):
        """Test that PNG decoding keeps exact pixel values"""
        pixels, source_format = ImageConverters.decode_bytes(png_bytes)

        assert source_format == "PNG"
        np.testing.assert_array_equal(pixels, test_image)

    def test_decode_rgba(self, rgba_image, image_bytes):
        """Test that transparency is preserved as RGBA"""
        pixels, _ = ImageConverters.decode_bytes(image_bytes(rgba_image, "PNG"))

        assert pixels.shape[2] == 4
        np.testing.assert_array_equal(pixels[:, :, 3], rgba_image[:, :, 3])

    def test_exif_orientation_applied(self, test_image):
        """Test that EXIF orientation produces upright pixels"""
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 CW on display
        buffer = io.BytesIO()
        Image.fromarray(test_image).save(buffer, format="JPEG", exif=exif)

        pixels, _ = ImageConverters.decode_bytes(buffer.getvalue())

        height, width = test_image.shape[:2]
        assert pixels.shape[:2] == (width, height)

    @pytest.mark.parametrize("data", [b"", b"definitely not an image", b"\x89PNG\r\n\x1a\n" + b"\x00" * 16])
    def test_decode_failure(self, data):
        """Test that unreadable bytes raise DecodeFailure"""
        with pytest.raises(DecodeFailure) as exc_info:
            ImageConverters.decode_bytes(data)
        assert exc_info.value.kind == ErrorKind.DECODE_FAILURE


class TestConversions:
    """Test array and string conversions"""

    def test_numpy_pil_roundtrip(self, rgba_image):
        """Test conversion to PIL keeps mode and pixels"""
        pil_image = ImageConverters.numpy_to_pil(rgba_image)
        assert pil_image.mode == "RGBA"
        np.testing.assert_array_equal(ImageConverters.pil_to_numpy(pil_image), rgba_image)

    def test_numpy_to_pil_rejects_two_channels(self):
        """Test unsupported channel counts"""
        with pytest.raises(ValueError):
            ImageConverters.numpy_to_pil(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_to_data_url(self):
        """Test data URL encoding"""
        assert ImageConverters.to_data_url(b"abc", "image/jpeg") == "data:image/jpeg;base64,YWJj"

    def test_ensure_grayscale(self, test_image, rgba_image):
        """Test grayscale conversion"""
        assert ImageConverters.ensure_grayscale(test_image).shape == test_image.shape[:2]
        assert ImageConverters.ensure_grayscale(rgba_image).shape == rgba_image.shape[:2]

    def test_has_alpha(self, test_image, rgba_image):
        """Test alpha detection"""
        assert not ImageConverters.has_alpha(test_image)
        assert ImageConverters.has_alpha(rgba_image)
