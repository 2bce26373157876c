"""
Pytest configuration and fixtures for image-ecolo tests
"""

import io

import cv2
import numpy as np
import pytest
from PIL import Image

from image_ecolo.core.config import PipelineSettings, Settings
from image_ecolo.core.palette_cache import PaletteCache
from image_ecolo.operations.quantization import Quantizer


def encode_array(image, fmt="PNG", **save_kwargs):
    """Encode an RGB(A) array to bytes with Pillow"""
    buffer = io.BytesIO()
    Image.fromarray(image).save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


@pytest.fixture
def test_image():
    """Create a small photo-like RGB image: gradients plus solid shapes"""
    height, width = 120, 160
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)[None, :]
    image[:, :, 2] = np.linspace(255, 0, height, dtype=np.uint8)[:, None]
    image[:, :, 1] = 90
    # Add some content
    cv2.rectangle(image, (20, 20), (70, 70), (255, 255, 255), -1)
    cv2.circle(image, (115, 80), 25, (40, 160, 60), -1)
    return image


@pytest.fixture
def rgba_image(test_image):
    """Test image with an alpha channel: opaque left, transparent right, soft band"""
    height, width = test_image.shape[:2]
    alpha = np.full((height, width), 255, dtype=np.uint8)
    alpha[:, width // 2 :] = 0
    alpha[:, width // 2 - 10 : width // 2] = 128
    return np.dstack([test_image, alpha])


@pytest.fixture
def image_bytes():
    """Factory encoding arrays to image bytes"""
    return encode_array


@pytest.fixture
def jpeg_bytes(test_image):
    """Test image as high quality JPEG bytes"""
    return encode_array(test_image, "JPEG", quality=95)


@pytest.fixture
def png_bytes(test_image):
    """Test image as lossless PNG bytes"""
    return encode_array(test_image, "PNG")


@pytest.fixture
def settings():
    """Settings with a short debounce window and frequent progress ticks"""
    return Settings(pipeline=PipelineSettings(debounce_ms=100, progress_rows=16))


@pytest.fixture
def quantizer():
    """Create Quantizer instance for testing"""
    return Quantizer(region_size=32, colors_per_region=4, sample_width=128, progress_rows=16)


@pytest.fixture
def palette_cache():
    """Create PaletteCache instance for testing"""
    return PaletteCache(max_size=4)
