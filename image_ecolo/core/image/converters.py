"""
Image format conversion utilities.

Handles conversions between the formats the pipeline touches:
- Raw encoded bytes (any format Pillow can read)
- PIL Images
- NumPy arrays (uint8, RGB or RGBA channel order)
- Base64 / data URL strings
"""

import base64
import io
import logging
from typing import Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from image_ecolo.core.exceptions import DecodeFailure

logger = logging.getLogger(__name__)

_ALPHA_MODES = ("RGBA", "LA", "PA", "RGBa", "La")


class ImageConverters:
    """Utilities for converting between image formats."""

    @staticmethod
    def decode_bytes(data: bytes) -> Tuple[np.ndarray, str]:
        """
        Decode raw image bytes into a NumPy array.

        EXIF orientation is applied so the returned pixels are upright.
        Images carrying transparency come back as RGBA, everything else as RGB.

        Args:
            data: Encoded image bytes

        Returns:
            Tuple of (H x W x 3|4 uint8 array, source format name)

        Raises:
            DecodeFailure: If the bytes are empty, unreadable or corrupt
        """
        if not data:
            raise DecodeFailure("Empty input, nothing to decode")

        try:
            with Image.open(io.BytesIO(data)) as image:
                source_format = image.format or "UNKNOWN"
                image.load()
                upright = ImageOps.exif_transpose(image)
                has_alpha = upright.mode in _ALPHA_MODES or "transparency" in upright.info
                converted = upright.convert("RGBA" if has_alpha else "RGB")
        except (
            UnidentifiedImageError,
            OSError,
            ValueError,
            SyntaxError,
            Image.DecompressionBombError,
        ) as e:
            logger.error(f"Failed to decode image: {e}")
            raise DecodeFailure(f"Unable to decode image: {e}") from e

        return ImageConverters.pil_to_numpy(converted), source_format

    @staticmethod
    def numpy_to_pil(image: np.ndarray) -> Image.Image:
        """
        Convert NumPy array to PIL Image.

        Args:
            image: uint8 array, H x W (gray), H x W x 3 (RGB) or H x W x 4 (RGBA)

        Returns:
            PIL Image in L, RGB or RGBA mode
        """
        if image.ndim == 3 and image.shape[2] not in (3, 4):
            raise ValueError(f"Unsupported channel count: {image.shape[2]}")
        return Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8))

    @staticmethod
    def pil_to_numpy(image: Image.Image) -> np.ndarray:
        """Convert PIL Image to a writable uint8 NumPy array (RGB order kept)."""
        return np.array(image, dtype=np.uint8)

    @staticmethod
    def to_base64(data: bytes) -> str:
        """Encode raw bytes as a base64 string."""
        return base64.b64encode(data).decode("utf-8")

    @staticmethod
    def to_data_url(data: bytes, mime_type: str) -> str:
        """Encode raw bytes as a ``data:`` URL."""
        return f"data:{mime_type};base64,{ImageConverters.to_base64(data)}"

    @staticmethod
    def ensure_grayscale(image: np.ndarray) -> np.ndarray:
        """
        Ensure image is grayscale.

        Args:
            image: Input image (grayscale, RGB or RGBA)

        Returns:
            Grayscale image
        """
        if image.ndim == 2:
            return image.copy()
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)

    @staticmethod
    def has_alpha(image: np.ndarray) -> bool:
        """True if the array carries an alpha channel."""
        return image.ndim == 3 and image.shape[2] == 4
