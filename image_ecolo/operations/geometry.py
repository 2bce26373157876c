"""
Geometric transforms: rotation, crop and downscaling.

Order is fixed: rotate (90 degree steps) -> crop (in rotated space) -> resize.
Every call returns a new array; the input is never written.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from image_ecolo.core.enums import Rotation
from image_ecolo.schemas.common import CropRect

logger = logging.getLogger(__name__)

# np.rot90 turns counter-clockwise for positive k
_ROT90_K = {
    Rotation.NONE: 0,
    Rotation.CW_90: -1,
    Rotation.CW_180: 2,
    Rotation.CW_270: 1,
}


class GeometricTransformer:
    """Rotates, crops and resizes raster buffers."""

    def transform(
        self,
        image: np.ndarray,
        rotation: Rotation = Rotation.NONE,
        crop: Optional[CropRect] = None,
        max_width: Optional[int] = None,
    ) -> np.ndarray:
        """
        Apply the full geometric stage.

        Args:
            image: Input image (H x W x C uint8)
            rotation: Clockwise rotation, multiple of 90 degrees
            crop: Optional crop rectangle in rotated coordinates
            max_width: Downscale so width does not exceed this (never upscale)

        Returns:
            New image array

        Raises:
            InvalidRegion: If the crop rectangle leaves the rotated image
        """
        result = self.rotate(image, rotation)

        if crop is not None:
            result = self.crop(result, crop)

        if max_width is not None:
            result = self.resize_to_width(result, max_width)

        return result

    @staticmethod
    def rotate(image: np.ndarray, rotation: Rotation) -> np.ndarray:
        """Rotate clockwise by ``rotation``; width and height swap on 90/270."""
        k = _ROT90_K[Rotation(rotation)]
        if k == 0:
            return image.copy()
        return np.ascontiguousarray(np.rot90(image, k=k))

    @staticmethod
    def crop(image: np.ndarray, crop: CropRect) -> np.ndarray:
        """Extract ``crop`` from ``image`` (strict bounds, no clipping)."""
        img_height, img_width = image.shape[:2]
        x, y, w, h = crop.to_pixels(img_width, img_height)
        logger.debug(f"Cropping {img_width}x{img_height} to {w}x{h} at ({x}, {y})")
        return image[y : y + h, x : x + w].copy()

    @staticmethod
    def source_region(
        source_shape: Tuple[int, ...], rotation: Rotation, crop: Optional[CropRect]
    ) -> Tuple[int, int, int, int]:
        """
        Map a crop given in rotated space back onto the unrotated source.

        Args:
            source_shape: Shape of the unrotated source array
            rotation: Rotation the crop was expressed under
            crop: Crop rectangle, or None for the whole image

        Returns:
            (x, y, width, height) in source pixel coordinates

        Raises:
            InvalidRegion: If the crop leaves the rotated image
        """
        src_h, src_w = source_shape[:2]
        if crop is None:
            return 0, 0, src_w, src_h

        rotation = Rotation(rotation)
        if rotation in (Rotation.CW_90, Rotation.CW_270):
            rot_w, rot_h = src_h, src_w
        else:
            rot_w, rot_h = src_w, src_h
        rx, ry, rw, rh = crop.to_pixels(rot_w, rot_h)

        if rotation == Rotation.CW_90:
            return ry, src_h - rx - rw, rh, rw
        if rotation == Rotation.CW_180:
            return src_w - rx - rw, src_h - ry - rh, rw, rh
        if rotation == Rotation.CW_270:
            return src_w - ry - rh, rx, rh, rw
        return rx, ry, rw, rh

    @staticmethod
    def resize_to_width(image: np.ndarray, max_width: int) -> np.ndarray:
        """
        Downscale to ``max_width`` keeping aspect ratio.

        Uses area averaging, which avoids aliasing when shrinking. No-op
        (returns a copy) when the image is already narrow enough.
        """
        h, w = image.shape[:2]
        if max_width >= w:
            return image.copy()

        new_height = max(1, int(round(h * max_width / w)))
        logger.debug(f"Resizing {w}x{h} to {max_width}x{new_height}")
        return cv2.resize(image, (max_width, new_height), interpolation=cv2.INTER_AREA)
