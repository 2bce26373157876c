"""
Image conversion utilities.

- converters: Format conversions (bytes, NumPy, PIL, base64, grayscale)
"""

from image_ecolo.core.image.converters import ImageConverters

__all__ = ["ImageConverters"]
