"""
Output encoding.

Serializes the final raster to a lossy compressed stream. Opaque buffers
become JPEG, buffers with alpha become lossy WebP so the alpha survives.
Nothing but pixels is written, which is what strips the source metadata.
"""

import io
import logging
from typing import Tuple

import numpy as np

from image_ecolo.core.constants import EncoderConstants
from image_ecolo.core.enums import OutputFormat
from image_ecolo.core.exceptions import EncodeFailure
from image_ecolo.core.image.converters import ImageConverters
from image_ecolo.schemas.results import StatsRecord

logger = logging.getLogger(__name__)


class Encoder:
    """Encodes raster buffers and reports their size statistics."""

    def __init__(
        self,
        opaque_format: OutputFormat = OutputFormat.JPEG,
        alpha_format: OutputFormat = OutputFormat.WEBP,
        optimize: bool = True,
    ):
        self.opaque_format = opaque_format
        self.alpha_format = alpha_format
        self.optimize = optimize

    def format_for(self, image: np.ndarray) -> OutputFormat:
        """Output format used for ``image``."""
        return self.alpha_format if ImageConverters.has_alpha(image) else self.opaque_format

    def encode(self, image: np.ndarray, quality: int) -> Tuple[bytes, StatsRecord]:
        """
        Encode ``image`` at ``quality``.

        Args:
            image: H x W x 3|4 uint8 array
            quality: 0 (smallest) to 100 (best); deterministic per value

        Returns:
            Tuple of (encoded bytes, stats of the encoded image)

        Raises:
            EncodeFailure: If the buffer cannot be serialized
        """
        output_format = self.format_for(image)
        encoder_quality = max(EncoderConstants.MIN_ENCODER_QUALITY, min(100, int(quality)))

        save_kwargs = {"format": output_format.value, "quality": encoder_quality}
        if output_format == OutputFormat.JPEG:
            save_kwargs["optimize"] = self.optimize
        else:
            save_kwargs["method"] = EncoderConstants.WEBP_METHOD

        try:
            pil_image = ImageConverters.numpy_to_pil(image)
            if output_format == OutputFormat.JPEG and pil_image.mode == "RGBA":
                pil_image = pil_image.convert("RGB")

            buffer = io.BytesIO()
            pil_image.save(buffer, **save_kwargs)
            data = buffer.getvalue()
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to encode image as {output_format.value}: {e}")
            raise EncodeFailure(f"Unable to encode image as {output_format.value}: {e}") from e

        height, width = image.shape[:2]
        stats = StatsRecord(size_bytes=len(data), width=width, height=height)
        logger.debug(
            f"Encoded {width}x{height} as {output_format.value} q={encoder_quality}: "
            f"{stats.size_bytes} bytes"
        )
        return data, stats
