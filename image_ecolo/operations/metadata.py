"""
Capture metadata extraction.

Reads EXIF (camera, exposure, GPS) from the source bytes. Purely read-only:
the encoder re-serializes from raw pixels, so none of this reaches the output.
"""

import io
import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import GPSTAGS, TAGS

from image_ecolo.schemas.results import ImageMetadata

logger = logging.getLogger(__name__)

EXIF_IFD_POINTER = 0x8769
GPS_IFD_POINTER = 0x8825

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


def _to_float(value: Any) -> Optional[float]:
    """Convert EXIF numeric values (IFDRational, int, (num, den)) to float."""
    if value is None:
        return None
    if isinstance(value, (tuple, list)):
        if len(value) == 2 and all(isinstance(v, (int, float)) for v in value):
            num, den = value
            return float(num) / float(den) if den else None
        value = value[0] if value else None
        return _to_float(value)
    try:
        result = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return None if math.isnan(result) or math.isinf(result) else result


def _to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).strip("\x00 ").strip()
    return text or None


def _to_datetime(value: Any) -> Optional[datetime]:
    text = _to_str(value)
    if not text:
        return None
    try:
        return datetime.strptime(text[:19], EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.debug(f"Unparseable EXIF timestamp: {text!r}")
        return None


def _dms_to_degrees(dms: Sequence[Any], ref: Any) -> Optional[float]:
    """Convert an EXIF (degrees, minutes, seconds) triple to signed decimal degrees."""
    if not dms or len(dms) != 3:
        return None
    parts = [_to_float(part) for part in dms]
    if any(part is None for part in parts):
        return None
    degrees, minutes, seconds = parts
    value = degrees + minutes / 60.0 + seconds / 3600.0
    if _to_str(ref) in ("S", "W"):
        value = -value
    return value


class MetadataExtractor:
    """Extracts capture metadata from encoded image bytes."""

    def extract(self, data: bytes) -> Optional[ImageMetadata]:
        """
        Parse embedded capture metadata.

        Args:
            data: Encoded source image bytes

        Returns:
            ImageMetadata, or None when the image carries no usable metadata
            or cannot be read at all (this never raises)
        """
        try:
            with Image.open(io.BytesIO(data)) as image:
                exif = image.getexif()
                if not exif:
                    return None
                main = self._named(exif, TAGS)
                details = self._named(exif.get_ifd(EXIF_IFD_POINTER), TAGS)
                gps = self._named(exif.get_ifd(GPS_IFD_POINTER), GPSTAGS)
        except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
            logger.debug(f"No readable metadata: {e}")
            return None

        metadata = ImageMetadata(
            make=_to_str(main.get("Make")),
            model=_to_str(main.get("Model")),
            captured_at=_to_datetime(details.get("DateTimeOriginal") or main.get("DateTime")),
            exposure_time=_to_float(details.get("ExposureTime")),
            f_number=_to_float(details.get("FNumber")),
            iso=self._iso(details),
            focal_length=_to_float(details.get("FocalLength")),
            latitude=_dms_to_degrees(gps.get("GPSLatitude"), gps.get("GPSLatitudeRef")),
            longitude=_dms_to_degrees(gps.get("GPSLongitude"), gps.get("GPSLongitudeRef")),
        )

        if not metadata.has_data:
            return None

        logger.debug(f"Extracted metadata: {metadata.to_display_dict()}")
        return metadata

    @staticmethod
    def _named(ifd: Any, names: Dict[int, str]) -> Dict[str, Any]:
        return {names.get(tag, tag): value for tag, value in ifd.items()}

    @staticmethod
    def _iso(details: Dict[str, Any]) -> Optional[int]:
        # ISO is a SHORT list, not a rational: (100, 200) means two ratings
        value = details.get("ISOSpeedRatings") or details.get("PhotographicSensitivity")
        if isinstance(value, (tuple, list)):
            value = value[0] if value else None
        value = _to_float(value)
        return int(value) if value is not None else None
