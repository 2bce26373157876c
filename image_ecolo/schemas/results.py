"""
Result-side models: progress events, size statistics and capture metadata.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from image_ecolo.core.enums import ProgressStep


class ProgressEvent(BaseModel):
    """Progress notification for one pipeline request."""

    model_config = ConfigDict(frozen=True)

    step: ProgressStep
    value: int = Field(..., ge=0, le=100, description="Overall completion percentage")
    sequence: int = Field(..., ge=1, description="Request sequence number")


class StatsRecord(BaseModel):
    """Size statistics of an encoded image."""

    model_config = ConfigDict(frozen=True)

    size_bytes: int = Field(..., ge=0)
    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)


class ImageMetadata(BaseModel):
    """Capture metadata read from the source bytes (never written to the output)."""

    make: Optional[str] = None
    model: Optional[str] = None
    captured_at: Optional[datetime] = None
    exposure_time: Optional[float] = Field(default=None, description="Seconds")
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = Field(default=None, description="Millimetres")
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_data(self) -> bool:
        """True if at least one field was found."""
        return any(value is not None for value in self.model_dump().values())

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_display_dict(self) -> Dict[str, Any]:
        """Flat dict of present fields with human-readable values."""
        display: Dict[str, Any] = {}
        if self.make or self.model:
            display["camera"] = " ".join(part for part in (self.make, self.model) if part)
        if self.captured_at is not None:
            display["captured_at"] = self.captured_at.isoformat(sep=" ")
        if self.exposure_time is not None:
            if 0 < self.exposure_time < 1:
                display["exposure"] = f"1/{round(1 / self.exposure_time)}s"
            else:
                display["exposure"] = f"{self.exposure_time:g}s"
        if self.f_number is not None:
            display["aperture"] = f"f/{self.f_number:g}"
        if self.iso is not None:
            display["iso"] = self.iso
        if self.focal_length is not None:
            display["focal_length"] = f"{self.focal_length:g}mm"
        if self.has_location:
            display["location"] = f"{self.latitude:.6f}, {self.longitude:.6f}"
        return display


def compression_ratio(before: StatsRecord, after: StatsRecord) -> float:
    """Size reduction as ``1 - after/before`` (negative when the output grew)."""
    if before.size_bytes == 0:
        return 0.0
    return 1.0 - after.size_bytes / before.size_bytes


def format_compression_ratio(before: StatsRecord, after: StatsRecord) -> str:
    """Size reduction as a percentage string, e.g. ``"42.0%"``."""
    return f"{compression_ratio(before, after) * 100:.1f}%"


def format_file_size(size_bytes: int) -> str:
    """Human readable byte count (B, KB, MB)."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.2f} KB"
    return f"{size_bytes / (1024 * 1024):.2f} MB"
