"""
Schemas Package

Pydantic models shared across all layers:
- Operations (pixel stages)
- Services (pipeline orchestration)
- The CLI and any other UI collaborator
"""

# Re-export enums from centralized location for convenience
from image_ecolo.core.enums import CropUnit, ProgressStep, Rotation

from .common import CropRect, FaceBox
from .options import CONTINUOUS_FIELDS, ProcessingOptions
from .results import (
    ImageMetadata,
    ProgressEvent,
    StatsRecord,
    compression_ratio,
    format_compression_ratio,
    format_file_size,
)

__all__ = [
    # Common models
    "CropRect",
    "FaceBox",
    # Options
    "CONTINUOUS_FIELDS",
    "ProcessingOptions",
    # Results
    "ImageMetadata",
    "ProgressEvent",
    "StatsRecord",
    "compression_ratio",
    "format_compression_ratio",
    "format_file_size",
    # Enums (re-exported from core.enums)
    "CropUnit",
    "ProgressStep",
    "Rotation",
]
