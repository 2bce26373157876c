"""
Centralized enums for the image pipeline.

Shared by schemas, operations and services so every layer speaks the same
vocabulary for progress steps, run states and error kinds.
"""

from enum import Enum, IntEnum


class ProgressStep(str, Enum):
    """Steps reported through ProgressEvent, in pipeline order."""

    STARTING = "starting"
    USING_CACHE = "using_cache"
    DETECTING_FACES = "detecting_faces"
    CREATING_PALETTE = "creating_palette"
    APPLYING = "applying"
    FINALIZING = "finalizing"
    COMPLETE = "complete"


class PipelineState(str, Enum):
    """Orchestrator state machine states."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    SUPERSEDED = "superseded"  # terminal, never reported to the caller


class Rotation(IntEnum):
    """Supported rotations (clockwise, degrees)."""

    NONE = 0
    CW_90 = 90
    CW_180 = 180
    CW_270 = 270


class CropUnit(str, Enum):
    """Coordinate unit of a crop rectangle."""

    PIXELS = "px"
    PERCENT = "%"


class ErrorKind(str, Enum):
    """Error taxonomy attached to failed runs."""

    DECODE_FAILURE = "decode_failure"
    INVALID_REGION = "invalid_region"
    INVALID_OPTIONS = "invalid_options"
    DETECTOR_UNAVAILABLE = "detector_unavailable"
    ENCODE_FAILURE = "encode_failure"
    NO_SOURCE = "no_source"
    PROCESSING_FAILURE = "processing_failure"


class OutputFormat(str, Enum):
    """Encoder output formats."""

    JPEG = "JPEG"
    WEBP = "WEBP"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value.lower()}"

    @property
    def extension(self) -> str:
        return ".jpg" if self is OutputFormat.JPEG else ".webp"
