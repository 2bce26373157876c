"""
Pipeline exceptions.

Every fatal failure surfaced to the caller is a PipelineError subclass
tagged with an ErrorKind so the UI layer can branch on it.
"""

from typing import Any, Optional

from image_ecolo.core.enums import ErrorKind


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "detail": self.detail}


class DecodeFailure(PipelineError):
    """Input bytes could not be decoded into a raster image."""

    kind = ErrorKind.DECODE_FAILURE


class InvalidRegion(PipelineError):
    """Crop rectangle lies outside the image bounds."""

    kind = ErrorKind.INVALID_REGION

    def __init__(self, region: Any, image_size: tuple):
        width, height = image_size
        super().__init__(
            f"Crop region {region} is outside image bounds {width}x{height}",
            detail={"region": region, "width": width, "height": height},
        )


class InvalidOptions(PipelineError):
    """ProcessingOptions rejected at the boundary."""

    kind = ErrorKind.INVALID_OPTIONS


class DetectorUnavailable(PipelineError):
    """Face detector is missing or failed; redaction degrades to a no-op."""

    kind = ErrorKind.DETECTOR_UNAVAILABLE


class EncodeFailure(PipelineError):
    """Final raster could not be serialized."""

    kind = ErrorKind.ENCODE_FAILURE


class NoSourceImage(PipelineError):
    """A run was requested before any source image was loaded."""

    kind = ErrorKind.NO_SOURCE


class ProcessingFailure(PipelineError):
    """A stage failed with an unexpected (non-pipeline) exception."""

    kind = ErrorKind.PROCESSING_FAILURE


class RunSuperseded(Exception):
    """Raised inside a run once a newer request has been issued."""

    def __init__(self, sequence: int, latest: int):
        super().__init__(f"Request #{sequence} superseded by #{latest}")
        self.sequence = sequence
        self.latest = latest
