"""
Pixel-level pipeline stages.

- geometry: rotation, crop, downscale
- face_redaction: face detector strategies and region blurring
- quantization: palette construction and serpentine Floyd-Steinberg dithering
- metadata: EXIF capture metadata extraction
- encoding: lossy re-encoding and size statistics
"""

from .encoding import Encoder
from .face_redaction import (
    FaceDetector,
    FaceRedactor,
    HaarCascadeFaceDetector,
    NullFaceDetector,
)
from .geometry import GeometricTransformer
from .metadata import MetadataExtractor
from .quantization import Palette, Quantizer

__all__ = [
    "Encoder",
    "FaceDetector",
    "FaceRedactor",
    "HaarCascadeFaceDetector",
    "NullFaceDetector",
    "GeometricTransformer",
    "MetadataExtractor",
    "Palette",
    "Quantizer",
]
