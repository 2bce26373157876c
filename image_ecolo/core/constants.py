"""
Constants and default values for the image pipeline.
Centralizes all magic numbers used across operations and services.
"""


class OptionConstants:
    """Bounds and defaults for ProcessingOptions."""

    QUALITY_MIN = 0
    QUALITY_MAX = 100
    DEFAULT_QUALITY = 75

    DEFAULT_MAX_WIDTH = 1920
    MAX_WIDTH_MIN = 1

    COLOR_COUNT_MIN = 2
    COLOR_COUNT_MAX = 32
    DEFAULT_COLOR_COUNT = 8

    DEFAULT_APPLY_DITHERING = True
    DEFAULT_APPLY_FACE_BLUR = False


class ProgressValues:
    """Progress percentage reached when each step starts."""

    STARTING = 0
    DETECTING_FACES = 10
    PALETTE = 30
    APPLYING = 50
    APPLYING_END = 90
    FINALIZING = 90
    COMPLETE = 100


class QuantizationConstants:
    """Palette construction and dithering parameters."""

    DEFAULT_REGION_SIZE = 64
    DEFAULT_COLORS_PER_REGION = 4
    DEFAULT_SAMPLE_WIDTH = 512

    # Histogram bucket precision for per-region colour counting (bits per channel)
    HISTOGRAM_BITS = 5

    KMEANS_RANDOM_STATE = 42
    KMEANS_N_INIT = 4
    KMEANS_MAX_ITER = 100

    # Floyd-Steinberg weights (right, below-left, below, below-right)
    FS_RIGHT = 7 / 16
    FS_BELOW_BACK = 3 / 16
    FS_BELOW = 5 / 16
    FS_BELOW_FORWARD = 1 / 16


class RedactionConstants:
    """Face redaction parameters."""

    DEFAULT_MARGIN_RATIO = 0.10
    DEFAULT_BLUR_STRENGTH = 0.6
    MIN_SIGMA = 4.0

    HAAR_CASCADE_FILE = "haarcascade_frontalface_default.xml"
    HAAR_SCALE_FACTOR = 1.1
    HAAR_MIN_NEIGHBORS = 5
    HAAR_MIN_FACE_SIZE = 24


class EncoderConstants:
    """Output encoding parameters."""

    MIN_ENCODER_QUALITY = 1
    WEBP_METHOD = 4


class SystemConstants:
    """Constants for system operations."""

    LOG_LEVEL_DEFAULT = "INFO"
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    DEFAULT_DEBOUNCE_MS = 500
    DEFAULT_MAX_WORKERS = 2
    DEFAULT_PALETTE_CACHE_SIZE = 16
    DEFAULT_PROGRESS_ROWS = 64
