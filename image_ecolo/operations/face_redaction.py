"""
Face redaction.

Detection is an injected capability (FaceDetector protocol): the pipeline
ships an OpenCV Haar cascade implementation and a null implementation for
when no detector is available. FaceRedactor itself is pure pixel work on
already computed boxes.
"""

import asyncio
import logging
import os
from concurrent.futures import Executor
from threading import Lock
from typing import List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from image_ecolo.core.constants import RedactionConstants
from image_ecolo.core.exceptions import DetectorUnavailable
from image_ecolo.core.image.converters import ImageConverters
from image_ecolo.schemas.common import FaceBox

logger = logging.getLogger(__name__)


class FaceDetector(Protocol):
    """Protocol for face detection collaborators."""

    @property
    def name(self) -> str:
        """Return the detector identifier string."""
        ...

    async def detect_faces(self, image: np.ndarray) -> List[FaceBox]:
        """
        Detect faces in an image.

        Args:
            image: H x W x 3|4 RGB(A) uint8 array.

        Returns:
            Face boxes in pixel or normalized coordinates of ``image``.

        Raises:
            DetectorUnavailable: If the detector cannot run.
        """
        ...


class NullFaceDetector:
    """Stand-in used when no detector is available."""

    name = "none"

    async def detect_faces(self, image: np.ndarray) -> List[FaceBox]:
        raise DetectorUnavailable("No face detector configured")


class HaarCascadeFaceDetector:
    """Frontal face detector backed by an OpenCV Haar cascade."""

    name = "haar_cascade"

    def __init__(
        self,
        cascade_path: Optional[str] = None,
        scale_factor: float = RedactionConstants.HAAR_SCALE_FACTOR,
        min_neighbors: int = RedactionConstants.HAAR_MIN_NEIGHBORS,
        min_size: int = RedactionConstants.HAAR_MIN_FACE_SIZE,
        executor: Optional[Executor] = None,
    ):
        self.cascade_path = cascade_path
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size
        self._executor = executor
        self._classifier: Optional[cv2.CascadeClassifier] = None
        self._lock = Lock()

    def _resolve_path(self) -> str:
        if self.cascade_path:
            return self.cascade_path
        try:
            return os.path.join(cv2.data.haarcascades, RedactionConstants.HAAR_CASCADE_FILE)
        except AttributeError as e:
            raise DetectorUnavailable("OpenCV build ships no Haar cascades") from e

    def _get_classifier(self) -> cv2.CascadeClassifier:
        if self._classifier is None:
            path = self._resolve_path()
            classifier = cv2.CascadeClassifier(path)
            if classifier.empty():
                raise DetectorUnavailable(f"Could not load face cascade from {path}")
            self._classifier = classifier
            logger.info(f"Loaded face cascade from {path}")
        return self._classifier

    def detect_sync(self, image: np.ndarray) -> List[FaceBox]:
        """Blocking detection, safe to call from a worker thread."""
        gray = cv2.equalizeHist(ImageConverters.ensure_grayscale(image))

        # CascadeClassifier is not safe for concurrent use
        with self._lock:
            classifier = self._get_classifier()
            rects = classifier.detectMultiScale(
                gray,
                scaleFactor=self.scale_factor,
                minNeighbors=self.min_neighbors,
                minSize=(self.min_size, self.min_size),
            )

        faces = [
            FaceBox(x=float(x), y=float(y), width=float(w), height=float(h))
            for (x, y, w, h) in rects
        ]
        logger.debug(f"Haar cascade found {len(faces)} face(s)")
        return faces

    async def detect_faces(self, image: np.ndarray) -> List[FaceBox]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.detect_sync, image)


class FaceRedactor:
    """Irreversibly blurs face regions."""

    def __init__(self, margin_ratio: float = RedactionConstants.DEFAULT_MARGIN_RATIO):
        """
        Initialize face redactor.

        Args:
            margin_ratio: Fraction of the box size added on every side so
                hairline, ears and chin are covered too
        """
        self.margin_ratio = margin_ratio

    def face_rects(
        self, image_shape: Tuple[int, ...], faces: Sequence[FaceBox]
    ) -> List[Tuple[int, int, int, int]]:
        """Expanded, clipped pixel rectangles (x1, y1, x2, y2) for ``faces``."""
        height, width = image_shape[:2]
        rects = []
        for face in faces:
            rect = face.to_pixels(width, height, self.margin_ratio)
            if rect is not None:
                rects.append(rect)
        return rects

    def build_mask(self, image_shape: Tuple[int, ...], faces: Sequence[FaceBox]) -> np.ndarray:
        """Boolean H x W mask of the union of all expanded face boxes."""
        mask = np.zeros(image_shape[:2], dtype=bool)
        for x1, y1, x2, y2 in self.face_rects(image_shape, faces):
            mask[y1:y2, x1:x2] = True
        return mask

    def redact(
        self,
        image: np.ndarray,
        faces: Sequence[FaceBox],
        blur_strength: float = RedactionConstants.DEFAULT_BLUR_STRENGTH,
    ) -> np.ndarray:
        """
        Blur every face region.

        The union of all boxes is blurred in a single pass, so overlapping
        boxes are neither blurred twice nor separated by seams. Only colour
        channels are touched; alpha is carried over unchanged.

        Args:
            image: Input image (H x W x 3|4 uint8)
            faces: Face boxes from the detector
            blur_strength: 0-1, scales the blur radius with face size

        Returns:
            New image array (an unmodified copy when there are no faces)
        """
        result = image.copy()
        rects = self.face_rects(image.shape, faces)
        if not rects:
            return result

        largest_side = max(max(x2 - x1, y2 - y1) for x1, y1, x2, y2 in rects)
        sigma = max(RedactionConstants.MIN_SIGMA, blur_strength * largest_side / 4.0)
        pad = int(np.ceil(3 * sigma))

        height, width = image.shape[:2]
        rx1 = max(0, min(r[0] for r in rects) - pad)
        ry1 = max(0, min(r[1] for r in rects) - pad)
        rx2 = min(width, max(r[2] for r in rects) + pad)
        ry2 = min(height, max(r[3] for r in rects) + pad)

        mask = self.build_mask(image.shape, faces)[ry1:ry2, rx1:rx2]
        region = np.ascontiguousarray(image[ry1:ry2, rx1:rx2, :3])
        blurred = cv2.GaussianBlur(region, (0, 0), sigmaX=sigma, borderType=cv2.BORDER_REFLECT)

        target = result[ry1:ry2, rx1:rx2, :3]
        target[mask] = blurred[mask]

        logger.debug(f"Redacted {len(rects)} face region(s) with sigma {sigma:.1f}")
        return result
