"""
Tests for face detectors and FaceRedactor
"""

import asyncio

import numpy as np
import pytest

from image_ecolo.core.exceptions import DetectorUnavailable
from image_ecolo.operations.face_redaction import (
    FaceRedactor,
    HaarCascadeFaceDetector,
    NullFaceDetector,
)
from image_ecolo.schemas import FaceBox


@pytest.fixture
def redactor():
    """Create FaceRedactor without margin for exact geometry checks"""
    return FaceRedactor(margin_ratio=0.0)


@pytest.fixture
def noisy_image():
    """High frequency RGB image so blurring is measurable"""
    rng = np.random.RandomState(42)
    return rng.randint(0, 256, (100, 120, 3)).astype(np.uint8)


class TestFaceRedactor:
    """Test FaceRedactor functionality"""

    def test_no_faces_returns_copy(self, redactor, noisy_image):
        """Test that an empty face list leaves pixels unchanged"""
        result = redactor.redact(noisy_image, [])
        assert result is not noisy_image
        np.testing.assert_array_equal(result, noisy_image)

    def test_only_face_region_changes(self, redactor, noisy_image):
        """Test that pixels outside the box are untouched"""
        face = FaceBox(x=30, y=20, w=40, h=40)
        result = redactor.redact(noisy_image, [face], blur_strength=0.6)

        mask = redactor.build_mask(noisy_image.shape, [face])
        np.testing.assert_array_equal(result[~mask], noisy_image[~mask])
        assert not np.array_equal(result[mask], noisy_image[mask])

        # Blurred area has much less variation
        assert result[mask].std() < noisy_image[mask].std() / 2

    def test_input_not_modified(self, redactor, noisy_image):
        """Test that the input buffer is never written"""
        original = noisy_image.copy()
        redactor.redact(noisy_image, [FaceBox(x=10, y=10, w=20, h=20)])
        np.testing.assert_array_equal(noisy_image, original)

    def test_overlapping_boxes_union(self, redactor, noisy_image):
        """Test that overlapping boxes form a single union mask"""
        faces = [FaceBox(x=10, y=10, w=30, h=30), FaceBox(x=25, y=25, w=30, h=30)]
        mask = redactor.build_mask(noisy_image.shape, faces)

        assert mask.sum() == 30 * 30 * 2 - 15 * 15
        result = redactor.redact(noisy_image, faces)
        np.testing.assert_array_equal(result[~mask], noisy_image[~mask])

    def test_margin_expands_region(self, noisy_image):
        """Test that the margin widens the blurred area"""
        face = FaceBox(x=40, y=40, w=20, h=20)
        plain = FaceRedactor(margin_ratio=0.0).build_mask(noisy_image.shape, [face])
        padded = FaceRedactor(margin_ratio=0.25).build_mask(noisy_image.shape, [face])
        assert padded.sum() == 30 * 30
        assert padded.sum() > plain.sum()

    def test_normalized_boxes(self, redactor, noisy_image):
        """Test detectors reporting normalized coordinates"""
        face = FaceBox(x=0.25, y=0.2, width=0.25, height=0.3, normalized=True)
        assert redactor.face_rects(noisy_image.shape, [face]) == [(30, 20, 60, 50)]

    def test_alpha_unchanged(self, redactor, rgba_image):
        """Test that only colour channels are blurred"""
        face = FaceBox(x=60, y=30, w=60, h=60)
        result = redactor.redact(rgba_image, [face])
        np.testing.assert_array_equal(result[:, :, 3], rgba_image[:, :, 3])

    def test_faces_outside_image_ignored(self, redactor, noisy_image):
        """Test boxes that do not intersect the image"""
        result = redactor.redact(noisy_image, [FaceBox(x=500, y=500, w=10, h=10)])
        np.testing.assert_array_equal(result, noisy_image)


class TestDetectors:
    """Test detector strategies"""

    def test_null_detector_unavailable(self, noisy_image):
        """Test that the null detector reports unavailability"""
        with pytest.raises(DetectorUnavailable):
            asyncio.run(NullFaceDetector().detect_faces(noisy_image))

    def test_haar_missing_cascade(self, noisy_image, tmp_path):
        """Test that a missing cascade file reports unavailability"""
        detector = HaarCascadeFaceDetector(cascade_path=str(tmp_path / "missing.xml"))
        with pytest.raises(DetectorUnavailable):
            detector.detect_sync(noisy_image)

    def test_haar_blank_image(self):
        """Test that a blank image has no faces"""
        detector = HaarCascadeFaceDetector()
        blank = np.full((120, 160, 3), 127, dtype=np.uint8)
        assert asyncio.run(detector.detect_faces(blank)) == []
