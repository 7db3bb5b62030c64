import cv2
import numpy as np
import pytest

from lanternslam.config import OrbConfig
from lanternslam.frontend.feature_extractor import OrbFeatureDetector, preprocess_image, keypoint_positions


def textured_image(size=320, block=8):
    """Random blocks: plenty of corners for FAST."""
    rng = np.random.default_rng(0)
    blocks = rng.integers(0, 256, size=(size // block, size // block), dtype=np.uint8)
    image = cv2.resize(blocks, (size, size), interpolation=cv2.INTER_NEAREST)
    return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)


def test_orb_detects_on_grayscale():
    detector = OrbFeatureDetector(OrbConfig(nfeatures=500))
    keypoints, descriptors = detector.detect(preprocess_image(textured_image()))
    assert len(keypoints) > 0
    assert descriptors.shape == (len(keypoints), 32)
    assert descriptors.dtype == np.uint8


def test_orb_rejects_colour_image():
    with pytest.raises(ValueError):
        OrbFeatureDetector().detect(textured_image())


def test_preprocess_image():
    gray = preprocess_image(textured_image(40))
    assert gray.shape == (40, 40)
    already_gray = np.zeros((5, 5), np.uint8)
    copy = preprocess_image(already_gray)
    assert copy is not already_gray
    np.testing.assert_array_equal(copy, already_gray)


def test_keypoint_positions():
    keypoints = [cv2.KeyPoint(1.5, 2.5, 31), cv2.KeyPoint(3.0, 4.0, 31)]
    np.testing.assert_array_equal(keypoint_positions(keypoints), [[1.5, 2.5], [3.0, 4.0]])
    assert keypoint_positions([]).shape == (0, 2)
