import cv2
import numpy as np

from lanternslam.frontend.roi_filter import ExclusionZone, filter_keypoints_by_roi


def keypoints_at(*points):
    return [cv2.KeyPoint(float(x), float(y), 31) for x, y in points]


def test_zone_is_half_open():
    zone = ExclusionZone(10, 20, 30, 40)
    assert zone.contains(10, 20)
    assert zone.contains(39.9, 59.9)
    assert not zone.contains(40, 60)
    assert not zone.contains(40, 30)
    assert not zone.contains(20, 60)
    assert not zone.contains(9.9, 30)


def test_filter_drops_top_left_corner_keeps_bottom_right():
    zone = ExclusionZone(10, 20, 30, 40)
    keypoints = keypoints_at((10, 20), (40, 60), (25, 35), (0, 0))
    descriptors = np.arange(4 * 32, dtype=np.uint8).reshape(4, 32)

    kept, kept_descriptors = filter_keypoints_by_roi(keypoints, descriptors, zone)

    assert [kp.pt for kp in kept] == [(40.0, 60.0), (0.0, 0.0)]
    np.testing.assert_array_equal(kept_descriptors, descriptors[[1, 3]])


def test_filter_without_zone_keeps_everything():
    keypoints = keypoints_at((1, 1), (2, 2))
    descriptors = np.ones((2, 32), dtype=np.uint8)
    kept, kept_descriptors = filter_keypoints_by_roi(keypoints, descriptors, None)
    assert len(kept) == 2
    assert kept_descriptors.shape == (2, 32)


def test_filter_handles_no_keypoints():
    kept, kept_descriptors = filter_keypoints_by_roi([], None, ExclusionZone(0, 0, 10, 10))
    assert kept == []
    assert kept_descriptors.shape == (0, 32)
