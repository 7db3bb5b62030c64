import cv2
import numpy as np
import pytest

from lanternslam.frontend.feature_extractor import FeatureDetector
from lanternslam.frontend.pose_estimator import RobustPoseSolver
from lanternslam.utils.camera import Intrinsics, CameraCalibration, DepthFrame, FrameSet, SequenceFrameSource

WIDTH, HEIGHT = 160, 120


class FakeDetector(FeatureDetector):
    """Returns the same keypoints/descriptors for every image."""

    def __init__(self, positions, descriptors):
        self.positions = np.asarray(positions, dtype=np.float32).reshape(-1, 2)
        self.descriptors = descriptors

    def detect(self, image):
        keypoints = [cv2.KeyPoint(float(x), float(y), 31) for x, y in self.positions]
        return keypoints, self.descriptors


class FakeSolver(RobustPoseSolver):
    """
    Alternates between the query call (identity) and the reference call, so
    each PoseEstimator.estimate() yields the relative translation set here.
    """

    def __init__(self, translation=(0.0, 0.0, 0.0)):
        self.translation = np.asarray(translation, dtype=np.float64)
        self.fail = False
        self.calls = 0

    def solve(self, object_points, image_points, camera_matrix, dist_coeffs):
        self.calls += 1
        if self.fail:
            return None
        if self.calls % 2 == 1:
            return np.eye(3), np.zeros(3)
        return np.eye(3), -self.translation


class FakeOrientation:
    def __init__(self, theta=(0.1, 0.2, 0.3)):
        self.theta = np.asarray(theta, dtype=np.float64)

    def get_theta(self):
        return self.theta.copy()


def grid_positions(count, step=10, origin=(10, 10)):
    per_row = (WIDTH - 2 * origin[0]) // step
    return np.array([(origin[0] + (i % per_row) * step, origin[1] + (i // per_row) * step)
                     for i in range(count)], dtype=np.float32)


def random_descriptors(count, seed=0):
    return np.random.default_rng(seed).integers(0, 256, size=(count, 32), dtype=np.uint8)


def make_frame_set(depth_m=1.0, timestamp=0.0):
    color = np.full((HEIGHT, WIDTH, 3), 127, dtype=np.uint8)
    depth = np.full((HEIGHT, WIDTH), int(depth_m * 1000), dtype=np.uint16)
    return FrameSet(color, DepthFrame(depth, 0.001), timestamp)


@pytest.fixture
def intrinsics():
    return Intrinsics(WIDTH, HEIGHT, 100.0, 100.0, 80.0, 60.0)


@pytest.fixture
def calibration(intrinsics):
    return CameraCalibration.aligned(intrinsics)


@pytest.fixture
def frame_source():
    return SequenceFrameSource([make_frame_set(timestamp=float(i)) for i in range(20)])


@pytest.fixture
def detector():
    return FakeDetector(grid_positions(40), random_descriptors(40))


@pytest.fixture
def solver():
    return FakeSolver((0.01, 0.0, 0.02))
