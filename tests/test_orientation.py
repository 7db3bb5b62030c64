import math

import numpy as np
import pytest

from lanternslam.utils.orientation import RotationEstimator, orientation_in_degrees


def test_first_accel_sample_initializes_theta():
    estimator = RotationEstimator()
    estimator.process_accel((0.0, 0.0, 9.81))
    np.testing.assert_allclose(estimator.get_theta(), [0.0, math.pi, 0.0])


def test_accel_is_blended_with_alpha():
    estimator = RotationEstimator(alpha=0.98)
    estimator.process_accel((0.0, 0.0, 9.81))
    estimator.process_accel((0.0, 9.81, 0.0))
    theta = estimator.get_theta()
    assert theta[2] == pytest.approx(0.02 * math.pi / 2)
    assert theta[1] == pytest.approx(math.pi)


def test_gyro_integrates_after_first_sample():
    estimator = RotationEstimator()
    estimator.process_gyro((1.0, 2.0, 3.0), 1000.0)
    np.testing.assert_array_equal(estimator.get_theta(), np.zeros(3))

    estimator.process_gyro((1.0, 2.0, 3.0), 1500.0)

    np.testing.assert_allclose(estimator.get_theta(), [-1.5, -1.0, 0.5])


def test_get_theta_returns_copy():
    estimator = RotationEstimator()
    estimator.get_theta()[0] = 5.0
    assert estimator.get_theta()[0] == 0.0


def test_orientation_in_degrees():
    assert orientation_in_degrees(np.zeros(3)) is None
    np.testing.assert_allclose(orientation_in_degrees([math.pi / 2, math.pi, math.pi / 4]),
                               [-90.0, 180.0, -135.0])
