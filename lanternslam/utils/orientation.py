import math
import threading

import numpy as np


class RotationEstimator:
    """
    Complementary filter fusing gyro and accelerometer samples into camera
    orientation angles (theta, radians).

    Samples arrive on the device callback thread while the tracker reads
    theta from its own thread, so all state is guarded by a lock.
    """

    def __init__(self, alpha=0.98):
        self.alpha = alpha
        self.theta = np.zeros(3)
        self._lock = threading.Lock()
        self._first_gyro = True
        self._first_accel = True
        self._last_ts_gyro = 0.0

    def process_gyro(self, gyro, ts):
        """
        Integrate one gyro sample.

        :param gyro: Angular velocity (x, y, z) in rad/s.
        :param ts: Sample timestamp in milliseconds.
        """
        if self._first_gyro:
            self._first_gyro = False
            self._last_ts_gyro = ts
            return
        dt = (ts - self._last_ts_gyro) / 1000.0
        self._last_ts_gyro = ts
        gx, gy, gz = (float(v) * dt for v in gyro)
        with self._lock:
            self.theta += np.array([-gz, -gy, gx])

    def process_accel(self, accel):
        """
        Correct drift on the x and z axes from the gravity direction.

        :param accel: Linear acceleration (x, y, z) in m/s^2.
        """
        ax, ay, az = (float(v) for v in accel)
        accel_z = math.atan2(ay, az)
        accel_x = math.atan2(ax, math.sqrt(ay * ay + az * az))
        with self._lock:
            if self._first_accel:
                self._first_accel = False
                # No absolute yaw reference from gravity; start facing y = pi.
                self.theta = np.array([accel_x, math.pi, accel_z])
            else:
                self.theta[0] = self.theta[0] * self.alpha + accel_x * (1 - self.alpha)
                self.theta[2] = self.theta[2] * self.alpha + accel_z * (1 - self.alpha)

    def get_theta(self):
        with self._lock:
            return self.theta.copy()


def orientation_in_degrees(theta):
    """
    Host-facing camera orientation: (-x, y, -z - 90) in degrees.
    Returns None while no IMU data has been fused yet.
    """
    theta = np.asarray(theta, dtype=np.float64)
    if not np.any(theta):
        return None
    degrees = np.degrees(theta)
    return np.array([-degrees[0], degrees[1], -degrees[2] - 90.0])
