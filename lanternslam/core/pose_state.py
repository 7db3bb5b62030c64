import threading

import numpy as np

from lanternslam.utils.geometry import orthonormalize, rotation_to_quaternion


class GlobalPose:
    """
    Accumulated camera pose in the first keyframe's frame.

    The tracker is the only writer. Readers on other threads (rendering,
    host queries) go through snapshot() and never see a rotation from one
    step paired with a translation from another.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._rotation = np.eye(3)
        self._translation = np.zeros(3)

    def snapshot(self):
        """Returns copies of (rotation, translation)."""
        with self._lock:
            return self._rotation.copy(), self._translation.copy()

    @property
    def rotation(self):
        return self.snapshot()[0]

    @property
    def translation(self):
        return self.snapshot()[1]

    def accumulate(self, relative_rotation, relative_translation):
        """global_R = global_R * rel_R; global_t = global_t + rel_t."""
        with self._lock:
            self._rotation = orthonormalize(self._rotation @ np.asarray(relative_rotation, dtype=np.float64))
            self._translation = self._translation + np.asarray(relative_translation, dtype=np.float64).reshape(3)

    def reanchor(self, anchor_rotation, anchor_translation, relative_rotation, relative_translation):
        """Sets the pose to an anchor's world pose combined with a relative pose."""
        rotation = np.asarray(anchor_rotation, dtype=np.float64) @ np.asarray(relative_rotation, dtype=np.float64)
        translation = (np.asarray(anchor_translation, dtype=np.float64).reshape(3)
                       + np.asarray(relative_translation, dtype=np.float64).reshape(3))
        with self._lock:
            self._rotation = orthonormalize(rotation)
            self._translation = translation

    def reset_translation(self):
        with self._lock:
            self._translation = np.zeros(3)

    def quaternion(self):
        """Rotation as (x, y, z, w)."""
        return rotation_to_quaternion(self.rotation)
