from dataclasses import dataclass

import numpy as np

from lanternslam.core.keyframe import as_descriptors


@dataclass(frozen=True)
class ExclusionZone:
    """
    Axis-aligned rectangle whose keypoints are ignored (e.g. the area a
    projector draws into). contains() is half-open: left/top edges are
    inside, right/bottom edges are not.
    """
    x: int
    y: int
    width: int
    height: int

    def contains(self, px, py):
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height

    def contains_points(self, points):
        """Vectorized contains() over an (N, 2) array."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return ((points[:, 0] >= self.x) & (points[:, 0] < self.x + self.width) &
                (points[:, 1] >= self.y) & (points[:, 1] < self.y + self.height))


def filter_keypoints_by_roi(keypoints, descriptors, zone):
    """
    Drops keypoints inside the exclusion zone together with their descriptor rows.

    :param keypoints: List of keypoints (objects with .pt).
    :param descriptors: Descriptor matrix row-aligned with keypoints (or None).
    :param zone: ExclusionZone, or None to keep everything.
    :return: (filtered keypoints, filtered descriptors), original order preserved.
    """
    descriptors = as_descriptors(descriptors)
    if zone is None or not keypoints:
        return list(keypoints), descriptors
    inside = zone.contains_points([kp.pt for kp in keypoints])
    keep = np.flatnonzero(~inside)
    return [keypoints[i] for i in keep], descriptors[keep]
