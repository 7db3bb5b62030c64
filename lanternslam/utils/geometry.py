import numpy as np
from scipy.spatial.transform import Rotation


def compose(R1, t1, R2, t2):
    """
    Relative transform between two camera poses expressed in the same frame.

    Given poses (R1, t1) and (R2, t2) mapping a common frame into camera 1 and
    camera 2, returns (R_1to2, t_1to2) mapping camera 1 into camera 2:
        R_1to2 = R2 * R1^T
        t_1to2 = R2 * (-R1^T * t1) + t2
    """
    R1 = np.asarray(R1, dtype=np.float64)
    R2 = np.asarray(R2, dtype=np.float64)
    t1 = np.asarray(t1, dtype=np.float64).reshape(3)
    t2 = np.asarray(t2, dtype=np.float64).reshape(3)
    R_rel = R2 @ R1.T
    t_rel = R2 @ (-R1.T @ t1) + t2
    return R_rel, t_rel


def chain(R_a, t_a, R_b, t_b):
    """Apply (R_a, t_a) then (R_b, t_b): x -> R_b (R_a x + t_a) + t_b."""
    R_a = np.asarray(R_a, dtype=np.float64)
    R_b = np.asarray(R_b, dtype=np.float64)
    t_a = np.asarray(t_a, dtype=np.float64).reshape(3)
    t_b = np.asarray(t_b, dtype=np.float64).reshape(3)
    return R_b @ R_a, R_b @ t_a + t_b


def invert(R, t):
    """Inverse of the rigid transform x -> R x + t."""
    R = np.asarray(R, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).reshape(3)
    R_inv = R.T
    return R_inv, -R_inv @ t


def orthonormalize(R, tol=1e-9):
    """
    Project R back onto SO(3) if it has drifted away from orthonormality.
    Returns R unchanged when it is already orthonormal within tol.
    """
    R = np.asarray(R, dtype=np.float64)
    if np.abs(R @ R.T - np.eye(3)).max() <= tol:
        return R
    U, _, Vt = np.linalg.svd(R)
    R_fixed = U @ Vt
    if np.linalg.det(R_fixed) < 0:
        U[:, -1] *= -1
        R_fixed = U @ Vt
    return R_fixed


def rotation_to_quaternion(R):
    """Returns the quaternion (x, y, z, w) of a 3x3 rotation matrix."""
    return Rotation.from_matrix(np.asarray(R, dtype=np.float64)).as_quat()


def rotation_angle(R):
    """Rotation magnitude in radians."""
    return Rotation.from_matrix(np.asarray(R, dtype=np.float64)).magnitude()


def deproject_pixel_to_point(intrinsics, pixel, depth):
    """Back-project a pixel with metric depth to a 3D point in that camera's frame."""
    x = (pixel[0] - intrinsics.ppx) / intrinsics.fx
    y = (pixel[1] - intrinsics.ppy) / intrinsics.fy
    return np.array([depth * x, depth * y, depth], dtype=np.float64)


def deproject_pixels(intrinsics, pixels, depths):
    """Vectorized deproject_pixel_to_point for (N, 2) pixels and (N,) depths."""
    pixels = np.asarray(pixels, dtype=np.float64).reshape(-1, 2)
    depths = np.asarray(depths, dtype=np.float64).reshape(-1)
    x = (pixels[:, 0] - intrinsics.ppx) / intrinsics.fx
    y = (pixels[:, 1] - intrinsics.ppy) / intrinsics.fy
    return np.stack([depths * x, depths * y, depths], axis=1)


def project_points(intrinsics, points):
    """Pinhole projection of (N, 3) points to (N, 2) pixels."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    z = points[:, 2]
    u = points[:, 0] / z * intrinsics.fx + intrinsics.ppx
    v = points[:, 1] / z * intrinsics.fy + intrinsics.ppy
    return np.stack([u, v], axis=1)


def transform_points(extrinsics, points):
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return points @ extrinsics.rotation.T + extrinsics.translation


def project_color_pixel_to_depth_pixel(calibration, depth_frame, pixel, min_depth, max_depth):
    """
    Find the depth-image pixel that observes the same scene point as a colour pixel.

    The colour pixel's viewing ray is sampled between min_depth and max_depth,
    giving a segment in the depth image. Every depth pixel on that segment is
    back-projected with its measured depth and re-projected into the colour
    image; the one landing closest to the query pixel wins.

    Returns:
        (x, y) depth pixel as floats, or None when no pixel on the segment
        carries a depth measurement.
    """
    color = calibration.color_intrinsics
    depth = calibration.depth_intrinsics
    ends = deproject_pixels(color, [pixel, pixel], [min_depth, max_depth])
    ends = project_points(depth, transform_points(calibration.color_to_depth, ends))
    ends[:, 0] = np.clip(ends[:, 0], 0, depth.width - 1)
    ends[:, 1] = np.clip(ends[:, 1], 0, depth.height - 1)
    start, end = ends

    n_steps = int(np.ceil(np.abs(end - start).max())) + 1
    line = np.linspace(start, end, n_steps)
    cols = np.rint(line[:, 0]).astype(int)
    rows = np.rint(line[:, 1]).astype(int)
    distances = depth_frame.data[rows, cols].astype(np.float64) * depth_frame.depth_scale
    valid = distances > 0
    if not np.any(valid):
        return None
    line = line[valid]
    points = deproject_pixels(depth, line, distances[valid])
    reprojected = project_points(color, transform_points(calibration.depth_to_color, points))
    errors = np.sum((reprojected - np.asarray(pixel, dtype=np.float64)) ** 2, axis=1)
    best = int(np.argmin(errors))
    return float(line[best, 0]), float(line[best, 1])
