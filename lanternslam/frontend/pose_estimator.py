import logging
from typing import NamedTuple, Optional

import numpy as np
import cv2

from lanternslam.errors import EstimationFailure
from lanternslam.utils.geometry import compose, invert, deproject_pixel_to_point, \
    project_color_pixel_to_depth_pixel

logger = logging.getLogger(__name__)


class RelativePose(NamedTuple):
    rotation: np.ndarray
    translation: np.ndarray

    @classmethod
    def identity(cls):
        return cls(np.eye(3), np.zeros(3))


class RobustPoseSolver:
    """
    Outlier-rejecting 3D-2D alignment.

    solve() returns the camera pose (R, t) mapping the 3D points' frame into
    the camera that observed image_points, or None when it does not converge.
    It may raise cv2.error; the PoseEstimator treats that as a failure.
    """

    def solve(self, object_points, image_points, camera_matrix, dist_coeffs):
        raise NotImplementedError


class OpenCVPnPSolver(RobustPoseSolver):
    def __init__(self, iterations=500, reprojection_error=8.0, confidence=0.9):
        """
        cv2.solvePnPRansac with the iterative (Levenberg-Marquardt) refinement.

        Args:
            iterations (int): RANSAC iteration budget.
            reprojection_error (float): Inlier threshold in pixels.
            confidence (float): RANSAC success probability.
        """
        self.iterations = iterations
        self.reprojection_error = reprojection_error
        self.confidence = confidence

    def solve(self, object_points, image_points, camera_matrix, dist_coeffs):
        success, rvec, tvec, inliers = cv2.solvePnPRansac(
            np.asarray(object_points, dtype=np.float32).reshape(-1, 3),
            np.asarray(image_points, dtype=np.float32).reshape(-1, 2),
            camera_matrix, dist_coeffs,
            iterationsCount=self.iterations,
            reprojectionError=self.reprojection_error,
            confidence=self.confidence,
            flags=cv2.SOLVEPNP_ITERATIVE)
        if not success:
            return None
        R, _ = cv2.Rodrigues(rvec)
        return R, tvec.reshape(3)


class PoseEstimator:
    def __init__(self, calibration, config, solver=None):
        """
        Initializes the pose estimator.

        Args:
            calibration (CameraCalibration): Colour/depth intrinsics and extrinsics.
            config (SystemConfig): Depth range and minimum correspondence count.
            solver (RobustPoseSolver, optional): Defaults to OpenCVPnPSolver.
        """
        self.calibration = calibration
        self.config = config
        self.solver = solver if solver is not None else OpenCVPnPSolver()

    def back_project(self, correspondences, depth_frame):
        """
        Lifts the query side of the correspondences to 3D using the depth frame.

        Correspondences whose colour pixel has no depth pixel, lands outside the
        depth image, or has a depth outside [min_depth, max_depth] are dropped.

        Returns:
            tuple: (points_3d (K, 3) in the depth camera frame,
                    query_points (K, 2), reference_points (K, 2)).
        """
        min_depth, max_depth = self.config.min_depth, self.config.max_depth
        depth_intrinsics = self.calibration.depth_intrinsics
        points_3d, query, reference = [], [], []
        for query_px, reference_px in zip(correspondences.query_points, correspondences.reference_points):
            depth_px = project_color_pixel_to_depth_pixel(
                self.calibration, depth_frame, query_px, min_depth, max_depth)
            if depth_px is None:
                continue
            if not (0 <= depth_px[0] < depth_frame.width and 0 <= depth_px[1] < depth_frame.height):
                continue
            depth = depth_frame.get_distance(*depth_px)
            if depth < min_depth or depth > max_depth:
                continue
            points_3d.append(deproject_pixel_to_point(depth_intrinsics, depth_px, depth))
            query.append(query_px)
            reference.append(reference_px)
        return (np.array(points_3d, dtype=np.float64).reshape(-1, 3),
                np.array(query, dtype=np.float32).reshape(-1, 2),
                np.array(reference, dtype=np.float32).reshape(-1, 2))

    def _solve(self, points_3d, query, reference):
        camera_matrix = self.calibration.color_intrinsics.matrix
        dist_coeffs = self.calibration.color_intrinsics.dist_coeffs
        pose1 = self.solver.solve(points_3d, query, camera_matrix, dist_coeffs)
        pose2 = self.solver.solve(points_3d, reference, camera_matrix, dist_coeffs)
        if pose1 is None or pose2 is None:
            raise EstimationFailure("PnP did not converge")
        R_1to2, t_1to2 = compose(pose1[0], pose1[1], pose2[0], pose2[1])
        # Forward sense: query view -> reference view.
        R, t = invert(R_1to2, t_1to2)
        return RelativePose(R, t)

    def estimate(self, correspondences, frames) -> Optional[RelativePose]:
        """
        Estimates the relative pose between the query and reference views.

        Both views are registered against the same metric 3D points (the
        query pixels lifted with the current depth frame) and the two PnP
        poses are composed.

        min_3d_points gates the number of correspondences supplied, before
        depth filtering; afterwards at least 2 points with valid depth are
        required.

        Args:
            correspondences (CorrespondenceSet): query (current frame) and
                reference pixels.
            frames (FrameSet): Current colour+depth frames.

        Returns:
            RelativePose, or None on failure. Failures never raise.
        """
        if len(correspondences) < self.config.min_3d_points:
            logger.debug("Only %d correspondences, %d required",
                         len(correspondences), self.config.min_3d_points)
            return None
        try:
            points_3d, query, reference = self.back_project(correspondences, frames.depth)
            if len(points_3d) < 2:
                raise EstimationFailure(f"Only {len(points_3d)} correspondences with valid depth")
            return self._solve(points_3d, query, reference)
        except EstimationFailure as e:
            logger.warning("Pose estimation failed: %s", e)
        except (cv2.error, np.linalg.LinAlgError) as e:
            logger.error("OpenCV Exception: %s", e)
        return None
