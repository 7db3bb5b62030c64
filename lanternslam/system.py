import logging

import cv2

from lanternslam.config import SystemConfig
from lanternslam.frontend.roi_filter import ExclusionZone
from lanternslam.frontend.tracking import Tracker
from lanternslam.utils.geometry import project_color_pixel_to_depth_pixel
from lanternslam.utils.orientation import orientation_in_degrees

logger = logging.getLogger(__name__)


class LanternSlam:
    """
    Main system class: the operations a host (game engine plugin, script)
    calls to run RGB-D tracking.
    """

    def __init__(self, frame_source, calibration, config=None, detector=None, solver=None,
                 orientation=None, warmup_frames=30):
        """
        Initialize the tracking system.

        Args:
            frame_source: FrameSource delivering colour+depth frame sets.
            calibration: CameraCalibration of the two streams.
            config: SystemConfig, or a dict of parameters (optional).
            detector: FeatureDetector (optional, ORB by default).
            solver: RobustPoseSolver (optional, PnP RANSAC by default).
            orientation: IMU orientation source such as a RotationEstimator (optional).
            warmup_frames: Frames dropped by initialize() before the first keyframe.
        """
        if config is not None and not isinstance(config, SystemConfig):
            config = SystemConfig.from_dict(config)
        self.calibration = calibration
        self.orientation = orientation
        self.warmup_frames = warmup_frames
        self.tracker = Tracker(frame_source, calibration, config, detector, solver, orientation)

    @property
    def keyframe_store(self):
        return self.tracker.keyframe_store

    @property
    def object_store(self):
        return self.tracker.object_store

    def initialize(self):
        """
        Capture the first keyframe.

        Returns:
            True if the first keyframe was created.
        """
        keyframe = self.tracker.initialize(self.warmup_frames)
        if keyframe is None:
            logger.error("Initialization failed: no frame available")
            return False
        return True

    def step(self):
        """Run one tracking step and return its StepResult."""
        return self.tracker.step()

    def get_translation(self):
        return self.tracker.session.pose.translation

    def get_rotation_quaternion(self):
        """Current rotation as (x, y, z, w)."""
        return self.tracker.session.pose.quaternion()

    def get_camera_orientation(self):
        """IMU orientation in degrees, or None without IMU data."""
        if self.orientation is None:
            return None
        return orientation_in_degrees(self.orientation.get_theta())

    def reset_odometry(self):
        """Zero the accumulated translation; rotation is kept."""
        self.tracker.session.pose.reset_translation()
        logger.info("Odometry reset")

    def add_keyframe(self):
        self.tracker.request_keyframe()

    def is_loop(self):
        """Whether the most recent step closed a loop."""
        return self.tracker.session.is_loop

    def set_projector_zone(self, x, y, w, h):
        self.tracker.set_exclusion_zone(ExclusionZone(int(x), int(y), int(w), int(h)))

    def serialize_keyframes(self, path):
        self.keyframe_store.save(path)

    def deserialize_keyframes(self, path):
        self.keyframe_store.load(path)

    def add_reference_object(self, image_bytes, name):
        """
        Register an encoded image (JPEG, PNG, ...) as a reference object.

        Returns:
            The new object's id, or None if the image could not be decoded.
        """
        obj = self.object_store.add_from_bytes(image_bytes, name, self.tracker.detector)
        return obj.id if obj is not None else None

    def get_jpeg_buffer(self):
        """
        Latest colour frame encoded as JPEG (quality 100).

        Returns:
            bytes, or None before the first frame.
        """
        color = self.tracker.session.latest_color
        if color is None:
            return None
        ok, buffer = cv2.imencode(".jpeg", color, [cv2.IMWRITE_JPEG_QUALITY, 100])
        if not ok:
            logger.warning("JPEG encoding of the latest frame failed")
            return None
        return buffer.tobytes()

    def set_params(self, config):
        """Replace the tracking parameters (SystemConfig or dict)."""
        self.tracker.configure(config)

    def get_depth_at_center(self):
        """
        Depth in metres at the centre of the latest colour frame.

        Returns:
            0.0 when no frame is available or the centre has no depth.
        """
        session = self.tracker.session
        color, depth = session.latest_color, session.latest_depth
        if color is None or depth is None:
            return 0.0
        config = self.tracker.config
        center = (color.shape[1] / 2.0, color.shape[0] / 2.0)
        depth_px = project_color_pixel_to_depth_pixel(
            self.calibration, depth, center, config.min_depth, config.max_depth)
        if depth_px is None:
            return 0.0
        x, y = depth_px
        if not (0 <= x < depth.width and 0 <= y < depth.height):
            return 0.0
        return depth.get_distance(x, y)

    def shutdown(self):
        """Shutdown the tracking system."""
        self.tracker.shutdown()
        logger.info("Tracking system has been shut down.")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()
