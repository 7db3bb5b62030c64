import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from lanternslam.backend.loop_closing import LoopClosureDetector, ObjectRecognizer, NO_MATCH
from lanternslam.config import SystemConfig
from lanternslam.core.keyframe import as_descriptors
from lanternslam.core.keyframe_store import KeyframeStore
from lanternslam.core.object_store import ObjectStore
from lanternslam.core.pose_state import GlobalPose
from lanternslam.errors import AcquisitionFailure, ConsistencyRejection
from lanternslam.frontend.feature_extractor import OrbFeatureDetector, preprocess_image, keypoint_positions
from lanternslam.frontend.feature_matcher import FeatureMatcher
from lanternslam.frontend.pose_estimator import PoseEstimator, RelativePose
from lanternslam.frontend.roi_filter import filter_keypoints_by_roi
from lanternslam.utils.geometry import rotation_angle

logger = logging.getLogger(__name__)

FIRST_FRAME = "First Frame"
BY_HAND = "By Hand"


class TrackingState(Enum):
    UNINITIALIZED = "UNINITIALIZED"
    TRACKING = "TRACKING"
    LOOP_DETECTED = "LOOP_DETECTED"


class StepOutcome(Enum):
    SKIPPED = "SKIPPED"                      # no usable frame
    NO_PREVIOUS_FRAME = "NO_PREVIOUS_FRAME"  # nothing to match against yet
    ESTIMATION_FAILED = "ESTIMATION_FAILED"
    REJECTED = "REJECTED"                    # relative pose failed the f2f consistency gate
    STATIONARY = "STATIONARY"                # pose valid but accumulation suppressed
    UPDATED = "UPDATED"


@dataclass
class StepResult:
    outcome: StepOutcome
    is_loop: bool = False
    loop_keyframe_id: Optional[int] = None
    object_name: Optional[str] = None
    keyframe_id: Optional[int] = None
    relative_pose: Optional[RelativePose] = None


@dataclass
class TrackingSession:
    """
    Everything the tracker carries from one step to the next.

    The caches (previous_*) are written at the end of each step and only
    read during the following one.
    """
    pose: GlobalPose = field(default_factory=GlobalPose)
    state: TrackingState = TrackingState.UNINITIALIZED
    previous_frame: Optional[np.ndarray] = None
    previous_keypoints: np.ndarray = field(default_factory=lambda: np.empty((0, 2), dtype=np.float32))
    previous_descriptors: np.ndarray = field(default_factory=lambda: as_descriptors(None))
    previous_orientation: Optional[np.ndarray] = None
    previous_relative_translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    no_move_counter: int = 0
    pending_object_id: Optional[int] = None
    pending_manual: bool = False
    is_loop: bool = False
    steps_since_init: int = 0
    exclusion_zone: Optional[object] = None
    latest_color: Optional[np.ndarray] = None
    latest_depth: Optional[object] = None


class Tracker:
    def __init__(self, frame_source, calibration, config=None, detector=None, solver=None,
                 orientation=None, keyframe_store=None, object_store=None):
        """
        Drives one tracking step per incoming frame.

        :param frame_source: FrameSource delivering colour+depth frame sets.
        :param calibration: CameraCalibration of the colour and depth streams.
        :param config: SystemConfig (defaults if None).
        :param detector: FeatureDetector (ORB if None).
        :param solver: RobustPoseSolver for the PoseEstimator (PnP RANSAC if None).
        :param orientation: Object with get_theta() (e.g. RotationEstimator) used
            to detect a stationary camera; no stationary gating if None.
        """
        self.frame_source = frame_source
        self.calibration = calibration
        self.detector = detector if detector is not None else OrbFeatureDetector()
        self.orientation = orientation
        self.keyframe_store = keyframe_store if keyframe_store is not None else KeyframeStore()
        self.object_store = object_store if object_store is not None else ObjectStore()
        self.session = TrackingSession()

        self._config_lock = threading.Lock()
        self._request_lock = threading.Lock()
        self._config = config if config is not None else SystemConfig()
        self.pose_estimator = PoseEstimator(calibration, self._config, solver)
        self.loop_closure_detector = LoopClosureDetector(self.keyframe_store)
        self.object_recognizer = ObjectRecognizer(self.object_store)
        self._pool = ThreadPoolExecutor(max_workers=3, thread_name_prefix="lanternslam-search")

    @property
    def config(self):
        with self._config_lock:
            return self._config

    def configure(self, config):
        """Swaps the whole configuration; takes effect at the next step."""
        if not isinstance(config, SystemConfig):
            config = SystemConfig.from_dict(config)
        with self._config_lock:
            self._config = config
        logger.info("Tracking parameters updated: %s", config)

    def set_exclusion_zone(self, zone):
        self.session.exclusion_zone = zone

    def request_keyframe(self):
        """Adds a keyframe ("By Hand") at the next accepted step."""
        with self._request_lock:
            self.session.pending_manual = True

    def shutdown(self):
        self._pool.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()

    def _acquire(self):
        try:
            frames = self.frame_source.wait_for_frames()
        except (AcquisitionFailure, TimeoutError) as e:
            logger.warning("Frame acquisition failed: %s", e)
            return None
        if frames is None or frames.color is None or frames.depth is None:
            logger.warning("One or both frames are null")
            return None
        return frames

    def _extract(self, frames):
        gray = preprocess_image(frames.color)
        keypoints, descriptors = self.detector.detect(gray)
        keypoints, descriptors = filter_keypoints_by_roi(keypoints, descriptors, self.session.exclusion_zone)
        return gray, keypoint_positions(keypoints), descriptors

    def _read_orientation(self):
        if self.orientation is None:
            return None
        return np.asarray(self.orientation.get_theta(), dtype=np.float64)

    def _update_stationary(self, theta, config):
        """
        Counts consecutive steps whose orientation change stays under
        no_movement_thresh on every axis. Returns True once the count exceeds
        frames_no_movement.
        """
        session = self.session
        previous = session.previous_orientation
        if theta is not None and previous is not None and np.any(previous):
            if np.any(np.abs(theta - previous) > config.no_movement_thresh):
                session.no_move_counter = 0
            else:
                session.no_move_counter += 1
        return session.no_move_counter > config.frames_no_movement

    def _refresh_caches(self, gray, positions, descriptors, theta, frames):
        session = self.session
        session.previous_frame = gray
        session.previous_keypoints = positions
        session.previous_descriptors = descriptors
        if theta is not None:
            session.previous_orientation = theta
        session.latest_color = frames.color
        session.latest_depth = frames.depth

    def initialize(self, warmup_frames=0):
        """
        Captures the first keyframe ("First Frame") at the current global pose.

        :param warmup_frames: Frames discarded first while auto-exposure settles.
        :return: The new KeyFrame, or None if no frame could be acquired.
        """
        for _ in range(warmup_frames):
            self._acquire()
        frames = self._acquire()
        if frames is None:
            return None
        theta = self._read_orientation()
        gray, positions, descriptors = self._extract(frames)
        rotation, translation = self.session.pose.snapshot()
        keyframe = self.keyframe_store.add_keyframe(
            gray, descriptors, positions, rotation, translation,
            FIRST_FRAME, np.eye(3), np.zeros(3))
        self._refresh_caches(gray, positions, descriptors, theta, frames)
        self.session.state = TrackingState.TRACKING
        self.session.steps_since_init = 0
        return keyframe

    def step(self) -> StepResult:
        """
        One tracking step:
          1. acquire frames (skip the step on failure)
          2. detect features and drop those in the exclusion zone
          3. in parallel: object recognition, loop-closure search, frame-to-frame matching
          4. estimate the relative pose from the loop-closure set if a keyframe
             qualified, else from the frame-to-frame set
          5. gate it against the previous relative translation
          6. re-anchor on the loop keyframe or accumulate, unless stationary
          7. insert a pending keyframe
          8. refresh the previous-frame caches
        """
        frames = self._acquire()
        if frames is None:
            return StepResult(StepOutcome.SKIPPED, is_loop=self.session.is_loop)

        config = self.config
        self.pose_estimator.config = config
        session = self.session
        theta = self._read_orientation()
        stationary = self._update_stationary(theta, config)

        gray, positions, descriptors = self._extract(frames)
        matcher = FeatureMatcher(config.ratio_thresh, config.max_good_features)

        object_future = self._pool.submit(
            self.object_recognizer.find_object, matcher, descriptors, positions,
            config.min_features_find_object)
        can_match = (session.previous_frame is not None and len(positions) >= 2
                     and len(session.previous_keypoints) >= 2)
        loop_future = f2f_future = None
        if can_match:
            if session.steps_since_init >= config.frames_until_loop_closure:
                loop_future = self._pool.submit(
                    self.loop_closure_detector.detect_loop_closure, matcher, descriptors,
                    positions, config.min_features_loop_closure)
            f2f_future = self._pool.submit(
                matcher.match_points, descriptors, positions,
                session.previous_descriptors, session.previous_keypoints)

        object_result = object_future.result()
        loop_result = loop_future.result() if loop_future is not None else NO_MATCH
        f2f_correspondences = f2f_future.result() if f2f_future is not None else None

        result = StepResult(StepOutcome.NO_PREVIOUS_FRAME if session.previous_frame is None
                            else StepOutcome.ESTIMATION_FAILED)
        if object_result.found:
            session.pending_object_id = object_result.candidate_id
            result.object_name = self.object_store.get_object(object_result.candidate_id).name

        session.is_loop = loop_result.found
        result.is_loop = loop_result.found
        result.loop_keyframe_id = loop_result.candidate_id

        if can_match:
            correspondences = loop_result.correspondences if loop_result.found else f2f_correspondences
            logger.debug("Estimating from %d %s correspondences", len(correspondences),
                         "loop-closure" if loop_result.found else "frame-to-frame")
            relative = self.pose_estimator.estimate(correspondences, frames)
            result.relative_pose = relative
            if relative is None:
                result.outcome = StepOutcome.ESTIMATION_FAILED
            else:
                try:
                    self._check_consistency(relative, config)
                except ConsistencyRejection as e:
                    logger.warning("Relative pose rejected: %s", e)
                    result.outcome = StepOutcome.REJECTED
                else:
                    logger.debug("Relative pose: %.4f rad, t = %s",
                                 rotation_angle(relative.rotation), relative.translation)
                    session.previous_relative_translation = relative.translation
                    if stationary:
                        result.outcome = StepOutcome.STATIONARY
                    else:
                        self._apply_relative_pose(relative, loop_result)
                        result.outcome = StepOutcome.UPDATED
                        keyframe = self._insert_pending_keyframe(
                            gray, positions, descriptors, relative, object_result, frames, config)
                        if keyframe is not None:
                            result.keyframe_id = keyframe.id

        if session.previous_frame is not None:
            session.state = TrackingState.LOOP_DETECTED if session.is_loop else TrackingState.TRACKING
        session.steps_since_init += 1
        self._refresh_caches(gray, positions, descriptors, theta, frames)
        return result

    def _check_consistency(self, relative, config):
        previous = self.session.previous_relative_translation
        jump = np.abs(relative.translation - previous)
        if np.any(jump > config.max_distance_f2f):
            raise ConsistencyRejection(
                f"translation {relative.translation} jumped {jump.max():.3f} m from {previous}")

    def _apply_relative_pose(self, relative, loop_result):
        """Re-anchors on the loop keyframe's world pose, or accumulates onto the current pose."""
        pose = self.session.pose
        if loop_result.found:
            anchor = self.keyframe_store.get_keyframe(loop_result.candidate_id)
            pose.reanchor(anchor.world_rotation, anchor.world_translation,
                          relative.rotation, relative.translation)
            logger.info("Loop closed on keyframe %d (%s)", anchor.id, anchor.image_name)
        else:
            pose.accumulate(relative.rotation, relative.translation)

    def _insert_pending_keyframe(self, gray, positions, descriptors, relative, object_result, frames, config):
        session = self.session
        rotation, translation = session.pose.snapshot()
        if session.pending_object_id is not None:
            obj = self.object_store.get_object(session.pending_object_id)
            anchor = RelativePose.identity()
            if object_result.candidate_id == obj.id and len(object_result.correspondences) >= config.min_3d_points:
                anchor = self.pose_estimator.estimate(object_result.correspondences, frames) or anchor
            keyframe = self.keyframe_store.add_keyframe(
                gray, descriptors, positions, rotation, translation,
                obj.name, anchor.rotation, anchor.translation)
            self.object_store.remove_object(obj.id)
            session.pending_object_id = None
            logger.info("New Keyframe Added related to: %s", obj.name)
            return keyframe
        with self._request_lock:
            manual, session.pending_manual = session.pending_manual, False
        if manual:
            keyframe = self.keyframe_store.add_keyframe(
                gray, descriptors, positions, rotation, translation,
                BY_HAND, relative.rotation, relative.translation)
            logger.info("New Keyframe Added related to: %s", BY_HAND)
            return keyframe
        return None
