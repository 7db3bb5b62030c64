import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import cv2
import numpy as np

from lanternslam.errors import AcquisitionFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Intrinsics:
    """Pinhole intrinsics of one stream (RealSense convention)."""
    width: int
    height: int
    fx: float
    fy: float
    ppx: float
    ppy: float
    coeffs: tuple = (0.0, 0.0, 0.0, 0.0, 0.0)

    @property
    def matrix(self):
        return np.array([
            [self.fx, 0.0, self.ppx],
            [0.0, self.fy, self.ppy],
            [0.0, 0.0, 1.0]
        ], dtype=np.float64)

    @property
    def dist_coeffs(self):
        return np.asarray(self.coeffs, dtype=np.float64).reshape(1, -1)


@dataclass(frozen=True)
class Extrinsics:
    """Rigid transform from one stream's frame to another's."""
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        object.__setattr__(self, "rotation", np.asarray(self.rotation, dtype=np.float64).reshape(3, 3))
        object.__setattr__(self, "translation", np.asarray(self.translation, dtype=np.float64).reshape(3))

    def inverse(self):
        R_inv = self.rotation.T
        return Extrinsics(R_inv, -R_inv @ self.translation)


@dataclass(frozen=True)
class CameraCalibration:
    color_intrinsics: Intrinsics
    depth_intrinsics: Intrinsics
    color_to_depth: Extrinsics = field(default_factory=Extrinsics)
    depth_to_color: Optional[Extrinsics] = None

    def __post_init__(self):
        if self.depth_to_color is None:
            object.__setattr__(self, "depth_to_color", self.color_to_depth.inverse())

    @classmethod
    def aligned(cls, intrinsics):
        """Calibration for a depth stream already aligned to the colour stream."""
        return cls(intrinsics, intrinsics)


@dataclass
class DepthFrame:
    """Raw Z16 depth image plus the factor converting units to metres."""
    data: np.ndarray
    depth_scale: float = 0.001

    @property
    def width(self):
        return self.data.shape[1]

    @property
    def height(self):
        return self.data.shape[0]

    def get_distance(self, x, y):
        return float(self.data[int(round(y)), int(round(x))]) * self.depth_scale


@dataclass
class FrameSet:
    color: np.ndarray
    depth: DepthFrame
    timestamp: float = 0.0


class FrameSource:
    """
    Delivers synchronized colour+depth frame sets.

    wait_for_frames() returns a FrameSet, or None when no frame arrived in
    time. Implementations may also raise AcquisitionFailure or TimeoutError.
    """

    def wait_for_frames(self) -> Optional[FrameSet]:
        raise NotImplementedError


class SequenceFrameSource(FrameSource):
    def __init__(self, frames: List[Optional[FrameSet]]):
        """
        Replays a recorded sequence.

        :param frames: FrameSets in order; a None entry simulates a dropped frame.
        """
        self.frames = list(frames)
        self.index = 0

    def wait_for_frames(self):
        if self.index >= len(self.frames):
            raise AcquisitionFailure("End of sequence reached")
        frame = self.frames[self.index]
        self.index += 1
        return frame

    def __len__(self):
        return len(self.frames)

    @classmethod
    def from_directory(cls, sequence_path, depth_scale=1.0 / 5000.0):
        """
        Loads a TUM-style RGB-D sequence: matching file names under
        <sequence_path>/rgb and <sequence_path>/depth (16-bit PNG).

        :param sequence_path: Root directory of the sequence.
        :param depth_scale: Metres per depth unit (TUM uses 1/5000).
        """
        color_dir = os.path.join(sequence_path, "rgb")
        depth_dir = os.path.join(sequence_path, "depth")
        color_names = sorted(os.listdir(color_dir))
        depth_names = sorted(os.listdir(depth_dir))
        if len(color_names) != len(depth_names):
            logger.warning("Sequence has %d colour and %d depth images; pairing by order",
                           len(color_names), len(depth_names))
        frames = []
        for i, (color_name, depth_name) in enumerate(zip(color_names, depth_names)):
            color = cv2.imread(os.path.join(color_dir, color_name), cv2.IMREAD_COLOR)
            depth = cv2.imread(os.path.join(depth_dir, depth_name), cv2.IMREAD_UNCHANGED)
            if color is None or depth is None:
                logger.warning("Could not read frame pair %s / %s", color_name, depth_name)
                frames.append(None)
                continue
            frames.append(FrameSet(color, DepthFrame(depth, depth_scale), float(i)))
        return cls(frames)
