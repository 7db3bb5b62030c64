"""
LanternSlam: RGB-D visual odometry with keyframe loop closure.

This package tracks a colour+depth camera frame by frame with ORB features
and PnP, re-anchors on stored keyframes when a place is recognized again,
and can anchor keyframes to reference objects submitted by a host.

The system is organized into several modules:
- core: Data structures (KeyFrame, ReferenceObject, stores, global pose)
- frontend: Feature extraction, matching, pose estimation and tracking
- backend: Loop-closure and object searches
- utils: Camera model, geometry, IMU orientation and visualization
"""

from lanternslam.config import SystemConfig, OrbConfig, load_config
from lanternslam.system import LanternSlam

__version__ = '0.1.0'
