import logging
from dataclasses import dataclass, fields, asdict

import cv2

from lanternslam.errors import ConfigError

logger = logging.getLogger(__name__)

# Names used by the Unity plugin bridge.
_PLUGIN_NAMES = {
    "ratioTresh": "ratio_thresh",
    "minDepth": "min_depth",
    "maxDepth": "max_depth",
    "min3DPoints": "min_3d_points",
    "maxDistanceF2F": "max_distance_f2f",
    "minFeaturesLoopClosure": "min_features_loop_closure",
    "framesUntilLoopClosure": "frames_until_loop_closure",
    "noMovementThresh": "no_movement_thresh",
    "framesNoMovement": "frames_no_movement",
    "maxGoodFeatures": "max_good_features",
    "minFeaturesFindObject": "min_features_find_object",
}

# The plugin sends the stationary threshold multiplied by this factor.
PLUGIN_NO_MOVEMENT_SCALE = 10000.0


@dataclass(frozen=True)
class SystemConfig:
    """
    Tracking parameters.

    Attributes:
        ratio_thresh: Lowe ratio used to reject ambiguous matches, in (0, 1].
        min_depth: Nearest valid depth in metres.
        max_depth: Farthest valid depth in metres.
        min_3d_points: Minimum correspondences handed to the pose estimator.
        max_distance_f2f: Largest per-axis jump (metres) allowed between two
            consecutive relative translations.
        min_features_loop_closure: Matches a keyframe needs to close a loop.
        frames_until_loop_closure: Tracking steps after initialization before
            loop closure is attempted.
        no_movement_thresh: Per-step orientation change (radians) under which
            the camera counts as not moving.
        frames_no_movement: Still frames tolerated before accumulation stops.
        max_good_features: Cap on correspondences kept after the ratio test.
        min_features_find_object: Matches a reference object needs to be
            recognized.
    """
    ratio_thresh: float = 0.5
    min_depth: float = 0.3
    max_depth: float = 6.0
    min_3d_points: int = 6
    max_distance_f2f: float = 0.5
    min_features_loop_closure: int = 100
    frames_until_loop_closure: int = 200
    no_movement_thresh: float = 0.5 / PLUGIN_NO_MOVEMENT_SCALE
    frames_no_movement: int = 50
    max_good_features: int = 1000
    min_features_find_object: int = 30

    def __post_init__(self):
        if not 0.0 < self.ratio_thresh <= 1.0:
            raise ConfigError(f"ratio_thresh must be in (0, 1], got {self.ratio_thresh}")
        if self.min_depth < 0 or self.max_depth <= self.min_depth:
            raise ConfigError(
                f"depth range must satisfy 0 <= min_depth < max_depth, "
                f"got [{self.min_depth}, {self.max_depth}]")
        if self.max_distance_f2f <= 0:
            raise ConfigError("max_distance_f2f must be positive")
        if self.no_movement_thresh < 0:
            raise ConfigError("no_movement_thresh must not be negative")
        for name in ("min_3d_points", "min_features_loop_closure", "frames_until_loop_closure",
                     "frames_no_movement", "max_good_features", "min_features_find_object"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

    @classmethod
    def from_dict(cls, values):
        """
        Build a config from a mapping of snake_case or plugin (camelCase) names.
        Unknown keys raise ConfigError.
        """
        known = {f.name: f.type for f in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            name = _PLUGIN_NAMES.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown config parameter '{key}'")
            kwargs[name] = _coerce(name, value, cls)
        return cls(**kwargs)

    @classmethod
    def from_plugin_units(cls, values):
        """
        Like from_dict, but rescales no_movement_thresh from plugin units.
        Without a threshold in values the default (already in radians) is kept.
        """
        config = cls.from_dict(values)
        if "noMovementThresh" not in values and "no_movement_thresh" not in values:
            return config
        return config.replace(no_movement_thresh=config.no_movement_thresh / PLUGIN_NO_MOVEMENT_SCALE)

    def replace(self, **changes):
        params = asdict(self)
        params.update(changes)
        return SystemConfig(**params)

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class OrbConfig:
    """ORB detector parameters, forwarded to cv2.ORB_create."""
    nfeatures: int = 3000
    scale_factor: float = 2.0
    nlevels: int = 3
    edge_threshold: int = 19
    first_level: int = 0
    wta_k: int = 2
    score_type: int = cv2.ORB_HARRIS_SCORE
    patch_size: int = 31
    fast_threshold: int = 20


def _coerce(name, value, cls):
    default = next(f.default for f in fields(cls) if f.name == name)
    try:
        return int(value) if isinstance(default, int) else float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e


def load_config(path):
    """
    Load a SystemConfig from a YAML/JSON file readable by cv2.FileStorage.
    Missing keys keep their defaults; both snake_case and plugin names work.
    """
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    if not fs.isOpened():
        raise ConfigError(f"Could not open config file '{path}'")
    try:
        values = {}
        for key in list(_PLUGIN_NAMES) + list(_PLUGIN_NAMES.values()):
            node = fs.getNode(key)
            if not node.empty():
                values[key] = node.real()
    finally:
        fs.release()
    logger.info("Loaded %d config values from %s", len(values), path)
    return SystemConfig.from_dict(values)
