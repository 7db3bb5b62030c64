class TrackingError(Exception):
    """Base class for every error raised by the tracking core."""


class AcquisitionFailure(TrackingError):
    """A frame set was missing, incomplete, or the device timed out."""


class EstimationFailure(TrackingError):
    """Not enough valid correspondences, or the pose solver did not converge."""


class ConsistencyRejection(TrackingError):
    """The relative pose jumped further than max_distance_f2f from the previous one."""


class StoreIndexError(TrackingError, IndexError):
    """Unknown or removed keyframe/object id."""


class ConfigError(TrackingError, ValueError):
    """Invalid configuration value."""
