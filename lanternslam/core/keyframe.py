import numpy as np
from dataclasses import dataclass


DESCRIPTOR_SIZE = 32


def as_descriptors(descriptors):
    """ORB descriptors as a uint8 matrix; None (no features) becomes an empty one."""
    if descriptors is None:
        return np.empty((0, DESCRIPTOR_SIZE), dtype=np.uint8)
    return np.asarray(descriptors)


def _frozen_array(value, dtype=None, shape=None):
    array = np.array(value, dtype=dtype, copy=True)
    if shape is not None:
        array = array.reshape(shape)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class KeyFrame:
    """
    A keyframe stores:
    - The grayscale image it was captured from
    - Filtered ORB descriptors and their 2D keypoint positions
    - World pose (rotation, translation) at capture time
    - Where it came from ("First Frame", "By Hand" or a recognized object's name)
    - The relative pose used to anchor it

    Keyframes are immutable: every array is copied and marked read-only.
    """
    id: int
    frame: np.ndarray
    descriptors: np.ndarray
    keypoints: np.ndarray
    world_rotation: np.ndarray
    world_translation: np.ndarray
    image_name: str
    relative_rotation: np.ndarray
    relative_translation: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "frame", _frozen_array(self.frame))
        object.__setattr__(self, "descriptors", _frozen_array(as_descriptors(self.descriptors)))
        object.__setattr__(self, "keypoints", _frozen_array(self.keypoints, np.float32, (-1, 2)))
        object.__setattr__(self, "world_rotation", _frozen_array(self.world_rotation, np.float64, (3, 3)))
        object.__setattr__(self, "world_translation", _frozen_array(self.world_translation, np.float64, (3,)))
        object.__setattr__(self, "relative_rotation", _frozen_array(self.relative_rotation, np.float64, (3, 3)))
        object.__setattr__(self, "relative_translation", _frozen_array(self.relative_translation, np.float64, (3,)))


@dataclass(frozen=True, eq=False)
class ReferenceObject:
    """
    A reference image of a physical object. Recognizing it in the live view
    anchors a new keyframe named after the object.
    """
    id: int
    frame: np.ndarray
    descriptors: np.ndarray
    keypoints: np.ndarray
    name: str

    def __post_init__(self):
        object.__setattr__(self, "frame", _frozen_array(self.frame))
        object.__setattr__(self, "descriptors", _frozen_array(as_descriptors(self.descriptors)))
        object.__setattr__(self, "keypoints", _frozen_array(self.keypoints, np.float32, (-1, 2)))
