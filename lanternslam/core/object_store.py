import logging
from typing import Optional

import cv2
import numpy as np

from lanternslam.core.keyframe import ReferenceObject
from lanternslam.errors import StoreIndexError
from lanternslam.frontend.feature_extractor import preprocess_image, keypoint_positions

logger = logging.getLogger(__name__)


class ObjectStore:
    """
    Reference objects available for recognition.

    Slots are indexed by a stable id. remove_object() tombstones the slot
    instead of shifting later entries, so ids held by a running search stay
    valid; removed ids are never handed out again.
    """
    def __init__(self):
        self._slots = []  # id -> ReferenceObject or None once consumed

    def add_object(self, frame, descriptors, keypoints, name) -> ReferenceObject:
        obj = ReferenceObject(len(self._slots), frame, descriptors, keypoints, name)
        self._slots.append(obj)
        logger.info("Reference object %d added (%s, %d features)", obj.id, name, len(obj.keypoints))
        return obj

    def add_from_image(self, image, name, detector) -> ReferenceObject:
        """
        Detects features on a reference image and stores it.

        :param image: BGR or grayscale image.
        :param name: Name given to keyframes this object anchors.
        :param detector: FeatureDetector used for the live frames too.
        """
        gray = preprocess_image(image)
        keypoints, descriptors = detector.detect(gray)
        return self.add_object(gray, descriptors, keypoint_positions(keypoints), name)

    def add_from_bytes(self, image_bytes, name, detector) -> Optional[ReferenceObject]:
        """
        Decodes an encoded image (JPEG, PNG, ...) and stores it as a reference object.
        Returns None if the bytes are empty or cannot be decoded.
        """
        if not image_bytes:
            logger.warning("Empty image buffer submitted for object '%s'", name)
            return None
        image = cv2.imdecode(np.frombuffer(image_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None or image.size == 0:
            logger.warning("Could not decode image submitted for object '%s'", name)
            return None
        return self.add_from_image(image, name, detector)

    def get_object(self, object_id) -> ReferenceObject:
        """
        Raises:
            StoreIndexError: if the id was never issued or the object was consumed.
        """
        if not 0 <= object_id < len(self._slots) or self._slots[object_id] is None:
            raise StoreIndexError(f"Object id {object_id} out of range")
        return self._slots[object_id]

    def remove_object(self, object_id):
        obj = self.get_object(object_id)
        self._slots[object_id] = None
        logger.info("Reference object %d (%s) consumed", object_id, obj.name)

    def objects(self):
        """Snapshot of the live objects in id order."""
        return tuple(obj for obj in self._slots if obj is not None)

    def clear(self):
        self._slots = [None] * len(self._slots)

    def __len__(self):
        return sum(1 for obj in self._slots if obj is not None)

    def __iter__(self):
        return iter(self.objects())
