import logging

import cv2
import numpy as np

from lanternslam.core.keyframe import KeyFrame, as_descriptors
from lanternslam.errors import StoreIndexError

logger = logging.getLogger(__name__)


class KeyframeStore:
    """
    Ordered, append-only collection of keyframes.

    Ids come from a counter owned by the store: they increase monotonically
    and are never reused, not even after clear(). Only the tracking thread
    mutates the store, between steps; search threads iterate over it during
    a step.
    """
    def __init__(self):
        """ Initialize an empty store."""
        self._keyframes = []  # In insertion (= id) order
        self._index = {}  # keyframe_id -> position in _keyframes
        self.next_keyframe_id = 0

    def add_keyframe(self, frame, descriptors, keypoints, world_rotation, world_translation,
                     image_name, relative_rotation, relative_translation):
        """
        Creates a keyframe with the next id and appends it.

        Returns:
            The new KeyFrame.
        """
        keyframe = KeyFrame(self.next_keyframe_id, frame, descriptors, keypoints,
                            world_rotation, world_translation, image_name,
                            relative_rotation, relative_translation)
        self._append(keyframe)
        self.next_keyframe_id += 1
        logger.info("Keyframe %d added (%s)", keyframe.id, image_name)
        return keyframe

    def _append(self, keyframe):
        self._index[keyframe.id] = len(self._keyframes)
        self._keyframes.append(keyframe)

    def get_keyframe(self, keyframe_id) -> KeyFrame:
        """
        Retrieves a keyframe by its ID.

        Raises:
            StoreIndexError: if no keyframe has that id.
        """
        position = self._index.get(keyframe_id)
        if position is None:
            raise StoreIndexError(f"Keyframe id {keyframe_id} out of range")
        return self._keyframes[position]

    def get_last_keyframe(self):
        return self._keyframes[-1] if self._keyframes else None

    def keyframes(self):
        """Snapshot of the stored keyframes in insertion order."""
        return tuple(self._keyframes)

    def clear(self):
        self._keyframes = []
        self._index = {}

    def __len__(self):
        return len(self._keyframes)

    def __iter__(self):
        return iter(self.keyframes())

    def save(self, filename):
        """
        Writes every keyframe to a cv2.FileStorage file (YAML, XML or JSON by
        extension) as a top-level "Keyframes" sequence.
        """
        fs = cv2.FileStorage(str(filename), cv2.FILE_STORAGE_WRITE)
        if not fs.isOpened():
            raise IOError(f"Could not open '{filename}' for writing")
        try:
            fs.startWriteStruct("Keyframes", cv2.FileNode_SEQ)
            for keyframe in self._keyframes:
                _write_keyframe(fs, keyframe)
            fs.endWriteStruct()
        finally:
            fs.release()
        logger.info("Saved %d keyframes to %s", len(self._keyframes), filename)

    def load(self, filename):
        """
        Replaces the store's contents with the keyframes in a file written by
        save(). The id counter moves past the largest loaded id.
        """
        fs = cv2.FileStorage(str(filename), cv2.FILE_STORAGE_READ)
        if not fs.isOpened():
            raise IOError(f"Could not open '{filename}' for reading")
        try:
            node = fs.getNode("Keyframes")
            loaded = [_read_keyframe(node.at(i)) for i in range(node.size())]
        finally:
            fs.release()

        self.clear()
        for keyframe in loaded:
            self._append(keyframe)
        if loaded:
            self.next_keyframe_id = max(self.next_keyframe_id, max(kf.id for kf in loaded) + 1)
        logger.info("Loaded %d keyframes from %s", len(loaded), filename)


def _write_matrix(fs, name, matrix):
    # Empty matrices are left out; the reader restores them.
    if matrix.size:
        fs.write(name, np.ascontiguousarray(matrix))


def _write_keyframe(fs, keyframe):
    fs.startWriteStruct("", cv2.FileNode_MAP)
    fs.write("id", int(keyframe.id))
    _write_matrix(fs, "frame", keyframe.frame)
    _write_matrix(fs, "descriptors", keyframe.descriptors)
    fs.startWriteStruct("keypoints", cv2.FileNode_SEQ)
    for x, y in keyframe.keypoints:
        fs.startWriteStruct("", cv2.FileNode_MAP | cv2.FileNode_FLOW)
        fs.write("x", float(x))
        fs.write("y", float(y))
        fs.endWriteStruct()
    fs.endWriteStruct()
    fs.write("worldTranslation", keyframe.world_translation.reshape(3, 1))
    fs.write("worldRot", keyframe.world_rotation)
    fs.write("imageName", keyframe.image_name)
    fs.write("relativeTrans", keyframe.relative_translation.reshape(3, 1))
    fs.write("relativeRot", keyframe.relative_rotation)
    fs.endWriteStruct()


def _read_matrix(node, name):
    child = node.getNode(name)
    if child.empty():
        return None
    return child.mat()


def _read_keyframe(node):
    keypoints_node = node.getNode("keypoints")
    keypoints = [
        (keypoints_node.at(i).getNode("x").real(), keypoints_node.at(i).getNode("y").real())
        for i in range(keypoints_node.size())
    ]
    frame = _read_matrix(node, "frame")
    return KeyFrame(
        id=int(node.getNode("id").real()),
        frame=frame if frame is not None else np.empty((0, 0), dtype=np.uint8),
        descriptors=as_descriptors(_read_matrix(node, "descriptors")),
        keypoints=np.array(keypoints, dtype=np.float32).reshape(-1, 2),
        world_rotation=_read_matrix(node, "worldRot"),
        world_translation=_read_matrix(node, "worldTranslation"),
        image_name=node.getNode("imageName").string(),
        relative_rotation=_read_matrix(node, "relativeRot"),
        relative_translation=_read_matrix(node, "relativeTrans"),
    )
