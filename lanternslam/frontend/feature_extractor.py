import cv2
import numpy as np

from lanternslam.config import OrbConfig


class FeatureDetector:
    """
    Detects keypoints and binary descriptors on a grayscale image.

    detect(image) returns (keypoints, descriptors) where keypoints is a list
    of objects exposing .pt (cv2.KeyPoint) and descriptors is a uint8 matrix
    with one row per keypoint, or None when nothing was found.
    """

    def detect(self, image):
        raise NotImplementedError


class OrbFeatureDetector(FeatureDetector):
    def __init__(self, orb_config=None):
        """
        ORB detector/descriptor.

        Parameters:
          - orb_config: OrbConfig with the cv2.ORB_create parameters. The
            defaults (3000 features, 3 levels, scale factor 2) suit 640x480
            RealSense colour frames.
        """
        self.config = orb_config or OrbConfig()
        self.orb = cv2.ORB_create(
            nfeatures=self.config.nfeatures,
            scaleFactor=self.config.scale_factor,
            nlevels=self.config.nlevels,
            edgeThreshold=self.config.edge_threshold,
            firstLevel=self.config.first_level,
            WTA_K=self.config.wta_k,
            scoreType=self.config.score_type,
            patchSize=self.config.patch_size,
            fastThreshold=self.config.fast_threshold
        )

    def detect(self, image):
        """
        Detect keypoints, then compute their descriptors.

        Parameters:
          - image: a grayscale image.

        Returns:
          - keypoints: a list of cv2.KeyPoint objects.
          - descriptors: a NumPy array of descriptors (None if no keypoints).
        """
        if len(image.shape) != 2:
            raise ValueError("Input image must be grayscale")
        keypoints = self.orb.detect(image, None)
        keypoints, descriptors = self.orb.compute(image, keypoints)
        return list(keypoints), descriptors


def preprocess_image(color_image):
    """Colour frame (BGR) to the grayscale image features are detected on."""
    if color_image.ndim == 2:
        return color_image.copy()
    return cv2.cvtColor(color_image, cv2.COLOR_BGR2GRAY)


def keypoint_positions(keypoints):
    """(N, 2) float32 pixel positions of keypoints (anything with .pt, or an array)."""
    if isinstance(keypoints, np.ndarray):
        return keypoints.astype(np.float32).reshape(-1, 2)
    return np.array([kp.pt for kp in keypoints], dtype=np.float32).reshape(-1, 2)
