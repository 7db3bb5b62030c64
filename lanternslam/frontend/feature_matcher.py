from dataclasses import dataclass, field

import cv2
import numpy as np


@dataclass
class CorrespondenceSet:
    """Index-aligned pixel positions: query_points[i] matches reference_points[i]."""
    query_points: np.ndarray = field(default_factory=lambda: np.empty((0, 2), dtype=np.float32))
    reference_points: np.ndarray = field(default_factory=lambda: np.empty((0, 2), dtype=np.float32))

    def __len__(self):
        return len(self.query_points)


class FeatureMatcher:
    def __init__(self, ratio_thresh=0.5, max_good_features=1000):
        """
        Initializes the FeatureMatcher with the specified ratio threshold.
        :param ratio_thresh: The ratio threshold for filtering ambiguous matches.
        :param max_good_features: How many of the closest matches are kept.
        """
        self.ratio_thresh = ratio_thresh
        self.max_good_features = max_good_features
        self.bf = cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=False)

    def match(self, des1, des2):
        """
        Matches descriptors between two images using the BFMatcher and applies the ratio test.
        :param des1: Query descriptors (current frame).
        :param des2: Reference descriptors (previous frame, keyframe or object).
        :return: List of good matches, in query order.
        """
        if des1 is None or des2 is None or len(des1) == 0 or len(des2) < 2:
            return []

        # Perform k-nearest neighbors matching
        knn_matches = self.bf.knnMatch(des1, des2, k=2)

        # Apply the ratio test to filter ambiguous matches
        return [
            pair[0] for pair in knn_matches
            if len(pair) >= 2 and pair[0].distance < self.ratio_thresh * pair[1].distance
        ]

    def best_matches(self, good_matches):
        """
        Keeps the max_good_features closest matches, sorted by distance.
        Equal distances keep their original order.
        """
        if self.max_good_features <= 0:
            return []
        return sorted(good_matches, key=lambda m: m.distance)[:self.max_good_features]

    @staticmethod
    def to_correspondences(matches, kp1, kp2):
        """
        Pixel positions of matched keypoints.
        :param kp1: (N, 2) query keypoint positions.
        :param kp2: (M, 2) reference keypoint positions.
        """
        if not matches:
            return CorrespondenceSet()
        kp1 = np.asarray(kp1, dtype=np.float32).reshape(-1, 2)
        kp2 = np.asarray(kp2, dtype=np.float32).reshape(-1, 2)
        query_idx = np.array([m.queryIdx for m in matches])
        train_idx = np.array([m.trainIdx for m in matches])
        return CorrespondenceSet(kp1[query_idx], kp2[train_idx])

    def match_points(self, des1, kp1, des2, kp2):
        """Ratio test, best-N selection, then pixel correspondences."""
        return self.to_correspondences(self.best_matches(self.match(des1, des2)), kp1, kp2)
