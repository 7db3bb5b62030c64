import logging
from typing import NamedTuple, Optional

from lanternslam.frontend.feature_matcher import CorrespondenceSet

logger = logging.getLogger(__name__)


class SearchResult(NamedTuple):
    """Best candidate of a search; candidate_id is None when nothing qualified."""
    candidate_id: Optional[int]
    match_count: int
    correspondences: CorrespondenceSet

    @property
    def found(self):
        return self.candidate_id is not None


NO_MATCH = SearchResult(None, 0, CorrespondenceSet())


def find_best_match(matcher, descriptors, keypoints, candidates, min_matches):
    """
    Scans candidates (anything with id, descriptors, keypoints) and returns
    the one with the most ratio-test matches.

    A candidate qualifies with at least min_matches matches; among qualifying
    candidates the strict maximum wins, so the first one seen wins ties.
    The winner's matches go through the best-N filter before being turned
    into correspondences.
    """
    best = None
    best_matches = []
    for candidate in candidates:
        good_matches = matcher.match(descriptors, candidate.descriptors)
        if len(good_matches) >= min_matches and len(good_matches) > len(best_matches):
            best = candidate
            best_matches = good_matches
    if best is None:
        return NO_MATCH
    correspondences = matcher.to_correspondences(
        matcher.best_matches(best_matches), keypoints, best.keypoints)
    return SearchResult(best.id, len(best_matches), correspondences)


class LoopClosureDetector:
    def __init__(self, keyframe_store):
        """
        Finds the stored keyframe that best matches the current frame.

        Parameters:
        - keyframe_store: KeyframeStore searched on every call.
        """
        self.keyframe_store = keyframe_store

    def detect_loop_closure(self, matcher, descriptors, keypoints, min_features):
        """
        Returns:
        - SearchResult whose candidate_id is the keyframe id, or NO_MATCH.
        """
        result = find_best_match(matcher, descriptors, keypoints,
                                 self.keyframe_store.keyframes(), min_features)
        if result.found:
            logger.debug("Loop closure candidate: keyframe %d with %d matches",
                         result.candidate_id, result.match_count)
        return result


class ObjectRecognizer:
    def __init__(self, object_store):
        """
        Same search as LoopClosureDetector, over the reference objects.
        Removing a recognized object is left to the caller, once it has
        anchored a keyframe.
        """
        self.object_store = object_store

    def find_object(self, matcher, descriptors, keypoints, min_features):
        result = find_best_match(matcher, descriptors, keypoints,
                                 self.object_store.objects(), min_features)
        if result.found:
            logger.debug("Object %d recognized with %d matches",
                         result.candidate_id, result.match_count)
        return result
