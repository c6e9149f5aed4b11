"""Nearest-reference face matching."""

from typing import Callable, List, Sequence

import numpy as np

from ..models.types import LabeledDescriptor, MatchEntry, MatchResult

UNKNOWN_LABEL = "unknown"
DEFAULT_THRESHOLD = 0.6

DistanceFn = Callable[[Sequence[np.ndarray], np.ndarray], np.ndarray]


def euclidean_distance(known: Sequence[np.ndarray], query: np.ndarray) -> np.ndarray:
    """Euclidean distance from ``query`` to each of ``known``."""
    if len(known) == 0:
        return np.empty((0,))
    return np.linalg.norm(np.asarray(known) - query, axis=1)


class FaceMatcher:
    """Classifies descriptors against a request's reference set.

    The distance to a labeled entry is the mean distance to its
    descriptors. A face matches the closest entry only when that distance
    is strictly below ``threshold``; otherwise it is reported as
    ``UNKNOWN_LABEL`` with the nearest distance.
    """

    def __init__(
        self,
        reference_set: List[LabeledDescriptor],
        threshold: float = DEFAULT_THRESHOLD,
        distance: DistanceFn = euclidean_distance,
    ):
        if not reference_set:
            raise ValueError("FaceMatcher requires at least one labeled descriptor")
        self.reference_set = reference_set
        self.threshold = threshold
        self.distance = distance

    def _mean_distance(self, labeled: LabeledDescriptor, descriptor: np.ndarray) -> float:
        distances = self.distance(labeled['descriptors'], descriptor)
        return float(np.mean(distances))

    def match(self, descriptor: np.ndarray) -> MatchResult:
        best_label = UNKNOWN_LABEL
        best_distance = float("inf")
        for labeled in self.reference_set:
            distance = self._mean_distance(labeled, descriptor)
            if distance <= best_distance:
                best_label, best_distance = labeled['label'], distance

        if best_distance < self.threshold:
            return {'label': best_label, 'distance': best_distance}
        return {'label': UNKNOWN_LABEL, 'distance': best_distance}


def format_confidence(distance: float) -> str:
    """``(1 - distance)`` as a percentage string, e.g. ``"62.50%"``."""
    confidence = min(100.0, max(0.0, (1 - distance) * 100))
    return f"{confidence:.2f}%"


def to_match_entry(result: MatchResult) -> MatchEntry:
    return {
        'label': result['label'],
        'distance': result['distance'],
        'confidence': format_confidence(result['distance'])
    }
