"""
Multi-factor compatibility scoring between a viewer and a candidate.

The overall score is a weighted sum of four sub-scores in [0, 1]:
- Interest: Jaccard similarity of interest sets
- Demographic: candidate checked against the viewer's age/gender preferences
- Location: haversine distance normalised by the viewer's max distance
- Behavioral: fixed neutral value (reserved slot)

Missing data never raises; it degrades to a neutral 0.5 sub-score.
"""

import math
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence

import numpy as np
from sklearn.preprocessing import MultiLabelBinarizer

from swipematch.entities import CompatibilityBreakdown, Location, UserProfile
from swipematch.utils import setup_logger

logger = setup_logger(__name__)

EARTH_RADIUS_KM = 6371.0
NEUTRAL_SCORE = 0.5
WEIGHT_TOLERANCE = 1e-6
DEFAULT_MAX_DISTANCE = 100.0


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the four sub-scores; must be non-negative and sum to 1."""

    interest: float = 0.4
    demographic: float = 0.3
    location: float = 0.2
    behavioral: float = 0.1

    def __post_init__(self):
        values = [self.interest, self.demographic, self.location, self.behavioral]
        if any(v < 0 for v in values):
            raise ValueError(f"Scoring weights must be non-negative: {self}")
        if abs(sum(values) - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Scoring weights must sum to 1.0, got {sum(values):.6f}")

    def combine(self, interest, demographic, location, behavioral):
        """Weighted sum; works on floats and numpy arrays alike."""
        return (
            interest * self.interest
            + demographic * self.demographic
            + location * self.location
            + behavioral * self.behavioral
        )


DEFAULT_WEIGHTS = ScoringWeights()


def haversine_distance(a: Location, b: Location) -> float:
    """Great-circle distance in kilometers."""
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude)) * math.cos(math.radians(b.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def interest_score(viewer_interests: FrozenSet[str], candidate_interests: FrozenSet[str]) -> float:
    """Jaccard similarity; 0.5 when neither side has interests."""
    union = viewer_interests | candidate_interests
    if not union:
        return NEUTRAL_SCORE
    return len(viewer_interests & candidate_interests) / len(union)


def demographic_score(viewer: UserProfile, candidate: UserProfile) -> float:
    """
    Apply the viewer's demographic preferences to the candidate.

    Not symmetric: demographic_score(a, b) uses a's preferences only.
    """
    prefs = viewer.demographic_preferences
    score = 0.0
    if candidate.age is not None and prefs.age_min <= candidate.age <= prefs.age_max:
        score += 0.5
    if prefs.gender_preference == 'any' or prefs.gender_preference == candidate.gender:
        score += 0.5
    return min(1.0, max(0.0, score))


def effective_max_distance(viewer: UserProfile) -> float:
    """Viewer's max distance; an unset (non-positive) value falls back to 100 km."""
    return viewer.max_distance if viewer.max_distance > 0 else DEFAULT_MAX_DISTANCE


def location_score(viewer: UserProfile, candidate: UserProfile) -> float:
    """1 at zero distance, falling linearly to 0 at the viewer's max distance."""
    if viewer.location is None or candidate.location is None:
        return NEUTRAL_SCORE
    distance = haversine_distance(viewer.location, candidate.location)
    return min(1.0, max(0.0, 1.0 - distance / effective_max_distance(viewer)))


def behavioral_score(viewer: UserProfile, candidate: UserProfile) -> float:
    return NEUTRAL_SCORE


class CompatibilityScorer:
    """
    Pure scorer for viewer/candidate pairs.

    Args:
        weights: Default weights used when a call does not pass its own
    """

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights if weights is not None else DEFAULT_WEIGHTS

    def score(
        self,
        viewer: UserProfile,
        candidate: UserProfile,
        weights: Optional[ScoringWeights] = None
    ) -> CompatibilityBreakdown:
        """
        Score one candidate for a viewer.

        Args:
            viewer: Profile whose preferences are applied
            candidate: Profile being evaluated
            weights: Optional weights overriding the scorer default

        Returns:
            CompatibilityBreakdown with all sub-scores and the overall score
        """
        weights = weights if weights is not None else self.weights

        interest = interest_score(viewer.interests, candidate.interests)
        demographic = demographic_score(viewer, candidate)
        location = location_score(viewer, candidate)
        behavioral = behavioral_score(viewer, candidate)

        return CompatibilityBreakdown(
            interest_score=interest,
            demographic_score=demographic,
            location_score=location,
            behavioral_score=behavioral,
            overall_score=weights.combine(interest, demographic, location, behavioral),
            common_interests=viewer.interests & candidate.interests
        )

    def score_many(
        self,
        viewer: UserProfile,
        candidates: Sequence[UserProfile],
        weights: Optional[ScoringWeights] = None
    ) -> List[CompatibilityBreakdown]:
        """
        Score a batch of candidates with vectorised sub-score computation.

        Produces the same values as calling score() per candidate, in the
        same order as `candidates`.
        """
        if not candidates:
            return []

        weights = weights if weights is not None else self.weights

        interest = self._interest_scores(viewer, candidates)
        demographic = self._demographic_scores(viewer, candidates)
        location = self._location_scores(viewer, candidates)
        behavioral = np.full(len(candidates), NEUTRAL_SCORE)
        overall = weights.combine(interest, demographic, location, behavioral)

        return [
            CompatibilityBreakdown(
                interest_score=float(interest[i]),
                demographic_score=float(demographic[i]),
                location_score=float(location[i]),
                behavioral_score=float(behavioral[i]),
                overall_score=float(overall[i]),
                common_interests=viewer.interests & candidate.interests
            )
            for i, candidate in enumerate(candidates)
        ]

    def _interest_scores(self, viewer: UserProfile, candidates: Sequence[UserProfile]) -> np.ndarray:
        """Jaccard similarity for every candidate via a sparse interest matrix."""
        n = len(candidates)
        binarizer = MultiLabelBinarizer(sparse_output=True)
        binarizer.fit([sorted(viewer.interests)] + [sorted(c.interests) for c in candidates])

        if len(binarizer.classes_) == 0:
            return np.full(n, NEUTRAL_SCORE)

        candidate_matrix = binarizer.transform([sorted(c.interests) for c in candidates])
        viewer_vector = binarizer.transform([sorted(viewer.interests)])

        intersection = np.asarray(candidate_matrix @ viewer_vector.T.toarray()).ravel()
        candidate_sizes = np.asarray(candidate_matrix.sum(axis=1)).ravel()
        union = candidate_sizes + len(viewer.interests) - intersection

        scores = np.full(n, NEUTRAL_SCORE)
        nonempty = union > 0
        scores[nonempty] = intersection[nonempty] / union[nonempty]
        return scores

    def _demographic_scores(self, viewer: UserProfile, candidates: Sequence[UserProfile]) -> np.ndarray:
        prefs = viewer.demographic_preferences
        ages = np.array(
            [c.age if c.age is not None else np.nan for c in candidates],
            dtype=float
        )
        with np.errstate(invalid='ignore'):
            in_range = (ages >= prefs.age_min) & (ages <= prefs.age_max)

        if prefs.gender_preference == 'any':
            gender_ok = np.ones(len(candidates), dtype=bool)
        else:
            gender_ok = np.array([c.gender == prefs.gender_preference for c in candidates])

        scores = np.where(in_range, 0.5, 0.0) + np.where(gender_ok, 0.5, 0.0)
        return np.clip(scores, 0.0, 1.0)

    def _location_scores(self, viewer: UserProfile, candidates: Sequence[UserProfile]) -> np.ndarray:
        n = len(candidates)
        if viewer.location is None:
            return np.full(n, NEUTRAL_SCORE)

        has_location = np.array([c.location is not None for c in candidates])
        if not has_location.any():
            return np.full(n, NEUTRAL_SCORE)

        lat = np.array([c.location.latitude if c.location else 0.0 for c in candidates])
        lon = np.array([c.location.longitude if c.location else 0.0 for c in candidates])

        viewer_lat = np.radians(viewer.location.latitude)
        d_lat = np.radians(lat - viewer.location.latitude)
        d_lon = np.radians(lon - viewer.location.longitude)
        h = (
            np.sin(d_lat / 2) ** 2
            + np.cos(viewer_lat) * np.cos(np.radians(lat)) * np.sin(d_lon / 2) ** 2
        )
        distance = 2 * EARTH_RADIUS_KM * np.arctan2(np.sqrt(h), np.sqrt(1 - h))

        scores = np.clip(1.0 - distance / effective_max_distance(viewer), 0.0, 1.0)

        return np.where(has_location, scores, NEUTRAL_SCORE)

    def __repr__(self) -> str:
        return f"CompatibilityScorer(weights={self.weights})"
