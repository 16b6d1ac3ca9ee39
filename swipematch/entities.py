"""
Value types shared by the matching engine.

Profiles, swipes and matches are plain dataclasses. Behavioral and implicit
preference data live in explicit structs with defaults rather than free-form
dictionaries, so every consumer sees the same fields.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from swipematch.exceptions import InvalidOperationError

HOURS_PER_DAY = 24


class Direction(str, Enum):
    """Direction of a swipe."""

    LIKE = 'like'
    DISLIKE = 'dislike'

    @classmethod
    def parse(cls, value) -> 'Direction':
        """
        Coerce a string or Direction into a Direction.

        Raises:
            InvalidOperationError: If value is not 'like' or 'dislike'
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidOperationError(f"Malformed swipe direction: {value!r}")


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class DemographicPreferences:
    """Explicit preferences a user applies to candidates."""

    age_min: int = 18
    age_max: int = 99
    gender_preference: str = 'any'


@dataclass
class BehavioralProfile:
    """Running statistics about how a user swipes."""

    average_swipe_time: float = 0.0
    swipe_count: int = 0
    like_count: int = 0
    dislike_count: int = 0
    active_hours: List[int] = field(default_factory=lambda: [0] * HOURS_PER_DAY)
    last_profile_view_duration: float = 0.0

    @property
    def swipe_ratio(self) -> float:
        """Fraction of swipes that were likes (0 when there are none)."""
        total = self.like_count + self.dislike_count
        return self.like_count / total if total > 0 else 0.0


@dataclass(frozen=True)
class AgeRange:
    min: float
    max: float
    avg: float
    confidence_weight: float


@dataclass
class ImplicitPreferences:
    """Preferences inferred from a user's like history."""

    age_range: Optional[AgeRange] = None
    interest_weights: Dict[str, int] = field(default_factory=dict)


@dataclass
class UserProfile:
    """Read-only view of a user as seen by the engine."""

    user_id: str
    age: Optional[int] = None
    gender: Optional[str] = None
    interests: FrozenSet[str] = frozenset()
    demographic_preferences: DemographicPreferences = field(default_factory=DemographicPreferences)
    location: Optional[Location] = None
    max_distance: float = 100.0
    behavioral_profile: BehavioralProfile = field(default_factory=BehavioralProfile)
    implicit_preferences: ImplicitPreferences = field(default_factory=ImplicitPreferences)

    def __post_init__(self):
        if not isinstance(self.interests, frozenset):
            self.interests = frozenset(self.interests)


@dataclass(frozen=True)
class SwipeMetadata:
    """Client-side timing captured alongside a swipe."""

    swipe_time_ms: float
    profile_view_duration_ms: float
    viewed_sections: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if not isinstance(self.viewed_sections, frozenset):
            object.__setattr__(self, 'viewed_sections', frozenset(self.viewed_sections))


@dataclass(frozen=True)
class SwipeEvent:
    from_user_id: str
    to_user_id: str
    direction: Direction
    created_at: datetime
    metadata: Optional[SwipeMetadata] = None
    variant_id: Optional[str] = None

    @property
    def is_like(self) -> bool:
        return self.direction == Direction.LIKE


def pair_key(user_a: str, user_b: str) -> Tuple[str, str]:
    """Canonical (sorted) key for an unordered user pair."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


@dataclass
class MatchRecord:
    """Confirmed mutual like; user ids are stored in canonical order."""

    match_id: str
    user1_id: str
    user2_id: str
    created_at: datetime
    active: bool = True
    variant_id: Optional[str] = None

    def __post_init__(self):
        self.user1_id, self.user2_id = pair_key(self.user1_id, self.user2_id)

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.user1_id, self.user2_id)

    def involves(self, user_id: str) -> bool:
        return user_id in self.pair

    def other_user(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def deactivated(self) -> 'MatchRecord':
        return replace(self, active=False)


@dataclass(frozen=True)
class CompatibilityBreakdown:
    interest_score: float
    demographic_score: float
    location_score: float
    behavioral_score: float
    overall_score: float
    common_interests: FrozenSet[str]


@dataclass(frozen=True)
class SwipeResult:
    matched: bool
    match_id: Optional[str] = None


@dataclass(frozen=True)
class Recommendation:
    candidate_id: str
    overall_score: float
    common_interests: FrozenSet[str]
    breakdown: Optional[CompatibilityBreakdown] = None


@dataclass(frozen=True)
class MatchSummary:
    match_id: str
    other_user_id: str
    created_at: datetime


def liked_targets(swipes: Iterable[SwipeEvent]) -> List[str]:
    """Target ids of the like-direction swipes in a history."""
    return [swipe.to_user_id for swipe in swipes if swipe.is_like]
