"""
Storage adapter interfaces consumed by the matching engine.

The engine never talks to a database directly. It depends on the abstract
adapters below; InMemoryStore implements all of them and is used by the
data loader, the replay script and the tests.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from swipematch.entities import (
    BehavioralProfile,
    ImplicitPreferences,
    MatchRecord,
    SwipeEvent,
    UserProfile,
    pair_key,
)
from swipematch.exceptions import ConflictError, NotFoundError
from swipematch.utils import setup_logger

logger = setup_logger(__name__)


class CandidateStore(ABC):
    """Read-only access to user profiles."""

    @abstractmethod
    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Fetch a single profile.

        Args:
            user_id: ID of the user

        Returns:
            The profile, or None if the user does not exist

        Raises:
            StorageUnavailableError: If the backend cannot be reached
        """
        raise NotImplementedError("Subclass must implement get_user_profile()")

    @abstractmethod
    def list_candidate_pool(self, excluding: Set[str]) -> List[UserProfile]:
        """
        List recommendable profiles.

        Implementations may pre-filter the pool (geography, activity), but
        must never return an id contained in `excluding`.

        Args:
            excluding: User IDs that must not appear in the result

        Returns:
            List of candidate profiles
        """
        raise NotImplementedError("Subclass must implement list_candidate_pool()")


class ProfileWriter(ABC):
    """Write access to the learned parts of a profile."""

    @abstractmethod
    def save_behavioral_profile(self, user_id: str, profile: BehavioralProfile) -> None:
        raise NotImplementedError("Subclass must implement save_behavioral_profile()")

    @abstractmethod
    def save_implicit_preferences(self, user_id: str, preferences: ImplicitPreferences) -> None:
        raise NotImplementedError("Subclass must implement save_implicit_preferences()")


class SwipeLedger(ABC):
    """Append-only store of swipe events, unique per ordered pair."""

    @abstractmethod
    def list_swipes_from(self, user_id: str) -> List[SwipeEvent]:
        """
        Snapshot of every swipe a user has made, oldest first.

        Args:
            user_id: ID of the swiping user

        Returns:
            List of SwipeEvent
        """
        raise NotImplementedError("Subclass must implement list_swipes_from()")

    @abstractmethod
    def find_swipe(self, from_user_id: str, to_user_id: str) -> Optional[SwipeEvent]:
        """
        Look up the swipe for an ordered pair.

        Returns:
            The SwipeEvent, or None if the pair has no swipe
        """
        raise NotImplementedError("Subclass must implement find_swipe()")

    @abstractmethod
    def save_swipe(self, event: SwipeEvent) -> None:
        """
        Append a swipe.

        Args:
            event: The swipe to store

        Raises:
            ConflictError: If a swipe already exists for (from, to)
            StorageUnavailableError: If the backend cannot be reached
        """
        raise NotImplementedError("Subclass must implement save_swipe()")


class MatchLedger(ABC):
    """Store of confirmed matches, unique per active unordered pair."""

    @abstractmethod
    def create_match_if_absent(
        self,
        user_a: str,
        user_b: str,
        variant_id: Optional[str] = None
    ) -> Tuple[bool, MatchRecord]:
        """
        Atomically create the active match for a pair unless one exists.

        Args:
            user_a: One user of the pair
            user_b: The other user of the pair
            variant_id: Algorithm variant credited with the match

        Returns:
            Tuple of (created, record); record is the existing active match
            when created is False

        Raises:
            ConflictError: If a concurrent writer won and the record could
                not be re-read
            StorageUnavailableError: If the backend cannot be reached
        """
        raise NotImplementedError("Subclass must implement create_match_if_absent()")

    @abstractmethod
    def get_active_match(self, user_a: str, user_b: str) -> Optional[MatchRecord]:
        raise NotImplementedError("Subclass must implement get_active_match()")

    @abstractmethod
    def get_match(self, match_id: str) -> Optional[MatchRecord]:
        raise NotImplementedError("Subclass must implement get_match()")

    @abstractmethod
    def list_matches_for(self, user_id: str) -> List[MatchRecord]:
        """All matches (active or not) that involve a user."""
        raise NotImplementedError("Subclass must implement list_matches_for()")

    @abstractmethod
    def deactivate_match(self, match_id: str) -> MatchRecord:
        """
        Mark a match inactive.

        Raises:
            NotFoundError: If the match does not exist
        """
        raise NotImplementedError("Subclass must implement deactivate_match()")


class InMemoryStore(CandidateStore, ProfileWriter, SwipeLedger, MatchLedger):
    """
    Thread-safe in-process implementation of every storage adapter.

    Uniqueness of swipes per ordered pair and of active matches per
    unordered pair is enforced under a single short-lived lock, which plays
    the role of a database unique constraint.
    """

    def __init__(self, profiles: Optional[Iterable[UserProfile]] = None):
        self._lock = threading.Lock()
        self._profiles: Dict[str, UserProfile] = {}
        self._swipes: Dict[Tuple[str, str], SwipeEvent] = {}
        self._swipes_by_user: Dict[str, List[SwipeEvent]] = {}
        self._matches: Dict[str, MatchRecord] = {}
        self._active_by_pair: Dict[Tuple[str, str], str] = {}

        for profile in profiles or []:
            self.add_profile(profile)

    # Profiles

    def add_profile(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    def list_candidate_pool(self, excluding: Set[str]) -> List[UserProfile]:
        with self._lock:
            return [p for uid, p in self._profiles.items() if uid not in excluding]

    def save_behavioral_profile(self, user_id: str, profile: BehavioralProfile) -> None:
        with self._lock:
            current = self._profiles.get(user_id)
            if current is None:
                raise NotFoundError(f"User {user_id} not found")
            current.behavioral_profile = profile

    def save_implicit_preferences(self, user_id: str, preferences: ImplicitPreferences) -> None:
        with self._lock:
            current = self._profiles.get(user_id)
            if current is None:
                raise NotFoundError(f"User {user_id} not found")
            current.implicit_preferences = preferences

    # Swipes

    def list_swipes_from(self, user_id: str) -> List[SwipeEvent]:
        with self._lock:
            return list(self._swipes_by_user.get(user_id, []))

    def find_swipe(self, from_user_id: str, to_user_id: str) -> Optional[SwipeEvent]:
        return self._swipes.get((from_user_id, to_user_id))

    def save_swipe(self, event: SwipeEvent) -> None:
        key = (event.from_user_id, event.to_user_id)
        with self._lock:
            if key in self._swipes:
                raise ConflictError(f"Swipe {key[0]} -> {key[1]} already recorded")
            self._swipes[key] = event
            self._swipes_by_user.setdefault(event.from_user_id, []).append(event)

    # Matches

    def create_match_if_absent(
        self,
        user_a: str,
        user_b: str,
        variant_id: Optional[str] = None
    ) -> Tuple[bool, MatchRecord]:
        key = pair_key(user_a, user_b)
        with self._lock:
            existing_id = self._active_by_pair.get(key)
            if existing_id is not None:
                return False, self._matches[existing_id]

            record = MatchRecord(
                match_id=str(uuid.uuid4()),
                user1_id=key[0],
                user2_id=key[1],
                created_at=datetime.now(),
                variant_id=variant_id
            )
            self._matches[record.match_id] = record
            self._active_by_pair[key] = record.match_id

        logger.debug(f"Created match {record.match_id} for pair {key}")
        return True, record

    def add_match(self, record: MatchRecord) -> None:
        """
        Insert a pre-existing match record (bulk loading).

        Raises:
            ConflictError: If the pair already has an active match
        """
        with self._lock:
            if record.active:
                if record.pair in self._active_by_pair:
                    raise ConflictError(f"Pair {record.pair} already has an active match")
                self._active_by_pair[record.pair] = record.match_id
            self._matches[record.match_id] = record

    def get_active_match(self, user_a: str, user_b: str) -> Optional[MatchRecord]:
        with self._lock:
            match_id = self._active_by_pair.get(pair_key(user_a, user_b))
            return self._matches.get(match_id) if match_id else None

    def get_match(self, match_id: str) -> Optional[MatchRecord]:
        return self._matches.get(match_id)

    def list_matches_for(self, user_id: str) -> List[MatchRecord]:
        with self._lock:
            return [m for m in self._matches.values() if m.involves(user_id)]

    def deactivate_match(self, match_id: str) -> MatchRecord:
        with self._lock:
            record = self._matches.get(match_id)
            if record is None:
                raise NotFoundError(f"Match {match_id} not found")
            if record.active:
                record = record.deactivated()
                self._matches[match_id] = record
                self._active_by_pair.pop(record.pair, None)
            return record

    # Exports

    def swipes_df(self) -> pd.DataFrame:
        """Swipe ledger as a DataFrame (one row per swipe)."""
        with self._lock:
            rows = [
                {
                    'from_user_id': s.from_user_id,
                    'to_user_id': s.to_user_id,
                    'direction': s.direction.value,
                    'created_at': s.created_at,
                    'variant_id': s.variant_id,
                }
                for s in self._swipes.values()
            ]
        return pd.DataFrame(
            rows,
            columns=['from_user_id', 'to_user_id', 'direction', 'created_at', 'variant_id']
        )

    def matches_df(self) -> pd.DataFrame:
        """Match ledger as a DataFrame (one row per match record)."""
        with self._lock:
            rows = [
                {
                    'match_id': m.match_id,
                    'user1_id': m.user1_id,
                    'user2_id': m.user2_id,
                    'created_at': m.created_at,
                    'active': m.active,
                    'variant_id': m.variant_id,
                }
                for m in self._matches.values()
            ]
        return pd.DataFrame(
            rows,
            columns=['match_id', 'user1_id', 'user2_id', 'created_at', 'active', 'variant_id']
        )

    def __len__(self) -> int:
        return len(self._profiles)

    def __repr__(self) -> str:
        return (
            f"InMemoryStore(users={len(self._profiles)}, swipes={len(self._swipes)}, "
            f"matches={len(self._matches)})"
        )
