"""
Behavioral preference learning from swipe activity.

Two entry points:
- ingest(): cheap, per-swipe update of the running behavioral statistics
- update_implicit_preferences(): heavier recomputation of inferred age and
  interest preferences from the full like history

Both are best-effort. They run off the swipe response path and a storage
failure only costs the update, never the swipe.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

import pandas as pd
from tqdm import tqdm

from swipematch.entities import (
    AgeRange,
    BehavioralProfile,
    Direction,
    ImplicitPreferences,
    SwipeMetadata,
    liked_targets,
)
from swipematch.exceptions import NotFoundError, StorageUnavailableError
from swipematch.storage import CandidateStore, ProfileWriter, SwipeLedger
from swipematch.utils import KeyedLocks, setup_logger

logger = setup_logger(__name__)


class BehavioralPreferenceLearner:
    """
    Learns behavioral statistics and implicit preferences for users.

    Args:
        candidate_store: Reads the user's and liked candidates' profiles
        swipe_ledger: Reads the user's swipe history
        profile_writer: Persists the learned fields
        min_likes: Likes required before implicit preferences are inferred
        confidence_weight: Confidence attached to inferred age preferences
        clock: Returns the current local time (used for active hours)
    """

    def __init__(
        self,
        candidate_store: CandidateStore,
        swipe_ledger: SwipeLedger,
        profile_writer: ProfileWriter,
        min_likes: int = 5,
        confidence_weight: float = 0.7,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.candidate_store = candidate_store
        self.swipe_ledger = swipe_ledger
        self.profile_writer = profile_writer
        self.min_likes = min_likes
        self.confidence_weight = confidence_weight
        self.clock = clock
        self._user_locks = KeyedLocks()

    def ingest(
        self,
        user_id: str,
        target_user_id: str,
        direction: Direction,
        metadata: SwipeMetadata
    ) -> Optional[BehavioralProfile]:
        """
        Fold one swipe into the user's behavioral profile.

        Args:
            user_id: User who swiped
            target_user_id: User who was swiped on
            direction: Swipe direction
            metadata: Client timing for the swipe

        Returns:
            The updated profile, or None if the update was dropped
        """
        direction = Direction.parse(direction)

        with self._user_locks.hold(user_id):
            try:
                user = self.candidate_store.get_user_profile(user_id)
                if user is None:
                    logger.debug(f"Dropping behavioral update for unknown user {user_id}")
                    return None

                updated = self._apply_swipe(user.behavioral_profile, direction, metadata)
                self.profile_writer.save_behavioral_profile(user_id, updated)
            except (StorageUnavailableError, NotFoundError) as e:
                logger.warning(
                    f"Behavioral update for {user_id} -> {target_user_id} dropped: {e}"
                )
                return None

        return updated

    def _apply_swipe(
        self,
        current: BehavioralProfile,
        direction: Direction,
        metadata: SwipeMetadata
    ) -> BehavioralProfile:
        count = current.swipe_count
        new_average = (current.average_swipe_time * count + metadata.swipe_time_ms) / (count + 1)

        active_hours = list(current.active_hours)
        active_hours[self.clock().hour] += 1

        return replace(
            current,
            average_swipe_time=new_average,
            swipe_count=count + 1,
            like_count=current.like_count + (1 if direction == Direction.LIKE else 0),
            dislike_count=current.dislike_count + (1 if direction == Direction.DISLIKE else 0),
            active_hours=active_hours,
            last_profile_view_duration=metadata.profile_view_duration_ms
        )

    def update_implicit_preferences(self, user_id: str) -> Optional[ImplicitPreferences]:
        """
        Recompute a user's implicit preferences from their like history.

        Reads a snapshot of the swipe ledger; swipes recorded while this runs
        are picked up by the next recomputation.

        Args:
            user_id: User to recompute

        Returns:
            The saved preferences, or None when skipped (fewer than
            min_likes likes, no liked ages, or unknown user)
        """
        liked_ids = liked_targets(self.swipe_ledger.list_swipes_from(user_id))
        if len(liked_ids) < self.min_likes:
            logger.debug(
                f"User {user_id} has {len(liked_ids)} likes (< {self.min_likes}), "
                "skipping implicit preferences"
            )
            return None

        liked_profiles = [
            p for p in (self.candidate_store.get_user_profile(uid) for uid in liked_ids)
            if p is not None
        ]
        liked = pd.DataFrame({
            'age': [p.age for p in liked_profiles],
            'interests': [sorted(p.interests) for p in liked_profiles],
        })

        ages = pd.to_numeric(liked['age'], errors='coerce').dropna()
        if ages.empty:
            logger.debug(f"No ages among liked profiles of {user_id}, skipping")
            return None

        interest_counts = liked['interests'].explode().dropna().value_counts()

        user = self.candidate_store.get_user_profile(user_id)
        if user is None:
            return None

        preferences = replace(
            user.implicit_preferences,
            age_range=AgeRange(
                min=float(ages.min()),
                max=float(ages.max()),
                avg=float(ages.mean()),
                confidence_weight=self.confidence_weight
            ),
            interest_weights={str(k): int(v) for k, v in interest_counts.items()}
        )
        self.profile_writer.save_implicit_preferences(user_id, preferences)

        logger.info(
            f"Implicit preferences updated for {user_id}: ages "
            f"{preferences.age_range.min:.0f}-{preferences.age_range.max:.0f}, "
            f"{len(preferences.interest_weights)} interests from {len(liked_ids)} likes"
        )

        return preferences

    def refresh_all(self, user_ids: Iterable[str], show_progress: bool = False) -> int:
        """
        Recompute implicit preferences for many users (scheduled sweep).

        Per-user failures are logged and skipped.

        Returns:
            Number of users whose preferences were updated
        """
        updated = 0
        for user_id in tqdm(list(user_ids), desc="Refreshing implicit preferences", disable=not show_progress):
            try:
                if self.update_implicit_preferences(user_id) is not None:
                    updated += 1
            except Exception as e:
                logger.warning(f"Implicit preference refresh failed for {user_id}: {e}")

        logger.info(f"Implicit preference sweep complete: {updated} users updated")
        return updated
