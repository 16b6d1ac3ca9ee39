"""
Swipe recording and mutual-match detection.

Recording a swipe and creating the resulting match happen under a lock keyed
by the unordered user pair, so two users liking each other at the same
moment still produce exactly one match, while swipes on different pairs
never wait on each other. The match ledger's create-if-absent primitive is
the final guard against duplicates across processes.
"""

from datetime import datetime
from typing import Callable, Optional, Tuple

from swipematch.background import BackgroundTaskQueue
from swipematch.behavioral import BehavioralPreferenceLearner
from swipematch.entities import (
    Direction,
    MatchRecord,
    SwipeEvent,
    SwipeMetadata,
    SwipeResult,
    pair_key,
)
from swipematch.exceptions import ConflictError, InvalidOperationError, NotFoundError
from swipematch.policies import TriggerPolicy
from swipematch.storage import CandidateStore, MatchLedger, SwipeLedger
from swipematch.utils import KeyedLocks, setup_logger
from swipematch.variants import AlgorithmVariantRouter

logger = setup_logger(__name__)


class SwipeProcessor:
    """
    Records swipes and creates matches exactly once per pair.

    Args:
        candidate_store: Used to reject swipes involving unknown users
        swipe_ledger: Swipe storage
        match_ledger: Match storage
        learner: Behavioral learner fed from the background queue
        task_queue: Queue for behavioral work (created if a learner is given
            without one)
        trigger_policy: Decides when a like triggers an implicit preference
            recomputation (defaults to 20% sampling)
        variant_router: Tags swipes/matches with the swiper's variant and
            records per-variant outcomes
        clock: Timestamp source for new swipes
    """

    def __init__(
        self,
        candidate_store: CandidateStore,
        swipe_ledger: SwipeLedger,
        match_ledger: MatchLedger,
        learner: Optional[BehavioralPreferenceLearner] = None,
        task_queue: Optional[BackgroundTaskQueue] = None,
        trigger_policy: Optional[TriggerPolicy] = None,
        variant_router: Optional[AlgorithmVariantRouter] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.candidate_store = candidate_store
        self.swipe_ledger = swipe_ledger
        self.match_ledger = match_ledger
        self.learner = learner
        self.trigger_policy = trigger_policy if trigger_policy is not None else TriggerPolicy.probabilistic()
        self.variant_router = variant_router
        self.clock = clock

        if learner is not None and task_queue is None:
            task_queue = BackgroundTaskQueue(n_workers=1)
        self.task_queue = task_queue

        self._pair_locks = KeyedLocks()

    def record_swipe(
        self,
        from_user_id: str,
        to_user_id: str,
        direction,
        metadata: Optional[SwipeMetadata] = None
    ) -> SwipeResult:
        """
        Record a swipe and report whether it completes a mutual match.

        Re-recording an existing (from, to) swipe is a no-op: the stored swipe
        stays authoritative and the current match state is reported.

        Args:
            from_user_id: User who swiped
            to_user_id: User who was swiped on
            direction: 'like' / 'dislike' or a Direction
            metadata: Optional client timing, forwarded to the learner

        Returns:
            SwipeResult(matched, match_id)

        Raises:
            InvalidOperationError: Self-swipe or malformed direction
            NotFoundError: Either user does not exist
            StorageUnavailableError: Swipe or match write failed
        """
        direction = Direction.parse(direction)
        if from_user_id == to_user_id:
            raise InvalidOperationError(f"User {from_user_id} cannot swipe on themselves")

        for user_id in (from_user_id, to_user_id):
            if self.candidate_store.get_user_profile(user_id) is None:
                raise NotFoundError(f"User {user_id} not found")

        variant_id = self.variant_router.assign_variant(from_user_id) if self.variant_router else None

        with self._pair_locks.hold(pair_key(from_user_id, to_user_id)):
            event, is_new = self._save_swipe(
                SwipeEvent(
                    from_user_id=from_user_id,
                    to_user_id=to_user_id,
                    direction=direction,
                    created_at=self.clock(),
                    metadata=metadata,
                    variant_id=variant_id
                )
            )

            match: Optional[MatchRecord] = None
            created = False
            if event.is_like:
                reverse = self.swipe_ledger.find_swipe(to_user_id, from_user_id)
                # A replayed like must not revive a pair that unmatched
                if reverse is not None and reverse.is_like and (
                    is_new or not self._was_unmatched(from_user_id, to_user_id)
                ):
                    created, match = self._create_match(from_user_id, to_user_id, event.variant_id)

        if is_new:
            self._after_new_swipe(event, match if created else None)

        if match is not None:
            return SwipeResult(matched=True, match_id=match.match_id)
        return SwipeResult(matched=False)

    def _save_swipe(self, event: SwipeEvent) -> Tuple[SwipeEvent, bool]:
        try:
            self.swipe_ledger.save_swipe(event)
        except ConflictError:
            existing = self.swipe_ledger.find_swipe(event.from_user_id, event.to_user_id)
            if existing is None:
                raise
            logger.debug(
                f"Duplicate swipe {event.from_user_id} -> {event.to_user_id} ignored "
                f"(stored direction: {existing.direction.value})"
            )
            return existing, False

        logger.debug(f"Recorded swipe {event.from_user_id} -> {event.to_user_id} ({event.direction.value})")
        return event, True

    def _create_match(
        self,
        user_a: str,
        user_b: str,
        variant_id: Optional[str]
    ) -> Tuple[bool, MatchRecord]:
        try:
            created, match = self.match_ledger.create_match_if_absent(user_a, user_b, variant_id)
        except ConflictError:
            # Another writer created the match first
            match = self.match_ledger.get_active_match(user_a, user_b)
            if match is None:
                raise
            created = False

        if created:
            logger.info(f"New match {match.match_id} between {match.user1_id} and {match.user2_id}")
        return created, match

    def _was_unmatched(self, user_a: str, user_b: str) -> bool:
        pair = pair_key(user_a, user_b)
        return any(
            m.pair == pair and not m.active
            for m in self.match_ledger.list_matches_for(user_a)
        )

    def _after_new_swipe(self, event: SwipeEvent, new_match: Optional[MatchRecord]) -> None:
        if self.variant_router is not None and event.is_like and event.variant_id is not None:
            self.variant_router.record_outcome(
                event.variant_id,
                new_match.match_id if new_match else None,
                success=new_match is not None
            )

        if self.learner is None:
            return

        if event.metadata is not None:
            self.task_queue.submit(
                'behavioral-ingest',
                self.learner.ingest,
                event.from_user_id,
                event.to_user_id,
                event.direction,
                event.metadata
            )

        if event.is_like and self.trigger_policy.should_trigger(event.from_user_id):
            self.task_queue.submit(
                'implicit-preferences',
                self.learner.update_implicit_preferences,
                event.from_user_id
            )
