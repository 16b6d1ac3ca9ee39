"""
High level API of the matching engine.

MatchingEngine wires the scorer, swipe processor, recommendation generator,
behavioral learner and optional variant router on top of the storage
adapters, and exposes the operations the surrounding API layer calls.
"""

from typing import Iterable, List, Optional

import pandas as pd

from swipematch.background import BackgroundTaskQueue
from swipematch.behavioral import BehavioralPreferenceLearner
from swipematch.entities import (
    CompatibilityBreakdown,
    MatchRecord,
    MatchSummary,
    Recommendation,
    SwipeMetadata,
    SwipeResult,
)
from swipematch.exceptions import NotFoundError
from swipematch.models.compatibility_scorer import CompatibilityScorer
from swipematch.models.recommendation_generator import RecommendationGenerator
from swipematch.policies import TriggerPolicy
from swipematch.storage import CandidateStore, MatchLedger, ProfileWriter, SwipeLedger
from swipematch.swipe_processor import SwipeProcessor
from swipematch.utils import Config, setup_logger
from swipematch.variants import AlgorithmVariantRouter

logger = setup_logger(__name__)


class MatchingEngine:
    """
    Facade over the matching subsystem.

    Example:
        store = InMemoryStore(profiles)
        engine = MatchingEngine(store, store, store, store)
        engine.record_swipe('alice', 'bob', 'like')
        engine.get_recommendations('alice', limit=5)
    """

    def __init__(
        self,
        candidate_store: CandidateStore,
        swipe_ledger: SwipeLedger,
        match_ledger: MatchLedger,
        profile_writer: ProfileWriter,
        config: Optional[Config] = None,
        variant_router: Optional[AlgorithmVariantRouter] = None,
        trigger_policy: Optional[TriggerPolicy] = None,
        task_queue: Optional[BackgroundTaskQueue] = None,
        scorer: Optional[CompatibilityScorer] = None
    ):
        """
        Initialize the engine.

        Args:
            candidate_store: Profile reads
            swipe_ledger: Swipe storage
            match_ledger: Match storage
            profile_writer: Writes for learned profile fields
            config: Engine settings (defaults to Config())
            variant_router: Optional A/B router for scoring weights
            trigger_policy: Overrides the policy described by config
            task_queue: Overrides the background queue built from config
            scorer: Overrides the default compatibility scorer
        """
        self.config = config if config is not None else Config()
        self.candidate_store = candidate_store
        self.match_ledger = match_ledger
        self.variant_router = variant_router

        self.scorer = scorer if scorer is not None else CompatibilityScorer()
        self._owns_queue = task_queue is None
        self.task_queue = task_queue if task_queue is not None else BackgroundTaskQueue(
            n_workers=self.config.background_workers
        )

        self.learner = BehavioralPreferenceLearner(
            candidate_store,
            swipe_ledger,
            profile_writer,
            min_likes=self.config.min_likes_for_implicit,
            confidence_weight=self.config.implicit_confidence
        )
        self.swipe_processor = SwipeProcessor(
            candidate_store,
            swipe_ledger,
            match_ledger,
            learner=self.learner,
            task_queue=self.task_queue,
            trigger_policy=trigger_policy if trigger_policy is not None else TriggerPolicy.from_config(self.config),
            variant_router=variant_router
        )
        self.recommender = RecommendationGenerator(
            candidate_store,
            swipe_ledger,
            scorer=self.scorer,
            variant_router=variant_router,
            n_workers=self.config.n_workers,
            batch_size=self.config.batch_size
        )

        logger.info(
            f"MatchingEngine initialized ({self.swipe_processor.trigger_policy}, "
            f"variants={'on' if variant_router else 'off'})"
        )

    def record_swipe(
        self,
        from_user_id: str,
        to_user_id: str,
        direction,
        metadata: Optional[SwipeMetadata] = None
    ) -> SwipeResult:
        """Record a swipe; see SwipeProcessor.record_swipe."""
        return self.swipe_processor.record_swipe(from_user_id, to_user_id, direction, metadata)

    def get_recommendations(
        self,
        user_id: str,
        limit: Optional[int] = None,
        include_breakdown: bool = False
    ) -> List[Recommendation]:
        """
        Ranked candidates for a user (empty for unknown users).

        Args:
            user_id: Viewer
            limit: Maximum results (defaults to config.default_limit)
            include_breakdown: Attach sub-scores to each entry
        """
        if limit is None:
            limit = self.config.default_limit
        return self.recommender.recommend(user_id, limit=limit, include_breakdown=include_breakdown)

    def get_compatibility_breakdown(self, user_id: str, target_user_id: str) -> CompatibilityBreakdown:
        """
        Full breakdown of how target_user_id scores from user_id's point of view.

        Raises:
            NotFoundError: If either user does not exist
        """
        viewer = self._require_profile(user_id)
        target = self._require_profile(target_user_id)
        weights = self.variant_router.weights_for(user_id) if self.variant_router else None
        return self.scorer.score(viewer, target, weights)

    def get_matches_for(self, user_id: str) -> List[MatchSummary]:
        """Active matches of a user, oldest first."""
        matches = [m for m in self.match_ledger.list_matches_for(user_id) if m.active]
        matches.sort(key=lambda m: (m.created_at, m.match_id))
        return [
            MatchSummary(
                match_id=m.match_id,
                other_user_id=m.other_user(user_id),
                created_at=m.created_at
            )
            for m in matches
        ]

    def unmatch(self, user_id: str, match_id: str) -> MatchRecord:
        """
        Deactivate one of the user's matches.

        Raises:
            NotFoundError: If the match does not exist or does not involve the user
        """
        match = self.match_ledger.get_match(match_id)
        if match is None or not match.involves(user_id):
            raise NotFoundError(f"Match {match_id} not found for user {user_id}")
        record = self.match_ledger.deactivate_match(match_id)
        logger.info(f"User {user_id} left match {match_id}")
        return record

    def refresh_implicit_preferences(self, user_ids: Iterable[str], show_progress: bool = False) -> int:
        """Scheduled sweep recomputing implicit preferences for many users."""
        return self.learner.refresh_all(user_ids, show_progress=show_progress)

    def variant_summary(self) -> pd.DataFrame:
        """
        Per-variant outcome counters.

        Raises:
            ValueError: If the engine runs without a variant router
        """
        if self.variant_router is None:
            raise ValueError("Variant routing is not enabled for this engine")
        return self.variant_router.summary()

    def wait_for_background(self) -> None:
        """Block until queued behavioral work has finished."""
        self.task_queue.join()

    def close(self) -> None:
        """Drain and stop the background queue if the engine created it."""
        if self._owns_queue:
            self.task_queue.shutdown()

    def _require_profile(self, user_id: str):
        profile = self.candidate_store.get_user_profile(user_id)
        if profile is None:
            raise NotFoundError(f"User {user_id} not found")
        return profile

    def __enter__(self) -> 'MatchingEngine':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
