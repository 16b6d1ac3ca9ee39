"""
Ranked candidate recommendations built on the compatibility scorer.

Candidates the viewer has already swiped (and the viewer itself) are
excluded, the remaining pool is scored in batches and the result is sorted by
overall score, with ties broken by candidate id so output is reproducible.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from swipematch.entities import CompatibilityBreakdown, Recommendation, UserProfile
from swipematch.exceptions import NotFoundError
from swipematch.models.base_recommender import BaseRecommender
from swipematch.models.compatibility_scorer import CompatibilityScorer, ScoringWeights
from swipematch.storage import CandidateStore, SwipeLedger
from swipematch.utils import setup_logger

if TYPE_CHECKING:
    from swipematch.variants import AlgorithmVariantRouter

logger = setup_logger(__name__)


class RecommendationGenerator(BaseRecommender):
    """
    Compatibility-ranked recommender.

    Scoring is read-only and independent per candidate, so the pool is split
    into batches that are scored on a bounded thread pool when it is large.
    """

    def __init__(
        self,
        candidate_store: CandidateStore,
        swipe_ledger: SwipeLedger,
        scorer: Optional[CompatibilityScorer] = None,
        variant_router: Optional['AlgorithmVariantRouter'] = None,
        n_workers: int = 4,
        batch_size: int = 256
    ):
        """
        Initialize the generator.

        Args:
            candidate_store: Source of viewer and candidate profiles
            swipe_ledger: Source of the viewer's swipe history (exclusions)
            scorer: Compatibility scorer (defaults to default weights)
            variant_router: Optional router supplying per-user weights
            n_workers: Maximum threads used to score batches
            batch_size: Candidates per scoring batch
        """
        super().__init__(name="RecommendationGenerator")
        if n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.candidate_store = candidate_store
        self.swipe_ledger = swipe_ledger
        self.scorer = scorer if scorer is not None else CompatibilityScorer()
        self.variant_router = variant_router
        self.n_workers = n_workers
        self.batch_size = batch_size

    def recommend(
        self,
        user_id: str,
        limit: int = 10,
        include_breakdown: bool = False
    ) -> List[Recommendation]:
        """
        Generate the top `limit` candidates for a user.

        Args:
            user_id: ID of the viewer
            limit: Maximum number of recommendations
            include_breakdown: Attach CompatibilityBreakdown to each entry

        Returns:
            List of Recommendation sorted by score descending, then candidate
            id ascending. Empty if the viewer does not exist.
        """
        if limit <= 0:
            return []

        viewer = self.candidate_store.get_user_profile(user_id)
        if viewer is None:
            logger.info(f"No profile for user {user_id}, returning no recommendations")
            return []

        excluded = self.exclusion_set(user_id)
        pool = [
            c for c in self.candidate_store.list_candidate_pool(excluded)
            if c.user_id not in excluded
        ]

        if not pool:
            logger.debug(f"Empty candidate pool for user {user_id}")
            return []

        scored = self._score_pool(viewer, pool, self._weights_for(user_id))
        scored.sort(key=lambda x: (-x[1].overall_score, x[0]))

        recommendations = [
            Recommendation(
                candidate_id=candidate_id,
                overall_score=breakdown.overall_score,
                common_interests=breakdown.common_interests,
                breakdown=breakdown if include_breakdown else None
            )
            for candidate_id, breakdown in scored[:limit]
        ]

        logger.debug(
            f"Generated {len(recommendations)} recommendations for user {user_id} "
            f"from a pool of {len(pool)} ({len(excluded) - 1} swiped)"
        )

        return recommendations

    def score(
        self,
        user_id: str,
        candidate_ids: List[str]
    ) -> Dict[str, float]:
        """
        Compute overall compatibility for specific candidates.

        Unknown candidate ids score 0.0.

        Raises:
            NotFoundError: If the viewer does not exist
        """
        viewer = self.candidate_store.get_user_profile(user_id)
        if viewer is None:
            raise NotFoundError(f"User {user_id} not found")

        weights = self._weights_for(user_id)
        scores = {}
        for candidate_id in candidate_ids:
            candidate = self.candidate_store.get_user_profile(candidate_id)
            if candidate is None:
                scores[candidate_id] = 0.0
                continue
            scores[candidate_id] = self.scorer.score(viewer, candidate, weights).overall_score

        return scores

    def exclusion_set(self, user_id: str) -> Set[str]:
        """Ids a user must never be recommended: swiped targets plus self."""
        excluded = {swipe.to_user_id for swipe in self.swipe_ledger.list_swipes_from(user_id)}
        excluded.add(user_id)
        return excluded

    def _weights_for(self, user_id: str) -> Optional[ScoringWeights]:
        if self.variant_router is None:
            return None
        return self.variant_router.weights_for(user_id)

    def _score_pool(
        self,
        viewer: UserProfile,
        pool: List[UserProfile],
        weights: Optional[ScoringWeights]
    ) -> List[Tuple[str, CompatibilityBreakdown]]:
        batches = [pool[i:i + self.batch_size] for i in range(0, len(pool), self.batch_size)]

        def score_batch(batch: List[UserProfile]) -> List[Tuple[str, CompatibilityBreakdown]]:
            breakdowns = self.scorer.score_many(viewer, batch, weights)
            return [(c.user_id, b) for c, b in zip(batch, breakdowns)]

        if self.n_workers == 1 or len(batches) == 1:
            results = [score_batch(batch) for batch in batches]
        else:
            with ThreadPoolExecutor(max_workers=min(self.n_workers, len(batches))) as executor:
                results = list(executor.map(score_batch, batches))

        return [item for batch_result in results for item in batch_result]

    def __repr__(self) -> str:
        return f"{self.name}(n_workers={self.n_workers}, batch_size={self.batch_size})"
