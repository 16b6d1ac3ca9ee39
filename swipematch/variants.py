"""
Algorithm variant routing for A/B tests of scoring weights.

Users are assigned to a variant by hashing their id, so assignment is
stable across calls and processes without storing it. Outcomes are counted
per variant; no statistical inference is done here.
"""

import hashlib
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

import pandas as pd

from swipematch.models.compatibility_scorer import DEFAULT_WEIGHTS, ScoringWeights
from swipematch.utils import setup_logger

logger = setup_logger(__name__)

_BUCKETS = 10_000


@dataclass(frozen=True)
class AlgorithmVariant:
    variant_id: str
    weights: ScoringWeights = DEFAULT_WEIGHTS
    allocation: float = 1.0
    description: str = ''


@dataclass
class VariantOutcomes:
    trials: int = 0
    successes: int = 0
    match_ids: Set[str] = field(default_factory=set)

    @property
    def success_rate(self) -> float:
        return self.successes / self.trials if self.trials else 0.0


class AlgorithmVariantRouter:
    """
    Deterministic user -> variant assignment plus outcome counters.

    Args:
        variants: Variants with positive allocations summing to 1
        salt: Mixed into the hash; changing it reshuffles all users
    """

    def __init__(self, variants: Sequence[AlgorithmVariant], salt: str = 'swipematch'):
        if not variants:
            raise ValueError("At least one variant is required")

        ids = [v.variant_id for v in variants]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate variant ids: {ids}")
        if any(v.allocation <= 0 for v in variants):
            raise ValueError("Variant allocations must be positive")
        total = sum(v.allocation for v in variants)
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Variant allocations must sum to 1.0, got {total:.6f}")

        self.variants: Dict[str, AlgorithmVariant] = {v.variant_id: v for v in variants}
        self.salt = salt
        self._order: List[AlgorithmVariant] = list(variants)
        self._outcomes: Dict[str, VariantOutcomes] = {vid: VariantOutcomes() for vid in ids}
        self._lock = threading.Lock()

        logger.info(
            "Variant router configured: "
            + ", ".join(f"{v.variant_id}={v.allocation:.0%}" for v in variants)
        )

    @classmethod
    def single(cls, weights: Optional[ScoringWeights] = None, variant_id: str = 'control') -> 'AlgorithmVariantRouter':
        """Router with one variant receiving all traffic."""
        return cls([AlgorithmVariant(variant_id, weights or DEFAULT_WEIGHTS, 1.0)])

    def _bucket(self, user_id: str) -> float:
        digest = hashlib.sha256(f"{self.salt}:{user_id}".encode('utf-8')).hexdigest()
        return (int(digest[:16], 16) % _BUCKETS) / _BUCKETS

    def assign_variant(self, user_id: str) -> str:
        """
        Variant id for a user; the same user always gets the same variant.
        """
        bucket = self._bucket(user_id)
        cumulative = 0.0
        for variant in self._order:
            cumulative += variant.allocation
            if bucket < cumulative:
                return variant.variant_id
        # Float rounding can leave the top bucket uncovered
        return self._order[-1].variant_id

    def weights_for(self, user_id: str) -> ScoringWeights:
        return self.variants[self.assign_variant(user_id)].weights

    def record_outcome(self, variant_id: str, match_id: Optional[str], success: bool) -> None:
        """
        Count one outcome for a variant.

        A non-null match_id is counted at most once per variant.

        Raises:
            KeyError: If variant_id is unknown
        """
        if variant_id not in self._outcomes:
            raise KeyError(f"Unknown variant: {variant_id}")

        with self._lock:
            outcomes = self._outcomes[variant_id]
            if match_id is not None:
                if match_id in outcomes.match_ids:
                    return
                outcomes.match_ids.add(match_id)
            outcomes.trials += 1
            if success:
                outcomes.successes += 1

    def outcomes(self, variant_id: str) -> VariantOutcomes:
        with self._lock:
            o = self._outcomes[variant_id]
            return VariantOutcomes(o.trials, o.successes, set(o.match_ids))

    def summary(self) -> pd.DataFrame:
        """
        Per-variant counters.

        Returns:
            DataFrame with columns variant_id, allocation, trials, successes,
            success_rate (one row per variant, in configuration order)
        """
        with self._lock:
            rows = [
                {
                    'variant_id': v.variant_id,
                    'allocation': v.allocation,
                    'trials': self._outcomes[v.variant_id].trials,
                    'successes': self._outcomes[v.variant_id].successes,
                    'success_rate': self._outcomes[v.variant_id].success_rate,
                }
                for v in self._order
            ]
        return pd.DataFrame(rows)

    def __repr__(self) -> str:
        return f"AlgorithmVariantRouter(variants={list(self.variants)})"
