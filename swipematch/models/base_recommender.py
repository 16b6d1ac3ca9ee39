"""
Abstract base class for recommenders.

This module defines the interface that every recommender exposed by the
engine must implement.
"""

from abc import ABC, abstractmethod
from typing import Dict, List

from swipematch.entities import Recommendation


class BaseRecommender(ABC):
    """
    Abstract base class for all recommenders.

    Recommenders are stateless with respect to users: everything they need
    is read from storage adapters at call time.
    """

    def __init__(self, name: str = "BaseRecommender"):
        """
        Initialize the base recommender.

        Args:
            name: Name identifier for this recommender
        """
        self.name = name

    @abstractmethod
    def recommend(
        self,
        user_id: str,
        limit: int = 10,
        include_breakdown: bool = False
    ) -> List[Recommendation]:
        """
        Generate a ranked list of candidates for a user.

        Args:
            user_id: ID of the user to generate recommendations for
            limit: Maximum number of recommendations to return
            include_breakdown: Attach the full CompatibilityBreakdown to each entry

        Returns:
            List of Recommendation, best first

        Raises:
            NotImplementedError: Must be implemented by subclass
        """
        raise NotImplementedError("Subclass must implement recommend()")

    @abstractmethod
    def score(
        self,
        user_id: str,
        candidate_ids: List[str]
    ) -> Dict[str, float]:
        """
        Compute scores for specific candidates.

        Args:
            user_id: ID of the user
            candidate_ids: List of candidate user IDs to score

        Returns:
            Dictionary mapping candidate_id to score

        Raises:
            NotImplementedError: Must be implemented by subclass
        """
        raise NotImplementedError("Subclass must implement score()")

    def __repr__(self) -> str:
        return f"{self.name}()"
