"""
Scoring and recommendation models for the matching engine.

This package contains:
- Multi-factor compatibility scoring (interest, demographic, location, behavioral)
- Compatibility-ranked recommendation generation
"""

# Lazy imports to avoid loading scikit-learn unless needed
__all__ = [
    'BaseRecommender',
    'CompatibilityScorer',
    'ScoringWeights',
    'RecommendationGenerator',
]


def __getattr__(name):
    """Lazy import of models to avoid loading heavy dependencies unless needed."""
    if name == 'BaseRecommender':
        from swipematch.models.base_recommender import BaseRecommender
        return BaseRecommender
    elif name == 'CompatibilityScorer':
        from swipematch.models.compatibility_scorer import CompatibilityScorer
        return CompatibilityScorer
    elif name == 'ScoringWeights':
        from swipematch.models.compatibility_scorer import ScoringWeights
        return ScoringWeights
    elif name == 'RecommendationGenerator':
        from swipematch.models.recommendation_generator import RecommendationGenerator
        return RecommendationGenerator
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
