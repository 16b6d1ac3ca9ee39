"""
swipematch: matching and compatibility engine for a swipe-based dating app.

Turns swipe events into compatibility scores, mutual matches and ranked
recommendations, and learns implicit preferences from swipe behavior.
"""

__version__ = '0.1.0'

__all__ = [
    'MatchingEngine',
    'InMemoryStore',
    'Config',
    'TriggerPolicy',
    'AlgorithmVariant',
    'AlgorithmVariantRouter',
]


def __getattr__(name):
    """Lazy import of the public API."""
    if name == 'MatchingEngine':
        from swipematch.engine import MatchingEngine
        return MatchingEngine
    elif name == 'InMemoryStore':
        from swipematch.storage import InMemoryStore
        return InMemoryStore
    elif name == 'Config':
        from swipematch.utils import Config
        return Config
    elif name == 'TriggerPolicy':
        from swipematch.policies import TriggerPolicy
        return TriggerPolicy
    elif name == 'AlgorithmVariant':
        from swipematch.variants import AlgorithmVariant
        return AlgorithmVariant
    elif name == 'AlgorithmVariantRouter':
        from swipematch.variants import AlgorithmVariantRouter
        return AlgorithmVariantRouter
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
