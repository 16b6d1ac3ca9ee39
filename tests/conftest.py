"""
Shared fixtures for the matching engine tests.
"""

import pytest

from swipematch.engine import MatchingEngine
from swipematch.entities import DemographicPreferences, Location, UserProfile
from swipematch.policies import TriggerPolicy
from swipematch.storage import InMemoryStore
from swipematch.utils import Config


def make_profile(
    user_id,
    age=30,
    gender='female',
    interests=(),
    age_min=18,
    age_max=99,
    gender_preference='any',
    location=None,
    max_distance=100.0
):
    """Build a UserProfile with test-friendly defaults."""
    return UserProfile(
        user_id=user_id,
        age=age,
        gender=gender,
        interests=frozenset(interests),
        demographic_preferences=DemographicPreferences(age_min, age_max, gender_preference),
        location=Location(*location) if location is not None else None,
        max_distance=max_distance
    )


@pytest.fixture
def profile_factory():
    return make_profile


@pytest.fixture
def store():
    return InMemoryStore([
        make_profile('alice', age=29, gender='female', interests={'music', 'hiking'}),
        make_profile('bob', age=31, gender='male', interests={'music', 'travel'}),
        make_profile('carol', age=35, gender='female', interests={'cooking'}),
        make_profile('dave', age=27, gender='male', interests={'hiking', 'music'}),
    ])


@pytest.fixture
def engine(store):
    config = Config(n_workers=1)
    engine = MatchingEngine(
        store, store, store, store,
        config=config,
        trigger_policy=TriggerPolicy.probabilistic(rate=0.0)
    )
    yield engine
    engine.close()
