"""
Tests for behavioral learning and the implicit preference trigger policies.
"""

from datetime import datetime

import pytest

from swipematch.behavioral import BehavioralPreferenceLearner
from swipematch.entities import Direction, ImplicitPreferences, SwipeEvent, SwipeMetadata
from swipematch.policies import TriggerPolicy
from swipematch.storage import InMemoryStore
from swipematch.utils import Config

from conftest import make_profile


def fixed_clock(hour):
    return lambda: datetime(2024, 5, 17, hour, 30)


@pytest.fixture
def history_store():
    """A viewer plus eight candidates with known ages and interests."""
    candidates = [
        make_profile('c0', age=24, interests={'music', 'hiking'}),
        make_profile('c1', age=27, interests={'music'}),
        make_profile('c2', age=30, interests={'music', 'travel'}),
        make_profile('c3', age=33, interests={'hiking'}),
        make_profile('c4', age=36, interests=set()),
        make_profile('c5', age=None, interests={'yoga'}),
        make_profile('c6', age=50, interests={'gaming'}),
        make_profile('c7', age=60, interests={'gaming'}),
    ]
    return InMemoryStore([make_profile('viewer')] + candidates)


def add_swipes(store, user_id, likes=(), dislikes=()):
    for target in likes:
        store.save_swipe(SwipeEvent(user_id, target, Direction.LIKE, datetime.now()))
    for target in dislikes:
        store.save_swipe(SwipeEvent(user_id, target, Direction.DISLIKE, datetime.now()))


# Behavioral ingestion

def test_ingest_updates_running_statistics(history_store):
    learner = BehavioralPreferenceLearner(history_store, history_store, history_store, clock=fixed_clock(21))

    learner.ingest('viewer', 'c0', Direction.LIKE, SwipeMetadata(100.0, 4000.0))
    profile = learner.ingest('viewer', 'c1', 'dislike', SwipeMetadata(300.0, 1500.0))

    assert profile.average_swipe_time == pytest.approx(200.0)
    assert profile.swipe_count == 2
    assert profile.like_count == 1
    assert profile.dislike_count == 1
    assert profile.swipe_ratio == 0.5
    assert profile.active_hours[21] == 2
    assert sum(profile.active_hours) == 2
    assert profile.last_profile_view_duration == 1500.0
    assert history_store.get_user_profile('viewer').behavioral_profile == profile


def test_ingest_running_average_matches_mean(history_store):
    learner = BehavioralPreferenceLearner(history_store, history_store, history_store)
    times = [250.0, 900.0, 410.0, 1800.0, 75.0]

    for t in times:
        profile = learner.ingest('viewer', 'c0', Direction.LIKE, SwipeMetadata(t, 1000.0))

    assert profile.average_swipe_time == pytest.approx(sum(times) / len(times))
    assert profile.swipe_count == len(times)


def test_ingest_unknown_user_is_dropped(history_store):
    learner = BehavioralPreferenceLearner(history_store, history_store, history_store)
    assert learner.ingest('ghost', 'c0', Direction.LIKE, SwipeMetadata(100.0, 100.0)) is None


# Implicit preferences

def test_too_few_likes_is_noop(history_store):
    add_swipes(history_store, 'viewer', likes=['c0', 'c1', 'c2'], dislikes=['c3', 'c4', 'c6'])
    learner = BehavioralPreferenceLearner(history_store, history_store, history_store)

    assert learner.update_implicit_preferences('viewer') is None
    assert history_store.get_user_profile('viewer').implicit_preferences == ImplicitPreferences()


def test_implicit_preferences_from_likes(history_store):
    add_swipes(history_store, 'viewer', likes=['c0', 'c1', 'c2', 'c3', 'c4'], dislikes=['c6', 'c7'])
    learner = BehavioralPreferenceLearner(history_store, history_store, history_store)

    preferences = learner.update_implicit_preferences('viewer')

    assert preferences.age_range.min == 24
    assert preferences.age_range.max == 36
    assert preferences.age_range.avg == pytest.approx(30.0)
    assert preferences.age_range.confidence_weight == 0.7
    assert preferences.interest_weights == {'music': 3, 'hiking': 2, 'travel': 1}
    assert history_store.get_user_profile('viewer').implicit_preferences == preferences


def test_liked_profiles_without_age_are_ignored(history_store):
    add_swipes(history_store, 'viewer', likes=['c0', 'c1', 'c2', 'c3', 'c5'])
    learner = BehavioralPreferenceLearner(history_store, history_store, history_store)

    preferences = learner.update_implicit_preferences('viewer')

    assert preferences.age_range.min == 24
    assert preferences.age_range.max == 33
    assert preferences.interest_weights['yoga'] == 1


def test_min_likes_and_confidence_are_configurable(history_store):
    add_swipes(history_store, 'viewer', likes=['c6', 'c7'])
    learner = BehavioralPreferenceLearner(
        history_store, history_store, history_store, min_likes=2, confidence_weight=0.4
    )

    preferences = learner.update_implicit_preferences('viewer')

    assert preferences.age_range.avg == pytest.approx(55.0)
    assert preferences.age_range.confidence_weight == 0.4


def test_refresh_all_counts_updated_users(history_store):
    add_swipes(history_store, 'viewer', likes=['c0', 'c1', 'c2', 'c3', 'c4'])
    add_swipes(history_store, 'c0', likes=['c1'])
    learner = BehavioralPreferenceLearner(history_store, history_store, history_store)

    assert learner.refresh_all(['viewer', 'c0', 'ghost']) == 1


# Trigger policies

def test_probabilistic_policy_extremes():
    always = TriggerPolicy.probabilistic(rate=1.0)
    never = TriggerPolicy.probabilistic(rate=0.0)

    assert all(always.should_trigger('u') for _ in range(100))
    assert not any(never.should_trigger('u') for _ in range(100))


def test_probabilistic_policy_sampling_rate():
    policy = TriggerPolicy.probabilistic(rate=0.2, seed=42)
    fired = sum(policy.should_trigger('u') for _ in range(5000))
    assert 850 < fired < 1150


def test_scheduled_policy_runs_once_per_interval():
    now = [1000.0]
    policy = TriggerPolicy.scheduled(interval=60.0, clock=lambda: now[0])

    assert policy.should_trigger('a') is True
    assert policy.should_trigger('a') is False
    assert policy.should_trigger('b') is True

    now[0] += 59.0
    assert policy.should_trigger('a') is False
    now[0] += 1.0
    assert policy.should_trigger('a') is True


@pytest.mark.parametrize("kwargs", [
    {'kind': 'hourly'},
    {'kind': 'probabilistic', 'rate': 1.5},
    {'kind': 'scheduled', 'interval': -1},
])
def test_invalid_policy_rejected(kwargs):
    with pytest.raises(ValueError):
        TriggerPolicy(**kwargs)


def test_policy_from_config():
    scheduled = TriggerPolicy.from_config(Config(trigger_kind='scheduled', trigger_interval_seconds=30))
    probabilistic = TriggerPolicy.from_config(Config(trigger_rate=0.5))

    assert scheduled.kind == 'scheduled'
    assert scheduled.interval == 30.0
    assert probabilistic.kind == 'probabilistic'
    assert probabilistic.rate == 0.5


def test_scheduled_policy_forgets_expired_users():
    now = [0.0]
    policy = TriggerPolicy.scheduled(interval=60.0, clock=lambda: now[0])

    for i in range(2000):
        assert policy.should_trigger(f'old-{i}')
    now[0] = 61.0
    for i in range(2000):
        assert policy.should_trigger(f'new-{i}')

    assert policy.tracked_users() == 2000
    # A forgotten user triggers again straight away
    assert policy.should_trigger('old-0') is True
    assert policy.should_trigger('new-0') is False
