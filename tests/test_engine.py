"""
End-to-end tests through the MatchingEngine facade.
"""

import pytest

from swipematch import MatchingEngine
from swipematch.background import BackgroundTaskQueue
from swipematch.entities import SwipeMetadata
from swipematch.exceptions import InvalidOperationError, MatchingError, NotFoundError
from swipematch.models.compatibility_scorer import ScoringWeights
from swipematch.policies import TriggerPolicy
from swipematch.storage import InMemoryStore
from swipematch.utils import Config
from swipematch.variants import AlgorithmVariantRouter

from conftest import make_profile


def test_swipe_match_and_list(engine):
    assert engine.record_swipe('alice', 'bob', 'like').matched is False
    result = engine.record_swipe('bob', 'alice', 'like')

    assert result.matched is True
    alice_matches = engine.get_matches_for('alice')
    bob_matches = engine.get_matches_for('bob')
    assert [m.match_id for m in alice_matches] == [result.match_id]
    assert alice_matches[0].other_user_id == 'bob'
    assert bob_matches[0].other_user_id == 'alice'
    assert engine.get_matches_for('carol') == []


def test_swiped_candidates_leave_recommendations(engine):
    before = [r.candidate_id for r in engine.get_recommendations('alice')]
    engine.record_swipe('alice', 'dave', 'dislike')
    after = [r.candidate_id for r in engine.get_recommendations('alice')]

    assert before[0] == 'dave'
    assert 'dave' not in after
    assert len(after) == len(before) - 1


def test_recommendations_default_limit(store):
    for i in range(15):
        store.add_profile(make_profile(f'extra-{i:02d}'))
    with MatchingEngine(store, store, store, store, config=Config(default_limit=5)) as engine:
        assert len(engine.get_recommendations('alice')) == 5
        assert len(engine.get_recommendations('alice', limit=12)) == 12
        assert engine.get_recommendations('nobody') == []


def test_compatibility_breakdown(engine):
    breakdown = engine.get_compatibility_breakdown('alice', 'bob')

    assert breakdown.interest_score == pytest.approx(1 / 3)
    assert breakdown.common_interests == frozenset({'music'})
    with pytest.raises(NotFoundError):
        engine.get_compatibility_breakdown('alice', 'ghost')


def test_breakdown_uses_variant_weights(store):
    interest_only = ScoringWeights(1.0, 0.0, 0.0, 0.0)
    engine = MatchingEngine(
        store, store, store, store,
        variant_router=AlgorithmVariantRouter.single(interest_only),
        trigger_policy=TriggerPolicy.probabilistic(rate=0.0)
    )
    try:
        assert engine.get_compatibility_breakdown('alice', 'dave').overall_score == 1.0
        assert engine.get_recommendations('alice', limit=1)[0].overall_score == 1.0
    finally:
        engine.close()


def test_unmatch(engine):
    engine.record_swipe('alice', 'bob', 'like')
    match_id = engine.record_swipe('bob', 'alice', 'like').match_id

    with pytest.raises(NotFoundError):
        engine.unmatch('carol', match_id)
    with pytest.raises(NotFoundError):
        engine.unmatch('alice', 'no-such-match')

    record = engine.unmatch('alice', match_id)

    assert record.active is False
    assert engine.get_matches_for('alice') == []
    assert engine.get_matches_for('bob') == []
    assert engine.record_swipe('bob', 'alice', 'like').matched is False


def test_errors_share_a_base_class(engine):
    with pytest.raises(MatchingError):
        engine.record_swipe('alice', 'alice', 'like')
    with pytest.raises(MatchingError):
        engine.record_swipe('alice', 'ghost', 'like')
    with pytest.raises(ValueError):
        engine.record_swipe('alice', 'bob', 'maybe')
    with pytest.raises(InvalidOperationError):
        engine.record_swipe('alice', 'bob', 'maybe')


def test_background_ingestion_and_refresh(store):
    for i in range(5):
        store.add_profile(make_profile(f'liked-{i}', age=25 + i, interests={'music'}))
    queue = BackgroundTaskQueue()
    engine = MatchingEngine(
        store, store, store, store,
        trigger_policy=TriggerPolicy.probabilistic(rate=0.0),
        task_queue=queue
    )

    for i in range(5):
        engine.record_swipe('alice', f'liked-{i}', 'like', SwipeMetadata(400.0, 2000.0))
    engine.wait_for_background()

    alice = store.get_user_profile('alice')
    assert alice.behavioral_profile.like_count == 5
    assert alice.implicit_preferences.age_range is None

    assert engine.refresh_implicit_preferences(['alice', 'bob']) == 1
    assert alice.implicit_preferences.age_range.avg == pytest.approx(27.0)

    # The engine does not own an injected queue
    engine.close()
    assert queue.submit('noop', lambda: None) is True
    queue.shutdown()


def test_variant_summary(store):
    with MatchingEngine(store, store, store, store) as engine:
        with pytest.raises(ValueError):
            engine.variant_summary()

    router = AlgorithmVariantRouter.single()
    with MatchingEngine(store, store, store, store, variant_router=router) as engine:
        engine.record_swipe('carol', 'dave', 'like')
        engine.record_swipe('dave', 'carol', 'like')
        summary = engine.variant_summary()

    assert summary['trials'].tolist() == [2]
    assert summary['successes'].tolist() == [1]


def test_engine_from_config():
    store = InMemoryStore([make_profile('a'), make_profile('b')])
    config = Config(trigger_kind='scheduled', trigger_interval_seconds=10, n_workers=2, batch_size=1)

    with MatchingEngine(store, store, store, store, config=config) as engine:
        assert engine.swipe_processor.trigger_policy.kind == 'scheduled'
        assert engine.recommender.n_workers == 2
        assert [r.candidate_id for r in engine.get_recommendations('a')] == ['b']
