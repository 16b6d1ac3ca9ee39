"""
Tests for the data loading pipeline: CSV files -> DataLoader -> InMemoryStore.
"""

import pandas as pd
import pytest

from swipematch.data_loader import DataLoader
from swipematch.engine import MatchingEngine
from swipematch.entities import Direction
from swipematch.policies import TriggerPolicy
from swipematch.utils import Config, setup_logger

logger = setup_logger("test_pipeline")


@pytest.fixture
def config(tmp_path):
    config = Config(base_dir=tmp_path)
    config.ensure_dirs()

    pd.DataFrame([
        {'user_id': 'u1', 'age': 29, 'gender': 'female', 'interests': 'music;hiking',
         'pref_age_min': 25, 'pref_age_max': 35, 'pref_gender': 'male',
         'latitude': 37.77, 'longitude': -122.42, 'max_distance': 25},
        {'user_id': 'u2', 'age': 31, 'gender': 'male', 'interests': 'music;travel',
         'pref_age_min': 24, 'pref_age_max': 34, 'pref_gender': 'female',
         'latitude': 37.80, 'longitude': -122.27, 'max_distance': 50},
        {'user_id': 'u3', 'age': None, 'gender': 'female', 'interests': None,
         'pref_age_min': None, 'pref_age_max': None, 'pref_gender': None,
         'latitude': None, 'longitude': None, 'max_distance': None},
    ]).to_csv(config.raw_data_dir / 'users.csv', index=False)

    pd.DataFrame([
        {'from_user_id': 'u1', 'to_user_id': 'u2', 'direction': 'like',
         'created_at': '2024-03-01T10:00:00', 'swipe_time_ms': 850.0, 'profile_view_duration_ms': 4200.0},
        {'from_user_id': 'u2', 'to_user_id': 'u1', 'direction': 'LIKE',
         'created_at': '2024-03-01T12:00:00', 'swipe_time_ms': None, 'profile_view_duration_ms': None},
        {'from_user_id': 'u3', 'to_user_id': 'u1', 'direction': 'dislike',
         'created_at': '2024-03-01T09:00:00', 'swipe_time_ms': 300.0, 'profile_view_duration_ms': 900.0},
        {'from_user_id': 'u1', 'to_user_id': 'u2', 'direction': 'dislike',
         'created_at': '2024-03-02T09:00:00', 'swipe_time_ms': None, 'profile_view_duration_ms': None},
        {'from_user_id': 'u3', 'to_user_id': 'u3', 'direction': 'like',
         'created_at': '2024-03-02T10:00:00', 'swipe_time_ms': None, 'profile_view_duration_ms': None},
        {'from_user_id': 'u3', 'to_user_id': 'ghost', 'direction': 'like',
         'created_at': '2024-03-02T11:00:00', 'swipe_time_ms': None, 'profile_view_duration_ms': None},
        {'from_user_id': 'u2', 'to_user_id': 'u3', 'direction': 'superlike',
         'created_at': '2024-03-02T12:00:00', 'swipe_time_ms': None, 'profile_view_duration_ms': None},
    ]).to_csv(config.raw_data_dir / 'swipes.csv', index=False)

    pd.DataFrame([
        {'match_id': 'm1', 'user1_id': 'u2', 'user2_id': 'u1',
         'created_at': '2024-03-01T12:00:00', 'active': True, 'variant_id': 'control'},
    ]).to_csv(config.raw_data_dir / 'matches.csv', index=False)

    return config


def test_load_users_parses_optional_columns(config):
    users = DataLoader(config).load_users()

    assert users['user_id'].tolist() == ['u1', 'u2', 'u3']
    assert users.loc[2, 'interests'] == ''
    assert pd.isna(users.loc[2, 'age'])


def test_load_swipes_normalizes_and_sorts(config):
    swipes = DataLoader(config).load_swipes()

    assert swipes['created_at'].is_monotonic_increasing
    assert swipes.loc[0, 'from_user_id'] == 'u3'
    assert set(swipes['direction']) == {'like', 'dislike', 'superlike'}


def test_missing_file_and_columns(config, tmp_path):
    loader = DataLoader(config)

    with pytest.raises(FileNotFoundError):
        loader.load_users(str(tmp_path / 'missing.csv'))

    bad = tmp_path / 'bad_swipes.csv'
    pd.DataFrame([{'from_user_id': 'u1', 'to_user_id': 'u2'}]).to_csv(bad, index=False)
    with pytest.raises(ValueError, match='direction'):
        loader.load_swipes(str(bad))


def test_validate_before_load_raises(config):
    with pytest.raises(ValueError):
        DataLoader(config).validate_data()


def test_validate_flags_bad_rows(config):
    loader = DataLoader(config)
    loader.load_all()

    assert loader.validate_data() is False


def test_build_store_skips_invalid_rows(config):
    loader = DataLoader(config)
    loader.load_all()

    store = loader.build_store()

    assert len(store) == 3
    # Valid: u3->u1, u1->u2 (earliest wins), u2->u1
    assert len(store.swipes_df()) == 3
    assert store.find_swipe('u1', 'u2').direction == Direction.LIKE
    assert store.find_swipe('u1', 'u2').metadata.swipe_time_ms == 850.0
    assert store.find_swipe('u2', 'u1').metadata is None

    u1 = store.get_user_profile('u1')
    assert u1.interests == frozenset({'music', 'hiking'})
    assert u1.demographic_preferences.gender_preference == 'male'
    assert u1.location is not None
    assert u1.max_distance == 25.0

    u3 = store.get_user_profile('u3')
    assert u3.age is None
    assert u3.interests == frozenset()
    assert u3.location is None
    assert u3.demographic_preferences.age_min == 18

    match = store.get_active_match('u1', 'u2')
    assert match.match_id == 'm1'
    assert match.pair == ('u1', 'u2')
    assert match.variant_id == 'control'


def test_data_summary(config):
    loader = DataLoader(config)
    loader.load_all()

    summary = loader.get_data_summary()

    assert summary['users']['total'] == 3
    assert summary['users']['with_location'] == 2
    assert summary['swipes']['total'] == 7
    assert summary['swipes']['likes'] == 4
    assert summary['matches']['total'] == 1


def test_loaded_store_drives_engine(config):
    loader = DataLoader(config)
    loader.load_all()
    store = loader.build_store()

    with MatchingEngine(store, store, store, store, config=config,
                        trigger_policy=TriggerPolicy.probabilistic(rate=0.0)) as engine:
        matches = engine.get_matches_for('u1')
        recommendations = engine.get_recommendations('u3')

    logger.info(f"u1 matches: {matches}, u3 recommendations: {recommendations}")
    assert [m.other_user_id for m in matches] == ['u2']
    # u3 already swiped u1
    assert [r.candidate_id for r in recommendations] == ['u2']


def test_config_rejects_unknown_keys(tmp_path):
    with pytest.raises(ValueError):
        Config(base_dir=tmp_path, trigger_chance=0.5)

    config = Config.from_dict({'base_dir': str(tmp_path), 'default_limit': 3})
    assert config.default_limit == 3
    assert config.raw_data_dir == tmp_path / 'data' / 'raw'


def test_match_active_flag_parsing(config):
    pd.DataFrame([
        {'match_id': 'm1', 'user1_id': 'u1', 'user2_id': 'u2', 'created_at': '2024-03-01T12:00:00', 'active': 'false'},
        {'match_id': 'm2', 'user1_id': 'u1', 'user2_id': 'u3', 'created_at': '2024-03-02T12:00:00', 'active': None},
        {'match_id': 'm3', 'user1_id': 'u2', 'user2_id': 'u3', 'created_at': '2024-03-03T12:00:00', 'active': 'TRUE'},
    ]).to_csv(config.raw_data_dir / 'matches.csv', index=False)

    matches = DataLoader(config).load_matches()

    assert matches.set_index('match_id')['active'].to_dict() == {'m1': False, 'm2': True, 'm3': True}
