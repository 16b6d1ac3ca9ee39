"""
Generate synthetic data for the matching engine.

This script generates:
- users.csv: profiles with interests, demographic preferences and locations
  scattered around a handful of cities
- swipes.csv: swipe events where the like probability grows with shared
  interests, preference fit and proximity, plus reciprocal likes so that
  mutual matches occur

Matches are not written: replaying swipes.csv through the engine creates
them (see scripts/replay_swipes.py).
"""

import argparse
import random
import uuid
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import pandas as pd
import pygeohash as pgh
from faker import Faker
from tqdm import tqdm

# Set seed for reproducibility
random.seed(42)
np.random.seed(42)
fake = Faker()
Faker.seed(42)

APP_START_DATE = datetime.now() - timedelta(days=90)

INTERESTS = [
    'music', 'hiking', 'travel', 'cooking', 'reading', 'yoga', 'gaming',
    'photography', 'running', 'movies', 'art', 'dancing', 'coffee', 'wine',
    'climbing', 'cycling', 'theatre', 'dogs', 'cats', 'football',
]

CITIES = {
    'San Francisco': {'lat': 37.7749, 'lng': -122.4194},
    'Oakland': {'lat': 37.8044, 'lng': -122.2712},
    'New York': {'lat': 40.7128, 'lng': -74.0060},
    'Boston': {'lat': 42.3601, 'lng': -71.0589},
    'Chicago': {'lat': 41.8781, 'lng': -87.6298},
}

GENDERS = ['female', 'male', 'nonbinary']
GENDER_WEIGHTS = [0.47, 0.47, 0.06]


def generate_users(n_users: int) -> pd.DataFrame:
    """Generate user profiles."""
    rows = []
    city_names = list(CITIES)

    for _ in tqdm(range(n_users), desc="Generating users"):
        city = random.choice(city_names)
        # ~5% of users never share a location
        if random.random() < 0.05:
            lat, lng, geohash = None, None, None
        else:
            lat = CITIES[city]['lat'] + np.random.normal(0, 0.08)
            lng = CITIES[city]['lng'] + np.random.normal(0, 0.08)
            geohash = pgh.encode(lat, lng, precision=6)

        age = int(np.clip(np.random.normal(31, 6), 18, 65))
        gender = random.choices(GENDERS, weights=GENDER_WEIGHTS)[0]
        pref_gender = random.choices(['any', 'female', 'male'], weights=[0.3, 0.35, 0.35])[0]
        n_interests = random.randint(0, 6)

        rows.append({
            'user_id': str(uuid.uuid4()),
            'name': fake.first_name(),
            'age': age,
            'gender': gender,
            'interests': ';'.join(sorted(random.sample(INTERESTS, n_interests))),
            'pref_age_min': max(18, age - random.randint(3, 8)),
            'pref_age_max': age + random.randint(3, 10),
            'pref_gender': pref_gender,
            'city': city,
            'latitude': lat,
            'longitude': lng,
            'geohash': geohash,
            'max_distance': random.choice([10, 25, 50, 100]),
        })

    return pd.DataFrame(rows)


def like_probability(viewer: pd.Series, candidate: pd.Series) -> float:
    """Heuristic like probability used only to shape the synthetic data."""
    viewer_interests = set(filter(None, viewer['interests'].split(';')))
    candidate_interests = set(filter(None, candidate['interests'].split(';')))
    union = viewer_interests | candidate_interests
    overlap = len(viewer_interests & candidate_interests) / len(union) if union else 0.5

    fits_age = viewer['pref_age_min'] <= candidate['age'] <= viewer['pref_age_max']
    fits_gender = viewer['pref_gender'] in ('any', candidate['gender'])
    same_city = viewer['city'] == candidate['city']

    p = 0.05 + 0.35 * overlap + 0.2 * fits_age + 0.2 * fits_gender + 0.1 * same_city
    return float(np.clip(p, 0.0, 0.95))


def generate_swipes(users_df: pd.DataFrame, swipes_per_user: int) -> pd.DataFrame:
    """Generate swipes, then reciprocal likes for a share of the likes."""
    rows = []
    seen = set()
    user_ids = users_df['user_id'].tolist()
    users = users_df.set_index('user_id')
    span_seconds = int((datetime.now() - APP_START_DATE).total_seconds())

    def add(from_id, to_id, direction, created_at):
        if from_id == to_id or (from_id, to_id) in seen:
            return
        seen.add((from_id, to_id))
        rows.append({
            'from_user_id': from_id,
            'to_user_id': to_id,
            'direction': direction,
            'created_at': created_at.isoformat(),
            'swipe_time_ms': round(float(np.random.lognormal(7.5, 0.6)), 1),
            'profile_view_duration_ms': round(float(np.random.lognormal(8.5, 0.7)), 1),
        })

    for from_id in tqdm(user_ids, desc="Pass 1 - Initial swipes"):
        viewer = users.loc[from_id]
        targets = random.sample(user_ids, min(swipes_per_user, len(user_ids)))
        for to_id in targets:
            p = like_probability(viewer, users.loc[to_id])
            direction = 'like' if random.random() < p else 'dislike'
            created_at = APP_START_DATE + timedelta(seconds=random.randint(0, span_seconds))
            add(from_id, to_id, direction, created_at)

    likes = [r for r in rows if r['direction'] == 'like']
    for like in tqdm(likes, desc="Pass 2 - Reciprocal likes"):
        target = users.loc[like['to_user_id']]
        if random.random() < 0.5 * like_probability(target, users.loc[like['from_user_id']]):
            created_at = datetime.fromisoformat(like['created_at']) + timedelta(hours=random.randint(1, 72))
            add(like['to_user_id'], like['from_user_id'], 'like', created_at)

    return pd.DataFrame(rows).sort_values('created_at').reset_index(drop=True)


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic matching data")
    parser.add_argument('--users', type=int, default=2000, help="Number of users")
    parser.add_argument('--swipes-per-user', type=int, default=40, help="Initial swipes per user")
    parser.add_argument('--output-dir', type=Path, default=Path(__file__).parent / 'raw')
    args = parser.parse_args()

    args.output_dir.mkdir(parents=True, exist_ok=True)

    users_df = generate_users(args.users)
    swipes_df = generate_swipes(users_df, args.swipes_per_user)

    users_df.to_csv(args.output_dir / 'users.csv', index=False)
    swipes_df.to_csv(args.output_dir / 'swipes.csv', index=False)

    like_ratio = (swipes_df['direction'] == 'like').mean()
    print(f"✓ Wrote {len(users_df):,} users and {len(swipes_df):,} swipes to {args.output_dir}")
    print(f"  Like ratio: {like_ratio:.1%}")


if __name__ == "__main__":
    main()
