"""
Data loader module for the matching engine.

This module loads users, swipes and matches from CSV exports, validates
them and populates an InMemoryStore.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from swipematch.entities import (
    DemographicPreferences,
    Direction,
    Location,
    MatchRecord,
    SwipeEvent,
    SwipeMetadata,
    UserProfile,
)
from swipematch.exceptions import ConflictError, InvalidOperationError
from swipematch.storage import InMemoryStore
from swipematch.utils import Config, setup_logger

logger = setup_logger(__name__)

INTEREST_SEPARATOR = ';'

USER_COLUMNS = ['user_id', 'age', 'gender', 'interests']
SWIPE_COLUMNS = ['from_user_id', 'to_user_id', 'direction', 'created_at']
MATCH_COLUMNS = ['match_id', 'user1_id', 'user2_id', 'created_at']


class DataLoader:
    """
    Load and validate matching data from CSV files.

    Expected files in the raw data directory:
    - users.csv: user_id, age, gender, interests (';'-separated) and optional
      pref_age_min, pref_age_max, pref_gender, latitude, longitude, max_distance
    - swipes.csv: from_user_id, to_user_id, direction, created_at and optional
      swipe_time_ms, profile_view_duration_ms
    - matches.csv: match_id, user1_id, user2_id, created_at and optional active
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize DataLoader.

        Args:
            config: Configuration object for paths (defaults to Config())
        """
        self.config = config if config is not None else Config()
        self.users_df: Optional[pd.DataFrame] = None
        self.swipes_df: Optional[pd.DataFrame] = None
        self.matches_df: Optional[pd.DataFrame] = None

        logger.info(f"DataLoader initialized with data directory: {self.config.raw_data_dir}")

    def _read_csv(self, file_path: Path, required_cols: List[str], label: str) -> pd.DataFrame:
        logger.info(f"Loading {label} data from {file_path}")

        if not file_path.exists():
            raise FileNotFoundError(f"{label.capitalize()} file not found: {file_path}")

        df = pd.read_csv(file_path)

        missing_cols = [col for col in required_cols if col not in df.columns]
        if missing_cols:
            raise ValueError(f"Missing required columns in {label} file: {missing_cols}")

        return df

    def load_users(self, file_path: Optional[str] = None) -> pd.DataFrame:
        """
        Load users data from CSV.

        Args:
            file_path: Optional custom path (defaults to data/raw/users.csv)

        Returns:
            DataFrame with user data and proper dtypes

        Raises:
            FileNotFoundError: If the users CSV file doesn't exist
            ValueError: If required columns are missing
        """
        path = Path(file_path) if file_path else self.config.raw_data_dir / "users.csv"
        df = self._read_csv(path, USER_COLUMNS, 'users')

        df['user_id'] = df['user_id'].astype(str)
        df['interests'] = df['interests'].fillna('')

        numeric_cols = ['age', 'pref_age_min', 'pref_age_max', 'latitude', 'longitude', 'max_distance']
        for col in numeric_cols:
            if col in df.columns:
                df[col] = pd.to_numeric(df[col], errors='coerce')

        self.users_df = df

        logger.info(f"Loaded {len(df)} users")
        if df['age'].notna().any():
            logger.info(f"Age range: {df['age'].min():.0f} to {df['age'].max():.0f}")

        return df

    def load_swipes(self, file_path: Optional[str] = None) -> pd.DataFrame:
        """
        Load swipes data from CSV.

        Args:
            file_path: Optional custom path (defaults to data/raw/swipes.csv)

        Returns:
            DataFrame with swipes data, sorted by created_at

        Raises:
            FileNotFoundError: If the swipes CSV file doesn't exist
            ValueError: If required columns are missing
        """
        path = Path(file_path) if file_path else self.config.raw_data_dir / "swipes.csv"
        df = self._read_csv(path, SWIPE_COLUMNS, 'swipes')

        df['from_user_id'] = df['from_user_id'].astype(str)
        df['to_user_id'] = df['to_user_id'].astype(str)
        df['direction'] = df['direction'].astype(str).str.strip().str.lower()
        df['created_at'] = pd.to_datetime(df['created_at'])
        df = df.sort_values('created_at', kind='stable').reset_index(drop=True)

        self.swipes_df = df

        logger.info(f"Loaded {len(df)} swipes")
        logger.info(f"Direction distribution: {df['direction'].value_counts().to_dict()}")

        return df

    def load_matches(self, file_path: Optional[str] = None) -> pd.DataFrame:
        """
        Load matches data from CSV.

        Args:
            file_path: Optional custom path (defaults to data/raw/matches.csv)

        Returns:
            DataFrame with matches data

        Raises:
            FileNotFoundError: If the matches CSV file doesn't exist
            ValueError: If required columns are missing
        """
        path = Path(file_path) if file_path else self.config.raw_data_dir / "matches.csv"
        df = self._read_csv(path, MATCH_COLUMNS, 'matches')

        for col in ['match_id', 'user1_id', 'user2_id']:
            df[col] = df[col].astype(str)
        df['created_at'] = pd.to_datetime(df['created_at'])
        df['active'] = _parse_active(df['active']) if 'active' in df.columns else True

        self.matches_df = df

        logger.info(f"Loaded {len(df)} matches ({int(df['active'].sum())} active)")

        return df

    def load_all(self, include_matches: bool = True) -> Tuple[pd.DataFrame, pd.DataFrame, Optional[pd.DataFrame]]:
        """
        Load all data files.

        Args:
            include_matches: Also load matches.csv

        Returns:
            Tuple of (users_df, swipes_df, matches_df or None)
        """
        logger.info("Loading all data files...")

        users_df = self.load_users()
        swipes_df = self.load_swipes()
        matches_df = self.load_matches() if include_matches else None

        logger.info("All data files loaded successfully")

        return users_df, swipes_df, matches_df

    def validate_data(self) -> bool:
        """
        Validate loaded data for consistency.

        Returns:
            True if all validations pass, False otherwise

        Raises:
            ValueError: If users and swipes haven't been loaded yet
        """
        if self.users_df is None or self.swipes_df is None:
            raise ValueError("Data must be loaded before validation. Call load_all() first.")

        logger.info("Validating data...")
        all_valid = True

        user_dupes = self.users_df['user_id'].duplicated().sum()
        if user_dupes > 0:
            logger.warning(f"Users: {user_dupes} duplicate user_ids found")
            all_valid = False

        user_ids = set(self.users_df['user_id'])
        unknown = (
            ~self.swipes_df['from_user_id'].isin(user_ids)
            | ~self.swipes_df['to_user_id'].isin(user_ids)
        ).sum()
        if unknown > 0:
            logger.warning(f"Swipes: {unknown} swipes reference unknown users")
            all_valid = False

        self_swipes = (self.swipes_df['from_user_id'] == self.swipes_df['to_user_id']).sum()
        if self_swipes > 0:
            logger.warning(f"Swipes: {self_swipes} self-swipes found")
            all_valid = False

        bad_direction = (~self.swipes_df['direction'].isin([d.value for d in Direction])).sum()
        if bad_direction > 0:
            logger.warning(f"Swipes: {bad_direction} rows with malformed direction")
            all_valid = False

        pair_dupes = self.swipes_df.duplicated(subset=['from_user_id', 'to_user_id']).sum()
        if pair_dupes > 0:
            logger.warning(f"Swipes: {pair_dupes} duplicate (from, to) pairs")
            all_valid = False

        if all_valid:
            logger.info("✓ All validation checks passed")
        else:
            logger.warning("✗ Some validation checks failed")

        return all_valid

    def build_store(self, store: Optional[InMemoryStore] = None) -> InMemoryStore:
        """
        Populate a store from the loaded DataFrames.

        Rows that would violate ledger invariants (unknown users, self-swipes,
        bad directions, duplicate pairs) are skipped with a warning.

        Args:
            store: Store to fill (a new InMemoryStore by default)

        Returns:
            The populated store

        Raises:
            ValueError: If users and swipes haven't been loaded yet
        """
        if self.users_df is None or self.swipes_df is None:
            raise ValueError("Data must be loaded before building a store. Call load_all() first.")

        store = store if store is not None else InMemoryStore()

        for row in self.users_df.to_dict('records'):
            store.add_profile(self._row_to_profile(row))

        skipped = 0
        for row in self.swipes_df.to_dict('records'):
            event = self._row_to_swipe(row)
            if (
                event is None
                or event.from_user_id == event.to_user_id
                or store.get_user_profile(event.from_user_id) is None
                or store.get_user_profile(event.to_user_id) is None
            ):
                skipped += 1
                continue
            try:
                store.save_swipe(event)
            except ConflictError:
                skipped += 1

        if self.matches_df is not None:
            for row in self.matches_df.to_dict('records'):
                try:
                    store.add_match(MatchRecord(
                        match_id=row['match_id'],
                        user1_id=row['user1_id'],
                        user2_id=row['user2_id'],
                        created_at=row['created_at'].to_pydatetime(),
                        active=bool(row['active']),
                        variant_id=_optional_str(row.get('variant_id'))
                    ))
                except ConflictError:
                    skipped += 1

        if skipped:
            logger.warning(f"Skipped {skipped} rows that violate ledger invariants")
        logger.info(f"Store built: {store}")

        return store

    def get_data_summary(self) -> Dict[str, Any]:
        """
        Get summary statistics about loaded data.

        Raises:
            ValueError: If users and swipes haven't been loaded yet
        """
        if self.users_df is None or self.swipes_df is None:
            raise ValueError("Data must be loaded before getting summary. Call load_all() first.")

        n_swipes = len(self.swipes_df)
        n_likes = int((self.swipes_df['direction'] == Direction.LIKE.value).sum())
        n_matches = len(self.matches_df) if self.matches_df is not None else 0

        return {
            'users': {
                'total': len(self.users_df),
                'gender_distribution': self.users_df['gender'].value_counts().to_dict(),
                'with_location': int(
                    self.users_df[['latitude', 'longitude']].notna().all(axis=1).sum()
                ) if {'latitude', 'longitude'} <= set(self.users_df.columns) else 0,
            },
            'swipes': {
                'total': n_swipes,
                'likes': n_likes,
                'like_ratio': n_likes / n_swipes if n_swipes else 0.0,
                'unique_swipers': self.swipes_df['from_user_id'].nunique(),
            },
            'matches': {
                'total': n_matches,
                'match_rate': n_matches * 2 / n_likes * 100 if n_likes else 0.0,
            },
        }

    @staticmethod
    def _row_to_profile(row: Dict[str, Any]) -> UserProfile:
        interests = frozenset(
            part.strip() for part in str(row['interests']).split(INTEREST_SEPARATOR) if part.strip()
        )

        defaults = DemographicPreferences()
        prefs = DemographicPreferences(
            age_min=int(row['pref_age_min']) if pd.notna(row.get('pref_age_min')) else defaults.age_min,
            age_max=int(row['pref_age_max']) if pd.notna(row.get('pref_age_max')) else defaults.age_max,
            gender_preference=str(row['pref_gender']) if pd.notna(row.get('pref_gender')) else defaults.gender_preference
        )

        location = None
        if pd.notna(row.get('latitude')) and pd.notna(row.get('longitude')):
            location = Location(float(row['latitude']), float(row['longitude']))

        return UserProfile(
            user_id=row['user_id'],
            age=int(row['age']) if pd.notna(row.get('age')) else None,
            gender=str(row['gender']) if pd.notna(row.get('gender')) else None,
            interests=interests,
            demographic_preferences=prefs,
            location=location,
            max_distance=float(row['max_distance']) if pd.notna(row.get('max_distance')) else 100.0
        )

    @staticmethod
    def _row_to_swipe(row: Dict[str, Any]) -> Optional[SwipeEvent]:
        try:
            direction = Direction.parse(row['direction'])
        except InvalidOperationError:
            return None

        metadata = None
        if pd.notna(row.get('swipe_time_ms')) and pd.notna(row.get('profile_view_duration_ms')):
            metadata = SwipeMetadata(
                swipe_time_ms=float(row['swipe_time_ms']),
                profile_view_duration_ms=float(row['profile_view_duration_ms'])
            )

        return SwipeEvent(
            from_user_id=row['from_user_id'],
            to_user_id=row['to_user_id'],
            direction=direction,
            created_at=row['created_at'].to_pydatetime(),
            metadata=metadata,
            variant_id=_optional_str(row.get('variant_id'))
        )


def _optional_str(value) -> Optional[str]:
    return str(value) if value is not None and pd.notna(value) else None


_ACTIVE_VALUES = {'true': True, '1': True, '1.0': True, 'false': False, '0': False, '0.0': False}


def _parse_active(column: pd.Series) -> pd.Series:
    """Parse the matches 'active' flag; blank cells default to active."""
    parsed = column.astype(str).str.strip().str.lower().map(_ACTIVE_VALUES)
    unknown = parsed.isna() & column.notna()
    if unknown.any():
        logger.warning(f"Matches: {int(unknown.sum())} unrecognised 'active' values treated as active")
    return parsed.fillna(True).astype(bool)
