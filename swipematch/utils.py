"""
Utility functions and configuration for the matching engine.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Hashable, Iterator, List, Optional


def setup_logger(
    name: str = "swipematch",
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up and configure a logger.

    Args:
        name: Logger name
        level: Logging level (default: INFO)
        log_file: Optional file path to write logs

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


class Config:
    """
    Configuration for project paths and engine settings.
    """

    DEFAULTS: Dict[str, Any] = {
        'default_limit': 10,
        'min_likes_for_implicit': 5,
        'implicit_confidence': 0.7,
        'trigger_kind': 'probabilistic',
        'trigger_rate': 0.2,
        'trigger_interval_seconds': 3600.0,
        'n_workers': 4,
        'batch_size': 256,
        'background_workers': 1,
        'variant_salt': 'swipematch',
    }

    def __init__(self, base_dir: Optional[Path] = None, **settings: Any):
        """
        Initialize configuration.

        Args:
            base_dir: Base directory for the project (defaults to project root)
            **settings: Overrides for any key in Config.DEFAULTS

        Raises:
            ValueError: If an unknown setting is passed
        """
        if base_dir is None:
            # utils.py lives in swipematch/, so parent.parent is project root
            self.base_dir = Path(__file__).parent.parent
        else:
            self.base_dir = Path(base_dir)

        self.data_dir = self.base_dir / "data"
        self.raw_data_dir = self.data_dir / "raw"
        self.results_dir = self.base_dir / "results"

        unknown = sorted(set(settings) - set(self.DEFAULTS))
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")

        values = dict(self.DEFAULTS)
        values.update(settings)

        self.default_limit: int = int(values['default_limit'])
        self.min_likes_for_implicit: int = int(values['min_likes_for_implicit'])
        self.implicit_confidence: float = float(values['implicit_confidence'])
        self.trigger_kind: str = str(values['trigger_kind'])
        self.trigger_rate: float = float(values['trigger_rate'])
        self.trigger_interval_seconds: float = float(values['trigger_interval_seconds'])
        self.n_workers: int = int(values['n_workers'])
        self.batch_size: int = int(values['batch_size'])
        self.background_workers: int = int(values['background_workers'])
        self.variant_salt: str = str(values['variant_salt'])

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'Config':
        """
        Build a configuration from a plain dictionary.

        A 'base_dir' entry sets the project root; every other key must be
        one of Config.DEFAULTS.
        """
        values = dict(values)
        base_dir = values.pop('base_dir', None)
        return cls(base_dir=base_dir, **values)

    def ensure_dirs(self) -> None:
        """Create the data and results directories if they don't exist."""
        for directory in [self.raw_data_dir, self.results_dir]:
            directory.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return (
            f"Config(base_dir={self.base_dir}, trigger={self.trigger_kind}, "
            f"n_workers={self.n_workers})"
        )


class KeyedLocks:
    """
    Registry of per-key locks.

    Callers holding different keys never block each other; a lock is dropped
    from the registry once nobody holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
