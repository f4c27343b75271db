"""Durable local state (miss streaks, grace deadlines, alert toggle) kept across restarts."""
import json
import math
import os
from pathlib import Path
from typing import Any, Dict, Optional

try:
    from .logger import get_logger
except ImportError:
    from logger import get_logger

logger = get_logger(__name__)

MISS_STREAKS_KEY = 'miss_streaks'
OVERDUE_DEADLINES_KEY = 'overdue_deadlines'
GRACED_OCCURRENCES_KEY = 'graced_occurrences'
ALERTS_ENABLED_KEY = 'alerts_enabled'


class DurableStore:
    """Key/value capability for state that must survive a restart.

    Writes are best-effort: implementations log failures and never raise.
    """

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError


class MemoryStore(DurableStore):
    """In-process store used by tests and when no data directory is available."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.values: Dict[str, Any] = dict(initial or {})
        self.write_count = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value
        self.write_count += 1


class JsonFileStore(DurableStore):
    """Stores every key in a single JSON document on disk."""

    def __init__(self, path: str):
        """
        Initialize the store and load existing state.

        Args:
            path: Path to the state.json file
        """
        self.path = Path(path)
        self.values: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load state from disk. A missing or corrupted file means empty state."""
        if not self.path.exists():
            logger.info(f"[STATE] No state file at {self.path} - starting empty")
            self.values = {}
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"[STATE] Invalid JSON in {self.path}: {e} - starting empty")
            self.values = {}
            return
        except OSError as e:
            logger.error(f"[STATE] Could not read {self.path}: {e} - starting empty")
            self.values = {}
            return
        if not isinstance(data, dict):
            logger.error(f"[STATE] Unexpected state shape in {self.path} ({type(data).__name__}) - starting empty")
            self.values = {}
            return
        self.values = data
        logger.info(f"[STATE] Loaded {len(self.values)} key(s) from {self.path}")

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value
        self.save()

    def save(self) -> None:
        """Write the whole document, replacing the previous file atomically."""
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(self.values, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            logger.debug(f"[STATE] Saved {len(self.values)} key(s) to {self.path}")
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[STATE] Could not save state to {self.path}: {e}")


def load_int_map(store: DurableStore, key: str) -> Dict[str, int]:
    """
    Read a boss id -> integer mapping, dropping entries with the wrong shape.

    Args:
        store: Store to read from
        key: Mapping key

    Returns:
        Clean mapping (empty if the stored value is unusable)
    """
    raw = store.get(key, {})
    if not isinstance(raw, dict):
        logger.warning(f"[STATE] '{key}' is not a mapping ({type(raw).__name__}) - ignoring it")
        return {}
    clean = {}
    for boss_id, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            logger.warning(f"[STATE] Dropping malformed '{key}' entry for {boss_id}: {value!r}")
            continue
        clean[str(boss_id)] = int(value)
    return clean
