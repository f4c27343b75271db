"""Test durable state storage."""
import sys
import io
from pathlib import Path

# Fix Windows console encoding (only if not already wrapped)
if sys.platform == 'win32':
    if not isinstance(sys.stdout, io.TextIOWrapper) or (hasattr(sys.stdout, 'encoding') and sys.stdout.encoding != 'utf-8'):
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    if not isinstance(sys.stderr, io.TextIOWrapper) or (hasattr(sys.stderr, 'encoding') and sys.stderr.encoding != 'utf-8'):
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Add project root, src and test_utilities to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "src"))
sys.path.insert(0, str(Path(__file__).parent))

import json
import tempfile

from durable_store import (JsonFileStore, MemoryStore, load_int_map,
                           MISS_STREAKS_KEY, OVERDUE_DEADLINES_KEY, ALERTS_ENABLED_KEY)


def test_json_store_roundtrip():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "state.json"
        store = JsonFileStore(str(path))
        assert store.get(MISS_STREAKS_KEY) is None
        store.set(MISS_STREAKS_KEY, {"b1": 2})
        store.set(ALERTS_ENABLED_KEY, False)
        assert path.exists()
        assert not path.with_suffix(".json.tmp").exists(), "Temp file should be replaced"

        reloaded = JsonFileStore(str(path))
        assert reloaded.get(MISS_STREAKS_KEY) == {"b1": 2}
        assert reloaded.get(ALERTS_ENABLED_KEY) is False
        print("[OK] State survives a reload")


def test_corrupted_state_is_empty():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "state.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileStore(str(path))
        assert store.values == {}
        print("[OK] Invalid JSON starts empty")

        path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        store = JsonFileStore(str(path))
        assert store.values == {}
        print("[OK] Wrong top-level shape starts empty")

        # Still writable afterwards
        store.set(MISS_STREAKS_KEY, {"b1": 1})
        assert JsonFileStore(str(path)).get(MISS_STREAKS_KEY) == {"b1": 1}
        print("[OK] Store recovers on the next write")


def test_unwritable_store_does_not_raise():
    with tempfile.TemporaryDirectory() as tmp:
        blocker = Path(tmp) / "file"
        blocker.write_text("x", encoding="utf-8")
        # Parent "directory" is a regular file, so every save fails
        store = JsonFileStore(str(blocker / "state.json"))
        store.set(MISS_STREAKS_KEY, {"b1": 1})
        assert store.get(MISS_STREAKS_KEY) == {"b1": 1}, "In-memory value is kept"
        print("[OK] Failed writes are logged, not raised")


def test_load_int_map_drops_bad_entries():
    store = MemoryStore({
        OVERDUE_DEADLINES_KEY: {"a": 1000, "b": "soon", "c": True, "d": 12.9, "e": float("inf"), "f": None},
        MISS_STREAKS_KEY: ["not", "a", "map"],
    })
    assert load_int_map(store, OVERDUE_DEADLINES_KEY) == {"a": 1000, "d": 12}
    assert load_int_map(store, MISS_STREAKS_KEY) == {}
    assert load_int_map(store, "missing") == {}
    print("[OK] Malformed entries are dropped")


if __name__ == "__main__":
    test_json_store_roundtrip()
    test_corrupted_state_is_empty()
    test_unwritable_store_does_not_raise()
    test_load_int_map_drops_bad_entries()
    print("\nAll tests passed!")
