"""Test building boss snapshots from dashboard responses."""
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

from boss_snapshot import BossSnapshot, SnapshotStore, filter_bosses

from mock_backend import boss_dto, fixed_dto, T0


def test_non_list_collections_are_ignored():
    snapshot = BossSnapshot.from_response({
        'tracked': 3,
        'forgotten': {'id': 'b2'},
        'fixed': [fixed_dto("f1", "Garmoth", 22 * 60, "Nest")],
    })
    assert snapshot.tracked == [] and snapshot.forgotten == []
    assert [b.id for b in snapshot.fixed] == ["f1"]
    print("[OK] A collection that is not a list is skipped, the rest still loads")


def test_malformed_entries_are_skipped():
    snapshot = BossSnapshot.from_response({
        'tracked': [boss_dto("b1", "Kutum", last_cut_ms=T0), "junk", {'name': "no id"}],
    })
    assert [b.id for b in snapshot.tracked] == ["b1"]
    assert snapshot.forgotten == [] and snapshot.fixed == []

    fixed = BossSnapshot.from_response({'fixed': [fixed_dto("f1", "Garmoth", 1440)]}).fixed[0]
    assert fixed.gen_time_of_day is None
    print("[OK] Entries without an id and out-of-range genTime are dropped")


def test_store_dedup_and_search():
    store = SnapshotStore()
    store.replace(BossSnapshot.from_response({
        'tracked': [boss_dto("b1", "Kutum", "Desert", last_cut_ms=T0)],
        'forgotten': [boss_dto("b1", "Kutum (old)", "Desert"), boss_dto("b2", "Karanda", "Ridge")],
        'fixed': [fixed_dto("f1", "Garmoth", 22 * 60, "Dragon Nest")],
    }))
    assert [b.id for b in store.random_bosses()] == ["b1", "b2"]
    assert store.get("b1").name == "Kutum" and store.is_tracked("b1")
    assert not store.is_tracked("b2")
    assert store.find_any("f1").name == "Garmoth"
    assert [b.id for b in filter_bosses(store.all_bosses(), "dragon NEST")] == ["f1"]
    assert len(filter_bosses(store.all_bosses(), "  ")) == 3
    print("[OK] Tracked wins over forgotten and search matches every token")


if __name__ == "__main__":
    test_non_list_collections_are_ignored()
    test_malformed_entries_are_skipped()
    test_store_dedup_and_search()
    print("\nAll tests passed!")
