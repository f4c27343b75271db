"""Partition and order boss entries into the three board columns."""
from dataclasses import dataclass, field
from typing import List, Optional

try:
    from .timestamp_formatter import MINUTE_MS
except ImportError:
    from timestamp_formatter import MINUTE_MS

SOON_MS = 5 * MINUTE_MS

KIND_TRACKED = 'tracked'
KIND_FORGOTTEN = 'forgotten'
KIND_FIXED = 'fixed'


@dataclass
class BoardEntry:
    """One boss as shown on the board for a single tick."""
    boss_id: str
    name: str
    location: str
    kind: str
    occurrence_ms: float
    remaining_ms: float
    in_grace: bool = False
    grace_deadline: Optional[int] = None
    miss_streak: int = 0
    has_history: bool = False
    caught: bool = False
    is_random: bool = False
    daze_count: int = 0
    soon: bool = False
    flashing: bool = False


@dataclass
class Board:
    in_progress: List[BoardEntry] = field(default_factory=list)
    unattended: List[BoardEntry] = field(default_factory=list)
    fixed: List[BoardEntry] = field(default_factory=list)

    def all_entries(self) -> List[BoardEntry]:
        return self.in_progress + self.unattended + self.fixed

    def find(self, boss_id: str) -> Optional[BoardEntry]:
        for entry in self.all_entries():
            if entry.boss_id == boss_id:
                return entry
        return None


def is_soon(remaining_ms: float, soon_ms: int = SOON_MS) -> bool:
    return 0 < remaining_ms <= soon_ms


def _pinned_remaining(entry: BoardEntry) -> float:
    return 0 if entry.in_grace else entry.remaining_ms


def _random_key(entry: BoardEntry):
    # Ascending order puts overdue (negative) first and unscheduled (inf) last
    return (not entry.flashing, _pinned_remaining(entry), entry.name, entry.boss_id)


def _fixed_rank(entry: BoardEntry):
    if entry.in_grace:
        return 0, -entry.remaining_ms
    if not entry.caught and entry.remaining_ms > 0:
        return 1, entry.remaining_ms
    return 2, entry.occurrence_ms


def sort_board(random_entries: List[BoardEntry], fixed_entries: List[BoardEntry],
               soon_ms: int = SOON_MS, sentinel_boss_id: Optional[str] = None) -> Board:
    """
    Build the board for one tick.

    Args:
        random_entries: Tracked and forgotten bosses
        fixed_entries: Fixed-cycle bosses
        soon_ms: Remaining time under which a boss flashes as "soon"
        sentinel_boss_id: Fixed boss always shown last

    Returns:
        Board with in_progress, unattended and fixed columns
    """
    for entry in list(random_entries) + list(fixed_entries):
        entry.soon = is_soon(entry.remaining_ms, soon_ms) and not entry.caught
        entry.flashing = entry.soon or entry.in_grace

    in_progress = [e for e in random_entries if e.has_history and e.miss_streak == 0]
    unattended = [e for e in random_entries if not (e.has_history and e.miss_streak == 0)]
    in_progress.sort(key=_random_key)
    unattended.sort(key=_random_key)

    def fixed_key(entry: BoardEntry):
        rank, value = _fixed_rank(entry)
        sentinel = sentinel_boss_id is not None and entry.boss_id == sentinel_boss_id
        return (sentinel, not entry.flashing, rank, value, entry.name, entry.boss_id)

    fixed = sorted(fixed_entries, key=fixed_key)
    return Board(in_progress=in_progress, unattended=unattended, fixed=fixed)
