"""Boss records delivered by the backend and the store holding the latest snapshot."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

try:
    from .logger import get_logger
except ImportError:
    from logger import get_logger

logger = get_logger(__name__)


def _as_float(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if result == result else 0.0  # NaN -> 0


def _as_int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class BossRecord:
    """A random-interval boss as reported by the backend (tracked or forgotten)."""
    id: str
    name: str
    location: str = ''
    respawn_minutes: float = 0.0
    is_random: bool = False
    last_cut_at: Optional[Any] = None
    next_spawn_at: Optional[Any] = None
    overdue: bool = False
    daze_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BossRecord':
        """Build a record from a backend boss DTO."""
        return cls(
            id=str(data['id']),
            name=str(data.get('name') or ''),
            location=str(data.get('location') or ''),
            respawn_minutes=_as_float(data.get('respawn')),
            is_random=bool(data.get('isRandom', False)),
            last_cut_at=data.get('lastCutAt'),
            next_spawn_at=data.get('nextSpawnAt'),
            overdue=bool(data.get('overdue', False)),
            daze_count=_as_int_or_none(data.get('dazeCount')) or 0,
        )


@dataclass
class FixedBossRecord:
    """A boss with a deterministic daily spawn time."""
    id: str
    name: str
    location: str = ''
    gen_time_of_day: Optional[int] = None  # minutes since local midnight
    last_cut_at: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FixedBossRecord':
        """Build a record from a backend fixed-boss DTO."""
        gen = _as_int_or_none(data.get('genTime'))
        if gen is not None and not 0 <= gen <= 1439:
            logger.debug(f"[SNAPSHOT] Fixed boss '{data.get('name')}' has out-of-range genTime {gen}")
            gen = None
        return cls(
            id=str(data['id']),
            name=str(data.get('name') or ''),
            location=str(data.get('location') or ''),
            gen_time_of_day=gen,
            last_cut_at=data.get('lastCutAt'),
        )


@dataclass
class BossSnapshot:
    """One complete backend response. Replaced wholesale on every poll."""
    tracked: List[BossRecord] = field(default_factory=list)
    forgotten: List[BossRecord] = field(default_factory=list)
    fixed: List[FixedBossRecord] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'BossSnapshot':
        return cls()

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> 'BossSnapshot':
        """
        Build a snapshot from the dashboard response body.

        Entries without an id are skipped rather than failing the whole poll.

        Args:
            data: Decoded JSON body with tracked / forgotten / fixed arrays

        Returns:
            BossSnapshot
        """
        def _collect(key: str, factory):
            records = []
            values = data.get(key)
            if values is None:
                return records
            if not isinstance(values, list):
                logger.warning(f"[SNAPSHOT] Ignoring '{key}': expected a list, got {type(values).__name__}")
                return records
            for raw in values:
                if not isinstance(raw, dict) or raw.get('id') is None:
                    logger.warning(f"[SNAPSHOT] Skipping malformed '{key}' entry: {raw!r}")
                    continue
                records.append(factory(raw))
            return records

        return cls(
            tracked=_collect('tracked', BossRecord.from_dict),
            forgotten=_collect('forgotten', BossRecord.from_dict),
            fixed=_collect('fixed', FixedBossRecord.from_dict),
        )


def filter_bosses(bosses: Iterable, query: str) -> list:
    """
    Filter bosses by a search query.

    Every whitespace-separated token must appear (case-insensitive) in
    "name location".
    """
    tokens = (query or '').strip().lower().split()
    if not tokens:
        return list(bosses)
    matched = []
    for boss in bosses:
        haystack = f"{boss.name} {boss.location or ''}".lower()
        if all(token in haystack for token in tokens):
            matched.append(boss)
    return matched


class SnapshotStore:
    """Holds the latest backend snapshot and indexes it by boss id."""

    def __init__(self):
        self.snapshot = BossSnapshot.empty()
        self._random_by_id: Dict[str, BossRecord] = {}
        self._fixed_by_id: Dict[str, FixedBossRecord] = {}
        self._tracked_ids = set()

    def replace(self, snapshot: BossSnapshot) -> None:
        """Swap in a new snapshot. Tracked entries win over forgotten ones with the same id."""
        self.snapshot = snapshot
        self._random_by_id = {}
        for boss in snapshot.forgotten:
            self._random_by_id[boss.id] = boss
        for boss in snapshot.tracked:
            self._random_by_id[boss.id] = boss
        self._tracked_ids = {boss.id for boss in snapshot.tracked}
        self._fixed_by_id = {boss.id: boss for boss in snapshot.fixed}
        logger.debug(f"[SNAPSHOT] Stored {len(snapshot.tracked)} tracked, "
                     f"{len(snapshot.forgotten)} forgotten, {len(snapshot.fixed)} fixed")

    def get(self, boss_id: str) -> Optional[BossRecord]:
        """Look up a tracked/forgotten boss by id."""
        return self._random_by_id.get(boss_id)

    def get_fixed(self, boss_id: str) -> Optional[FixedBossRecord]:
        """Look up a fixed-cycle boss by id."""
        return self._fixed_by_id.get(boss_id)

    def find_any(self, boss_id: str):
        """Look up a boss of either kind by id."""
        return self._random_by_id.get(boss_id) or self._fixed_by_id.get(boss_id)

    def is_tracked(self, boss_id: str) -> bool:
        return boss_id in self._tracked_ids

    def random_bosses(self) -> List[BossRecord]:
        """Tracked then forgotten bosses, deduplicated by id."""
        seen = set()
        result = []
        for boss in list(self.snapshot.tracked) + list(self.snapshot.forgotten):
            if boss.id in seen:
                continue
            seen.add(boss.id)
            result.append(boss)
        return result

    def fixed_bosses(self) -> List[FixedBossRecord]:
        return list(self.snapshot.fixed)

    def all_bosses(self) -> list:
        return self.random_bosses() + self.fixed_bosses()
