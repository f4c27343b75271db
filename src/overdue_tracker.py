"""Overdue / grace / missed state machine for random-interval bosses.

SCHEDULED --(occurrence reached)--> OVERDUE_GRACE --(grace expired)--> MISSED
and any recorded cut or daze resets a boss to SCHEDULED.

Grace deadlines are pinned when lateness is first observed and are never
moved by later polls; only expiry or a reset removes them.
"""
import math
from enum import Enum
from typing import Dict, List, Optional

try:
    from .logger import get_logger
    from .durable_store import (DurableStore, load_int_map, MISS_STREAKS_KEY,
                                OVERDUE_DEADLINES_KEY, GRACED_OCCURRENCES_KEY)
except ImportError:
    from logger import get_logger
    from durable_store import (DurableStore, load_int_map, MISS_STREAKS_KEY,
                               OVERDUE_DEADLINES_KEY, GRACED_OCCURRENCES_KEY)

logger = get_logger(__name__)

GRACE_MS = 5 * 60 * 1000


class BossState(Enum):
    SCHEDULED = 'SCHEDULED'
    OVERDUE_GRACE = 'OVERDUE_GRACE'
    MISSED = 'MISSED'


class OverdueTracker:
    """Owns the grace deadlines and miss streaks, writing each change through to the store."""

    def __init__(self, store: DurableStore, grace_ms: int = GRACE_MS):
        """
        Initialize the tracker and rehydrate persisted state.

        Deadlines that already passed are kept and resolve to MISSED on the
        next expire() call.

        Args:
            store: Durable store for deadlines and streaks
            grace_ms: Length of the grace window
        """
        self.store = store
        self.grace_ms = grace_ms
        self._deadlines: Dict[str, int] = load_int_map(store, OVERDUE_DEADLINES_KEY)
        self._streaks: Dict[str, int] = {
            boss_id: count for boss_id, count in load_int_map(store, MISS_STREAKS_KEY).items() if count > 0
        }
        self._graced_occurrences: Dict[str, int] = load_int_map(store, GRACED_OCCURRENCES_KEY)
        if self._deadlines or self._streaks:
            logger.info(f"[GRACE] Rehydrated {len(self._deadlines)} grace deadline(s) "
                        f"and {len(self._streaks)} miss streak(s)")

    def state(self, boss_id: str) -> BossState:
        if boss_id in self._deadlines:
            return BossState.OVERDUE_GRACE
        if self._streaks.get(boss_id, 0) > 0:
            return BossState.MISSED
        return BossState.SCHEDULED

    def grace_deadline(self, boss_id: str) -> Optional[int]:
        return self._deadlines.get(boss_id)

    def grace_start(self, boss_id: str) -> Optional[int]:
        """When lateness was first observed for the current grace window."""
        deadline = self._deadlines.get(boss_id)
        return None if deadline is None else deadline - self.grace_ms

    def in_grace(self, boss_id: str) -> bool:
        return boss_id in self._deadlines

    def miss_streak(self, boss_id: str) -> int:
        return self._streaks.get(boss_id, 0)

    def deadlines(self) -> Dict[str, int]:
        return dict(self._deadlines)

    def streaks(self) -> Dict[str, int]:
        return dict(self._streaks)

    def observe(self, boss_id: str, occurrence_ms: float, now_ms: int) -> bool:
        """
        Feed the occurrence the boss is counting down to.

        Args:
            boss_id: Boss id
            occurrence_ms: Occurrence time (math.inf when unscheduled)
            now_ms: Current tick time

        Returns:
            True if the boss entered OVERDUE_GRACE on this call
        """
        if boss_id in self._deadlines:
            return False
        if not math.isfinite(occurrence_ms) or now_ms < occurrence_ms:
            return False
        if self._graced_occurrences.get(boss_id) == int(occurrence_ms):
            return False
        deadline = now_ms + self.grace_ms
        self._deadlines[boss_id] = deadline
        self._graced_occurrences[boss_id] = int(occurrence_ms)
        self._write(OVERDUE_DEADLINES_KEY, self._deadlines)
        self._write(GRACED_OCCURRENCES_KEY, self._graced_occurrences)
        logger.info(f"[GRACE] Boss {boss_id} overdue since {int(occurrence_ms)} - grace until {deadline}")
        return True

    def expire(self, now_ms: int) -> List[str]:
        """
        Finalize every grace window whose deadline has passed.

        Returns:
            Ids of bosses that just transitioned to MISSED
        """
        expired = [boss_id for boss_id, deadline in self._deadlines.items() if now_ms >= deadline]
        if not expired:
            return []
        for boss_id in expired:
            deadline = self._deadlines.pop(boss_id)
            self._streaks[boss_id] = self._streaks.get(boss_id, 0) + 1
            logger.info(f"[GRACE] Boss {boss_id} missed (grace ended {deadline}) - "
                        f"miss streak now {self._streaks[boss_id]}")
        self._write(OVERDUE_DEADLINES_KEY, self._deadlines)
        self._write(MISS_STREAKS_KEY, self._streaks)
        return expired

    def resolve(self, boss_id: str, settled_occurrence_ms: Optional[float] = None) -> None:
        """
        Reset a boss to SCHEDULED after a recorded cut or daze.

        Args:
            boss_id: Boss id
            settled_occurrence_ms: An already-passed occurrence the action accounted
                for. It is kept as the graced marker so a stale snapshot cannot
                reopen grace before the next poll lands.
        """
        had_deadline = self._deadlines.pop(boss_id, None) is not None
        had_streak = self._streaks.pop(boss_id, None) is not None
        if settled_occurrence_ms is not None and math.isfinite(settled_occurrence_ms):
            self._graced_occurrences[boss_id] = int(settled_occurrence_ms)
            had_marker = True
        else:
            had_marker = self._graced_occurrences.pop(boss_id, None) is not None
        if had_deadline:
            self._write(OVERDUE_DEADLINES_KEY, self._deadlines)
        if had_streak:
            self._write(MISS_STREAKS_KEY, self._streaks)
        if had_marker:
            self._write(GRACED_OCCURRENCES_KEY, self._graced_occurrences)
        logger.info(f"[GRACE] Boss {boss_id} reset to SCHEDULED")

    def _write(self, key: str, mapping: Dict[str, int]) -> None:
        try:
            self.store.set(key, dict(mapping))
        except Exception as e:
            # Store implementations should not raise; a failing write must not break the tick
            logger.error(f"[STATE] Write of '{key}' failed: {e}", exc_info=True)
