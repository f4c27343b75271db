"""Pre-spawn and missed-warning announcements, fired at most once per occurrence."""
import math
from typing import Dict, Iterable, List, Optional, Set

try:
    from .logger import get_logger
    from .durable_store import DurableStore, ALERTS_ENABLED_KEY
    from .timestamp_formatter import MINUTE_MS
except ImportError:
    from logger import get_logger
    from durable_store import DurableStore, ALERTS_ENABLED_KEY
    from timestamp_formatter import MINUTE_MS

logger = get_logger(__name__)

DEFAULT_THRESHOLDS_MS = (5 * MINUTE_MS, 1 * MINUTE_MS)
MISSED_WARN_MS = 3 * MINUTE_MS
TICK_MS = 1000

DEFAULT_ALERT_TEMPLATE = "{name} spawns in {minutes} minutes"
DEFAULT_FIXED_ALERT_TEMPLATE = "{name} at {location} spawns in {minutes} minutes"
DEFAULT_MISSED_WARNING_TEMPLATE = "{name} will be marked missed soon"


def format_message(template: str, **kwargs) -> str:
    """
    Fill a message template.

    Args:
        template: Template with {variable} placeholders
        **kwargs: Variables to substitute

    Returns:
        Formatted message, or the raw template if a variable is missing
    """
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError, ValueError) as e:
        logger.error(f"[ALERT] Bad message template '{template}': {e}")
        return template


class AlertScheduler:
    """Tracks which thresholds already fired and speaks through an Announcer."""

    def __init__(self, announcer, store: DurableStore,
                 thresholds_ms: Iterable[int] = DEFAULT_THRESHOLDS_MS,
                 missed_warn_ms: int = MISSED_WARN_MS,
                 tick_ms: int = TICK_MS,
                 alert_template: str = DEFAULT_ALERT_TEMPLATE,
                 fixed_alert_template: str = DEFAULT_FIXED_ALERT_TEMPLATE,
                 missed_warning_template: str = DEFAULT_MISSED_WARNING_TEMPLATE):
        """
        Initialize the scheduler.

        Args:
            announcer: Announcer capability
            store: Durable store holding the global enable toggle
            thresholds_ms: Lead times before an occurrence that trigger an announcement
            missed_warn_ms: How far into an overdue episode the missed warning fires
            tick_ms: Tick length, the width of the missed-warning window
        """
        self.announcer = announcer
        self.store = store
        self.thresholds_ms = sorted({int(t) for t in thresholds_ms if t and t > 0}, reverse=True)
        self.missed_warn_ms = missed_warn_ms
        self.tick_ms = tick_ms
        self.alert_template = alert_template
        self.fixed_alert_template = fixed_alert_template
        self.missed_warning_template = missed_warning_template

        self._fired: Dict[str, Set[int]] = {}
        self._fired_occurrence: Dict[str, float] = {}
        self._missed_warned: Set[str] = set()
        self._fixed_fired: Dict[str, Set[int]] = {}
        self._fixed_missed_warned: Set[str] = set()
        self._fixed_anchor: Optional[int] = None

        stored = store.get(ALERTS_ENABLED_KEY, True)
        self.enabled = stored if isinstance(stored, bool) else True

    def set_enabled(self, enabled: bool) -> None:
        """Turn alert side effects on or off and persist the choice."""
        self.enabled = bool(enabled)
        try:
            self.store.set(ALERTS_ENABLED_KEY, self.enabled)
        except Exception as e:
            logger.error(f"[ALERT] Could not persist alert toggle: {e}", exc_info=True)
        logger.info(f"[ALERT] Alerts {'enabled' if self.enabled else 'disabled'}")

    def fired_thresholds(self, boss_id: str) -> Set[int]:
        return set(self._fired.get(boss_id, set()))

    def fixed_fired_thresholds(self, boss_id: str) -> Set[int]:
        return set(self._fixed_fired.get(boss_id, set()))

    def missed_warned(self, boss_id: str) -> bool:
        return boss_id in self._missed_warned

    def clear(self, boss_id: str) -> None:
        """Forget all bookkeeping for a boss (cut, daze or grace expiry)."""
        self._fired.pop(boss_id, None)
        self._fired_occurrence.pop(boss_id, None)
        self._missed_warned.discard(boss_id)
        self._fixed_fired.pop(boss_id, None)
        self._fixed_missed_warned.discard(boss_id)

    def check_thresholds(self, boss, occurrence_ms: float, now_ms: int) -> List[str]:
        """
        Announce the pre-spawn thresholds a random-interval boss has crossed.

        Args:
            boss: BossRecord
            occurrence_ms: Predicted occurrence
            now_ms: Current tick time

        Returns:
            Messages announced on this call
        """
        if not math.isfinite(occurrence_ms):
            return []
        if self._fired_occurrence.get(boss.id) != occurrence_ms:
            if boss.id in self._fired:
                logger.debug(f"[ALERT] Occurrence for {boss.name} moved - clearing fired thresholds")
            self._fired[boss.id] = set()
            self._fired_occurrence[boss.id] = occurrence_ms
        remaining = occurrence_ms - now_ms
        return self._fire_due(boss, remaining, self._fired[boss.id], self.alert_template)

    def begin_cycle(self, anchor_ms: int) -> None:
        """Start over the fixed-boss bookkeeping when the daily cycle anchor changes."""
        if self._fixed_anchor == anchor_ms:
            return
        if self._fixed_anchor is not None:
            logger.info("[ALERT] New daily cycle - resetting fixed boss alerts")
        self._fixed_fired = {}
        self._fixed_missed_warned = set()
        self._fixed_anchor = anchor_ms

    def check_fixed_thresholds(self, boss, occurrence_ms: float, now_ms: int) -> List[str]:
        """Announce the pre-spawn thresholds a fixed-cycle boss has crossed this cycle."""
        if not math.isfinite(occurrence_ms):
            return []
        fired = self._fixed_fired.setdefault(boss.id, set())
        return self._fire_due(boss, occurrence_ms - now_ms, fired, self.fixed_alert_template)

    def check_missed_warning(self, boss, overdue_start_ms: Optional[float], now_ms: int,
                             fixed: bool = False) -> Optional[str]:
        """
        Warn once per overdue episode shortly before grace runs out.

        Args:
            boss: Boss record currently in its grace window
            overdue_start_ms: When lateness was first observed
            now_ms: Current tick time
            fixed: Whether the boss is a fixed-cycle boss (flag resets with the cycle)

        Returns:
            The message announced, if any
        """
        warned = self._fixed_missed_warned if fixed else self._missed_warned
        if overdue_start_ms is None or boss.id in warned:
            return None
        overdue = now_ms - overdue_start_ms
        if not self.missed_warn_ms <= overdue < self.missed_warn_ms + self.tick_ms:
            return None
        warned.add(boss.id)
        message = format_message(self.missed_warning_template, name=boss.name,
                                 location=boss.location or '')
        self._announce(message)
        return message

    def _fire_due(self, boss, remaining_ms: float, fired: Set[int], template: str) -> List[str]:
        if remaining_ms <= 0:
            return []
        due = [t for t in self.thresholds_ms if remaining_ms <= t and t not in fired]
        if not due:
            return []
        fired.update(due)
        # Several thresholds can be crossed at once (e.g. after a late poll); speak the nearest one
        threshold = min(due)
        minutes = max(1, int(math.ceil(threshold / MINUTE_MS)))
        message = format_message(template, name=boss.name, location=boss.location or '', minutes=minutes)
        self._announce(message)
        return [message]

    def _announce(self, message: str) -> None:
        if not self.enabled:
            logger.debug(f"[ALERT] Alerts disabled - not announcing '{message}'")
            return
        logger.info(f"[ALERT] {message}")
        try:
            self.announcer.announce(message)
        except Exception as e:
            logger.error(f"[ALERT] Announcer failed for '{message}': {e}", exc_info=True)
