"""Respawn engine: owns boss state and runs predict -> grace -> alerts -> sort on every tick."""
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

try:
    from .logger import get_logger
    from .timestamp_formatter import TimestampFormatter, MINUTE_MS, now_ms as wall_clock_ms
    from .boss_snapshot import BossSnapshot, SnapshotStore, filter_bosses
    from .respawn_predictor import (predict_tracked, predict_random_interval, cycle_anchor_ms,
                                    fixed_occurrence_ms, in_post_last_window, NO_SCHEDULE)
    from .overdue_tracker import OverdueTracker, GRACE_MS
    from .alert_scheduler import (AlertScheduler, DEFAULT_THRESHOLDS_MS, MISSED_WARN_MS, TICK_MS,
                                  DEFAULT_ALERT_TEMPLATE, DEFAULT_FIXED_ALERT_TEMPLATE,
                                  DEFAULT_MISSED_WARNING_TEMPLATE)
    from .board_sorter import (Board, BoardEntry, sort_board, SOON_MS,
                               KIND_TRACKED, KIND_FORGOTTEN, KIND_FIXED)
    from .dashboard_client import DashboardApiError, DEFAULT_CUT_MODE
except ImportError:
    from logger import get_logger
    from timestamp_formatter import TimestampFormatter, MINUTE_MS, now_ms as wall_clock_ms
    from boss_snapshot import BossSnapshot, SnapshotStore, filter_bosses
    from respawn_predictor import (predict_tracked, predict_random_interval, cycle_anchor_ms,
                                   fixed_occurrence_ms, in_post_last_window, NO_SCHEDULE)
    from overdue_tracker import OverdueTracker, GRACE_MS
    from alert_scheduler import (AlertScheduler, DEFAULT_THRESHOLDS_MS, MISSED_WARN_MS, TICK_MS,
                                 DEFAULT_ALERT_TEMPLATE, DEFAULT_FIXED_ALERT_TEMPLATE,
                                 DEFAULT_MISSED_WARNING_TEMPLATE)
    from board_sorter import (Board, BoardEntry, sort_board, SOON_MS,
                              KIND_TRACKED, KIND_FORGOTTEN, KIND_FIXED)
    from dashboard_client import DashboardApiError, DEFAULT_CUT_MODE

logger = get_logger(__name__)


def _minutes_to_ms(value: Any, default: int) -> int:
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(minutes) or minutes < 0:
        return default
    return int(round(minutes * MINUTE_MS))


@dataclass
class EngineConfig:
    """Tunable engine constants. Defaults match the board's standard behaviour."""
    grace_ms: int = GRACE_MS
    thresholds_ms: Tuple[int, ...] = DEFAULT_THRESHOLDS_MS
    missed_warn_ms: int = MISSED_WARN_MS
    tick_ms: int = TICK_MS
    soon_ms: int = SOON_MS
    sentinel_boss_id: Optional[str] = None
    cut_mode: str = DEFAULT_CUT_MODE
    alert_template: str = DEFAULT_ALERT_TEMPLATE
    fixed_alert_template: str = DEFAULT_FIXED_ALERT_TEMPLATE
    missed_warning_template: str = DEFAULT_MISSED_WARNING_TEMPLATE

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'EngineConfig':
        """Build a config from the settings dict (minutes in the file, ms in the engine)."""
        config = cls()
        thresholds = settings.get('alert_thresholds_minutes')
        if isinstance(thresholds, list):
            parsed = tuple(_minutes_to_ms(t, 0) for t in thresholds)
            config.thresholds_ms = tuple(t for t in parsed if t > 0)
        config.grace_ms = _minutes_to_ms(settings.get('grace_minutes'), GRACE_MS) or GRACE_MS
        config.missed_warn_ms = _minutes_to_ms(settings.get('missed_warn_minutes'), MISSED_WARN_MS)
        config.soon_ms = _minutes_to_ms(settings.get('soon_minutes'), SOON_MS)
        try:
            config.tick_ms = max(100, int(settings.get('tick_interval_ms', TICK_MS)))
        except (TypeError, ValueError):
            config.tick_ms = TICK_MS
        sentinel = settings.get('fixed_sentinel_boss_id')
        config.sentinel_boss_id = str(sentinel) if sentinel not in (None, '') else None
        config.cut_mode = settings.get('cut_mode') or DEFAULT_CUT_MODE
        config.alert_template = settings.get('alert_message_template') or DEFAULT_ALERT_TEMPLATE
        config.fixed_alert_template = settings.get('fixed_alert_message_template') or DEFAULT_FIXED_ALERT_TEMPLATE
        config.missed_warning_template = settings.get('missed_warning_template') or DEFAULT_MISSED_WARNING_TEMPLATE
        return config


@dataclass
class TickResult:
    """What a single tick did, besides producing the board."""
    board: Board
    entered_grace: List[str] = field(default_factory=list)
    missed: List[str] = field(default_factory=list)
    announcements: List[str] = field(default_factory=list)


class RespawnEngine:
    """Owns the snapshot, prediction caches, grace state and alert bookkeeping for one session."""

    def __init__(self, store, announcer, client=None,
                 formatter: Optional[TimestampFormatter] = None,
                 config: Optional[EngineConfig] = None,
                 on_refresh_requested: Optional[Callable[[], None]] = None):
        """
        Initialize the engine.

        Args:
            store: DurableStore for grace deadlines, miss streaks and the alert toggle
            announcer: Announcer used by the alert scheduler
            client: DashboardClient (or a compatible fake) for commands
            formatter: TimestampFormatter for parsing and the local cycle anchor
            config: EngineConfig
            on_refresh_requested: Called after a successful command so the caller can re-poll
        """
        self.store = store
        self.client = client
        self.formatter = formatter or TimestampFormatter()
        self.config = config or EngineConfig()
        self.on_refresh_requested = on_refresh_requested

        self.snapshots = SnapshotStore()
        self.last_known: Dict[str, float] = {}
        self._prediction_basis: Dict[str, Optional[int]] = {}
        self._last_cut_seen: Dict[str, int] = {}
        self.timeline_ids: Dict[str, str] = {}
        self.tracker = OverdueTracker(store, self.config.grace_ms)
        self.alerts = AlertScheduler(
            announcer, store,
            thresholds_ms=self.config.thresholds_ms,
            missed_warn_ms=self.config.missed_warn_ms,
            tick_ms=self.config.tick_ms,
            alert_template=self.config.alert_template,
            fixed_alert_template=self.config.fixed_alert_template,
            missed_warning_template=self.config.missed_warning_template,
        )
        self.search_query = ''
        self.board = Board()
        self.awaiting_refresh = set()
        self.has_snapshot = False
        self.last_poll_error: Optional[Exception] = None

    # ----- snapshot -----

    def apply_snapshot(self, data) -> None:
        """
        Replace the snapshot with a successful poll result.

        Args:
            data: Raw response dict or a BossSnapshot
        """
        snapshot = data if isinstance(data, BossSnapshot) else BossSnapshot.from_response(data or {})
        self.snapshots.replace(snapshot)
        self.has_snapshot = True
        self.awaiting_refresh.clear()
        self.last_poll_error = None
        logger.info(f"[POLL] Snapshot applied: {len(snapshot.tracked)} tracked, "
                    f"{len(snapshot.forgotten)} forgotten, {len(snapshot.fixed)} fixed")

    def on_poll_failed(self, error: Exception) -> None:
        """Show no data for this refresh. Grace deadlines, streaks and caches stay as they are."""
        logger.warning(f"[POLL] Snapshot poll failed: {error}")
        self.snapshots.replace(BossSnapshot.empty())
        self.last_poll_error = error

    def set_search_query(self, query: str) -> None:
        self.search_query = query or ''

    def set_alerts_enabled(self, enabled: bool) -> None:
        self.alerts.set_enabled(enabled)

    @property
    def alerts_enabled(self) -> bool:
        return self.alerts.enabled

    # ----- tick -----

    def tick(self, now_ms: Optional[int] = None) -> TickResult:
        """
        Recompute everything for one clock tick.

        Order is fixed: prediction, then the grace state machine, then alerts,
        then sorting.

        Args:
            now_ms: Tick time (defaults to the wall clock)

        Returns:
            TickResult holding the new board
        """
        now = wall_clock_ms() if now_ms is None else int(now_ms)
        result = TickResult(board=self.board)

        random_bosses = self.snapshots.random_bosses()
        fixed_bosses = self.snapshots.fixed_bosses()

        # 1. prediction
        occurrences: Dict[str, float] = {}
        crossings: Dict[str, float] = {}
        last_cuts: Dict[str, Optional[int]] = {}
        previous_known: Dict[str, Optional[float]] = {}
        for boss in random_bosses:
            previous = self.last_known.get(boss.id)
            previous_known[boss.id] = previous
            last_cut = self.formatter.parse_timestamp_ms(boss.last_cut_at)
            last_cuts[boss.id] = last_cut
            if self.snapshots.is_tracked(boss.id):
                occurrence = predict_tracked(boss, self.formatter, previous)
            else:
                occurrence = predict_random_interval(boss, now, self.formatter)
            occurrences[boss.id] = occurrence
            crossings[boss.id] = occurrence
            # A rolled-forward prediction hides the occurrence that just passed
            if (previous is not None and math.isfinite(previous) and previous <= now < occurrence
                    and self._prediction_basis.get(boss.id) == last_cut):
                crossings[boss.id] = previous
            if math.isfinite(occurrence):
                self.last_known[boss.id] = occurrence
                self._prediction_basis[boss.id] = last_cut

        anchor = cycle_anchor_ms(now, self.formatter)
        post_last = in_post_last_window(fixed_bosses, now, self.formatter)
        fixed_state = {}
        for boss in fixed_bosses:
            occurrence = fixed_occurrence_ms(boss, anchor)
            last_cut = self.formatter.parse_timestamp_ms(boss.last_cut_at)
            caught = post_last or boss.id in self.awaiting_refresh or (last_cut is not None and last_cut >= anchor)
            in_grace = (not caught and math.isfinite(occurrence)
                        and occurrence <= now < occurrence + self.config.grace_ms)
            fixed_state[boss.id] = (occurrence, last_cut, caught, in_grace)

        # 2. grace state machine
        for boss in random_bosses:
            self._resolve_if_cut_elsewhere(boss, last_cuts[boss.id], previous_known[boss.id], now)
            if boss.id in self.awaiting_refresh:
                continue
            if self.tracker.observe(boss.id, crossings[boss.id], now):
                result.entered_grace.append(boss.id)
        for boss_id in self.tracker.expire(now):
            self.alerts.clear(boss_id)
            result.missed.append(boss_id)

        # 3. alerts over the visible set
        try:
            result.announcements.extend(self._run_alerts(random_bosses, fixed_bosses, occurrences,
                                                         fixed_state, anchor, now))
        except Exception as e:
            logger.error(f"[ALERT] Alert pass failed: {e}", exc_info=True)

        # 4. sort
        random_entries = [self._random_entry(boss, occurrences[boss.id], now) for boss in random_bosses]
        fixed_entries = [self._fixed_entry(boss, fixed_state[boss.id], now) for boss in fixed_bosses]
        if self.search_query.strip():
            visible_ids = {b.id for b in filter_bosses(random_bosses + fixed_bosses, self.search_query)}
            random_entries = [e for e in random_entries if e.boss_id in visible_ids]
            fixed_entries = [e for e in fixed_entries if e.boss_id in visible_ids]
        self.board = sort_board(random_entries, fixed_entries, soon_ms=self.config.soon_ms,
                                sentinel_boss_id=self.config.sentinel_boss_id)
        result.board = self.board
        return result

    def _resolve_if_cut_elsewhere(self, boss, last_cut: Optional[int], previous: Optional[float],
                                  now: int) -> None:
        """A newer lastCutAt means someone recorded a cut or daze, possibly on another device."""
        if last_cut is None:
            return
        seen = self._last_cut_seen.get(boss.id)
        self._last_cut_seen[boss.id] = last_cut
        if seen is None or last_cut <= seen:
            return
        if self.tracker.in_grace(boss.id) or self.tracker.miss_streak(boss.id):
            logger.info(f"[CUT] {boss.name} has a newer recorded cut - resetting grace and miss streak")
        settled = previous if previous is not None and previous <= now else None
        self.tracker.resolve(boss.id, settled)
        self.alerts.clear(boss.id)

    def _run_alerts(self, random_bosses, fixed_bosses, occurrences, fixed_state, anchor, now) -> List[str]:
        announced = []
        visible_random = filter_bosses(random_bosses, self.search_query)
        visible_fixed = filter_bosses(fixed_bosses, self.search_query)
        for boss in visible_random:
            if boss.id in self.awaiting_refresh:
                continue
            announced.extend(self.alerts.check_thresholds(boss, occurrences[boss.id], now))
            if self.tracker.in_grace(boss.id):
                message = self.alerts.check_missed_warning(boss, self.tracker.grace_start(boss.id), now)
                if message:
                    announced.append(message)
        self.alerts.begin_cycle(anchor)
        for boss in visible_fixed:
            occurrence, _, caught, in_grace = fixed_state[boss.id]
            if caught:
                continue
            announced.extend(self.alerts.check_fixed_thresholds(boss, occurrence, now))
            if in_grace:
                message = self.alerts.check_missed_warning(boss, occurrence, now, fixed=True)
                if message:
                    announced.append(message)
        return announced

    def _random_entry(self, boss, occurrence: float, now: int) -> BoardEntry:
        in_grace = self.tracker.in_grace(boss.id)
        return BoardEntry(
            boss_id=boss.id,
            name=boss.name,
            location=boss.location,
            kind=KIND_TRACKED if self.snapshots.is_tracked(boss.id) else KIND_FORGOTTEN,
            occurrence_ms=occurrence,
            remaining_ms=occurrence - now if math.isfinite(occurrence) else NO_SCHEDULE,
            in_grace=in_grace,
            grace_deadline=self.tracker.grace_deadline(boss.id),
            miss_streak=self.tracker.miss_streak(boss.id),
            has_history=self.formatter.parse_timestamp_ms(boss.last_cut_at) is not None,
            is_random=boss.is_random,
            daze_count=boss.daze_count,
        )

    def _fixed_entry(self, boss, state, now: int) -> BoardEntry:
        occurrence, last_cut, caught, in_grace = state
        return BoardEntry(
            boss_id=boss.id,
            name=boss.name,
            location=boss.location,
            kind=KIND_FIXED,
            occurrence_ms=occurrence,
            remaining_ms=occurrence - now if math.isfinite(occurrence) else NO_SCHEDULE,
            in_grace=in_grace,
            grace_deadline=int(occurrence + self.config.grace_ms) if in_grace else None,
            has_history=last_cut is not None,
            caught=caught,
        )

    # ----- user actions -----

    def send_cut(self, boss_id: str, at_ms: Optional[int] = None) -> Any:
        """
        Send a cut to the backend without touching local state.

        Safe to call from a worker thread.

        Raises:
            ValueError: unknown boss
            DashboardApiError: the backend rejected or could not be reached
        """
        boss = self.snapshots.find_any(boss_id)
        if boss is None:
            raise ValueError(f"Unknown boss id: {boss_id}")
        if self.client is None:
            raise DashboardApiError("No backend configured")
        at = wall_clock_ms() if at_ms is None else int(at_ms)
        return self.client.record_cut(boss_id, at, mode=self.config.cut_mode, items=[], participants=[])

    def send_miss(self, boss_id: str, at_ms: Optional[int] = None) -> str:
        """
        Send a daze for a random-interval boss without touching local state.

        Safe to call from a worker thread.

        Returns:
            The timeline id the daze was recorded against

        Raises:
            ValueError: unknown boss, or a boss a miss does not apply to
            DashboardApiError: no timeline found, or the backend call failed
        """
        boss = self.snapshots.get(boss_id)
        if boss is None:
            raise ValueError(f"Unknown boss id: {boss_id}")
        if not boss.is_random:
            raise ValueError(f"{boss.name} is not a random-interval boss")
        if self.client is None:
            raise DashboardApiError("No backend configured")
        timeline_id = self.timeline_ids.get(boss.name) or self.client.resolve_timeline_id(boss.name)
        if not timeline_id:
            raise DashboardApiError(f"No recent cut timeline found for {boss.name}")
        at = wall_clock_ms() if at_ms is None else int(at_ms)
        self.client.record_miss(timeline_id, at)
        return timeline_id

    def confirm_cut(self, boss_id: str, now_ms: Optional[int] = None) -> None:
        """Apply a confirmed cut locally. Call on the main thread."""
        boss = self.snapshots.find_any(boss_id)
        if boss is not None:
            # A new cut starts a new timeline entry
            self.timeline_ids.pop(boss.name, None)
        self._reset_boss(boss_id, '[CUT]', now_ms)

    def confirm_miss(self, boss_id: str, timeline_id: Optional[str] = None,
                     now_ms: Optional[int] = None) -> None:
        """Apply a confirmed daze locally. Call on the main thread."""
        boss = self.snapshots.get(boss_id)
        if boss is not None and timeline_id:
            self.timeline_ids[boss.name] = timeline_id
        self._reset_boss(boss_id, '[DAZE]', now_ms)

    def record_cut(self, boss_id: str, at_ms: Optional[int] = None, now_ms: Optional[int] = None) -> None:
        """Send a cut and, once the backend accepts it, reset the boss. Failures mutate nothing."""
        self.send_cut(boss_id, at_ms)
        self.confirm_cut(boss_id, now_ms)

    def record_miss(self, boss_id: str, at_ms: Optional[int] = None, now_ms: Optional[int] = None) -> None:
        """Send a daze and, once the backend accepts it, reset the boss. Failures mutate nothing."""
        timeline_id = self.send_miss(boss_id, at_ms)
        self.confirm_miss(boss_id, timeline_id, now_ms)

    def _reset_boss(self, boss_id: str, tag: str, now_ms: Optional[int]) -> None:
        now = wall_clock_ms() if now_ms is None else int(now_ms)
        last_known = self.last_known.pop(boss_id, None)
        self._prediction_basis.pop(boss_id, None)
        settled = last_known if last_known is not None and last_known <= now else None
        self.tracker.resolve(boss_id, settled)
        self.alerts.clear(boss_id)
        # The snapshot still shows the old cut until the next poll lands
        self.awaiting_refresh.add(boss_id)
        logger.info(f"{tag} Boss {boss_id} reset - requesting refresh")
        if self.on_refresh_requested:
            try:
                self.on_refresh_requested()
            except Exception as e:
                logger.error(f"{tag} Refresh request failed: {e}", exc_info=True)
