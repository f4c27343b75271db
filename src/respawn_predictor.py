"""Next-occurrence prediction for random-interval and fixed daily bosses.

All functions are pure: they take records, the current time in epoch
milliseconds and (for fixed bosses) a timezone, and return an epoch
millisecond value or ``math.inf`` when the boss has no schedule.
"""
import math
from typing import Iterable, Optional

try:
    from .logger import get_logger
    from .timestamp_formatter import TimestampFormatter, MINUTE_MS
except ImportError:
    from logger import get_logger
    from timestamp_formatter import TimestampFormatter, MINUTE_MS

logger = get_logger(__name__)

NO_SCHEDULE = math.inf

# Operating day boundary: 05:00 local time
CYCLE_ANCHOR_MINUTES = 5 * 60
MINUTES_PER_DAY = 24 * 60


def respawn_step_ms(respawn_minutes: float) -> Optional[int]:
    """Respawn interval in whole milliseconds (at least 1), or None without an interval."""
    try:
        minutes = float(respawn_minutes)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes) or minutes <= 0:
        return None
    return max(1, int(round(minutes * MINUTE_MS)))


def predict_tracked(boss, formatter: TimestampFormatter, last_known: Optional[float] = None) -> float:
    """
    Next occurrence for a boss the server currently tracks.

    The server hint is used verbatim, even when it is already in the past;
    callers treat a past value as overdue.

    Args:
        boss: BossRecord from the tracked collection
        formatter: Parses the hint timestamp
        last_known: Last value predicted locally for this boss

    Returns:
        Epoch milliseconds or NO_SCHEDULE
    """
    hinted = formatter.parse_timestamp_ms(boss.next_spawn_at)
    if hinted is not None:
        return hinted
    if last_known is not None and math.isfinite(last_known):
        return last_known
    return NO_SCHEDULE


def predict_random_interval(boss, now_ms: int, formatter: TimestampFormatter) -> float:
    """
    Roll the last cut forward by whole respawn intervals to the next occurrence.

    Args:
        boss: BossRecord with last_cut_at and respawn_minutes
        now_ms: Current time
        formatter: Parses the last cut timestamp

    Returns:
        The first last_cut + k*step that is not earlier than now, or NO_SCHEDULE
    """
    step = respawn_step_ms(boss.respawn_minutes)
    last_cut = formatter.parse_timestamp_ms(boss.last_cut_at)
    if step is None or last_cut is None:
        return NO_SCHEDULE
    diff = now_ms - last_cut
    if diff <= 0:
        # Cut recorded in the future: one full cycle after it
        return last_cut + step
    k = -(-diff // step)  # ceil for ints
    return last_cut + k * step


def cycle_anchor_ms(now_ms: int, formatter: TimestampFormatter) -> int:
    """Start of the operating day containing now: 05:00 local today, or yesterday before 05:00."""
    local_now = formatter.local_datetime(now_ms)
    days_offset = 0 if local_now.hour * 60 + local_now.minute >= CYCLE_ANCHOR_MINUTES else -1
    hour, minute = divmod(CYCLE_ANCHOR_MINUTES, 60)
    return formatter.local_time_ms(now_ms, hour, minute, days_offset=days_offset)


def next_cycle_anchor_ms(anchor_ms: int, formatter: TimestampFormatter) -> int:
    """The 05:00 local boundary following anchor_ms (DST aware)."""
    hour, minute = divmod(CYCLE_ANCHOR_MINUTES, 60)
    return formatter.local_time_ms(anchor_ms, hour, minute, days_offset=1)


def fixed_cycle_offset_minutes(gen_time_of_day: Optional[int]) -> Optional[int]:
    """
    Minutes from the cycle anchor to a fixed boss's spawn.

    A 05:00 boss closes its cycle, so its offset is a full day rather than 0.
    """
    if gen_time_of_day is None:
        return None
    try:
        gen = int(gen_time_of_day)
    except (TypeError, ValueError):
        return None
    if not 0 <= gen < MINUTES_PER_DAY:
        return None
    offset = (gen - CYCLE_ANCHOR_MINUTES + MINUTES_PER_DAY) % MINUTES_PER_DAY
    return offset or MINUTES_PER_DAY


def fixed_occurrence_ms(boss, anchor_ms: int) -> float:
    """Occurrence of a fixed boss inside the cycle starting at anchor_ms."""
    offset = fixed_cycle_offset_minutes(boss.gen_time_of_day)
    if offset is None:
        return NO_SCHEDULE
    return anchor_ms + offset * MINUTE_MS


def last_fixed_occurrence_ms(fixed_bosses: Iterable, anchor_ms: int) -> float:
    """Latest scheduled fixed occurrence of the cycle, or NO_SCHEDULE when none is scheduled."""
    occurrences = [fixed_occurrence_ms(boss, anchor_ms) for boss in fixed_bosses]
    finite = [occ for occ in occurrences if math.isfinite(occ)]
    return max(finite) if finite else NO_SCHEDULE


def in_post_last_window(fixed_bosses: Iterable, now_ms: int, formatter: TimestampFormatter) -> bool:
    """
    Whether now falls between the cycle's last fixed occurrence and the next anchor.

    While this holds every fixed boss counts as caught for the cycle.
    A 05:00 boss sits at the next anchor, so the window is empty whenever one exists.
    """
    anchor = cycle_anchor_ms(now_ms, formatter)
    last = last_fixed_occurrence_ms(fixed_bosses, anchor)
    if not math.isfinite(last):
        return False
    return last <= now_ms < next_cycle_anchor_ms(anchor, formatter)
