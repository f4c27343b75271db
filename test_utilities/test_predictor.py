"""Test next-occurrence prediction for random-interval and fixed-cycle bosses."""
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

import math

from timestamp_formatter import TimestampFormatter
from boss_snapshot import BossRecord, FixedBossRecord
import respawn_predictor as rp

from mock_backend import T0, MINUTE_MS, iso

HOUR_MS = 60 * MINUTE_MS
# 2026-01-15 04:00 in Seoul (UTC+9)
SEOUL_0400 = T0 - 17 * HOUR_MS


def _random_boss(respawn=60, last_cut_ms=T0, next_spawn_ms=None):
    return BossRecord(id="b1", name="Kutum", respawn_minutes=respawn,
                      last_cut_at=iso(last_cut_ms) if last_cut_ms is not None else None,
                      next_spawn_at=iso(next_spawn_ms) if next_spawn_ms is not None else None,
                      is_random=True)


def test_random_interval_rolls_forward():
    formatter = TimestampFormatter("UTC")
    boss = _random_boss(respawn=60)

    predicted = rp.predict_random_interval(boss, T0 + 125 * MINUTE_MS, formatter)
    assert predicted == T0 + 180 * MINUTE_MS, f"Expected T0+180min, got {predicted - T0}"
    print("[OK] r=60, now=T0+125min -> T0+180min")

    step = 60 * MINUTE_MS
    for d in (1, 59_999, 3_600_001, 7_500_000, 86_400_123, 1_000_000_007):
        now = T0 + d
        predicted = rp.predict_random_interval(boss, now, formatter)
        assert predicted >= now, f"Prediction {predicted} is before now {now}"
        assert (predicted - T0) % step == 0, "Prediction must stay on the respawn grid"
    print("[OK] Predictions are never in the past and stay congruent to the last cut")

    boss = _random_boss(respawn=7.5)
    predicted = rp.predict_random_interval(boss, T0 + 8 * MINUTE_MS, formatter)
    assert predicted == T0 + 15 * MINUTE_MS
    print("[OK] Fractional respawn minutes")


def test_future_cut_and_missing_data():
    formatter = TimestampFormatter("UTC")
    boss = _random_boss(respawn=60)
    assert rp.predict_random_interval(boss, T0 - 10 * MINUTE_MS, formatter) == T0 + 60 * MINUTE_MS
    assert rp.predict_random_interval(boss, T0, formatter) == T0 + 60 * MINUTE_MS
    print("[OK] A cut at or after now predicts one full interval later")

    assert rp.predict_random_interval(_random_boss(last_cut_ms=None), T0, formatter) == math.inf
    assert rp.predict_random_interval(_random_boss(respawn=0), T0, formatter) == math.inf
    bad = BossRecord(id="b2", name="Bad", respawn_minutes=60, last_cut_at="not-a-date")
    assert rp.predict_random_interval(bad, T0, formatter) == math.inf
    print("[OK] Missing or malformed data means no schedule")

    assert rp.respawn_step_ms(0.000001) == 1
    assert rp.respawn_step_ms(-5) is None
    assert rp.respawn_step_ms("abc") is None
    print("[OK] Step is at least 1 ms")


def test_tracked_hint():
    formatter = TimestampFormatter("UTC")
    boss = _random_boss(next_spawn_ms=T0 - 2 * MINUTE_MS)
    assert rp.predict_tracked(boss, formatter) == T0 - 2 * MINUTE_MS
    print("[OK] A past server hint is used verbatim")

    no_hint = _random_boss(next_spawn_ms=None)
    assert rp.predict_tracked(no_hint, formatter, last_known=T0 + 5) == T0 + 5
    assert rp.predict_tracked(no_hint, formatter) == math.inf
    assert rp.predict_tracked(no_hint, formatter, last_known=math.inf) == math.inf
    print("[OK] Falls back to the last local prediction, then to no schedule")


def test_fixed_cycle_anchor():
    formatter = TimestampFormatter("Asia/Seoul")
    anchor = rp.cycle_anchor_ms(SEOUL_0400, formatter)
    yesterday_0500 = SEOUL_0400 - 23 * HOUR_MS
    assert anchor == yesterday_0500, "Before 05:00 the cycle started yesterday"
    assert rp.cycle_anchor_ms(SEOUL_0400 + HOUR_MS, formatter) == SEOUL_0400 + HOUR_MS
    assert rp.next_cycle_anchor_ms(anchor, formatter) == anchor + 24 * HOUR_MS
    print("[OK] Cycle anchor is 05:00 local, yesterday before 05:00")

    five = FixedBossRecord(id="f5", name="Dawn", gen_time_of_day=300)
    occurrence = rp.fixed_occurrence_ms(five, anchor)
    assert occurrence == SEOUL_0400 + HOUR_MS, "05:00 boss at 04:00 belongs to yesterday's cycle"
    print("[OK] 05:00 boss closes the cycle anchored the previous day")

    ten_pm = FixedBossRecord(id="f22", name="Night", gen_time_of_day=22 * 60)
    assert rp.fixed_occurrence_ms(ten_pm, anchor) == anchor + 17 * HOUR_MS
    assert rp.fixed_cycle_offset_minutes(6 * 60) == 60
    assert rp.fixed_cycle_offset_minutes(300) == 1440
    assert rp.fixed_cycle_offset_minutes(None) is None
    assert rp.fixed_cycle_offset_minutes(1440) is None
    assert rp.fixed_occurrence_ms(FixedBossRecord(id="u", name="U"), anchor) == math.inf
    print("[OK] Offsets from the anchor")


def test_post_last_window():
    formatter = TimestampFormatter("Asia/Seoul")
    bosses = [
        FixedBossRecord(id="a", name="A", gen_time_of_day=22 * 60),
        FixedBossRecord(id="b", name="B", gen_time_of_day=1 * 60),
        FixedBossRecord(id="u", name="Unscheduled", gen_time_of_day=None),
    ]
    anchor = rp.cycle_anchor_ms(SEOUL_0400, formatter)
    assert rp.last_fixed_occurrence_ms(bosses, anchor) == anchor + 20 * HOUR_MS
    # 04:00 is after the 01:00 boss and before the 05:00 anchor
    assert rp.in_post_last_window(bosses, SEOUL_0400, formatter)
    # 00:30 is before the 01:00 boss
    assert not rp.in_post_last_window(bosses, SEOUL_0400 - 3.5 * HOUR_MS, formatter)
    # 05:00 starts a new cycle
    assert not rp.in_post_last_window(bosses, SEOUL_0400 + HOUR_MS, formatter)
    assert not rp.in_post_last_window([], SEOUL_0400, formatter)

    closing = bosses + [FixedBossRecord(id="c", name="Closing", gen_time_of_day=5 * 60)]
    assert rp.last_fixed_occurrence_ms(closing, anchor) == anchor + 24 * HOUR_MS
    assert not rp.in_post_last_window(closing, SEOUL_0400, formatter)
    print("[OK] Post-last window runs from the last fixed spawn to the next anchor, never with a 05:00 boss")


if __name__ == "__main__":
    test_random_interval_rolls_forward()
    test_future_cut_and_missing_data()
    test_tracked_hint()
    test_fixed_cycle_anchor()
    test_post_last_window()
    print("\nAll tests passed!")
