"""Test quick-cut parsing and boss matching."""
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

from boss_snapshot import BossRecord, FixedBossRecord
from quick_cut import QuickCutParser
from timestamp_formatter import TimestampFormatter

from mock_backend import T0, MINUTE_MS

BOSSES = [
    BossRecord(id="b1", name="Kutum", location="Desert", respawn_minutes=60, is_random=True),
    BossRecord(id="b2", name="Karanda", location="Ridge", respawn_minutes=90, is_random=True),
    FixedBossRecord(id="f1", name="Garmoth", location="Dragon Nest", gen_time_of_day=22 * 60),
]


def test_parse_formats():
    request = QuickCutParser.parse("2200 kutum")
    assert (request.hour, request.minute, request.name_query) == (22, 0, "kutum")

    request = QuickCutParser.parse("22:00 Kutum")
    assert (request.hour, request.minute, request.name_query) == (22, 0, "kutum")

    request = QuickCutParser.parse("930 Dragon   Nest")
    assert (request.hour, request.minute, request.name_query) == (9, 30, "dragon nest")

    request = QuickCutParser.parse("7:05 kar")
    assert (request.hour, request.minute) == (7, 5)
    print("[OK] HHMM, HH:MM and HMM forms parse")


def test_parse_rejects():
    for text in ("2500 kutum", "2260 kutum", "kutum 2200", "22 kutum", "2200", "", None):
        assert QuickCutParser.parse(text) is None, text
    print("[OK] Out-of-range and malformed input is rejected")


def test_resolve():
    formatter = TimestampFormatter("UTC")

    request = QuickCutParser.resolve("2200 kar", BOSSES, formatter, T0)
    assert request.boss.id == "b2"
    assert request.at_ms == T0 + 10 * 60 * MINUTE_MS  # T0 is 12:00 UTC
    print("[OK] Query matches by substring, time is today's local time")

    request = QuickCutParser.resolve("0930 nest", BOSSES, formatter, T0)
    assert request.boss.id == "f1"
    assert request.at_ms == T0 - (2 * 60 + 30) * MINUTE_MS
    print("[OK] Query matches the location as well")

    request = QuickCutParser.resolve("1200 nobody", BOSSES, formatter, T0)
    assert request is not None and request.boss is None
    assert QuickCutParser.resolve("hello", BOSSES, formatter, T0) is None
    print("[OK] No match and unparseable input are reported separately")


def test_resolve_local_timezone():
    formatter = TimestampFormatter("Asia/Seoul")
    # 12:00 UTC is 21:00 in Seoul
    request = QuickCutParser.resolve("2200 kutum", BOSSES, formatter, T0)
    assert request.boss.id == "b1"
    assert request.at_ms == T0 + 60 * MINUTE_MS
    print("[OK] Quick cut time uses the configured timezone")


if __name__ == "__main__":
    test_parse_formats()
    test_parse_rejects()
    test_resolve()
    test_resolve_local_timezone()
    print("\nAll tests passed!")
