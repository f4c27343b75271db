"""Parse quick-cut input such as "2200 name", "22:00 name" or "930 name"."""
import re
from dataclasses import dataclass
from typing import Iterable, Optional

try:
    from .logger import get_logger
    from .timestamp_formatter import TimestampFormatter
except ImportError:
    from logger import get_logger
    from timestamp_formatter import TimestampFormatter

logger = get_logger(__name__)

QUICK_CUT_HELP = "Format: time boss (e.g. 2200 name / 22:00 name / 930 name)"


@dataclass
class QuickCutRequest:
    """A parsed quick-cut line."""
    hour: int
    minute: int
    name_query: str
    boss: Optional[object] = None
    at_ms: Optional[int] = None


class QuickCutParser:
    """Turn a quick-cut line into a boss and a cut time today."""

    # 3-4 digits ("930", "2200") or H:MM / HH:MM, then the boss query
    PATTERN = re.compile(r"^(?:(\d{3,4})|(\d{1,2}):(\d{2}))\s+(.+)$")

    @classmethod
    def parse(cls, text: str) -> Optional[QuickCutRequest]:
        """
        Parse the time and name query.

        Returns:
            QuickCutRequest without a boss, or None if the text is not in quick-cut form
        """
        match = cls.PATTERN.match((text or '').strip())
        if not match:
            return None
        compact, hours, minutes, query = match.groups()
        if compact:
            padded = compact.zfill(4)
            hour, minute = int(padded[:2]), int(padded[2:])
        else:
            hour, minute = int(hours), int(minutes)
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            logger.debug(f"[CUT] Quick cut time out of range: {text!r}")
            return None
        return QuickCutRequest(hour=hour, minute=minute, name_query=' '.join(query.split()).lower())

    @classmethod
    def resolve(cls, text: str, bosses: Iterable, formatter: TimestampFormatter,
                now_ms: int) -> Optional[QuickCutRequest]:
        """
        Parse a quick-cut line and pick the boss it refers to.

        The first boss whose "name location" contains the query wins. The time
        is taken as today's local time.

        Args:
            text: Raw input
            bosses: Candidate bosses, in board order
            formatter: Supplies the local timezone
            now_ms: Current time, which decides what "today" is

        Returns:
            QuickCutRequest (boss is None when nothing matched), or None if unparseable
        """
        request = cls.parse(text)
        if request is None:
            return None
        for boss in bosses:
            haystack = f"{boss.name} {boss.location or ''}".lower()
            if request.name_query in haystack:
                request.boss = boss
                break
        request.at_ms = formatter.local_time_ms(now_ms, request.hour, request.minute)
        if request.boss is None:
            logger.info(f"[CUT] Quick cut found no boss for '{request.name_query}'")
        return request
