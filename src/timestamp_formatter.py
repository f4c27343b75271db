"""Parse backend timestamps and format countdowns in the user's timezone."""
import math
import time
from datetime import datetime, timedelta
from typing import Optional, Union
import pytz

try:
    from .logger import get_logger
except ImportError:
    from logger import get_logger

logger = get_logger(__name__)

MINUTE_MS = 60 * 1000


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class TimestampFormatter:
    """Converts between backend timestamps, epoch milliseconds and local display strings."""

    def __init__(self, user_timezone: Optional[str] = None):
        """
        Initialize the timestamp formatter.

        Args:
            user_timezone: IANA timezone (e.g. 'Asia/Seoul', 'Europe/London').
                          If None or empty, auto-detect from the system.
        """
        if user_timezone and user_timezone.strip():
            try:
                self.user_tz = pytz.timezone(user_timezone.strip())
            except pytz.exceptions.UnknownTimeZoneError:
                logger.warning(f"Unknown timezone '{user_timezone}', falling back to system timezone")
                self.user_tz = pytz.timezone(self.get_system_timezone())
        else:
            self.user_tz = pytz.timezone(self.get_system_timezone())

    def set_timezone(self, timezone: str) -> None:
        """Set the user's timezone. Pass empty string to use system (auto-detect)."""
        if not timezone or not timezone.strip():
            tz_name = self.get_system_timezone()
            self.user_tz = pytz.timezone(tz_name)
            logger.info(f"Timezone set to auto-detect: {tz_name}")
            return
        try:
            self.user_tz = pytz.timezone(timezone.strip())
            logger.info(f"Timezone set to: {timezone}")
        except pytz.exceptions.UnknownTimeZoneError as e:
            logger.error(f"Unknown timezone '{timezone}': {e}")

    def parse_timestamp_ms(self, value: Union[str, int, float, None]) -> Optional[int]:
        """
        Parse a backend timestamp into epoch milliseconds.

        Accepts ISO-8601 strings (with or without a 'Z'/offset suffix; naive
        values are taken as local time) and raw epoch milliseconds.

        Args:
            value: Timestamp from the backend

        Returns:
            Epoch milliseconds, or None if the value is missing or malformed
        """
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            return int(value)
        if not isinstance(value, str):
            return None
        text = value.strip()
        if not text:
            return None
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparseable timestamp '{value}' treated as no schedule")
            return None
        if dt.tzinfo is None:
            dt = self.user_tz.localize(dt)
        return int(dt.timestamp() * 1000)

    def to_iso(self, epoch_ms: int) -> str:
        """Format epoch milliseconds as a UTC ISO-8601 string for commands."""
        dt = datetime.fromtimestamp(epoch_ms / 1000, tz=pytz.utc)
        return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    def local_datetime(self, epoch_ms: int) -> datetime:
        """Return epoch milliseconds as an aware datetime in the user's timezone."""
        return datetime.fromtimestamp(epoch_ms / 1000, tz=pytz.utc).astimezone(self.user_tz)

    def local_time_ms(self, reference_ms: int, hour: int, minute: int, days_offset: int = 0) -> int:
        """
        Epoch milliseconds of hour:minute local time on the day of reference_ms.

        Args:
            reference_ms: Any instant on the target local day
            hour: Local hour (0-23)
            minute: Local minute (0-59)
            days_offset: Shift the target day by this many days
        """
        local_day = self.local_datetime(reference_ms).date() + timedelta(days=days_offset)
        naive = datetime(local_day.year, local_day.month, local_day.day, hour, minute)
        return int(self.user_tz.localize(naive).timestamp() * 1000)

    def format_clock(self, epoch_ms: Optional[float]) -> str:
        """Format as local 24-hour clock time, or "--" when there is no time."""
        if epoch_ms is None or not math.isfinite(epoch_ms):
            return "--"
        return self.local_datetime(int(epoch_ms)).strftime("%m-%d %H:%M:%S")

    def format_remaining(self, remaining_ms: float, in_grace: bool = False) -> str:
        """
        Format a countdown label.

        Args:
            remaining_ms: Occurrence time minus now (negative when overdue)
            in_grace: Whether the boss is currently inside its grace window

        Returns:
            Label such as "12m 05s", "overdue (grace)", "overdue" or "not recorded"
        """
        if not math.isfinite(remaining_ms):
            return "not recorded"
        if in_grace:
            return "overdue (grace)"
        if remaining_ms <= 0:
            return "overdue"
        total_seconds = int(math.ceil(remaining_ms / 1000))
        hours, rest = divmod(total_seconds, 3600)
        minutes, seconds = divmod(rest, 60)
        if hours:
            return f"{hours}h {minutes:02d}m {seconds:02d}s"
        return f"{minutes}m {seconds:02d}s"

    def get_system_timezone(self) -> str:
        """
        Get the system timezone IANA name.

        Returns:
            IANA timezone name (e.g. 'Asia/Seoul', 'Europe/London'), 'UTC' if unknown.
        """
        try:
            local = datetime.now().astimezone()
            name = getattr(local.tzinfo, "key", None)
            if name and name != "localtime":
                pytz.timezone(name)  # validate
                return name
        except (pytz.exceptions.UnknownTimeZoneError, ValueError, OSError):
            pass

        # Map common abbreviations to IANA names
        tzname = (time.tzname[0] or "").upper()
        tz_map = {
            "KST": "Asia/Seoul",
            "JST": "Asia/Tokyo",
            "CST": "US/Central",
            "CDT": "US/Central",
            "EST": "US/Eastern",
            "EDT": "US/Eastern",
            "PST": "US/Pacific",
            "PDT": "US/Pacific",
            "GMT": "Europe/London",
            "BST": "Europe/London",
            "CET": "Europe/Paris",
            "CEST": "Europe/Paris",
            "AEST": "Australia/Sydney",
            "AEDT": "Australia/Sydney",
            "UTC": "UTC",
        }
        return tz_map.get(tzname, "UTC")
