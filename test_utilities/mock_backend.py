"""Mock dashboard backend for testing without a real server."""
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add src to path for logger
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from logger import get_logger
from dashboard_client import DashboardApiError

logger = get_logger(__name__)

MINUTE_MS = 60 * 1000

# 2026-01-15 12:00:00 UTC
T0 = 1768478400000


class MockDashboardClient:
    """Records commands instead of sending them. Set fail_* to simulate backend errors."""

    def __init__(self, snapshot: Optional[Dict[str, Any]] = None):
        self.snapshot = snapshot or {'tracked': [], 'forgotten': [], 'fixed': []}
        self.cuts: List[Dict[str, Any]] = []
        self.dazes: List[Dict[str, Any]] = []
        self.timeline_lookups: List[str] = []
        self.timelines: Dict[str, str] = {}
        self.fail_snapshot = False
        self.fail_commands = False
        logger.info("Mock dashboard client initialized (commands are recorded, not sent)")

    def fetch_snapshot(self) -> Dict[str, Any]:
        if self.fail_snapshot:
            raise DashboardApiError("503 Service Unavailable @GET /v1/dashboard/bosses", status=503)
        return self.snapshot

    def record_cut(self, boss_id: str, at_ms: int, mode: str = "TREASURY",
                   items: Optional[list] = None, participants: Optional[list] = None) -> Dict[str, Any]:
        if self.fail_commands:
            raise DashboardApiError("500 Internal Server Error", status=500)
        self.cuts.append({'boss_id': boss_id, 'at_ms': at_ms, 'mode': mode,
                          'items': list(items or []), 'participants': list(participants or [])})
        return {'ok': True}

    def resolve_timeline_id(self, boss_name: str) -> Optional[str]:
        self.timeline_lookups.append(boss_name)
        return self.timelines.get(boss_name)

    def record_miss(self, timeline_id: str, at_ms: int) -> Dict[str, Any]:
        if self.fail_commands:
            raise DashboardApiError("500 Internal Server Error", status=500)
        self.dazes.append({'timeline_id': timeline_id, 'at_ms': at_ms})
        return {'ok': True}

    def get_cut_count(self) -> int:
        return len(self.cuts)


def iso(epoch_ms: float) -> str:
    """UTC ISO string for epoch milliseconds, as the backend sends it."""
    from datetime import datetime, timezone
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def boss_dto(boss_id: str, name: str, location: str = "", respawn: float = 60,
             last_cut_ms: Optional[float] = None, next_spawn_ms: Optional[float] = None,
             is_random: bool = True) -> Dict[str, Any]:
    """Build a boss DTO the way the dashboard API returns it."""
    return {
        'id': boss_id,
        'name': name,
        'location': location,
        'respawn': respawn,
        'isRandom': is_random,
        'lastCutAt': iso(last_cut_ms) if last_cut_ms is not None else None,
        'nextSpawnAt': iso(next_spawn_ms) if next_spawn_ms is not None else None,
        'overdue': False,
        'dazeCount': 0,
    }


def fixed_dto(boss_id: str, name: str, gen_time: Optional[int], location: str = "",
              last_cut_ms: Optional[float] = None) -> Dict[str, Any]:
    return {
        'id': boss_id,
        'name': name,
        'location': location,
        'genTime': gen_time,
        'lastCutAt': iso(last_cut_ms) if last_cut_ms is not None else None,
    }
