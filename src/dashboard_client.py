"""HTTP client for the guild dashboard backend."""
from typing import Any, Dict, List, Optional

import requests

try:
    from .logger import get_logger
    from .timestamp_formatter import TimestampFormatter
except ImportError:
    from logger import get_logger
    from timestamp_formatter import TimestampFormatter

logger = get_logger(__name__)

DEFAULT_API_BASE = "http://localhost:3000"
DEFAULT_CUT_MODE = "TREASURY"


class DashboardApiError(Exception):
    """A backend call failed (transport error, HTTP error or unreadable reply)."""

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


def _mask_token(token: Optional[str]) -> str:
    """Return a safe string for logging (avoid exposing the full token)."""
    if not token:
        return "(none)"
    return f"{token[:4]}...{token[-2:]}" if len(token) > 10 else "****"


class DashboardClient:
    """Talks to the dashboard API. Every request goes out as POST with X-Orig-Method."""

    def __init__(self, api_base: str = DEFAULT_API_BASE, access_token: Optional[str] = None,
                 timestamp_formatter: Optional[TimestampFormatter] = None, timeout: float = 10):
        """
        Initialize the client.

        Args:
            api_base: Backend base URL
            access_token: Bearer token (optional)
            timestamp_formatter: Formats command timestamps as ISO strings
            timeout: Per-request timeout in seconds
        """
        self.api_base = (api_base or DEFAULT_API_BASE).rstrip('/')
        self.access_token = access_token
        self.timestamp_formatter = timestamp_formatter or TimestampFormatter('UTC')
        self.timeout = timeout
        logger.info(f"[API] Using backend {self.api_base} (token {_mask_token(access_token)})")

    def _url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{self.api_base}/{path.lstrip('/')}"

    def _headers(self, method: str) -> Dict[str, str]:
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
            'X-Orig-Method': method,
        }
        if self.access_token:
            headers['Authorization'] = f"Bearer {self.access_token}"
        return headers

    def request_json(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a request and decode the JSON reply.

        Args:
            method: Logical HTTP method, sent in X-Orig-Method
            path: Path relative to the API base
            body: JSON body

        Returns:
            Decoded reply (None for an empty body)

        Raises:
            DashboardApiError: on transport errors, HTTP errors and non-JSON replies
        """
        url = self._url(path)
        logger.debug(f"[API] {method} {url}")
        try:
            response = requests.post(url, json=body if body is not None else {},
                                     headers=self._headers(method), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise DashboardApiError(f"{method} {url} failed: {e}") from e
        if not response.ok:
            try:
                error_body = response.json()
            except ValueError:
                error_body = response.text
            raise DashboardApiError(f"{response.status_code} {response.reason} @{method} {url}",
                                    status=response.status_code, body=error_body)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DashboardApiError(f"Invalid JSON from {method} {url}: {e}",
                                    status=response.status_code, body=response.text) from e

    def fetch_snapshot(self) -> Dict[str, Any]:
        """Fetch the tracked / forgotten / fixed boss collections."""
        data = self.request_json('GET', '/v1/dashboard/bosses')
        if not isinstance(data, dict):
            raise DashboardApiError(f"Unexpected snapshot shape: {type(data).__name__}", body=data)
        return data

    def record_cut(self, boss_id: str, at_ms: int, mode: str = DEFAULT_CUT_MODE,
                   items: Optional[List[Any]] = None, participants: Optional[List[Any]] = None) -> Any:
        """Record a kill ("cut") for a boss."""
        body = {
            'cutAtIso': self.timestamp_formatter.to_iso(at_ms),
            'mode': mode,
            'items': list(items or []),
            'participants': list(participants or []),
        }
        logger.info(f"[CUT] Recording cut for boss {boss_id} at {body['cutAtIso']}")
        return self.request_json('POST', f"/v1/dashboard/bosses/{boss_id}/cut", body)

    def resolve_timeline_id(self, boss_name: str) -> Optional[str]:
        """
        Find the latest recorded-kill entry for a boss name.

        Returns:
            Timeline id, or None if it could not be resolved
        """
        try:
            data = self.request_json('POST', '/v1/dashboard/boss-timelines/latest-id',
                                     {'bossName': boss_name, 'preferEmpty': True})
        except DashboardApiError as e:
            logger.warning(f"[DAZE] Timeline lookup for '{boss_name}' failed: {e}")
            return None
        timeline_id = data.get('id') if isinstance(data, dict) else None
        return str(timeline_id) if timeline_id is not None else None

    def record_miss(self, timeline_id: str, at_ms: int) -> Any:
        """Record a miss ("daze") against a recorded-kill entry."""
        at_iso = self.timestamp_formatter.to_iso(at_ms)
        logger.info(f"[DAZE] Recording daze on timeline {timeline_id} at {at_iso}")
        return self.request_json('POST', f"/v1/boss-timelines/{timeline_id}/daze", {'atIso': at_iso})
