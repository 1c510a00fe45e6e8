"""
Client for the group calendar REST backend.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError, NotFoundError
from ..domain.models import BusyRecord, Interval, Member

logger = logging.getLogger(__name__)


class ApiCalendarClient:
    """
    Membership resolver and busy-interval source backed by the REST API.

    Uses ``/groups/{id}/members`` and ``/events/group/{id}/busy-times``.
    The backend only exposes busy times per group, so busy-time lookups take
    the group id of the current search; the client keeps no state between calls.
    """

    def __init__(self, base_url: str, access_token: str = "", timeout: int = 10):
        """
        Initialize the API client.

        Args:
            base_url: API root, e.g. ``http://localhost:3001/api``
            access_token: Bearer token issued by the backend
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"

    def resolve_members(self, group_id: int, requester_id: Optional[int] = None) -> List[Member]:
        """
        List the members of a group.

        The requester is whoever owns the access token; ``requester_id`` is
        accepted for interface compatibility and ignored.

        Raises:
            NotFoundError: If the group does not exist or the caller is not a member
            CalendarAPIError: If the request fails
        """
        data = self._get(f"/groups/{group_id}/members")

        members: List[Member] = []
        for row in data.get("members", []):
            try:
                member = Member(
                    user_id=int(row["id"]),
                    name=f"{row['first_name']} {row['last_name']}",
                    email=row.get("email", ""),
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed member record in group %s: %s", group_id, e)
                continue

            members.append(member)

        return members

    def fetch_busy_intervals(
        self,
        user_ids: Sequence[int],
        start_date: DateTime,
        end_date: DateTime,
        group_id: Optional[int] = None,
    ) -> List[BusyRecord]:
        """
        Fetch busy intervals of group members from the group's busy-times endpoint.

        The backend only serves busy times per group, so ``group_id`` is required.

        Raises:
            CalendarAPIError: If no group is given or a request fails
        """
        wanted = set(user_ids)
        if not wanted:
            return []

        if group_id is None:
            raise CalendarAPIError("Busy times can only be fetched for a group; group_id is required")

        data = self._get(
            f"/events/group/{group_id}/busy-times",
            params={
                "start_date": start_date.to_iso8601_string(),
                "end_date": end_date.to_iso8601_string(),
            },
        )

        records: List[BusyRecord] = []
        seen = set()

        for item in data.get("busyTimes", []):
            record = self._parse_busy_item(item)
            if record is None or record.user_id not in wanted:
                continue
            key = (record.user_id, record.interval, record.label)
            if key in seen:
                continue
            seen.add(key)
            records.append(record)

        records.sort(key=lambda r: r.interval.start)
        return records

    def _parse_busy_item(self, item: Dict[str, Any]) -> BusyRecord | None:
        """Convert one busy-times row; malformed rows are logged and skipped."""
        try:
            return BusyRecord(
                user_id=int(item["user_id"]),
                interval=Interval(
                    start=self._parse_datetime(item["start_time"]),
                    end=self._parse_datetime(item["end_time"]),
                ),
                label=item.get("title") or "Busy",
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Could not parse busy time item: %s", e)
            return None

    @staticmethod
    def _parse_datetime(value: str) -> DateTime:
        dt = pendulum.parse(value, tz="UTC")
        if isinstance(dt, DateTime):
            return dt
        raise ValueError(f"Could not parse datetime: {value}")

    def _get(self, path: str, params: Dict[str, str] | None = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        try:
            response = requests.get(url, headers=self.headers, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Request to {url} failed: {e}") from e

        if response.status_code in (403, 404):
            raise NotFoundError(self._error_message(response) or f"Not found: {path}")

        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise CalendarAPIError(f"Invalid JSON from {url}: {e}") from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json().get("message", "")
        except (ValueError, AttributeError):
            return ""
