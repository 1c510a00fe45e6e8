"""
Pytest configuration and shared fixtures.
"""

from typing import Dict, List, Optional, Sequence

import pendulum
import pytest

from groupcal.adapters.database import Database
from groupcal.domain.exceptions import NotFoundError
from groupcal.domain.models import BusyRecord, Interval, Member

TZ = "Europe/Berlin"
DAY = "2024-11-25"  # Monday


def at(time_str: str, day: str = DAY) -> pendulum.DateTime:
    """Build a datetime on the test day, e.g. ``at("13:00")``."""
    return pendulum.parse(f"{day} {time_str}", tz=TZ)


def interval(start: str, end: str, day: str = DAY) -> Interval:
    return Interval(start=at(start, day), end=at(end, day))


class FakeMembershipResolver:
    """In-memory membership resolver recording its calls."""

    def __init__(self, groups: Dict[int, List[Member]]):
        self._groups = groups
        self.calls: List[tuple] = []

    def resolve_members(self, group_id: int, requester_id: Optional[int] = None) -> List[Member]:
        self.calls.append((group_id, requester_id))
        if group_id not in self._groups:
            raise NotFoundError(f"Group {group_id} not found")
        members = self._groups[group_id]
        if requester_id is not None and requester_id not in {m.user_id for m in members}:
            raise NotFoundError(f"User {requester_id} is not a member of group {group_id}")
        return list(members)


class FakeBusySource:
    """In-memory busy-interval source recording its calls; range bounds are inclusive."""

    def __init__(self, records: Sequence[BusyRecord] = ()):
        self._records = list(records)
        self.calls: List[dict] = []

    def fetch_busy_intervals(self, user_ids, start_date, end_date, group_id=None) -> List[BusyRecord]:
        self.calls.append(
            {"user_ids": tuple(user_ids), "start": start_date, "end": end_date, "group_id": group_id}
        )
        wanted = set(user_ids)
        return [
            record for record in self._records
            if record.user_id in wanted
            and record.interval.start <= end_date
            and record.interval.end >= start_date
        ]


@pytest.fixture
def database(tmp_path) -> Database:
    db = Database(tmp_path / "groupcal.db")
    db.initialize()
    return db


@pytest.fixture
def members() -> List[Member]:
    return [
        Member(user_id=1, name="A", email="a@example.com"),
        Member(user_id=2, name="B", email="b@example.com"),
        Member(user_id=3, name="C", email="c@example.com"),
    ]
