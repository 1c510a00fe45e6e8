"""
Application service for finding group meeting slots.

The service resolves group members and their busy intervals through two
collaborator protocols and delegates the availability classification to the
domain-level ``SlotGenerator`` and ``AvailabilityEvaluator``. Each call works
on freshly fetched snapshots; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol, Sequence, Union

import pendulum
from pendulum import DateTime

from ..domain.availability import AvailabilityEvaluator
from ..domain.exceptions import InvalidRequestError
from ..domain.models import BusyRecord, CandidateSlot, Interval, Member, MemberAvailability
from ..domain.slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

DateInput = Union[str, DateTime]


class MembershipResolver(Protocol):
    """Provides the members of a group."""

    def resolve_members(self, group_id: int, requester_id: Optional[int] = None) -> List[Member]:
        """Return group members; raise NotFoundError for unknown groups or non-members."""


class BusyIntervalSource(Protocol):
    """Provides busy records for a set of users."""

    def fetch_busy_intervals(
        self,
        user_ids: Sequence[int],
        start_date: DateTime,
        end_date: DateTime,
        group_id: Optional[int] = None,
    ) -> List[BusyRecord]:
        """
        Return busy records touching ``[start_date, end_date]``, bounds included.

        Empty for no users. ``group_id`` names the group being searched, for
        sources that can only look busy times up per group.
        """


def parse_timestamp(value: DateInput, timezone: str, field_name: str) -> DateTime:
    """
    Parse an ISO-8601 string (or take a datetime) and express it in the given timezone.

    Strings without an offset are read as local time in ``timezone``; values
    carrying their own offset are converted, so the daily window always
    refers to ``timezone`` hours.

    Raises:
        InvalidRequestError: If the value is missing or cannot be parsed
    """
    if value is None or value == "":
        raise InvalidRequestError(f"{field_name} is required")

    if isinstance(value, DateTime):
        return value.in_timezone(timezone)

    try:
        parsed = pendulum.parse(str(value), tz=timezone)
    except (ValueError, TypeError) as exc:
        raise InvalidRequestError(f"Invalid {field_name}: {value!r}") from exc

    if not isinstance(parsed, DateTime):
        raise InvalidRequestError(f"Invalid {field_name}: {value!r} is not a date or datetime")

    return parsed.in_timezone(timezone)


def build_member_availability(
    members: Sequence[Member],
    busy_records: Sequence[BusyRecord],
) -> List[MemberAvailability]:
    """
    Attach busy records to their members, keeping member and record order.

    Records of users that are not in ``members`` are dropped.
    """
    by_user: Dict[int, List[BusyRecord]] = {member.user_id: [] for member in members}

    for record in busy_records:
        if record.user_id in by_user:
            by_user[record.user_id].append(record)

    return [MemberAvailability.for_member(member, by_user[member.user_id]) for member in members]


class GroupAvailabilityService:
    """
    Orchestrates membership lookup, busy-time retrieval and slot evaluation.

    Dependency inversion toward protocols makes it easy to plug in the SQLite
    stores, the REST client or simple fakes in tests.
    """

    def __init__(
        self,
        membership_resolver: MembershipResolver,
        busy_source: BusyIntervalSource,
        slot_generator: SlotGenerator,
        evaluator: AvailabilityEvaluator | None = None,
        timezone: str = "UTC",
    ) -> None:
        self._membership_resolver = membership_resolver
        self._busy_source = busy_source
        self._slot_generator = slot_generator
        self._evaluator = evaluator or AvailabilityEvaluator()
        self._timezone = timezone

    def evaluate(
        self,
        group_id: int,
        start_date: DateInput,
        end_date: DateInput,
        duration_minutes: int = 60,
        *,
        requester_id: Optional[int] = None,
    ) -> List[CandidateSlot]:
        """
        Evaluate every candidate slot in the range for the group.

        Returns:
            All candidate slots with availability and conflicts

        Raises:
            InvalidRequestError: If the range or duration is invalid
            NotFoundError: Propagated from the membership resolver
        """
        start, end = self.validate_request(start_date, end_date, duration_minutes)

        members = self._membership_resolver.resolve_members(group_id, requester_id)
        if not members:
            logger.info("Group %s has no members; every slot is available", group_id)

        slots = self._slot_generator.generate(start, end, duration_minutes)
        member_availability = self.fetch_member_availability(members, slots, group_id)
        evaluated = self._evaluator.evaluate(slots, member_availability)

        logger.debug(
            "Evaluated %d slots for group %s (%d members, %d available)",
            len(evaluated),
            group_id,
            len(members),
            sum(1 for slot in evaluated if slot.available),
        )

        return evaluated

    def find_available_slots(
        self,
        group_id: int,
        start_date: DateInput,
        end_date: DateInput,
        duration_minutes: int = 60,
        *,
        requester_id: Optional[int] = None,
    ) -> List[Interval]:
        """Return only the available slot intervals, in order."""
        return [
            slot.interval
            for slot in self.evaluate(
                group_id,
                start_date,
                end_date,
                duration_minutes,
                requester_id=requester_id,
            )
            if slot.available
        ]

    def fetch_member_availability(
        self,
        members: Sequence[Member],
        slots: Sequence[CandidateSlot],
        group_id: Optional[int] = None,
    ) -> List[MemberAvailability]:
        """
        Fetch busy records for the members and group them per member.

        The lookup window spans from the earliest slot start to the latest
        slot end, which can lie past the requested range when slots are
        longer than the step.
        """
        if not members or not slots:
            return [MemberAvailability.for_member(member, []) for member in members]

        window_start = min(slot.start for slot in slots)
        window_end = max(slot.end for slot in slots)

        busy_records = self._busy_source.fetch_busy_intervals(
            [member.user_id for member in members],
            window_start,
            window_end,
            group_id=group_id,
        )

        return build_member_availability(members, busy_records)

    def validate_request(
        self,
        start_date: DateInput,
        end_date: DateInput,
        duration_minutes: int,
    ) -> tuple[DateTime, DateTime]:
        """
        Parse and check the requested range and duration.

        Raises:
            InvalidRequestError: If the input cannot be used for slot generation
        """
        start = parse_timestamp(start_date, self._timezone, "start_date")
        end = parse_timestamp(end_date, self._timezone, "end_date")

        if start >= end:
            raise InvalidRequestError("end_date must be after start_date")

        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
            raise InvalidRequestError(f"duration_minutes must be an integer, got {duration_minutes!r}")

        if duration_minutes <= 0:
            raise InvalidRequestError(f"duration_minutes must be positive, got {duration_minutes}")

        working_hours = self._slot_generator.working_hours
        if working_hours.start_hour >= working_hours.end_hour:
            raise InvalidRequestError(
                f"Day window start hour {working_hours.start_hour} must be before end hour {working_hours.end_hour}"
            )

        return start, end
