"""
Domain models for intervals, group members, candidate slots and meetings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pendulum import DateTime


@dataclass(frozen=True)
class Interval:
    """
    Represents an immutable time interval with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def contains(self, moment: DateTime) -> bool:
        """Check if a moment lies inside the interval, both bounds included."""
        return self.start <= moment <= self.end

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class BusyRecord:
    """A busy calendar entry owned by one user."""
    user_id: int
    interval: Interval
    label: str


@dataclass(frozen=True)
class Member:
    """A user as seen through a group membership snapshot."""
    user_id: int
    name: str
    email: str


@dataclass(frozen=True)
class Group:
    """A group as seen by one of its members; ``role`` is that member's role."""
    id: int
    name: str
    creator_id: int
    description: str = ""
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class MemberAvailability:
    """A group member together with their busy records for the requested range."""
    user_id: int
    name: str
    email: str
    busy: List[BusyRecord] = field(default_factory=list)

    @classmethod
    def for_member(cls, member: Member, busy: List[BusyRecord]) -> "MemberAvailability":
        return cls(
            user_id=member.user_id,
            name=member.name,
            email=member.email,
            busy=list(busy),
        )


@dataclass(frozen=True)
class Conflict:
    """One member's busy interval clashing with a candidate slot."""
    member_name: str
    label: str

    def __str__(self) -> str:
        return f"{self.member_name}: {self.label}"


@dataclass
class CandidateSlot:
    """
    A fixed-duration candidate interval tested for group availability.

    Slots are transient evaluation results; they have no stored identity.
    """
    interval: Interval
    available: bool = True
    conflicts: List[Conflict] = field(default_factory=list)

    @property
    def start(self) -> DateTime:
        return self.interval.start

    @property
    def end(self) -> DateTime:
        return self.interval.end

    def conflict_labels(self) -> List[str]:
        """Return conflicts formatted as ``"{member}: {label}"``."""
        return [str(conflict) for conflict in self.conflicts]

    def format_display(self, max_conflicts: Optional[int] = None) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:mm - HH:mm | status
        """
        start = self.interval.start
        end = self.interval.end

        date_str = start.format("dddd, DD.MM.YYYY")
        time_str = f"{start.format('HH:mm')} - {end.format('HH:mm')}"

        if self.available:
            return f"{date_str} | {time_str} | All members available"

        labels = self.conflict_labels()
        shown = labels if max_conflicts is None else labels[:max_conflicts]
        details = "; ".join(shown)
        hidden = len(labels) - len(shown)
        if hidden > 0:
            details += f"; +{hidden} more"

        return f"{date_str} | {time_str} | Conflicts: {details}"


@dataclass
class WorkingHours:
    """
    Daily window in which candidate slots are generated.
    """
    start_hour: int
    end_hour: int
    exclude_weekdays: List[int] = field(default_factory=list)  # 0=Monday, 6=Sunday

    def is_working_day(self, dt: DateTime) -> bool:
        """Check if a given datetime falls on a working day."""
        return dt.day_of_week not in self.exclude_weekdays


class ParticipationStatus(str, Enum):
    """Participation state of a user in a meeting."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass(frozen=True)
class Meeting:
    """A meeting scheduled within a group."""
    id: int
    group_id: int
    title: str
    interval: Interval
    creator_id: int
    description: str = ""
    location: str = ""
    status: str = "scheduled"


@dataclass(frozen=True)
class Participant:
    """A user's participation row for a meeting."""
    meeting_id: int
    user_id: int
    status: ParticipationStatus


@dataclass(frozen=True)
class UserMeeting:
    """A meeting as seen by one user; ``participation`` is None if they were never invited."""
    meeting: Meeting
    participation: Optional[ParticipationStatus] = None


@dataclass(frozen=True)
class CalendarEvent:
    """A personal calendar entry. Only busy events block group slots."""
    id: int
    user_id: int
    title: str
    interval: Interval
    description: str = ""
    location: str = ""
    is_busy: bool = True

    def to_busy_record(self) -> BusyRecord:
        return BusyRecord(user_id=self.user_id, interval=self.interval, label=self.title)


@dataclass
class MeetingCreationResult:
    """
    Outcome of creating a meeting.

    The meeting exists even when some participants could not be added;
    their user ids are listed in ``participant_failures``.
    """
    meeting: Meeting
    participant_failures: List[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.participant_failures


@dataclass(frozen=True)
class MemberAdded:
    """A user joined a group."""
    group_id: int
    user_id: int


@dataclass(frozen=True)
class MemberRemoved:
    """A user left (or was removed from) a group."""
    group_id: int
    user_id: int
