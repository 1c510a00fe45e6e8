"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityEvaluator, conflicts_with
from .models import (
    BusyRecord,
    CalendarEvent,
    CandidateSlot,
    Conflict,
    Group,
    Interval,
    Meeting,
    MeetingCreationResult,
    Member,
    MemberAdded,
    MemberAvailability,
    MemberRemoved,
    Participant,
    ParticipationStatus,
    UserMeeting,
    WorkingHours,
)
from .slot_generator import SlotGenerator, generate_day_slots

__all__ = [
    "AvailabilityEvaluator",
    "BusyRecord",
    "CalendarEvent",
    "CandidateSlot",
    "Conflict",
    "Group",
    "Interval",
    "Meeting",
    "MeetingCreationResult",
    "Member",
    "MemberAdded",
    "MemberAvailability",
    "MemberRemoved",
    "Participant",
    "ParticipationStatus",
    "SlotGenerator",
    "UserMeeting",
    "WorkingHours",
    "conflicts_with",
    "generate_day_slots",
]
