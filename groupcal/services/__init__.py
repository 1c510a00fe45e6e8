"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability_finder import BusyIntervalSource, GroupAvailabilityService, MembershipResolver
from .events import EventService
from .groups import GroupService
from .meetings import MeetingParticipantProjector, MeetingService

__all__ = [
    "BusyIntervalSource",
    "EventService",
    "GroupAvailabilityService",
    "GroupService",
    "MeetingParticipantProjector",
    "MeetingService",
    "MembershipResolver",
]
