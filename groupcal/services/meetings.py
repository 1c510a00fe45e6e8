"""
Meeting scheduling and participant bookkeeping.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Protocol, Union

from ..domain.exceptions import GroupCalError, InvalidRequestError, PermissionDeniedError
from ..domain.models import (
    Group,
    Interval,
    Meeting,
    MeetingCreationResult,
    Member,
    MemberAdded,
    MemberRemoved,
    Participant,
    ParticipationStatus,
    UserMeeting,
)
from .availability_finder import DateInput, parse_timestamp

logger = logging.getLogger(__name__)


class GroupLookup(Protocol):
    def get_group(self, group_id: int, user_id: int) -> Optional[Group]: ...

    def resolve_members(self, group_id: int, requester_id: Optional[int] = None) -> List[Member]: ...


class MeetingRepository(Protocol):
    def create_meeting(
        self,
        group_id: int,
        title: str,
        interval: Interval,
        creator_id: int,
        description: str = "",
        location: str = "",
    ) -> Meeting: ...

    def get_meeting(self, meeting_id: int) -> Meeting: ...

    def list_group_meetings(self, group_id: int) -> List[Meeting]: ...

    def list_user_meetings(self, user_id: int) -> List[UserMeeting]: ...

    def update_meeting(self, meeting: Meeting) -> Meeting: ...

    def delete_meeting(self, meeting_id: int) -> None: ...

    def add_participant(
        self,
        meeting_id: int,
        user_id: int,
        status: ParticipationStatus = ParticipationStatus.PENDING,
    ) -> Participant: ...

    def get_participant(self, meeting_id: int, user_id: int) -> Optional[Participant]: ...

    def update_participant_status(
        self,
        meeting_id: int,
        user_id: int,
        status: ParticipationStatus,
    ) -> Participant: ...

    def remove_participant(self, meeting_id: int, user_id: int) -> bool: ...


def initial_status(meeting: Meeting, user_id: int) -> ParticipationStatus:
    """The creator starts out accepted, everyone else pending."""
    if meeting.creator_id == user_id:
        return ParticipationStatus.ACCEPTED
    return ParticipationStatus.PENDING


class MeetingService:
    """Creates meetings and manages participation."""

    def __init__(self, groups: GroupLookup, meetings: MeetingRepository, timezone: str = "UTC"):
        self._groups = groups
        self._meetings = meetings
        self._timezone = timezone

    def create_meeting(
        self,
        creator_id: int,
        group_id: int,
        title: str,
        start_time: DateInput,
        end_time: DateInput,
        description: str = "",
        location: str = "",
    ) -> MeetingCreationResult:
        """
        Create a meeting and invite every group member.

        Participants that cannot be added are reported in the result instead
        of failing the whole operation.

        Raises:
            InvalidRequestError: If the title or times are missing or invalid
            PermissionDeniedError: If the creator is not a group member
        """
        if not title:
            raise InvalidRequestError("Meeting title is required")

        start = parse_timestamp(start_time, self._timezone, "start_time")
        end = parse_timestamp(end_time, self._timezone, "end_time")
        if start >= end:
            raise InvalidRequestError("End time must be after start time")

        if self._groups.get_group(group_id, creator_id) is None:
            raise PermissionDeniedError(f"User {creator_id} is not a member of group {group_id}")

        meeting = self._meetings.create_meeting(
            group_id=group_id,
            title=title,
            interval=Interval(start=start, end=end),
            creator_id=creator_id,
            description=description,
            location=location,
        )

        result = MeetingCreationResult(meeting=meeting)

        for member in self._groups.resolve_members(group_id):
            try:
                self._meetings.add_participant(
                    meeting.id,
                    member.user_id,
                    initial_status(meeting, member.user_id),
                )
            except GroupCalError as exc:
                logger.warning(
                    "Failed to add user %s to meeting %s: %s",
                    member.user_id,
                    meeting.id,
                    exc,
                )
                result.participant_failures.append(member.user_id)

        return result

    def respond(self, meeting_id: int, user_id: int, status: Union[str, ParticipationStatus]) -> Participant:
        """
        Record a participant's answer to a meeting invitation.

        Raises:
            InvalidRequestError: If the status is unknown
            NotFoundError: If the meeting or the participation does not exist
        """
        try:
            status = ParticipationStatus(status)
        except ValueError as exc:
            raise InvalidRequestError(f"Unknown participation status: {status!r}") from exc

        self._meetings.get_meeting(meeting_id)
        return self._meetings.update_participant_status(meeting_id, user_id, status)

    def list_group_meetings(self, group_id: int, requester_id: int) -> List[Meeting]:
        """
        Raises:
            PermissionDeniedError: If the requester is not a group member
        """
        if self._groups.get_group(group_id, requester_id) is None:
            raise PermissionDeniedError(f"User {requester_id} is not a member of group {group_id}")
        return self._meetings.list_group_meetings(group_id)

    def list_user_meetings(self, user_id: int) -> List[UserMeeting]:
        return self._meetings.list_user_meetings(user_id)

    def update_meeting(
        self,
        meeting_id: int,
        actor_id: int,
        *,
        title: Optional[str] = None,
        start_time: Optional[DateInput] = None,
        end_time: Optional[DateInput] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Meeting:
        """
        Change a meeting; fields left as None keep their current value.

        Raises:
            NotFoundError: If the meeting does not exist
            PermissionDeniedError: If the actor did not create the meeting
            InvalidRequestError: If the resulting times are invalid
        """
        meeting = self._require_creator(meeting_id, actor_id, "update")

        start = meeting.interval.start
        end = meeting.interval.end
        if start_time:
            start = parse_timestamp(start_time, self._timezone, "start_time")
        if end_time:
            end = parse_timestamp(end_time, self._timezone, "end_time")
        if start >= end:
            raise InvalidRequestError("End time must be after start time")

        updated = replace(
            meeting,
            title=title or meeting.title,
            interval=Interval(start=start, end=end),
            description=meeting.description if description is None else description,
            location=meeting.location if location is None else location,
            status=status or meeting.status,
        )
        return self._meetings.update_meeting(updated)

    def delete_meeting(self, meeting_id: int, actor_id: int) -> None:
        """
        Raises:
            NotFoundError: If the meeting does not exist
            PermissionDeniedError: If the actor did not create the meeting
        """
        self._require_creator(meeting_id, actor_id, "delete")
        self._meetings.delete_meeting(meeting_id)
        logger.info("Meeting %s deleted by user %s", meeting_id, actor_id)

    def _require_creator(self, meeting_id: int, actor_id: int, action: str) -> Meeting:
        meeting = self._meetings.get_meeting(meeting_id)
        if meeting.creator_id != actor_id:
            raise PermissionDeniedError(f"Only the meeting creator can {action} the meeting")
        return meeting


class MeetingParticipantProjector:
    """
    Keeps meeting participants in line with group membership.

    Consumes ``MemberAdded`` and ``MemberRemoved`` events so the participant
    side effects of membership changes are explicit and auditable.
    """

    def __init__(self, meetings: MeetingRepository):
        self._meetings = meetings

    def apply(self, event: Union[MemberAdded, MemberRemoved]) -> List[int]:
        """Apply a membership event; returns the ids of meetings that changed."""
        if isinstance(event, MemberAdded):
            return self._on_member_added(event)
        if isinstance(event, MemberRemoved):
            return self._on_member_removed(event)
        raise TypeError(f"Unsupported membership event: {event!r}")

    def _on_member_added(self, event: MemberAdded) -> List[int]:
        changed: List[int] = []

        for meeting in self._meetings.list_group_meetings(event.group_id):
            if self._meetings.get_participant(meeting.id, event.user_id) is not None:
                continue
            self._meetings.add_participant(meeting.id, event.user_id, initial_status(meeting, event.user_id))
            changed.append(meeting.id)

        logger.info(
            "User %s joined group %s; added to %d meeting(s)",
            event.user_id,
            event.group_id,
            len(changed),
        )
        return changed

    def _on_member_removed(self, event: MemberRemoved) -> List[int]:
        changed = [
            meeting.id
            for meeting in self._meetings.list_group_meetings(event.group_id)
            if self._meetings.remove_participant(meeting.id, event.user_id)
        ]

        logger.info(
            "User %s left group %s; removed from %d meeting(s)",
            event.user_id,
            event.group_id,
            len(changed),
        )
        return changed
