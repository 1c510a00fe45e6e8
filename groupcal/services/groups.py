"""
Group membership management.

Membership changes emit ``MemberAdded`` / ``MemberRemoved`` events that are
handed to the meeting participant projector.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from ..domain.exceptions import InvalidRequestError, NotFoundError, PermissionDeniedError
from ..domain.models import Group, Member, MemberAdded, MemberRemoved
from .meetings import MeetingParticipantProjector

logger = logging.getLogger(__name__)

VALID_ROLES = ("admin", "member")


class GroupRepository(Protocol):
    def create_group(self, name: str, creator_id: int, description: str = "") -> Group: ...

    def get_group(self, group_id: int, user_id: int) -> Optional[Group]: ...

    def list_user_groups(self, user_id: int) -> List[Group]: ...

    def update_group(self, group_id: int, name: str, description: str = "") -> None: ...

    def delete_group(self, group_id: int) -> None: ...

    def resolve_members(self, group_id: int, requester_id: Optional[int] = None) -> List[Member]: ...

    def add_member(self, group_id: int, user_id: int, role: str = "member") -> MemberAdded: ...

    def remove_member(self, group_id: int, user_id: int) -> MemberRemoved: ...


class UserDirectory(Protocol):
    def find_by_email(self, email: str) -> Optional[Member]: ...


class GroupService:
    """Creates groups and manages who belongs to them."""

    def __init__(
        self,
        groups: GroupRepository,
        users: UserDirectory,
        projector: MeetingParticipantProjector,
    ):
        self._groups = groups
        self._users = users
        self._projector = projector

    def create_group(self, creator_id: int, name: str, description: str = "") -> Group:
        if not name:
            raise InvalidRequestError("Group name is required")
        return self._groups.create_group(name=name, creator_id=creator_id, description=description)

    def list_groups(self, user_id: int) -> List[Group]:
        return self._groups.list_user_groups(user_id)

    def update_group(
        self,
        group_id: int,
        actor_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Group:
        """
        Rename a group or change its description; None keeps the current value.

        Raises:
            PermissionDeniedError: If the actor is not a group admin
        """
        group = self._require_admin(group_id, actor_id, "update the group")
        self._groups.update_group(
            group_id,
            name or group.name,
            group.description if description is None else description,
        )
        return self._groups.get_group(group_id, actor_id)

    def delete_group(self, group_id: int, actor_id: int) -> None:
        """
        Delete a group together with its memberships and meetings.

        Raises:
            PermissionDeniedError: If the actor is not a group admin
        """
        self._require_admin(group_id, actor_id, "delete the group")
        self._groups.delete_group(group_id)
        logger.info("Group %s deleted by user %s", group_id, actor_id)

    def members(self, group_id: int, requester_id: int) -> List[Member]:
        return self._groups.resolve_members(group_id, requester_id)

    def add_member(self, group_id: int, actor_id: int, email: str, role: str = "member") -> MemberAdded:
        """
        Add the user registered under ``email`` to the group.

        Raises:
            PermissionDeniedError: If the actor is not a group admin
            NotFoundError: If no user has that email
            MembershipError: If the user already belongs to the group
        """
        if role not in VALID_ROLES:
            raise InvalidRequestError(f"Unknown role: {role!r}")

        self._require_admin(group_id, actor_id, "add members")

        user = self._users.find_by_email(email)
        if user is None:
            raise NotFoundError(f"User not found: {email}")

        event = self._groups.add_member(group_id, user.user_id, role)
        self._projector.apply(event)
        return event

    def remove_member(self, group_id: int, actor_id: int, user_id: int) -> MemberRemoved:
        """
        Remove a user from the group and from its meetings.

        Raises:
            PermissionDeniedError: If the actor is not a group admin
            NotFoundError: If the user is not a member
        """
        self._require_admin(group_id, actor_id, "remove members")

        event = self._groups.remove_member(group_id, user_id)
        self._projector.apply(event)
        return event

    def _require_admin(self, group_id: int, actor_id: int, action: str) -> Group:
        group = self._groups.get_group(group_id, actor_id)
        if group is None or not group.is_admin:
            raise PermissionDeniedError(f"Only group admins can {action}")
        return group
