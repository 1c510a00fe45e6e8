"""
Domain-specific exception hierarchy for the group calendar application.
"""


class GroupCalError(Exception):
    """Base class for all application-level errors."""


class InvalidRequestError(GroupCalError, ValueError):
    """Raised when caller input is missing or malformed and can be corrected."""


class NotFoundError(GroupCalError):
    """Raised when a group, user or meeting does not exist for the caller."""


class PermissionDeniedError(GroupCalError):
    """Raised when the acting user lacks the role an operation requires."""


class MembershipError(GroupCalError):
    """Raised when a membership change conflicts with existing membership."""


class StoreError(GroupCalError):
    """Raised when the relational store fails."""


class CalendarAPIError(GroupCalError):
    """Raised when calendar data cannot be fetched or parsed from the REST backend."""
