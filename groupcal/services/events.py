"""
Personal calendar events.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Protocol

from ..domain.exceptions import InvalidRequestError
from ..domain.models import CalendarEvent, Interval
from .availability_finder import DateInput, parse_timestamp


class EventRepository(Protocol):
    def create_event(
        self,
        user_id: int,
        title: str,
        interval: Interval,
        description: str = "",
        location: str = "",
        is_busy: bool = True,
    ) -> CalendarEvent: ...

    def get_event(self, event_id: int, user_id: int) -> CalendarEvent: ...

    def update_event(self, event: CalendarEvent) -> CalendarEvent: ...

    def delete_event(self, event_id: int, user_id: int) -> None: ...

    def list_user_events(
        self,
        user_id: int,
        start_date=None,
        end_date=None,
    ) -> List[CalendarEvent]: ...


class EventService:
    """Creates, lists and edits a user's own calendar events."""

    def __init__(self, events: EventRepository, timezone: str = "UTC"):
        self._events = events
        self._timezone = timezone

    def create_event(
        self,
        user_id: int,
        title: str,
        start_time: DateInput,
        end_time: DateInput,
        description: str = "",
        location: str = "",
        is_busy: bool = True,
    ) -> CalendarEvent:
        """
        Raises:
            InvalidRequestError: If the title or times are missing or invalid
        """
        if not title:
            raise InvalidRequestError("Event title is required")

        interval = self._interval(
            parse_timestamp(start_time, self._timezone, "start_time"),
            parse_timestamp(end_time, self._timezone, "end_time"),
        )
        return self._events.create_event(user_id, title, interval, description, location, is_busy)

    def list_events(
        self,
        user_id: int,
        start_date: Optional[DateInput] = None,
        end_date: Optional[DateInput] = None,
    ) -> List[CalendarEvent]:
        """
        List a user's events, optionally only those intersecting a range.

        Both bounds must be given together.
        """
        if start_date is None and end_date is None:
            return self._events.list_user_events(user_id)

        start = parse_timestamp(start_date, self._timezone, "start_date")
        end = parse_timestamp(end_date, self._timezone, "end_date")
        if start >= end:
            raise InvalidRequestError("end_date must be after start_date")

        return self._events.list_user_events(user_id, start, end)

    def update_event(
        self,
        event_id: int,
        user_id: int,
        *,
        title: Optional[str] = None,
        start_time: Optional[DateInput] = None,
        end_time: Optional[DateInput] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        is_busy: Optional[bool] = None,
    ) -> CalendarEvent:
        """
        Change an event; fields left as None keep their current value.

        Raises:
            NotFoundError: If the user has no such event
            InvalidRequestError: If the resulting times are invalid
        """
        event = self._events.get_event(event_id, user_id)

        start = event.interval.start
        end = event.interval.end
        if start_time:
            start = parse_timestamp(start_time, self._timezone, "start_time")
        if end_time:
            end = parse_timestamp(end_time, self._timezone, "end_time")

        updated = replace(
            event,
            title=title or event.title,
            interval=self._interval(start, end),
            description=event.description if description is None else description,
            location=event.location if location is None else location,
            is_busy=event.is_busy if is_busy is None else is_busy,
        )
        return self._events.update_event(updated)

    def delete_event(self, event_id: int, user_id: int) -> None:
        self._events.delete_event(event_id, user_id)

    @staticmethod
    def _interval(start, end) -> Interval:
        if start >= end:
            raise InvalidRequestError("End time must be after start time")
        return Interval(start=start, end=end)
