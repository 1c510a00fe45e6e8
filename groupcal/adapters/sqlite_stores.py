"""
SQLite-backed stores for users, groups, calendar events and meetings.

Each store is constructed with a ``Database`` handle and opens one
connection per operation.
"""

import sqlite3
from typing import List, Optional, Sequence

from pendulum import DateTime

from ..domain.exceptions import MembershipError, NotFoundError
from ..domain.models import (
    BusyRecord,
    CalendarEvent,
    Group,
    Interval,
    Meeting,
    Member,
    MemberAdded,
    MemberRemoved,
    Participant,
    ParticipationStatus,
    UserMeeting,
)
from .database import Database, from_db_timestamp, to_db_timestamp


def _member_from_row(row: sqlite3.Row) -> Member:
    return Member(
        user_id=row["id"],
        name=f"{row['first_name']} {row['last_name']}",
        email=row["email"],
    )


def _interval_from_row(row: sqlite3.Row) -> Interval:
    return Interval(
        start=from_db_timestamp(row["start_time"]),
        end=from_db_timestamp(row["end_time"]),
    )


class SqliteUserStore:
    """User lookups and registration."""

    def __init__(self, database: Database):
        self._db = database

    def create_user(self, email: str, first_name: str, last_name: str) -> Member:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO users (email, first_name, last_name) VALUES (?, ?, ?)",
                (email.lower(), first_name, last_name),
            )
            user_id = cursor.lastrowid
        return Member(user_id=user_id, name=f"{first_name} {last_name}", email=email.lower())

    def find_by_email(self, email: str) -> Optional[Member]:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT id, email, first_name, last_name FROM users WHERE email = ?",
                (email.lower(),),
            ).fetchone()
        return _member_from_row(row) if row else None

    def find_by_id(self, user_id: int) -> Optional[Member]:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT id, email, first_name, last_name FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        return _member_from_row(row) if row else None


class SqliteGroupStore:
    """
    Groups and their memberships.

    Also serves as the membership resolver for availability searches.
    """

    def __init__(self, database: Database):
        self._db = database

    def create_group(self, name: str, creator_id: int, description: str = "") -> Group:
        """Create a group; the creator joins it as admin."""
        with self._db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO groups (name, description, creator_id) VALUES (?, ?, ?)",
                (name, description, creator_id),
            )
            group_id = cursor.lastrowid
            conn.execute(
                "INSERT INTO user_groups (group_id, user_id, role) VALUES (?, ?, 'admin')",
                (group_id, creator_id),
            )
        return Group(
            id=group_id,
            name=name,
            description=description,
            creator_id=creator_id,
            role="admin",
        )

    def get_group(self, group_id: int, user_id: int) -> Optional[Group]:
        """Return the group as seen by ``user_id``, or None if they are not a member."""
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT g.id, g.name, g.description, g.creator_id, ug.role
                FROM groups g
                JOIN user_groups ug ON g.id = ug.group_id
                WHERE g.id = ? AND ug.user_id = ?
                """,
                (group_id, user_id),
            ).fetchone()

        return self._group_from_row(row) if row else None

    def list_user_groups(self, user_id: int) -> List[Group]:
        """Groups the user belongs to, newest first, each carrying the user's role."""
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT g.id, g.name, g.description, g.creator_id, ug.role
                FROM groups g
                JOIN user_groups ug ON g.id = ug.group_id
                WHERE ug.user_id = ?
                ORDER BY g.created_at DESC, g.id DESC
                """,
                (user_id,),
            ).fetchall()

        return [self._group_from_row(row) for row in rows]

    def group_exists(self, group_id: int) -> bool:
        with self._db.connection() as conn:
            row = conn.execute("SELECT 1 FROM groups WHERE id = ?", (group_id,)).fetchone()
        return row is not None

    def resolve_members(self, group_id: int, requester_id: Optional[int] = None) -> List[Member]:
        """
        List the members of a group in join order.

        Raises:
            NotFoundError: If the group does not exist or the requester is not a member
        """
        if requester_id is not None:
            if self.get_group(group_id, requester_id) is None:
                raise NotFoundError(f"Group {group_id} not found or user {requester_id} is not a member")
        elif not self.group_exists(group_id):
            raise NotFoundError(f"Group {group_id} not found")

        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT u.id, u.first_name, u.last_name, u.email
                FROM user_groups ug
                JOIN users u ON ug.user_id = u.id
                WHERE ug.group_id = ?
                ORDER BY ug.joined_at ASC, ug.id ASC
                """,
                (group_id,),
            ).fetchall()

        return [_member_from_row(row) for row in rows]

    def add_member(self, group_id: int, user_id: int, role: str = "member") -> MemberAdded:
        """
        Add a user to a group.

        Raises:
            MembershipError: If the user already belongs to the group
        """
        with self._db.connection() as conn:
            existing = conn.execute(
                "SELECT 1 FROM user_groups WHERE group_id = ? AND user_id = ?",
                (group_id, user_id),
            ).fetchone()
            if existing:
                raise MembershipError("User is already a member of this group")

            conn.execute(
                "INSERT INTO user_groups (group_id, user_id, role) VALUES (?, ?, ?)",
                (group_id, user_id, role),
            )

        return MemberAdded(group_id=group_id, user_id=user_id)

    def remove_member(self, group_id: int, user_id: int) -> MemberRemoved:
        """
        Remove a user from a group.

        Raises:
            NotFoundError: If the user is not a member of the group
        """
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM user_groups WHERE group_id = ? AND user_id = ?",
                (group_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"User {user_id} is not a member of group {group_id}")

        return MemberRemoved(group_id=group_id, user_id=user_id)

    def update_group(self, group_id: int, name: str, description: str = "") -> None:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE groups SET name = ?, description = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (name, description, group_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Group {group_id} not found")

    def delete_group(self, group_id: int) -> None:
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM groups WHERE id = ?", (group_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Group {group_id} not found")

    @staticmethod
    def _group_from_row(row: sqlite3.Row) -> Group:
        return Group(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            creator_id=row["creator_id"],
            role=row["role"],
        )


class SqliteEventStore:
    """
    Personal calendar events.

    Also serves as the busy-interval source for availability searches.
    """

    def __init__(self, database: Database):
        self._db = database

    def create_event(
        self,
        user_id: int,
        title: str,
        interval: Interval,
        description: str = "",
        location: str = "",
        is_busy: bool = True,
    ) -> CalendarEvent:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO events (user_id, title, description, start_time, end_time, location, is_busy)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    title,
                    description,
                    to_db_timestamp(interval.start),
                    to_db_timestamp(interval.end),
                    location,
                    int(is_busy),
                ),
            )
            event_id = cursor.lastrowid

        return CalendarEvent(
            id=event_id,
            user_id=user_id,
            title=title,
            interval=interval,
            description=description,
            location=location,
            is_busy=is_busy,
        )

    def get_event(self, event_id: int, user_id: int) -> CalendarEvent:
        """
        Raises:
            NotFoundError: If the event does not exist or belongs to someone else
        """
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM events WHERE id = ? AND user_id = ?",
                (event_id, user_id),
            ).fetchone()

        if row is None:
            raise NotFoundError(f"Event {event_id} not found")

        return self._event_from_row(row)

    def update_event(self, event: CalendarEvent) -> CalendarEvent:
        """Overwrite every column of an existing event owned by ``event.user_id``."""
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE events
                SET title = ?, description = ?, start_time = ?, end_time = ?, location = ?, is_busy = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    event.title,
                    event.description,
                    to_db_timestamp(event.interval.start),
                    to_db_timestamp(event.interval.end),
                    event.location,
                    int(event.is_busy),
                    event.id,
                    event.user_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Event {event.id} not found")

        return event

    def delete_event(self, event_id: int, user_id: int) -> None:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM events WHERE id = ? AND user_id = ?",
                (event_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Event {event_id} not found")

    def list_user_events(
        self,
        user_id: int,
        start_date: Optional[DateTime] = None,
        end_date: Optional[DateTime] = None,
    ) -> List[CalendarEvent]:
        """
        Events of a user, busy or not, ordered by start time.

        With a range, only events intersecting ``[start_date, end_date)`` are returned.
        """
        query = "SELECT * FROM events WHERE user_id = ?"
        params: list = [user_id]

        if start_date is not None and end_date is not None:
            query += " AND start_time < ? AND end_time > ?"
            params += [to_db_timestamp(end_date), to_db_timestamp(start_date)]

        query += " ORDER BY start_time ASC, id ASC"

        with self._db.connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._event_from_row(row) for row in rows]

    def fetch_busy_intervals(
        self,
        user_ids: Sequence[int],
        start_date: DateTime,
        end_date: DateTime,
        group_id: Optional[int] = None,
    ) -> List[BusyRecord]:
        """
        Fetch busy events of several users that touch ``[start_date, end_date]``.

        Both bounds are inclusive so that events ending exactly at the start,
        or starting exactly at the end, are returned. ``group_id`` is not
        needed here and is ignored.
        """
        ids = list(user_ids)
        if not ids:
            return []

        placeholders = ", ".join("?" for _ in ids)
        query = f"""
            SELECT user_id, title, start_time, end_time
            FROM events
            WHERE user_id IN ({placeholders}) AND is_busy = 1
              AND start_time <= ? AND end_time >= ?
            ORDER BY start_time ASC, id ASC
        """

        with self._db.connection() as conn:
            rows = conn.execute(
                query,
                (*ids, to_db_timestamp(end_date), to_db_timestamp(start_date)),
            ).fetchall()

        return [
            BusyRecord(user_id=row["user_id"], interval=_interval_from_row(row), label=row["title"])
            for row in rows
        ]

    @staticmethod
    def _event_from_row(row: sqlite3.Row) -> CalendarEvent:
        return CalendarEvent(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            interval=_interval_from_row(row),
            description=row["description"] or "",
            location=row["location"] or "",
            is_busy=bool(row["is_busy"]),
        )


class SqliteMeetingStore:
    """Group meetings and their participants."""

    def __init__(self, database: Database):
        self._db = database

    def create_meeting(
        self,
        group_id: int,
        title: str,
        interval: Interval,
        creator_id: int,
        description: str = "",
        location: str = "",
    ) -> Meeting:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO meetings (group_id, title, description, start_time, end_time, location, creator_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    group_id,
                    title,
                    description,
                    to_db_timestamp(interval.start),
                    to_db_timestamp(interval.end),
                    location,
                    creator_id,
                ),
            )
            meeting_id = cursor.lastrowid

        return Meeting(
            id=meeting_id,
            group_id=group_id,
            title=title,
            interval=interval,
            creator_id=creator_id,
            description=description,
            location=location,
        )

    def get_meeting(self, meeting_id: int) -> Meeting:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,)).fetchone()

        if row is None:
            raise NotFoundError(f"Meeting {meeting_id} not found")

        return self._meeting_from_row(row)

    def list_group_meetings(self, group_id: int) -> List[Meeting]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM meetings WHERE group_id = ? ORDER BY start_time ASC",
                (group_id,),
            ).fetchall()

        return [self._meeting_from_row(row) for row in rows]

    def list_user_meetings(self, user_id: int) -> List[UserMeeting]:
        """Meetings of every group the user belongs to, with the user's participation."""
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT m.*, mp.status AS participation_status
                FROM meetings m
                LEFT JOIN meeting_participants mp
                  ON mp.meeting_id = m.id AND mp.user_id = ?
                WHERE EXISTS (
                    SELECT 1 FROM user_groups ug
                    WHERE ug.group_id = m.group_id AND ug.user_id = ?
                )
                ORDER BY m.start_time ASC, m.id ASC
                """,
                (user_id, user_id),
            ).fetchall()

        return [
            UserMeeting(
                meeting=self._meeting_from_row(row),
                participation=(
                    ParticipationStatus(row["participation_status"])
                    if row["participation_status"]
                    else None
                ),
            )
            for row in rows
        ]

    def update_meeting(self, meeting: Meeting) -> Meeting:
        """Overwrite the editable columns of an existing meeting."""
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE meetings
                SET title = ?, description = ?, start_time = ?, end_time = ?, location = ?, status = ?
                WHERE id = ?
                """,
                (
                    meeting.title,
                    meeting.description,
                    to_db_timestamp(meeting.interval.start),
                    to_db_timestamp(meeting.interval.end),
                    meeting.location,
                    meeting.status,
                    meeting.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Meeting {meeting.id} not found")

        return meeting

    def delete_meeting(self, meeting_id: int) -> None:
        """Delete a meeting; participant rows go with it."""
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM meetings WHERE id = ?", (meeting_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Meeting {meeting_id} not found")

    def add_participant(
        self,
        meeting_id: int,
        user_id: int,
        status: ParticipationStatus = ParticipationStatus.PENDING,
    ) -> Participant:
        """Insert a participant, or overwrite the status of an existing one."""
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO meeting_participants (meeting_id, user_id, status)
                VALUES (?, ?, ?)
                ON CONFLICT (meeting_id, user_id) DO UPDATE SET status = excluded.status
                """,
                (meeting_id, user_id, status.value),
            )
        return Participant(meeting_id=meeting_id, user_id=user_id, status=status)

    def get_participant(self, meeting_id: int, user_id: int) -> Optional[Participant]:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT meeting_id, user_id, status FROM meeting_participants WHERE meeting_id = ? AND user_id = ?",
                (meeting_id, user_id),
            ).fetchone()

        if row is None:
            return None

        return Participant(
            meeting_id=row["meeting_id"],
            user_id=row["user_id"],
            status=ParticipationStatus(row["status"]),
        )

    def list_participants(self, meeting_id: int) -> List[Participant]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT meeting_id, user_id, status FROM meeting_participants WHERE meeting_id = ? ORDER BY id",
                (meeting_id,),
            ).fetchall()

        return [
            Participant(
                meeting_id=row["meeting_id"],
                user_id=row["user_id"],
                status=ParticipationStatus(row["status"]),
            )
            for row in rows
        ]

    def update_participant_status(
        self,
        meeting_id: int,
        user_id: int,
        status: ParticipationStatus,
    ) -> Participant:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "UPDATE meeting_participants SET status = ? WHERE meeting_id = ? AND user_id = ?",
                (status.value, meeting_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"User {user_id} is not a participant of meeting {meeting_id}")

        return Participant(meeting_id=meeting_id, user_id=user_id, status=status)

    def remove_participant(self, meeting_id: int, user_id: int) -> bool:
        """Delete a participant row; returns whether one existed."""
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM meeting_participants WHERE meeting_id = ? AND user_id = ?",
                (meeting_id, user_id),
            )
            return cursor.rowcount > 0

    @staticmethod
    def _meeting_from_row(row: sqlite3.Row) -> Meeting:
        return Meeting(
            id=row["id"],
            group_id=row["group_id"],
            title=row["title"],
            interval=_interval_from_row(row),
            creator_id=row["creator_id"],
            description=row["description"] or "",
            location=row["location"] or "",
            status=row["status"],
        )
