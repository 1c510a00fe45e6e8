"""
Main CLI application using Typer.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..adapters.api_client import ApiCalendarClient
from ..adapters.database import Database
from ..adapters.sqlite_stores import SqliteEventStore, SqliteGroupStore, SqliteMeetingStore, SqliteUserStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import GroupCalError
from ..domain.models import Interval
from ..domain.slot_generator import SlotGenerator
from ..log import configure_logging
from ..services.availability_finder import GroupAvailabilityService
from ..services.events import EventService
from ..services.groups import GroupService
from ..services.meetings import MeetingParticipantProjector, MeetingService

app = typer.Typer(
    name="groupcal",
    help="Find times when everyone in a group is free and schedule meetings",
    add_completion=False
)

console = Console()

MAX_CONFLICTS_SHOWN = 2

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@dataclass
class Stores:
    database: Database
    users: SqliteUserStore
    groups: SqliteGroupStore
    events: SqliteEventStore
    meetings: SqliteMeetingStore


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config = AppConfig.load_or_default(config_file or get_default_config_path())
    configure_logging(config.log_level)
    return config


def _open_stores(config: AppConfig) -> Stores:
    database = Database(config.database_path)
    database.initialize()
    return Stores(
        database=database,
        users=SqliteUserStore(database),
        groups=SqliteGroupStore(database),
        events=SqliteEventStore(database),
        meetings=SqliteMeetingStore(database),
    )


def _group_service(stores: Stores) -> GroupService:
    return GroupService(stores.groups, stores.users, MeetingParticipantProjector(stores.meetings))


def _in_tz(interval: Interval, tz: str) -> Interval:
    return Interval(start=interval.start.in_timezone(tz), end=interval.end.in_timezone(tz))


def _parse_day(value: str, tz: str, label: str) -> pendulum.DateTime:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz)
    except ValueError as e:
        console.print(f"[red]Could not parse {label}: {e}[/red]")
        raise typer.Exit(1)


def _determine_time_range(
    *,
    tz: str,
    date_option: Optional[str],
    start_option: Optional[str],
    end_option: Optional[str]
):
    """
    Resolve the search window from --date or --start/--end.
    Returns (start_date, end_date); end is the end of the last day.
    """
    if date_option and (start_option or end_option):
        console.print("[red]Error: --date cannot be combined with --start/--end.[/red]")
        raise typer.Exit(1)

    if date_option:
        day = _parse_day(date_option, tz, "date")
        return day.start_of("day"), day.end_of("day")

    if start_option:
        start_date = _parse_day(start_option, tz, "start date").start_of("day")
    else:
        start_date = pendulum.now(tz).start_of("day")

    if end_option:
        end_date = _parse_day(end_option, tz, "end date").end_of("day")
    else:
        end_date = start_date.end_of("day")

    return start_date, end_date


def _build_availability_service(config: AppConfig, source: str) -> GroupAvailabilityService:
    slot_generator = SlotGenerator(
        working_hours=config.working_hours(),
        step_minutes=config.defaults.step_minutes,
    )

    if source == "api":
        if config.api is None:
            console.print("[red]Error: no 'api' section configured.[/red]")
            raise typer.Exit(1)
        client = ApiCalendarClient(
            base_url=config.api.base_url,
            access_token=config.api.token,
            timeout=config.api.timeout_seconds,
        )
        return GroupAvailabilityService(client, client, slot_generator, timezone=config.timezone)

    if source != "db":
        console.print(f"[red]Error: unknown source '{source}', use 'db' or 'api'.[/red]")
        raise typer.Exit(1)

    stores = _open_stores(config)
    return GroupAvailabilityService(stores.groups, stores.events, slot_generator, timezone=config.timezone)


def _interval_payload(interval: Interval) -> dict:
    return {
        "start": interval.start.to_iso8601_string(),
        "end": interval.end.to_iso8601_string(),
    }


@app.command()
def slots(
    group_id: Annotated[int, typer.Argument(help="Group id")],
    config_file: ConfigOption = None,
    date: Annotated[Optional[str], typer.Option("--date", help="Single day (YYYY-MM-DD)")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Meeting duration in minutes")] = None,
    as_user: Annotated[Optional[int], typer.Option("--as-user", help="Id of the requesting user")] = None,
    source: Annotated[str, typer.Option("--source", help="Where to read groups and events: db or api")] = "db",
    available_only: Annotated[bool, typer.Option("--available-only", help="Only list free slots")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print available slots as JSON")] = False,
):
    """
    Show candidate meeting slots for a group, with conflicts.

    Examples:

        groupcal slots 1 --date 2024-11-25

        groupcal slots 1 --start 2024-11-25 --end 2024-11-29 --duration 30

        groupcal slots 1 --date 2024-11-25 --json
    """
    try:
        config = _load_config(config_file)
        tz = config.timezone

        start_date, end_date = _determine_time_range(
            tz=tz,
            date_option=date,
            start_option=start,
            end_option=end
        )
        duration_minutes = duration if duration is not None else config.defaults.duration_minutes

        service = _build_availability_service(config, source)
        evaluated = service.evaluate(
            group_id,
            start_date,
            end_date,
            duration_minutes,
            requester_id=as_user,
        )

        if as_json:
            payload = [_interval_payload(slot.interval) for slot in evaluated if slot.available]
            typer.echo(json.dumps(payload, indent=2))
            return

        shown = [slot for slot in evaluated if slot.available] if available_only else evaluated
        free_count = sum(1 for slot in evaluated if slot.available)

        console.print()
        if not shown:
            console.print(
                "[yellow]No slots found.[/yellow]\n"
                "Try a longer range, a shorter duration or other working hours."
            )
        else:
            console.print(
                f"[bold green]{free_count} of {len(evaluated)} slot(s) available:[/bold green]\n"
            )
            for slot in shown:
                line = escape(slot.format_display(max_conflicts=MAX_CONFLICTS_SHOWN))
                style = "green" if slot.available else "red"
                console.print(f"  [{style}]{line}[/{style}]")
        console.print()

    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def members(
    group_id: Annotated[int, typer.Argument(help="Group id")],
    config_file: ConfigOption = None,
    as_user: Annotated[Optional[int], typer.Option("--as-user", help="Id of the requesting user")] = None,
):
    """
    List the members of a group.
    """
    try:
        config = _load_config(config_file)
        stores = _open_stores(config)
        group_members = stores.groups.resolve_members(group_id, as_user)

        if not group_members:
            console.print("[yellow]This group has no members.[/yellow]")
            return

        table = Table(
            title=f"Members of group {group_id}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Id", style="dim")
        table.add_column("Name", style="bold yellow")
        table.add_column("E-Mail", style="dim")

        for member in group_members:
            table.add_row(str(member.user_id), escape(member.name), escape(member.email))

        console.print()
        console.print(table)
        console.print()

    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def init_db(config_file: ConfigOption = None):
    """
    Create the database tables.
    """
    try:
        config = _load_config(config_file)
        _open_stores(config)
        console.print(f"[green]Database ready at {config.database_path}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def add_user(
    email: Annotated[str, typer.Argument(help="E-mail address")],
    first_name: Annotated[str, typer.Argument(help="First name")],
    last_name: Annotated[str, typer.Argument(help="Last name")],
    config_file: ConfigOption = None,
):
    """
    Register a user.
    """
    try:
        stores = _open_stores(_load_config(config_file))
        user = stores.users.create_user(email, first_name, last_name)
        console.print(f"[green]Created user {user.user_id}: {escape(user.name)}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def create_group(
    name: Annotated[str, typer.Argument(help="Group name")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the creating user")],
    description: Annotated[str, typer.Option("--description", help="Group description")] = "",
    config_file: ConfigOption = None,
):
    """
    Create a group; the creator becomes its admin.
    """
    try:
        stores = _open_stores(_load_config(config_file))
        service = _group_service(stores)
        group = service.create_group(as_user, name, description)
        console.print(f"[green]Created group {group.id}: {escape(group.name)}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def add_member(
    group_id: Annotated[int, typer.Argument(help="Group id")],
    email: Annotated[str, typer.Argument(help="E-mail of the user to add")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the acting group admin")],
    role: Annotated[str, typer.Option("--role", help="admin or member")] = "member",
    config_file: ConfigOption = None,
):
    """
    Add a user to a group and to its existing meetings.
    """
    try:
        stores = _open_stores(_load_config(config_file))
        service = _group_service(stores)
        event = service.add_member(group_id, as_user, email, role)
        console.print(f"[green]User {event.user_id} added to group {event.group_id}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def remove_member(
    group_id: Annotated[int, typer.Argument(help="Group id")],
    user_id: Annotated[int, typer.Argument(help="Id of the user to remove")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the acting group admin")],
    config_file: ConfigOption = None,
):
    """
    Remove a user from a group and from its meetings.
    """
    try:
        stores = _open_stores(_load_config(config_file))
        service = _group_service(stores)
        service.remove_member(group_id, as_user, user_id)
        console.print(f"[green]User {user_id} removed from group {group_id}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def groups(
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the user whose groups to list")],
    config_file: ConfigOption = None,
):
    """
    List the groups a user belongs to.
    """
    try:
        stores = _open_stores(_load_config(config_file))
        user_groups = _group_service(stores).list_groups(as_user)

        if not user_groups:
            console.print("[yellow]No groups found.[/yellow]")
            return

        table = Table(title=f"Groups of user {as_user}", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Name", style="bold yellow")
        table.add_column("Role")
        table.add_column("Description", style="dim")

        for group in user_groups:
            table.add_row(str(group.id), escape(group.name), group.role or "", escape(group.description))

        console.print()
        console.print(table)
        console.print()

    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def update_group(
    group_id: Annotated[int, typer.Argument(help="Group id")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the acting group admin")],
    name: Annotated[Optional[str], typer.Option("--name", help="New group name")] = None,
    description: Annotated[Optional[str], typer.Option("--description", help="New description")] = None,
    config_file: ConfigOption = None,
):
    """
    Rename a group or change its description.
    """
    try:
        stores = _open_stores(_load_config(config_file))
        group = _group_service(stores).update_group(group_id, as_user, name, description)
        console.print(f"[green]Updated group {group.id}: {escape(group.name)}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def delete_group(
    group_id: Annotated[int, typer.Argument(help="Group id")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the acting group admin")],
    config_file: ConfigOption = None,
):
    """
    Delete a group with its memberships and meetings.
    """
    try:
        stores = _open_stores(_load_config(config_file))
        _group_service(stores).delete_group(group_id, as_user)
        console.print(f"[green]Deleted group {group_id}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def add_event(
    user_id: Annotated[int, typer.Argument(help="Owner of the event")],
    title: Annotated[str, typer.Argument(help="Event title")],
    start: Annotated[str, typer.Argument(help="Start (ISO-8601, e.g. 2024-11-25T13:00)")],
    end: Annotated[str, typer.Argument(help="End (ISO-8601)")],
    free: Annotated[bool, typer.Option("--free", help="Do not block the time")] = False,
    location: Annotated[str, typer.Option("--location", help="Event location")] = "",
    config_file: ConfigOption = None,
):
    """
    Log a personal calendar event.
    """
    try:
        config = _load_config(config_file)
        service = EventService(_open_stores(config).events, timezone=config.timezone)
        event = service.create_event(user_id, title, start, end, location=location, is_busy=not free)
        console.print(f"[green]Created event {event.id}: {escape(str(event.interval))}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def events(
    user_id: Annotated[int, typer.Argument(help="Owner of the events")],
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
):
    """
    List a user's calendar events, optionally within a date range.
    """
    try:
        config = _load_config(config_file)
        service = EventService(_open_stores(config).events, timezone=config.timezone)

        if start or end:
            start_date, end_date = _determine_time_range(
                tz=config.timezone,
                date_option=None,
                start_option=start,
                end_option=end
            )
            user_events = service.list_events(user_id, start_date, end_date)
        else:
            user_events = service.list_events(user_id)

        if not user_events:
            console.print("[yellow]No events found.[/yellow]")
            return

        table = Table(title=f"Events of user {user_id}", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("When")
        table.add_column("Title", style="bold yellow")
        table.add_column("Busy")

        for event in user_events:
            when = _in_tz(event.interval, config.timezone)
            table.add_row(str(event.id), escape(str(when)), escape(event.title), "yes" if event.is_busy else "no")

        console.print()
        console.print(table)
        console.print()

    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def update_event(
    event_id: Annotated[int, typer.Argument(help="Event id")],
    as_user: Annotated[int, typer.Option("--as-user", help="Owner of the event")],
    title: Annotated[Optional[str], typer.Option("--title", help="New title")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="New start (ISO-8601)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="New end (ISO-8601)")] = None,
    busy: Annotated[bool, typer.Option("--busy", help="Block the time")] = False,
    free: Annotated[bool, typer.Option("--free", help="Stop blocking the time")] = False,
    config_file: ConfigOption = None,
):
    """
    Change a calendar event.
    """
    try:
        config = _load_config(config_file)
        service = EventService(_open_stores(config).events, timezone=config.timezone)
        if busy and free:
            console.print("[red]Error: --busy cannot be combined with --free.[/red]")
            raise typer.Exit(1)
        is_busy = True if busy else (False if free else None)
        event = service.update_event(event_id, as_user, title=title, start_time=start, end_time=end, is_busy=is_busy)
        console.print(f"[green]Updated event {event.id}: {escape(event.title)}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def delete_event(
    event_id: Annotated[int, typer.Argument(help="Event id")],
    as_user: Annotated[int, typer.Option("--as-user", help="Owner of the event")],
    config_file: ConfigOption = None,
):
    """
    Delete a calendar event.
    """
    try:
        config = _load_config(config_file)
        EventService(_open_stores(config).events, timezone=config.timezone).delete_event(event_id, as_user)
        console.print(f"[green]Deleted event {event_id}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def create_meeting(
    group_id: Annotated[int, typer.Argument(help="Group id")],
    title: Annotated[str, typer.Argument(help="Meeting title")],
    start: Annotated[str, typer.Argument(help="Start (ISO-8601)")],
    end: Annotated[str, typer.Argument(help="End (ISO-8601)")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the creating user")],
    location: Annotated[str, typer.Option("--location", help="Meeting location")] = "",
    config_file: ConfigOption = None,
):
    """
    Schedule a meeting and invite every group member.
    """
    try:
        config = _load_config(config_file)
        stores = _open_stores(config)
        service = MeetingService(stores.groups, stores.meetings, timezone=config.timezone)
        result = service.create_meeting(as_user, group_id, title, start, end, location=location)

        console.print(f"[green]Created meeting {result.meeting.id}: {escape(result.meeting.title)}[/green]")
        if not result.complete:
            failed = ", ".join(str(uid) for uid in result.participant_failures)
            console.print(f"[yellow]Could not invite user(s): {failed}[/yellow]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def respond(
    meeting_id: Annotated[int, typer.Argument(help="Meeting id")],
    status: Annotated[str, typer.Argument(help="accepted, declined or pending")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the responding user")],
    config_file: ConfigOption = None,
):
    """
    Accept or decline a meeting invitation.
    """
    try:
        config = _load_config(config_file)
        stores = _open_stores(config)
        service = MeetingService(stores.groups, stores.meetings, timezone=config.timezone)
        participant = service.respond(meeting_id, as_user, status)
        console.print(f"[green]Meeting {meeting_id}: {participant.status.value}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def meetings(
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the requesting user")],
    group_id: Annotated[Optional[int], typer.Option("--group", help="Only meetings of this group")] = None,
    config_file: ConfigOption = None,
):
    """
    List meetings of a group, or of every group the user belongs to.
    """
    try:
        config = _load_config(config_file)
        stores = _open_stores(config)
        service = MeetingService(stores.groups, stores.meetings, timezone=config.timezone)

        if group_id is not None:
            rows = [
                (meeting, meeting.status)
                for meeting in service.list_group_meetings(group_id, as_user)
            ]
        else:
            rows = [
                (item.meeting, item.participation.value if item.participation else "not invited")
                for item in service.list_user_meetings(as_user)
            ]

        if not rows:
            console.print("[yellow]No meetings found.[/yellow]")
            return

        table = Table(title="Meetings", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("When")
        table.add_column("Title", style="bold yellow")
        table.add_column("Group", style="dim")
        table.add_column("Status")

        for meeting, status in rows:
            when = _in_tz(meeting.interval, config.timezone)
            table.add_row(str(meeting.id), escape(str(when)), escape(meeting.title), str(meeting.group_id), status)

        console.print()
        console.print(table)
        console.print()

    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def update_meeting(
    meeting_id: Annotated[int, typer.Argument(help="Meeting id")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the meeting creator")],
    title: Annotated[Optional[str], typer.Option("--title", help="New title")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="New start (ISO-8601)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="New end (ISO-8601)")] = None,
    location: Annotated[Optional[str], typer.Option("--location", help="New location")] = None,
    status: Annotated[Optional[str], typer.Option("--status", help="Meeting status, e.g. cancelled")] = None,
    config_file: ConfigOption = None,
):
    """
    Change a meeting. Only its creator may do so.
    """
    try:
        config = _load_config(config_file)
        stores = _open_stores(config)
        service = MeetingService(stores.groups, stores.meetings, timezone=config.timezone)
        meeting = service.update_meeting(
            meeting_id,
            as_user,
            title=title,
            start_time=start,
            end_time=end,
            location=location,
            status=status,
        )
        console.print(f"[green]Updated meeting {meeting.id}: {escape(meeting.title)}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def delete_meeting(
    meeting_id: Annotated[int, typer.Argument(help="Meeting id")],
    as_user: Annotated[int, typer.Option("--as-user", help="Id of the meeting creator")],
    config_file: ConfigOption = None,
):
    """
    Delete a meeting. Only its creator may do so.
    """
    try:
        config = _load_config(config_file)
        stores = _open_stores(config)
        MeetingService(stores.groups, stores.meetings, timezone=config.timezone).delete_meeting(meeting_id, as_user)
        console.print(f"[green]Deleted meeting {meeting_id}[/green]")
    except (GroupCalError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]groupcal[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
