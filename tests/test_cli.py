"""
Tests for the Typer command line interface.
"""

import json

import pytest
from typer.testing import CliRunner

from groupcal import __version__
from groupcal.adapters.database import Database
from groupcal.adapters.sqlite_stores import SqliteEventStore, SqliteGroupStore, SqliteMeetingStore, SqliteUserStore
from groupcal.cli.app import app
from groupcal.domain.models import ParticipationStatus

from conftest import interval

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Config pointing at a seeded database: Ann and Bob in group 1, Ann busy 13-14."""
    db_path = tmp_path / "cli.db"
    database = Database(db_path)
    database.initialize()

    users = SqliteUserStore(database)
    groups = SqliteGroupStore(database)
    ann = users.create_user("ann@example.com", "Ann", "Lee")
    bob = users.create_user("bob@example.com", "Bob", "Ray")
    users.create_user("cid@example.com", "Cid", "Moe")
    group = groups.create_group("Team", creator_id=ann.user_id)
    groups.add_member(group.id, bob.user_id)
    SqliteEventStore(database).create_event(ann.user_id, "Standup", interval("13:00", "14:00"))

    path = tmp_path / "config.yaml"
    path.write_text(
        f"timezone: Europe/Berlin\n"
        f"database_path: {db_path}\n"
        f"log_level: WARNING\n",
        encoding="utf-8",
    )
    return path


def _database(config_path):
    return Database(config_path.parent / "cli.db")


class TestSlotsCommand:
    def test_json_lists_available_slots(self, config_file):
        result = runner.invoke(app, ["slots", "1", "--date", "2024-11-25", "--config", str(config_file), "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert [item["start"][11:16] for item in payload] == ["09:00", "10:00", "11:00", "15:00", "16:00", "17:00"]
        assert payload[0] == {"start": "2024-11-25T09:00:00+01:00", "end": "2024-11-25T10:00:00+01:00"}

    def test_listing_shows_conflicts(self, config_file):
        result = runner.invoke(app, ["slots", "1", "--date", "2024-11-25", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "6 of 9 slot(s) available" in result.stdout
        assert "13:00 - 14:00 | Conflicts: Ann Lee: Standup" in result.stdout
        assert "09:00 - 10:00 | All members available" in result.stdout

    def test_duration_option(self, config_file):
        result = runner.invoke(
            app,
            ["slots", "1", "--date", "2024-11-25", "--duration", "30", "--config", str(config_file), "--json"],
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload[0]["end"] == "2024-11-25T09:30:00+01:00"

    def test_unknown_group_fails(self, config_file):
        result = runner.invoke(app, ["slots", "99", "--date", "2024-11-25", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_outsider_is_rejected(self, config_file):
        result = runner.invoke(
            app, ["slots", "1", "--date", "2024-11-25", "--as-user", "3", "--config", str(config_file)]
        )

        assert result.exit_code == 1

    def test_date_conflicts_with_range(self, config_file):
        result = runner.invoke(
            app, ["slots", "1", "--date", "2024-11-25", "--start", "2024-11-25", "--config", str(config_file)]
        )

        assert result.exit_code == 1

    def test_api_source_needs_api_section(self, config_file):
        result = runner.invoke(
            app, ["slots", "1", "--date", "2024-11-25", "--source", "api", "--config", str(config_file)]
        )

        assert result.exit_code == 1
        assert "api" in result.stdout


class TestGroupCommands:
    def test_members_table(self, config_file):
        result = runner.invoke(app, ["members", "1", "--as-user", "1", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Ann Lee" in result.stdout
        assert "Bob Ray" in result.stdout

    def test_add_and_remove_member(self, config_file):
        added = runner.invoke(
            app, ["add-member", "1", "cid@example.com", "--as-user", "1", "--config", str(config_file)]
        )
        assert added.exit_code == 0, added.output
        assert len(SqliteGroupStore(_database(config_file)).resolve_members(1)) == 3

        removed = runner.invoke(app, ["remove-member", "1", "3", "--as-user", "1", "--config", str(config_file)])
        assert removed.exit_code == 0, removed.output
        assert len(SqliteGroupStore(_database(config_file)).resolve_members(1)) == 2

    def test_member_cannot_add(self, config_file):
        result = runner.invoke(
            app, ["add-member", "1", "cid@example.com", "--as-user", "2", "--config", str(config_file)]
        )

        assert result.exit_code == 1

    def test_groups_table(self, config_file):
        result = runner.invoke(app, ["groups", "--as-user", "2", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Team" in result.stdout
        assert "member" in result.stdout

    def test_groups_of_outsider(self, config_file):
        result = runner.invoke(app, ["groups", "--as-user", "3", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "No groups found" in result.stdout

    def test_admin_updates_and_deletes_group(self, config_file):
        updated = runner.invoke(
            app, ["update-group", "1", "--name", "Crew", "--as-user", "1", "--config", str(config_file)]
        )
        assert updated.exit_code == 0, updated.output
        assert "Updated group 1: Crew" in updated.stdout

        deleted = runner.invoke(app, ["delete-group", "1", "--as-user", "1", "--config", str(config_file)])
        assert deleted.exit_code == 0, deleted.output
        assert not SqliteGroupStore(_database(config_file)).group_exists(1)

    def test_member_cannot_update_or_delete_group(self, config_file):
        updated = runner.invoke(
            app, ["update-group", "1", "--name", "Mine", "--as-user", "2", "--config", str(config_file)]
        )
        deleted = runner.invoke(app, ["delete-group", "1", "--as-user", "2", "--config", str(config_file)])

        assert updated.exit_code == 1
        assert deleted.exit_code == 1
        assert "Only group admins" in deleted.stdout
        assert SqliteGroupStore(_database(config_file)).group_exists(1)


class TestMeetingCommands:
    def test_create_meeting_and_respond(self, config_file):
        created = runner.invoke(
            app,
            [
                "create-meeting", "1", "Planning", "2024-11-25T10:00", "2024-11-25T11:00",
                "--as-user", "1", "--config", str(config_file),
            ],
        )
        assert created.exit_code == 0, created.output
        assert "Created meeting 1" in created.stdout

        responded = runner.invoke(app, ["respond", "1", "declined", "--as-user", "2", "--config", str(config_file)])
        assert responded.exit_code == 0, responded.output

        meetings = SqliteMeetingStore(_database(config_file))
        assert meetings.get_participant(1, 2).status == ParticipationStatus.DECLINED
        assert meetings.get_participant(1, 1).status == ParticipationStatus.ACCEPTED

    def test_invalid_status(self, config_file):
        result = runner.invoke(app, ["respond", "1", "maybe", "--as-user", "2", "--config", str(config_file)])

        assert result.exit_code == 1


class TestEventCommands:
    def test_events_table(self, config_file):
        result = runner.invoke(app, ["events", "1", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Standup" in result.stdout

    def test_events_in_range(self, config_file):
        inside = runner.invoke(
            app, ["events", "1", "--start", "2024-11-25", "--end", "2024-11-25", "--config", str(config_file)]
        )
        outside = runner.invoke(
            app, ["events", "1", "--start", "2024-11-26", "--end", "2024-11-27", "--config", str(config_file)]
        )

        assert inside.exit_code == 0, inside.output
        assert "Standup" in inside.stdout
        assert outside.exit_code == 0, outside.output
        assert "No events found" in outside.stdout

    def test_update_and_delete_event(self, config_file):
        updated = runner.invoke(
            app,
            ["update-event", "1", "--title", "Sync", "--free", "--as-user", "1", "--config", str(config_file)],
        )
        assert updated.exit_code == 0, updated.output
        event = SqliteEventStore(_database(config_file)).get_event(1, 1)
        assert (event.title, event.is_busy) == ("Sync", False)

        deleted = runner.invoke(app, ["delete-event", "1", "--as-user", "1", "--config", str(config_file)])
        assert deleted.exit_code == 0, deleted.output
        assert SqliteEventStore(_database(config_file)).list_user_events(1) == []

    def test_busy_and_free_together_fail(self, config_file):
        result = runner.invoke(
            app, ["update-event", "1", "--busy", "--free", "--as-user", "1", "--config", str(config_file)]
        )

        assert result.exit_code == 1

    def test_other_users_event_is_not_found(self, config_file):
        result = runner.invoke(app, ["delete-event", "1", "--as-user", "2", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_add_event_rejects_non_datetime(self, config_file):
        result = runner.invoke(
            app, ["add-event", "1", "Gym", "P1D", "2024-11-25T08:00", "--config", str(config_file)]
        )

        assert result.exit_code == 1
        assert "Invalid start_time" in result.stdout
        assert len(SqliteEventStore(_database(config_file)).list_user_events(1)) == 1


class TestMeetingListing:
    @pytest.fixture
    def with_meeting(self, config_file):
        result = runner.invoke(
            app,
            [
                "create-meeting", "1", "Planning", "2024-11-25T10:00", "2024-11-25T11:00",
                "--as-user", "1", "--config", str(config_file),
            ],
        )
        assert result.exit_code == 0, result.output
        return config_file

    def test_user_meetings(self, with_meeting):
        result = runner.invoke(app, ["meetings", "--as-user", "2", "--config", str(with_meeting)])

        assert result.exit_code == 0, result.output
        assert "Planning" in result.stdout
        assert "pending" in result.stdout

    def test_group_meetings(self, with_meeting):
        result = runner.invoke(app, ["meetings", "--group", "1", "--as-user", "2", "--config", str(with_meeting)])

        assert result.exit_code == 0, result.output
        assert "scheduled" in result.stdout

    def test_outsider_cannot_list_group_meetings(self, with_meeting):
        result = runner.invoke(app, ["meetings", "--group", "1", "--as-user", "3", "--config", str(with_meeting)])

        assert result.exit_code == 1

    def test_creator_updates_and_deletes(self, with_meeting):
        updated = runner.invoke(
            app,
            ["update-meeting", "1", "--status", "cancelled", "--as-user", "1", "--config", str(with_meeting)],
        )
        assert updated.exit_code == 0, updated.output
        assert SqliteMeetingStore(_database(with_meeting)).get_meeting(1).status == "cancelled"

        deleted = runner.invoke(app, ["delete-meeting", "1", "--as-user", "1", "--config", str(with_meeting)])
        assert deleted.exit_code == 0, deleted.output
        assert SqliteMeetingStore(_database(with_meeting)).list_group_meetings(1) == []

    def test_participant_cannot_update_or_delete(self, with_meeting):
        updated = runner.invoke(
            app, ["update-meeting", "1", "--title", "Mine", "--as-user", "2", "--config", str(with_meeting)]
        )
        deleted = runner.invoke(app, ["delete-meeting", "1", "--as-user", "2", "--config", str(with_meeting)])

        assert updated.exit_code == 1
        assert deleted.exit_code == 1
        assert "Only the meeting creator" in deleted.stdout
        assert SqliteMeetingStore(_database(with_meeting)).get_meeting(1).title == "Planning"


def test_add_user_and_event(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_path: {tmp_path / 'new.db'}\n", encoding="utf-8")

    user = runner.invoke(app, ["add-user", "dee@example.com", "Dee", "Fox", "--config", str(config_path)])
    assert user.exit_code == 0, user.output
    assert "Created user 1" in user.stdout

    event = runner.invoke(
        app, ["add-event", "1", "Gym", "2024-11-25T07:00", "2024-11-25T08:00", "--config", str(config_path)]
    )
    assert event.exit_code == 0, event.output
    assert [e.title for e in SqliteEventStore(Database(tmp_path / "new.db")).list_user_events(1)] == ["Gym"]


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout
