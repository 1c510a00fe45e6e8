"""
Tests for the REST backend client, with requests.get replaced by a fake.
"""

import pytest
import requests

from groupcal.adapters.api_client import ApiCalendarClient
from groupcal.domain.exceptions import CalendarAPIError, NotFoundError

from conftest import at, interval


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeBackend:
    """Maps URL paths to responses and records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        for path, response in self.routes.items():
            if url.endswith(path):
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse(404, {"message": "Route not found"})


MEMBERS = {
    "members": [
        {"id": 1, "first_name": "Ann", "last_name": "Lee", "email": "ann@example.com", "role": "admin"},
        {"id": 2, "first_name": "Bob", "last_name": "Ray", "email": "bob@example.com", "role": "member"},
        {"first_name": "No", "last_name": "Id"},
    ]
}

BUSY = {
    "busyTimes": [
        {
            "start_time": "2024-11-25T13:00:00.000Z",
            "end_time": "2024-11-25T14:00:00.000Z",
            "title": "Review",
            "first_name": "Bob",
            "last_name": "Ray",
            "user_id": 2,
        },
        {
            "start_time": "2024-11-25T12:00:00.000Z",
            "end_time": "2024-11-25T13:00:00.000Z",
            "title": "Standup",
            "first_name": "Ann",
            "last_name": "Lee",
            "user_id": 1,
        },
        {"start_time": "garbage", "end_time": "2024-11-25T13:00:00.000Z", "user_id": 1},
        {
            "start_time": "2024-11-25T15:00:00.000Z",
            "end_time": "2024-11-25T16:00:00.000Z",
            "user_id": 3,
        },
    ]
}


@pytest.fixture
def backend(monkeypatch):
    fake = FakeBackend(
        {
            "/groups/7/members": FakeResponse(200, MEMBERS),
            "/events/group/7/busy-times": FakeResponse(200, BUSY),
        }
    )
    monkeypatch.setattr(requests, "get", fake.get)
    return fake


@pytest.fixture
def client():
    return ApiCalendarClient("http://api.test/api/", access_token="token-123", timeout=5)


class TestResolveMembers:
    def test_parses_members_and_skips_malformed_rows(self, backend, client):
        members = client.resolve_members(7)

        assert [(m.user_id, m.name, m.email) for m in members] == [
            (1, "Ann Lee", "ann@example.com"),
            (2, "Bob Ray", "bob@example.com"),
        ]

    def test_sends_bearer_token(self, backend, client):
        client.resolve_members(7)

        request = backend.requests[0]
        assert request["url"] == "http://api.test/api/groups/7/members"
        assert request["headers"]["Authorization"] == "Bearer token-123"
        assert request["timeout"] == 5

    def test_forbidden_group_is_not_found(self, monkeypatch, client):
        fake = FakeBackend({"/groups/7/members": FakeResponse(403, {"message": "Not a member of this group"})})
        monkeypatch.setattr(requests, "get", fake.get)

        with pytest.raises(NotFoundError, match="Not a member"):
            client.resolve_members(7)

    def test_connection_error(self, monkeypatch, client):
        fake = FakeBackend({"/groups/7/members": requests.exceptions.ConnectionError("refused")})
        monkeypatch.setattr(requests, "get", fake.get)

        with pytest.raises(CalendarAPIError):
            client.resolve_members(7)

    def test_server_error(self, monkeypatch, client):
        fake = FakeBackend({"/groups/7/members": FakeResponse(500, {"message": "Server error"})})
        monkeypatch.setattr(requests, "get", fake.get)

        with pytest.raises(CalendarAPIError):
            client.resolve_members(7)

    def test_invalid_json(self, monkeypatch, client):
        fake = FakeBackend({"/groups/7/members": FakeResponse(200, None)})
        monkeypatch.setattr(requests, "get", fake.get)

        with pytest.raises(CalendarAPIError):
            client.resolve_members(7)


class TestFetchBusyIntervals:
    def test_returns_sorted_records_for_requested_users(self, backend, client):
        records = client.fetch_busy_intervals([1, 2], at("00:00"), at("23:59"), group_id=7)

        assert [(r.user_id, r.label) for r in records] == [(1, "Standup"), (2, "Review")]
        assert records[0].interval == interval("13:00", "14:00")

    def test_filters_to_requested_users(self, backend, client):
        records = client.fetch_busy_intervals([2], at("00:00"), at("23:59"), group_id=7)

        assert [r.label for r in records] == ["Review"]

    def test_sends_iso_range_to_group_endpoint(self, backend, client):
        client.fetch_busy_intervals([1], at("00:00"), at("23:59"), group_id=7)

        request = backend.requests[-1]
        assert request["url"] == "http://api.test/api/events/group/7/busy-times"
        assert request["params"]["start_date"].startswith("2024-11-25T00:00:00")
        assert request["params"]["end_date"].startswith("2024-11-25T23:59:00")

    def test_no_users_no_request(self, backend, client):
        assert client.fetch_busy_intervals([], at("00:00"), at("23:59"), group_id=7) == []
        assert backend.requests == []

    def test_group_id_is_required(self, backend, client):
        with pytest.raises(CalendarAPIError, match="group_id"):
            client.fetch_busy_intervals([1], at("00:00"), at("23:59"))
        assert backend.requests == []

    def test_each_call_uses_its_own_group(self, monkeypatch, client):
        fake = FakeBackend(
            {
                "/events/group/7/busy-times": FakeResponse(200, BUSY),
                "/events/group/8/busy-times": FakeResponse(200, {"busyTimes": []}),
            }
        )
        monkeypatch.setattr(requests, "get", fake.get)

        assert len(client.fetch_busy_intervals([1, 2], at("00:00"), at("23:59"), group_id=7)) == 2
        assert client.fetch_busy_intervals([1, 2], at("00:00"), at("23:59"), group_id=8) == []
        assert [r["url"].rsplit("/", 2)[-2] for r in fake.requests] == ["7", "8"]
