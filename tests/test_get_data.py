"""Tests for the snapshot loaders (requests is monkeypatched)."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
import requests

from config import Settings
from get_data import snapshot, supabase
from get_data.rows import (
    SnapshotError,
    parse_datetime,
    parse_event_rows,
    parse_member_rows,
    parse_preferences,
)
from schemas import EventType, Member, Preferences


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


@pytest.fixture
def settings():
    return Settings(
        supabase_url="https://example.supabase.co/",
        supabase_key="anon-key",
        timezone="Asia/Seoul",
    )


EVENT_ROWS = [
    {
        "id": "e1",
        "user_id": "alice",
        "group_id": "group-1",
        "title": "Team lunch",
        "start_date": "2025-06-14T03:00:00Z",
        "end_date": "2025-06-14T04:00:00Z",
        "is_all_day": False,
        "calendar_color": {"red": 0.38, "green": 0.55, "blue": 0.93, "alpha": 1.0},
    },
    {
        "id": "e2",
        "user_id": "bob",
        "group_id": None,
        "title": "Dentist",
        "start_date": "not-a-date",
        "end_date": "2025-06-14T04:00:00Z",
    },
]


class TestRows:

    def test_parse_datetime_converts_to_timezone(self):
        seoul = ZoneInfo("Asia/Seoul")
        assert parse_datetime("2025-06-14T09:00:00Z", seoul) == datetime(2025, 6, 14, 18, tzinfo=seoul)
        assert parse_datetime("2025-06-14T09:00:00", seoul) == datetime(2025, 6, 14, 9, tzinfo=seoul)

    def test_parse_event_rows_skips_bad_rows(self, caplog):
        events = parse_event_rows(EVENT_ROWS, timezone.utc)

        assert len(events) == 1
        event = events[0]
        assert event.owner_id == "alice"
        assert event.event_type is EventType.GROUP
        assert event.calendar_color == "#618ced"
        assert "e2" in caplog.text

    def test_unknown_event_type_is_skipped(self):
        row = dict(EVENT_ROWS[0], event_type="meeting")
        assert parse_event_rows([row], timezone.utc) == []

    def test_missing_event_type_defaults_to_personal(self):
        row = dict(EVENT_ROWS[0], group_id=None)
        assert parse_event_rows([row], timezone.utc)[0].event_type is EventType.PERSONAL

    def test_non_object_event_rows_are_skipped(self, caplog):
        events = parse_event_rows([None, "junk", 42, EVENT_ROWS[0]], timezone.utc)

        assert [e.id for e in events] == ["e1"]
        assert "not an object" in caplog.text

    def test_non_object_member_rows_are_skipped(self):
        rows = [None, "junk", {"user_id": "alice", "users": "Alice"}]
        assert parse_member_rows(rows) == [Member(id="alice", display_name="Member")]

    def test_non_object_preferences_use_defaults(self):
        assert parse_preferences("yes") == Preferences()
        assert parse_preferences(None) == Preferences()

    def test_parse_member_rows(self):
        rows = [
            {"user_id": "alice", "users": {"display_name": "Alice"}},
            {"user_id": "bob", "users": None},
            {"id": "alice", "display_name": "Duplicate"},
            {"display_name": "No id"},
        ]
        assert parse_member_rows(rows) == [
            Member(id="alice", display_name="Alice"),
            Member(id="bob", display_name="Member"),
        ]


class TestSupabaseLoader:

    def test_loads_members_events_and_preferences(self, monkeypatch, settings):
        calls = []

        def fake_get(url, headers=None, params=None, timeout=None):
            calls.append((url, headers, params))
            if url.endswith("/group_members"):
                return FakeResponse([
                    {"user_id": "alice", "users": {"display_name": "Alice"}},
                    {"user_id": "bob", "users": {"display_name": "Bob"}},
                ])
            if url.endswith("/calendar_events"):
                return FakeResponse(EVENT_ROWS)
            if url.endswith("/user_settings"):
                return FakeResponse([{"hide_holidays": False, "dedup_all_day": True}])
            return FakeResponse({}, status_code=404)

        monkeypatch.setattr(supabase.requests, "get", fake_get)

        start = datetime(2025, 6, 14, tzinfo=timezone.utc)
        end = datetime(2025, 6, 21, tzinfo=timezone.utc)
        data = supabase.get_supabase_data("group-1", start, end, user_id="alice", settings=settings)

        assert data["source"] == "supabase"
        assert [m.id for m in data["members"]] == ["alice", "bob"]
        assert len(data["events"]) == 1
        assert data["events"][0].start.tzinfo == ZoneInfo("Asia/Seoul")
        assert data["preferences"] == Preferences(hide_holidays=False, dedup_all_day=True)

        url, headers, params = calls[1]
        assert url == "https://example.supabase.co/rest/v1/calendar_events"
        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer anon-key"
        assert ("user_id", "in.(alice,bob)") in params

    def test_empty_group_skips_event_query(self, monkeypatch, settings):
        requested = []

        def fake_get(url, headers=None, params=None, timeout=None):
            requested.append(url)
            return FakeResponse([])

        monkeypatch.setattr(supabase.requests, "get", fake_get)

        start = datetime(2025, 6, 14, tzinfo=timezone.utc)
        data = supabase.get_supabase_data("group-1", start, start, settings=settings)

        assert data["members"] == []
        assert data["events"] == []
        assert data["preferences"] == Preferences()
        assert requested == ["https://example.supabase.co/rest/v1/group_members"]

    def test_user_id_from_settings_loads_preferences(self, monkeypatch):
        settings = Settings(
            supabase_url="https://example.supabase.co",
            supabase_key="anon-key",
            user_id="alice",
        )
        requested = []

        def fake_get(url, headers=None, params=None, timeout=None):
            requested.append((url, params))
            if url.endswith("/user_settings"):
                return FakeResponse([{"hide_holidays": False, "dedup_all_day": False}])
            return FakeResponse([])

        monkeypatch.setattr(supabase.requests, "get", fake_get)

        start = datetime(2025, 6, 14, tzinfo=timezone.utc)
        data = supabase.get_supabase_data("group-1", start, start, settings=settings)

        assert data["preferences"] == Preferences(hide_holidays=False, dedup_all_day=False)
        url, params = requested[-1]
        assert url == "https://example.supabase.co/rest/v1/user_settings"
        assert ("user_id", "eq.alice") in params

    def test_http_error_propagates(self, monkeypatch, settings):
        monkeypatch.setattr(
            supabase.requests, "get", lambda *args, **kwargs: FakeResponse({}, status_code=401)
        )
        start = datetime(2025, 6, 14, tzinfo=timezone.utc)
        with pytest.raises(requests.HTTPError):
            supabase.get_supabase_data("group-1", start, start, settings=settings)


class TestSnapshotLoader:

    def test_loads_snapshot_document(self, monkeypatch, settings):
        document = {
            "group_id": "group-1",
            "members": [{"id": "alice", "display_name": "Alice"}],
            "events": EVENT_ROWS,
            "preferences": {"hide_holidays": True, "dedup_all_day": False},
        }
        monkeypatch.setattr(snapshot.requests, "get", lambda *args, **kwargs: FakeResponse(document))

        data = snapshot.get_snapshot_data("https://example.com/snapshot.json", settings=settings)

        assert data["source"] == "snapshot"
        assert data["group_id"] == "group-1"
        assert data["members"] == [Member(id="alice", display_name="Alice")]
        assert len(data["events"]) == 1
        assert data["preferences"] == Preferences(hide_holidays=True, dedup_all_day=False)

    def test_missing_keys_raise(self, settings):
        with pytest.raises(SnapshotError, match="members, events"):
            snapshot.parse_snapshot({"group_id": "group-1"}, settings)

    def test_non_list_rows_raise(self, settings):
        with pytest.raises(SnapshotError, match="events"):
            snapshot.parse_snapshot({"group_id": "group-1", "members": [], "events": None}, settings)

    def test_non_object_document_raises(self, settings):
        with pytest.raises(SnapshotError):
            snapshot.parse_snapshot([], settings)

    def test_default_preferences(self, settings):
        data = snapshot.parse_snapshot({"group_id": 1, "members": [], "events": []}, settings)
        assert data["group_id"] == "1"
        assert data["preferences"] == Preferences()
