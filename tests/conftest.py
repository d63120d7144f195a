"""Shared fixtures for availability tests."""

from datetime import date, datetime

import pytest

from schemas import CalendarEvent, EventType, Member

GROUP_ID = "group-1"
DAY = date(2025, 6, 14)  # Saturday


def make_event(
    owner_id,
    start,
    end,
    title="Busy",
    event_id=None,
    event_type=EventType.PERSONAL,
    group_id=None,
    is_all_day=False,
    calendar_name=None,
):
    return CalendarEvent(
        id=event_id or f"{owner_id}-{start.isoformat()}",
        owner_id=owner_id,
        title=title,
        start=start,
        end=end,
        event_type=event_type,
        group_id=group_id,
        is_all_day=is_all_day,
        calendar_name=calendar_name,
    )


def at(hour, minute=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute)


@pytest.fixture
def members():
    return [Member(id="alice", display_name="Alice"), Member(id="bob", display_name="Bob")]


@pytest.fixture
def member_ids(members):
    return [m.id for m in members]
