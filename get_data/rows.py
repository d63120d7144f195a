"""
calendar_events / group_members 행(JSON)을 엔진 값으로 바꾸는 모듈
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, Iterable, Optional

from dateutil import parser as date_parser

from schemas import CalendarEvent, EventType, Member, Preferences

logger = logging.getLogger(__name__)


class SnapshotError(ValueError):
    """스냅샷 문서에 필요한 값이 없을 때"""


def parse_datetime(value: str, tz: tzinfo) -> datetime:
    """ISO 문자열을 tz 기준 시각으로 변환합니다. 시간대 정보가 없으면 tz 로 간주."""
    dt = date_parser.isoparse(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def _color_hex(color: Any) -> Optional[str]:
    """{"red": 0.38, "green": 0.55, "blue": 0.93, ...} -> "#618ced" """
    if color is None or isinstance(color, str):
        return color
    channels = [color.get(key, 0.0) for key in ("red", "green", "blue")]
    return "#" + "".join(f"{round(max(0.0, min(1.0, c)) * 255):02x}" for c in channels)


def parse_event_row(row: dict[str, Any], tz: tzinfo) -> CalendarEvent:
    group_id = row.get("group_id")
    event_type = row.get("event_type") or ("group" if group_id else "personal")

    return CalendarEvent(
        id=str(row["id"]),
        owner_id=str(row["user_id"]),
        group_id=str(group_id) if group_id else None,
        title=row.get("title") or "",
        start=parse_datetime(row["start_date"], tz),
        end=parse_datetime(row["end_date"], tz),
        is_all_day=bool(row.get("is_all_day", False)),
        location=row.get("location"),
        event_type=EventType(event_type),
        calendar_name=row.get("calendar_name"),
        calendar_color=_color_hex(row.get("calendar_color")),
    )


def parse_event_rows(rows: Iterable[Any], tz: tzinfo) -> list[CalendarEvent]:
    """
    일정 행 리스트를 변환합니다.
    읽을 수 없는 행(객체가 아닌 값 포함)은 건너뛰고 경고만 남깁니다.
    """
    events = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning(f"Skipping calendar event row that is not an object: {row!r}")
            continue
        try:
            events.append(parse_event_row(row, tz))
        except (KeyError, ValueError, TypeError, AttributeError, OverflowError) as e:
            logger.warning(f"Skipping calendar event row {row.get('id')!r}: {e}")
    return events


def parse_member_row(row: dict[str, Any]) -> Member:
    """
    {"id": ..., "display_name": ...} 또는
    {"user_id": ..., "users": {"display_name": ...}} 형태 모두 지원
    """
    member_id = row.get("id") or row["user_id"]
    user = row.get("users")
    if not isinstance(user, dict):
        user = {}
    display_name = row.get("display_name") or user.get("display_name") or "Member"
    return Member(id=str(member_id), display_name=display_name)


def parse_member_rows(rows: Iterable[Any]) -> list[Member]:
    members: dict[str, Member] = {}
    for row in rows:
        if not isinstance(row, dict):
            logger.warning(f"Skipping member row that is not an object: {row!r}")
            continue
        try:
            member = parse_member_row(row)
        except KeyError as e:
            logger.warning(f"Skipping member row without id: {e}")
            continue
        members.setdefault(member.id, member)
    return list(members.values())


def parse_preferences(row: Any) -> Preferences:
    if not isinstance(row, dict) or not row:
        return Preferences()
    defaults = Preferences()
    return Preferences(
        hide_holidays=bool(row.get("hide_holidays", defaults.hide_holidays)),
        dedup_all_day=bool(row.get("dedup_all_day", defaults.dedup_all_day)),
    )
