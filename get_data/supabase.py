"""
Supabase (PostgREST) 에서 그룹 멤버와 일정을 가져오는 모듈
"""

import logging
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

import requests

from config import Settings, get_settings
from get_data.rows import parse_event_rows, parse_member_rows, parse_preferences
from schemas import Snapshot

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


def _headers(api_key: str) -> dict[str, str]:
    return {
        "apikey": api_key,
        "Authorization": f"Bearer {api_key}",
        "Accept": "application/json",
    }


def _fetch_rows(settings: Settings, table: str, params: list[tuple[str, str]]) -> list[dict[str, Any]]:
    """PostgREST 테이블 조회"""
    response = requests.get(
        f"{settings.supabase_url}/rest/v1/{table}",
        headers=_headers(settings.supabase_key),
        params=params,
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


def _fetch_members(settings: Settings, group_id: str) -> list[dict[str, Any]]:
    return _fetch_rows(settings, "group_members", [
        ("select", "user_id,users(display_name)"),
        ("group_id", f"eq.{group_id}"),
    ])


def _fetch_events(
    settings: Settings,
    member_ids: list[str],
    window_start: datetime,
    window_end: datetime
) -> list[dict[str, Any]]:
    """
    멤버들의 일정 중 조회 구간에 걸치는 것만 가져옵니다.
    그룹/개인 구분과 중복 제거는 엔진(normalize_events)이 합니다.
    """
    return _fetch_rows(settings, "calendar_events", [
        ("select", "*"),
        ("user_id", f"in.({','.join(member_ids)})"),
        ("start_date", f"lt.{window_end.isoformat()}"),
        ("end_date", f"gte.{window_start.isoformat()}"),
        ("order", "start_date.asc"),
    ])


def _fetch_preferences(settings: Settings, user_id: str) -> Optional[dict[str, Any]]:
    rows = _fetch_rows(settings, "user_settings", [
        ("select", "hide_holidays,dedup_all_day"),
        ("user_id", f"eq.{user_id}"),
        ("limit", "1"),
    ])
    return rows[0] if rows else None


def get_supabase_data(
    group_id: str,
    window_start: datetime,
    window_end: datetime,
    user_id: Optional[str] = None,
    settings: Optional[Settings] = None
) -> Snapshot:
    """
    그룹의 멤버/일정/설정을 가져와서 Snapshot 으로 반환합니다.

    Args:
        group_id: 그룹 id
        window_start, window_end: 조회 구간
        user_id: 설정(user_settings)을 읽을 사용자. 없으면 settings.user_id, 그것도 없으면 기본값
        settings: 없으면 get_settings()

    Returns:
        Snapshot: 엔진에 바로 넘길 수 있는 스냅샷
    """
    settings = settings or get_settings()
    user_id = user_id or settings.user_id or None
    tz = ZoneInfo(settings.timezone)

    members = parse_member_rows(_fetch_members(settings, group_id))
    if members:
        event_rows = _fetch_events(settings, [m.id for m in members], window_start, window_end)
    else:
        event_rows = []
    events = parse_event_rows(event_rows, tz)

    preferences = parse_preferences(_fetch_preferences(settings, user_id) if user_id else None)

    logger.info(
        f"Loaded group {group_id}: {len(members)} members, "
        f"{len(events)}/{len(event_rows)} events"
    )

    return {
        "source": "supabase",
        "group_id": group_id,
        "members": members,
        "events": events,
        "preferences": preferences,
    }
