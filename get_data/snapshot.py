"""
JSON 스냅샷 문서(URL)에서 데이터를 가져오는 모듈

{
    "group_id": "...",
    "members": [{"id": "...", "display_name": "..."}],
    "events": [{"id": "...", "user_id": "...", "start_date": "...", ...}],
    "preferences": {"hide_holidays": true, "dedup_all_day": true}
}
"""

import logging
from typing import Any, Optional
from zoneinfo import ZoneInfo

import requests

from config import Settings, get_settings
from get_data.rows import SnapshotError, parse_event_rows, parse_member_rows, parse_preferences
from schemas import Snapshot

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("group_id", "members", "events")


def _fetch_data(url: str) -> dict[str, Any]:
    """URL 에서 JSON 가져오기"""
    headers = {"Accept": "application/json"}
    response = requests.get(url, headers=headers, timeout=30)
    response.raise_for_status()
    return response.json()


def parse_snapshot(raw_data: Any, settings: Optional[Settings] = None) -> Snapshot:
    settings = settings or get_settings()

    if not isinstance(raw_data, dict):
        raise SnapshotError("Snapshot document must be a JSON object")
    missing = [key for key in REQUIRED_KEYS if key not in raw_data]
    if missing:
        raise SnapshotError(f"Snapshot is missing required keys: {', '.join(missing)}")
    for key in ("members", "events"):
        if not isinstance(raw_data[key], list):
            raise SnapshotError(f"Snapshot '{key}' must be a list")

    tz = ZoneInfo(settings.timezone)
    return {
        "source": "snapshot",
        "group_id": str(raw_data["group_id"]),
        "members": parse_member_rows(raw_data["members"]),
        "events": parse_event_rows(raw_data["events"], tz),
        "preferences": parse_preferences(raw_data.get("preferences")),
    }


def get_snapshot_data(url: str, settings: Optional[Settings] = None) -> Snapshot:
    """
    스냅샷 URL 에서 데이터를 읽어 Snapshot 으로 반환합니다.

    Raises:
        requests.HTTPError: 응답 코드가 실패일 때
        SnapshotError: 필수 값이 없을 때
    """
    snapshot = parse_snapshot(_fetch_data(url), settings)
    logger.info(
        f"Loaded snapshot {url}: {len(snapshot['members'])} members, "
        f"{len(snapshot['events'])} events"
    )
    return snapshot
