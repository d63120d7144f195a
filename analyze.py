from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Optional

from config import DISPLAY_HOURS, EXCLUDED_KEYWORDS
from schemas import (
    AvailabilitySummary,
    BlockSummary,
    Bucket,
    CalendarEvent,
    EventType,
    Highlight,
    Member,
    Preferences,
    TimeBlock,
)

WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


# =============================================================================
# 기본 함수
# =============================================================================

def _unique(member_ids: Iterable[str]) -> tuple[str, ...]:
    """순서를 유지하면서 중복 id 를 제거합니다."""
    return tuple(dict.fromkeys(member_ids))


def _at(day: date, hour: int, tz: Optional[tzinfo] = None) -> datetime:
    # hour=24 는 다음날 0시
    return datetime.combine(day, time(0), tzinfo=tz) + timedelta(hours=hour)


def _resolve_tz(
    tz: Optional[tzinfo],
    events: list[CalendarEvent],
    now: Optional[datetime] = None
) -> Optional[tzinfo]:
    """
    슬롯 경계를 만들 시간대. tz 를 안 주면 now, 그 다음 첫 시간대 있는 일정을 따릅니다.
    모두 naive 면 None (naive 경계).
    """
    if tz is not None:
        return tz
    if now is not None and now.tzinfo is not None:
        return now.tzinfo
    for event in events:
        if event.start.tzinfo is not None:
            return event.start.tzinfo
    return None


def _as_date(value: date) -> date:
    return value.date() if isinstance(value, datetime) else value


def _local_today(now: datetime, tz: Optional[tzinfo]) -> date:
    if now.tzinfo is not None and tz is not None:
        return now.astimezone(tz).date()
    return now.date()


def date_range(start_date: date, end_date: date) -> list[date]:
    """[start_date, end_date) 사이의 날짜 리스트. 범위가 뒤집혀 있으면 빈 리스트."""
    start_date, end_date = _as_date(start_date), _as_date(end_date)
    return [start_date + timedelta(days=i) for i in range((end_date - start_date).days)]


def _span(event: CalendarEvent) -> tuple[datetime, datetime]:
    """
    일정이 실제로 차지하는 [시작, 종료) 구간.
    종일 일정은 걸쳐 있는 날짜 전체(자정 ~ 다음날 자정)로 넓힙니다.
    """
    if not event.is_all_day:
        return event.start, event.end

    first_day = event.start.date()
    last_day = first_day
    if event.end > event.start:
        # 종료가 자정으로 저장된 경우 그 날은 포함하지 않음
        last_day = max(first_day, (event.end - timedelta(microseconds=1)).date())

    tz = event.start.tzinfo
    return _at(first_day, 0, tz), _at(last_day + timedelta(days=1), 0, tz)


def _align(value: datetime, reference: datetime) -> datetime:
    """naive/aware 가 섞여 있으면 value 를 reference 쪽에 맞춥니다."""
    if reference.tzinfo is None and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    if reference.tzinfo is not None and value.tzinfo is None:
        return value.replace(tzinfo=reference.tzinfo)
    return value


def _overlaps(event: CalendarEvent, start: datetime, end: datetime) -> bool:
    if _align(event.end, event.start) < event.start:
        return False
    event_start, event_end = _span(event)
    event_end = _align(event_end, event_start)
    return event_start < _align(end, event_start) and event_end > _align(start, event_start)


def _busy_owners(events: Iterable[CalendarEvent], start: datetime, end: datetime) -> set[str]:
    return {event.owner_id for event in events if _overlaps(event, start, end)}


def merge_consecutive_hours(
    hours: Iterable[int],
    min_hours: int = 0
) -> list[tuple[int, int]]:
    """
    연속된 시간(hour)들을 묶어서 (시작, 종료) 튜플 리스트로 반환합니다.

    Args:
        hours: 슬롯 시작 시간 리스트
        min_hours: 최소 연속 시간. 이보다 짧은 범위는 제외

    Returns:
        [(시작시간, 종료시간), ...] 형태의 리스트 (종료시간은 미포함)
    """
    sorted_hours = sorted(set(hours))
    if not sorted_hours:
        return []

    merged = []
    start = end = sorted_hours[0]

    for hour in sorted_hours[1:]:
        if hour == end + 1:
            end = hour
        else:
            merged.append((start, end + 1))
            start = end = hour

    merged.append((start, end + 1))

    if min_hours > 0:
        merged = [(s, e) for s, e in merged if (e - s) >= min_hours]

    return merged


# =============================================================================
# 1. 일정 정규화
# =============================================================================

def _belongs_to_group(
    event: CalendarEvent,
    group_id: str,
    member_ids: Optional[set[str]]
) -> bool:
    if event.event_type is EventType.GROUP:
        return event.group_id == group_id
    if event.event_type is EventType.PERSONAL:
        return member_ids is None or event.owner_id in member_ids
    return False


def is_excluded_calendar_event(event: CalendarEvent) -> bool:
    """공휴일/생일처럼 바쁜 시간으로 치지 않는 일정인지 확인합니다."""
    text = f"{event.title} {event.calendar_name or ''}".lower()
    return any(keyword in text for keyword in EXCLUDED_KEYWORDS)


def normalize_events(
    events: Iterable[CalendarEvent],
    group_id: str,
    window_start: datetime,
    window_end: datetime,
    prefs: Optional[Preferences] = None,
    member_ids: Optional[Iterable[str]] = None
) -> list[CalendarEvent]:
    """
    조회 구간 [window_start, window_end) 에 걸치는 그룹 일정만 남기고 정리합니다.

    - 종료가 시작보다 앞선 일정은 버림
    - 그룹 일정은 group_id 가 같아야 하고, 개인 일정은 조회 대상 멤버 것이어야 함
      (member_ids 가 None 이면 모든 개인 일정 허용)
    - prefs.hide_holidays: 제목/캘린더 이름에 holiday, birthday 가 있으면 제외
    - 같은 일정(id + 시작시간)은 한 번만
    - prefs.dedup_all_day: 같은 사람/날짜/제목의 종일 일정은 한 번만

    Returns:
        입력 순서를 유지한 일정 리스트. 구간이 뒤집혀 있으면 빈 리스트.
    """
    prefs = prefs or Preferences()
    if window_start > window_end:
        return []

    members = set(member_ids) if member_ids is not None else None
    seen_occurrences: set[tuple[str, datetime]] = set()
    seen_all_day: set[tuple[str, date, str]] = set()
    result = []

    for event in events:
        if _align(event.end, event.start) < event.start:
            continue
        if not _belongs_to_group(event, group_id, members):
            continue
        if not _overlaps(event, window_start, window_end):
            continue
        if prefs.hide_holidays and is_excluded_calendar_event(event):
            continue

        occurrence_key = (event.id, event.start)
        if occurrence_key in seen_occurrences:
            continue
        seen_occurrences.add(occurrence_key)

        if prefs.dedup_all_day and event.is_all_day:
            all_day_key = (event.owner_id, event.start.date(), event.title.strip().lower())
            if all_day_key in seen_all_day:
                continue
            seen_all_day.add(all_day_key)

        result.append(event)

    return result


# =============================================================================
# 2. 시간 슬롯 계산
# =============================================================================

def slot_summary(
    events: Iterable[CalendarEvent],
    member_ids: Iterable[str],
    slot_date: date,
    hour: int,
    tz: Optional[tzinfo] = None
) -> AvailabilitySummary:
    """
    [slot_date hour:00, hour+1:00) 한 시간 동안 누가 가능한지 계산합니다.
    일정이 하나라도 겹치면 바쁨. 멤버가 없으면 total_members=0 ("데이터 없음").
    """
    events = list(events)
    tz = _resolve_tz(tz, events)
    members = _unique(member_ids)
    busy = _busy_owners(events, _at(slot_date, hour, tz), _at(slot_date, hour + 1, tz))

    return AvailabilitySummary(
        slot_date=slot_date,
        slot_hour=hour,
        total_members=len(members),
        free_member_ids=tuple(m for m in members if m not in busy),
        busy_member_ids=tuple(m for m in members if m in busy),
    )


def availability_grid(
    events: Iterable[CalendarEvent],
    member_ids: Iterable[str],
    dates: Iterable[date],
    hours: Iterable[int] = DISPLAY_HOURS,
    tz: Optional[tzinfo] = None
) -> list[AvailabilitySummary]:
    """히트맵용: 날짜 x 시간 전체 슬롯 요약 (날짜, 시간 순)"""
    events = list(events)
    members = _unique(member_ids)
    hours = list(hours)
    return [
        slot_summary(events, members, day, hour, tz)
        for day in dates
        for hour in hours
    ]


# =============================================================================
# 3. 시간 블록 집계
# =============================================================================

def block_summary(
    events: Iterable[CalendarEvent],
    member_ids: Iterable[str],
    slot_date: date,
    block: TimeBlock,
    tz: Optional[tzinfo] = None
) -> BlockSummary:
    """
    블록(오전/오후/저녁) 단위 요약.

    블록 안의 모든 시간에 가능해야 그 블록에 가능한 것으로 봅니다.
    한 시간이라도 일정이 있으면 그 블록은 바쁨.
    """
    events = list(events)
    tz = _resolve_tz(tz, events)
    members = _unique(member_ids)
    hours = list(block.hours)

    if not hours:
        return BlockSummary(slot_date=slot_date, block=block, total_members=len(members))

    slots = [slot_summary(events, members, slot_date, hour, tz) for hour in hours]
    free = tuple(
        m for m in members
        if all(m in slot.free_member_ids for slot in slots)
    )

    return BlockSummary(
        slot_date=slot_date,
        block=block,
        total_members=len(members),
        free_member_ids=free,
    )


def block_grid(
    events: Iterable[CalendarEvent],
    member_ids: Iterable[str],
    dates: Iterable[date],
    tz: Optional[tzinfo] = None
) -> dict[tuple[date, TimeBlock], BlockSummary]:
    events = list(events)
    members = _unique(member_ids)
    return {
        (day, block): block_summary(events, members, day, block, tz)
        for day in dates
        for block in TimeBlock
    }


# =============================================================================
# 4. 전원 가능한 시간 찾기
# =============================================================================

def _format_hour(hour: int) -> str:
    hour %= 24
    suffix = "am" if hour < 12 else "pm"
    return f"{hour % 12 or 12}{suffix}"


def friendly_label(day: date, start_hour: int, end_hour: int, today: date) -> str:
    """
    "Today afternoon", "Sat morning", "Tomorrow 7am-5pm" 같은 설명을 만듭니다.
    로케일과 무관하게 항상 같은 문자열을 돌려줍니다.
    """
    offset = (day - today).days
    if offset == 0:
        day_part = "Today"
    elif offset == 1:
        day_part = "Tomorrow"
    else:
        day_part = WEEKDAY_NAMES[day.weekday()]

    for block in TimeBlock:
        if start_hour == block.first_hour and end_hour == block.last_hour + 1:
            return f"{day_part} {block.label}"

    return f"{day_part} {_format_hour(start_hour)}-{_format_hour(end_hour)}"


def _is_upcoming(day: date, end_hour: int, now: Optional[datetime], tz: Optional[tzinfo]) -> bool:
    if now is None:
        return True
    end = _at(day, end_hour, tz)
    return end > _align(now, end)


def _group_adjacent_blocks(blocks: list[TimeBlock]) -> list[list[TimeBlock]]:
    runs: list[list[TimeBlock]] = []
    for block in blocks:
        if runs and runs[-1][-1].last_hour + 1 == block.first_hour:
            runs[-1].append(block)
        else:
            runs.append([block])
    return runs


def find_highlights(
    events: Iterable[CalendarEvent],
    member_ids: Iterable[str],
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
    tz: Optional[tzinfo] = None
) -> list[Highlight]:
    """
    전원이 가능한 블록을 찾아서 하이라이트로 묶습니다.

    Args:
        events: 정규화된 일정
        member_ids: 그룹 멤버 id
        start_date, end_date: [start_date, end_date) 날짜 범위
        now: 기준 시각. 이미 끝난 블록은 제외 (None 이면 필터링 안 함)
        limit: 앞에서부터 몇 개만 돌려줄지

    Returns:
        시작 시각 순으로 정렬된 Highlight 리스트.
        같은 날 붙어 있는 블록(오전+오후 등)은 하나로 합칩니다.
    """
    events = list(events)
    tz = _resolve_tz(tz, events, now)
    members = _unique(member_ids)
    today = _local_today(now, tz) if now is not None else _as_date(start_date)
    highlights = []

    for day in date_range(start_date, end_date):
        free_blocks = [
            block for block in TimeBlock
            if block_summary(events, members, day, block, tz).all_free
            and _is_upcoming(day, block.last_hour + 1, now, tz)
        ]

        for run in _group_adjacent_blocks(free_blocks):
            start_hour = run[0].first_hour
            end_hour = run[-1].last_hour + 1
            highlights.append(Highlight(
                date=day,
                start_hour=start_hour,
                end_hour=end_hour,
                member_count=len(members),
                label=friendly_label(day, start_hour, end_hour, today),
                blocks=tuple(run),
            ))

    highlights.sort(key=lambda h: (h.date, h.start_hour))
    if limit is not None:
        highlights = highlights[:limit]
    return highlights


def find_hourly_highlights(
    events: Iterable[CalendarEvent],
    member_ids: Iterable[str],
    start_date: date,
    end_date: date,
    hours: Iterable[int] = DISPLAY_HOURS,
    min_hours: int = 2,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None
) -> list[Highlight]:
    """
    블록 대신 한 시간 단위로 전원 가능한 시간을 찾아 연속 구간으로 묶습니다.
    (기본값: 2시간 이상)

    Returns:
        날짜순, 같은 날이면 긴 구간 먼저
    """
    events = list(events)
    tz = _resolve_tz(tz, events, now)
    members = _unique(member_ids)
    hours = list(hours)
    today = _local_today(now, tz) if now is not None else _as_date(start_date)
    highlights = []

    for day in date_range(start_date, end_date):
        free_hours = [
            hour for hour in hours
            if slot_summary(events, members, day, hour, tz).is_everyone_free
            and _is_upcoming(day, hour + 1, now, tz)
        ]

        for start_hour, end_hour in merge_consecutive_hours(free_hours, min_hours):
            highlights.append(Highlight(
                date=day,
                start_hour=start_hour,
                end_hour=end_hour,
                member_count=len(members),
                label=friendly_label(day, start_hour, end_hour, today),
                blocks=tuple(
                    block for block in TimeBlock
                    if start_hour <= block.first_hour and block.last_hour < end_hour
                ),
            ))

    highlights.sort(key=lambda h: (h.date, -h.hours, h.start_hour))
    return highlights


# =============================================================================
# 5. 히트맵 색 단계
# =============================================================================

def intensity(free_count: int, total_count: int) -> Bucket:
    """
    가능 인원 비율을 히트맵 단계로 바꿉니다.
    전원 바쁨(0명)은 NO_DATA 와 같은 단계. 둘의 구분은 total_count 로 합니다.
    """
    if total_count <= 0:
        return Bucket.NO_DATA
    if free_count >= total_count:
        return Bucket.EVERYONE_FREE

    fraction = free_count / total_count
    if fraction >= 0.75:
        return Bucket.MOSTLY
    if fraction >= 0.5:
        return Bucket.HALF
    if fraction >= 0.25:
        return Bucket.FEW
    if fraction > 0:
        return Bucket.MOSTLY_BUSY
    return Bucket.NO_DATA


# =============================================================================
# 6. 블록 상세 정보
# =============================================================================

def busy_event_summaries(
    events: Iterable[CalendarEvent],
    slot_date: date,
    block: TimeBlock,
    tz: Optional[tzinfo] = None
) -> list[str]:
    """
    블록과 겹치는 일정 설명 (중복 제거).
    그룹 일정은 제목을 보여주고, 개인 일정은 내용을 숨깁니다.
    """
    events = list(events)
    tz = _resolve_tz(tz, events)
    block_start = _at(slot_date, block.first_hour, tz)
    block_end = _at(slot_date, block.last_hour + 1, tz)

    summaries = []
    for event in events:
        if not _overlaps(event, block_start, block_end):
            continue
        if event.event_type is EventType.GROUP:
            summary = event.title.strip() or "Group event"
        else:
            summary = "Busy (private)"
        if summary not in summaries:
            summaries.append(summary)

    return summaries


def free_member_names(member_ids: Iterable[str], members: Iterable[Member]) -> list[str]:
    names = {member.id: member.display_name for member in members}
    return [names[member_id] for member_id in member_ids if member_id in names]


# =============================================================================
# 7. 누가 막고 있나
# =============================================================================

def find_who_blocks(
    events: Iterable[CalendarEvent],
    member_ids: Iterable[str],
    dates: Iterable[date],
    tz: Optional[tzinfo] = None
) -> dict[str, int]:
    """
    누가 가장 많은 블록을 막고 있는지 분석합니다.

    Returns:
        {"멤버 id": 해당 멤버 제외시 추가되는 전원 가능 블록 수, ...} (내림차순 정렬)
    """
    events = list(events)
    tz = _resolve_tz(tz, events)
    members = _unique(member_ids)
    dates = list(dates)

    def all_free_blocks(ids: tuple[str, ...]) -> set[tuple[date, TimeBlock]]:
        grid = block_grid(events, ids, dates, tz)
        return {key for key, summary in grid.items() if summary.all_free}

    base_blocks = all_free_blocks(members)
    blockers = {}

    for member_id in members:
        remaining = tuple(m for m in members if m != member_id)
        added_blocks = len(all_free_blocks(remaining) - base_blocks)

        if added_blocks > 0:
            blockers[member_id] = added_blocks

    return dict(sorted(blockers.items(), key=lambda x: -x[1]))
