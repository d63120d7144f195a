from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TypedDict, List, Optional, Tuple


class EventType(Enum):
    GROUP = "group"
    PERSONAL = "personal"


class TimeBlock(Enum):
    """하루를 나누는 시간 블록 (시작/끝 시간 모두 포함)"""
    MORNING = ("morning", 7, 11)
    AFTERNOON = ("afternoon", 12, 16)
    EVENING = ("evening", 17, 21)

    def __init__(self, label: str, first_hour: int, last_hour: int):
        self.label = label
        self.first_hour = first_hour
        self.last_hour = last_hour

    @property
    def hours(self) -> range:
        return range(self.first_hour, self.last_hour + 1)


class Bucket(Enum):
    EVERYONE_FREE = "everyone_free"
    MOSTLY = "mostly"
    HALF = "half"
    FEW = "few"
    MOSTLY_BUSY = "mostly_busy"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class Member:
    id: str
    display_name: str


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    owner_id: str
    title: str
    start: datetime
    end: datetime
    event_type: EventType = EventType.PERSONAL
    group_id: Optional[str] = None           # None이면 개인 일정
    is_all_day: bool = False
    location: Optional[str] = None
    calendar_name: Optional[str] = None      # 원본 캘린더 이름
    calendar_color: Optional[str] = None


@dataclass(frozen=True)
class Preferences:
    hide_holidays: bool = True               # 공휴일/생일 캘린더 무시
    dedup_all_day: bool = True               # 중복 종일 일정 합치기


@dataclass(frozen=True)
class AvailabilitySummary:
    slot_date: date
    slot_hour: int
    total_members: int
    free_member_ids: Tuple[str, ...] = ()
    busy_member_ids: Tuple[str, ...] = ()

    @property
    def free_members(self) -> int:
        return len(self.free_member_ids)

    @property
    def free_percentage(self) -> float:
        if self.total_members <= 0:
            return 0.0
        return self.free_members / self.total_members

    @property
    def is_everyone_free(self) -> bool:
        return self.total_members > 0 and self.free_members == self.total_members


@dataclass(frozen=True)
class BlockSummary:
    slot_date: date
    block: TimeBlock
    total_members: int
    free_member_ids: Tuple[str, ...] = ()

    @property
    def free_members(self) -> int:
        return len(self.free_member_ids)

    @property
    def all_free(self) -> bool:
        # 인원이 0명인 그룹은 "전원 가능"이 아님
        return self.total_members > 0 and self.free_members == self.total_members

    @property
    def free_percentage(self) -> float:
        if self.total_members <= 0:
            return 0.0
        return self.free_members / self.total_members


@dataclass(frozen=True)
class Highlight:
    date: date
    start_hour: int                          # 포함
    end_hour: int                            # 미포함
    member_count: int
    label: str
    blocks: Tuple[TimeBlock, ...] = field(default=())

    @property
    def hours(self) -> int:
        return self.end_hour - self.start_hour


class Snapshot(TypedDict):
    source: str                              # 'supabase' | 'snapshot'
    group_id: str
    members: List[Member]                    # 그룹 전체 인원
    events: List[CalendarEvent]              # 인증/동기화가 끝난 일정들
    preferences: Preferences
