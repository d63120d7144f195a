import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import requests
import streamlit as st

from analyze import (
    block_grid,
    busy_event_summaries,
    date_range,
    find_highlights,
    find_who_blocks,
    free_member_names,
    intensity,
    normalize_events,
)
from config import get_settings
from get_data.rows import SnapshotError
from get_data.snapshot import get_snapshot_data
from get_data.supabase import get_supabase_data
from schemas import Bucket, Preferences, TimeBlock

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="다 같이 되는 시간", page_icon="🗓️", layout="wide")

BUCKET_COLORS = {
    Bucket.EVERYONE_FREE: "#34c759",
    Bucket.MOSTLY: "rgba(52, 199, 89, 0.7)",
    Bucket.HALF: "rgba(255, 204, 0, 0.8)",
    Bucket.FEW: "rgba(255, 149, 0, 0.7)",
    Bucket.MOSTLY_BUSY: "rgba(255, 59, 48, 0.4)",
    Bucket.NO_DATA: "rgba(142, 142, 147, 0.15)",
}

BLOCK_NAMES = {
    TimeBlock.MORNING: "🌅 오전",
    TimeBlock.AFTERNOON: "☀️ 오후",
    TimeBlock.EVENING: "🌇 저녁",
}


# =============================================================================
# 캐싱된 데이터 로드 함수 (같은 그룹/URL은 캐시 사용)
# =============================================================================
@st.cache_data(show_spinner=False, ttl=settings.cache_ttl_seconds)
def load_supabase(group_id: str, window_start: datetime, window_end: datetime, user_id: str = ""):
    return get_supabase_data(group_id, window_start, window_end, user_id=user_id or None)

@st.cache_data(show_spinner=False, ttl=settings.cache_ttl_seconds)
def load_snapshot(url: str):
    return get_snapshot_data(url)


# =============================================================================
# 입력 자동 감지 함수
# =============================================================================
def detect_source(value: str) -> str | None:
    """입력값이 스냅샷 링크인지 Supabase 그룹 id 인지 감지합니다."""
    value = value.strip()
    if not value:
        return None
    if value.startswith(("http://", "https://")):
        return "snapshot"
    if settings.supabase_url:
        return "supabase"
    return None


def render_cell(free_count: int, total_count: int) -> str:
    """히트맵 칸 하나 (HTML)"""
    bucket = intensity(free_count, total_count)
    check = "✓" if bucket is Bucket.EVERYONE_FREE else f"{free_count}/{total_count}"
    return (
        f"<div style='background:{BUCKET_COLORS[bucket]};border-radius:6px;"
        f"padding:8px 0;text-align:center;font-size:0.8rem'>{check}</div>"
    )


tz = ZoneInfo(settings.timezone)
now = datetime.now(tz)
today = now.date()
window_start = datetime.combine(today, datetime.min.time(), tzinfo=tz)
window_end = window_start + timedelta(days=settings.days_to_show)
dates = date_range(today, today + timedelta(days=settings.days_to_show))

st.title("🗓️ 다 같이 되는 시간")

# =============================================================================
# 상단: 그룹 / 링크 입력
# =============================================================================
col1, col2, col3 = st.columns([4, 1, 1])
with col1:
    source_input = st.text_input(
        "그룹",
        placeholder="그룹 ID 또는 스냅샷 링크를 붙여넣으세요",
        label_visibility="collapsed",
    )
with col2:
    load_button = st.button("불러오기", type="primary", use_container_width=True)
with col3:
    refresh_button = st.button("새로고침", use_container_width=True)

if "data" not in st.session_state:
    st.session_state.data = None

if refresh_button:
    load_supabase.clear()
    load_snapshot.clear()
    load_button = True

if load_button and source_input:
    source = detect_source(source_input)
    if source is None:
        st.error("❌ 스냅샷 링크를 입력하거나 SCHEDULR_SUPABASE_URL 을 설정해주세요!")
    else:
        with st.spinner("일정 불러오는 중..."):
            try:
                if source == "supabase":
                    st.session_state.data = load_supabase(
                        source_input.strip(), window_start, window_end, settings.user_id
                    )
                else:
                    st.session_state.data = load_snapshot(source_input.strip())
                st.success(f"✅ 멤버 {len(st.session_state.data['members'])}명 일정 로드 완료!")
            except (requests.RequestException, SnapshotError) as e:
                logger.exception(f"Failed to load availability for {source_input!r}")
                st.error(f"❌ 오류: {e}")

# =============================================================================
# 메인 UI
# =============================================================================
if st.session_state.data:
    data = st.session_state.data
    members = data["members"]
    member_ids = [m.id for m in members]

    with st.sidebar:
        st.subheader("⚙️ 캘린더 설정")
        prefs = Preferences(
            hide_holidays=st.toggle("공휴일/생일 숨기기", value=data["preferences"].hide_holidays),
            dedup_all_day=st.toggle("중복 종일 일정 합치기", value=data["preferences"].dedup_all_day),
        )

    events = normalize_events(
        data["events"], data["group_id"], window_start, window_end, prefs, member_ids
    )

    st.divider()

    # 하이라이트 배너
    highlights = find_highlights(
        events, member_ids, dates[0], dates[-1] + timedelta(days=1), now=now, limit=3, tz=tz
    )
    if highlights:
        st.success("🎉 다 같이 되는 시간: " + " • ".join(h.label for h in highlights))
    elif member_ids:
        st.warning("😢 이번 주에는 전원 가능한 시간이 없습니다!")

        st.subheader("🚫 안 되는 사람")
        blockers = find_who_blocks(events, member_ids, dates, tz)
        if blockers:
            names = {m.id: m.display_name for m in members}
            for member_id, count in blockers.items():
                st.write(f"- **{names.get(member_id, member_id)}**: 제외 시 +{count}개 블록 확보")
        else:
            st.write("분석 불가")

    # =========================================================================
    # 블록 히트맵
    # =========================================================================
    grid = block_grid(events, member_ids, dates, tz)

    header = st.columns([1] + [1] * len(dates))
    header[0].write("")
    for col, day in zip(header[1:], dates):
        col.markdown(f"**{day.strftime('%m/%d')}**<br>{day.strftime('%a')}", unsafe_allow_html=True)

    for block in TimeBlock:
        row = st.columns([1] + [1] * len(dates))
        row[0].write(BLOCK_NAMES[block])
        for col, day in zip(row[1:], dates):
            summary = grid[(day, block)]
            col.markdown(render_cell(summary.free_members, summary.total_members), unsafe_allow_html=True)

    # =========================================================================
    # 블록 상세
    # =========================================================================
    st.divider()
    st.subheader("🔍 자세히 보기")

    col1, col2 = st.columns(2)
    with col1:
        selected_day = st.selectbox("날짜", dates, format_func=lambda d: d.strftime("%m/%d (%a)"))
    with col2:
        selected_block = st.selectbox("시간대", list(TimeBlock), format_func=lambda b: BLOCK_NAMES[b])

    summary = grid[(selected_day, selected_block)]
    st.write(f"**가능:** {summary.free_members}/{summary.total_members}명")

    names = free_member_names(summary.free_member_ids, members)
    if names:
        st.write(", ".join(names))

    busy = busy_event_summaries(events, selected_day, selected_block, tz)
    if busy:
        st.write("**일정:**")
        for item in busy:
            st.write(f"  🕐 {item}")

else:
    st.info("그룹 ID 또는 스냅샷 링크를 붙여넣고 불러오기를 눌러주세요~")
