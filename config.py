from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# 히트맵에 표시하는 시간대 (오전 7시 ~ 오후 9시 슬롯)
DISPLAY_HOURS = range(7, 22)

# 이 단어가 제목/캘린더 이름에 들어가면 바쁜 일정으로 치지 않음
EXCLUDED_KEYWORDS = ("holiday", "birthday")


class Settings(BaseSettings):
    """환경변수(SCHEDULR_*) 또는 .env 에서 읽는 설정"""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULR_", env_file=".env", extra="ignore"
    )

    # Supabase (PostgREST)
    supabase_url: str = ""
    supabase_key: str = ""
    # user_settings(공휴일 숨기기 등)를 읽을 사용자. 비어 있으면 기본값
    user_id: str = ""

    timezone: str = "UTC"
    days_to_show: int = 7
    cache_ttl_seconds: int = 3600
    log_level: str = "INFO"

    @field_validator("days_to_show")
    @classmethod
    def validate_days_to_show(cls, v: int) -> int:
        if v < 1:
            raise ValueError("SCHEDULR_DAYS_TO_SHOW must be at least 1")
        return v

    @field_validator("supabase_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
