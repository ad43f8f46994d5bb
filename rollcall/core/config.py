from __future__ import annotations

from datetime import time
from functools import lru_cache
from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ROLLCALL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Rollcall Attendance"
    app_env: str = "development"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    log_dir: Path = BASE_DIR / "logs"

    database_url: str = f"sqlite:///{BASE_DIR / 'data' / 'rollcall.db'}"

    match_threshold: float = Field(default=0.6, gt=0.0)
    late_after: time = time(9, 0)
    calendar_timezone: str = "UTC"
    non_working_weekdays: tuple[int, ...] = (5, 6)
    normalize_unauthorized_status: bool = True

    history_fetch_retries: int = Field(default=2, ge=0)
    history_retry_backoff_seconds: float = Field(default=0.5, ge=0.0)
    history_fetch_timeout_seconds: float = Field(default=10.0, gt=0.0)

    recent_activity_limit: int = 10

    cors_origins_raw: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin.strip()]

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.calendar_timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
