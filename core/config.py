# core/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root
BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    """
    repeatmap settings.

    Reads from:
    - environment variables
    - .env in project root

    Out-of-range values are clamped back to something usable instead of
    failing at startup.
    """

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ---- Environment / server ----
    app_env: str = Field(default="development", validation_alias="APP_ENV")
    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    # comma-separated, only used outside development
    cors_allow_origins: Optional[str] = Field(default=None, validation_alias="CORS_ALLOW_ORIGINS")

    # ---- Playback ----
    # upper bound on visited locations per walk (guards looping structures)
    max_playback_steps: int = Field(default=100_000, validation_alias="MAX_PLAYBACK_STEPS")

    # ---- MusicXML import ----
    default_repeat_count: int = Field(default=2, validation_alias="DEFAULT_REPEAT_COUNT")
    # 0 => only explicit system breaks start a new system
    measures_per_system: int = Field(default=0, validation_alias="MEASURES_PER_SYSTEM")

    @property
    def is_dev(self) -> bool:
        return (self.app_env or "").strip().lower() in {"dev", "development", "local"}

    @property
    def cors_origins(self) -> List[str]:
        """CORS_ALLOW_ORIGINS split on commas, blanks dropped."""
        raw = self.cors_allow_origins or ""
        return [o.strip() for o in raw.split(",") if o.strip()]

    def model_post_init(self, __context) -> None:
        self.log_level = (self.log_level or "INFO").strip().upper()
        if self.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            self.log_level = "INFO"

        if self.max_playback_steps < 1:
            self.max_playback_steps = 100_000

        if self.default_repeat_count < 1:
            self.default_repeat_count = 2

        if self.measures_per_system < 0:
            self.measures_per_system = 0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


if __name__ == "__main__":
    s = get_settings()
    print("Settings loaded")
    print(f"BASE_DIR: {BASE_DIR}")
    print(f"env: {s.app_env} | log_level: {s.log_level}")
    print(f"max_playback_steps: {s.max_playback_steps}")
    print(f"default_repeat_count: {s.default_repeat_count}")
    print(f"measures_per_system: {s.measures_per_system}")
