"""
Configuration settings for the RuneSync agent.

Uses environment variables (prefix ``RUNESYNC_``) with defaults matching the
in-game config panel. The orchestrator only ever reads these values.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from runesync import __version__


# Manual syncs are never spaced closer than this, whatever the interval says.
MANUAL_SYNC_SPACING_SECONDS = 30.0


@dataclass(frozen=True)
class FeatureFlags:
    """Which detail sections go into a snapshot."""
    skills: bool = True
    quests: bool = True
    diaries: bool = True
    combat_achievements: bool = True
    equipment: bool = True
    collection_log: bool = True

    @classmethod
    def all_disabled(cls) -> "FeatureFlags":
        return cls(False, False, False, False, False, False)


class Settings(BaseSettings):
    """Agent settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RUNESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Sync behavior
    enable_sync: bool = True
    sync_interval_minutes: int = Field(default=5, ge=1, le=60)

    # Data options
    sync_skills: bool = True
    sync_quests: bool = True
    sync_diaries: bool = True
    sync_combat_achievements: bool = True
    sync_equipment: bool = True
    sync_collection_log: bool = True

    # Notifications
    show_sync_notification: bool = False

    # Remote service
    api_endpoint: str = "https://api.runestatus.gg/plugin/sync"
    user_agent: str = f"RuneSync/{__version__}"
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Scheduling
    wall_clock_check_seconds: float = Field(default=60.0, gt=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("api_endpoint")
    @classmethod
    def check_endpoint(cls, v: str) -> str:
        """Only http(s) endpoints are accepted."""
        v = v.strip()
        if not v.startswith(("https://", "http://")):
            raise ValueError("api_endpoint must be an http(s) URL")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def sync_interval_seconds(self) -> float:
        return self.sync_interval_minutes * 60.0

    def flags(self) -> FeatureFlags:
        """Snapshot of the per-category toggles."""
        return FeatureFlags(
            skills=self.sync_skills,
            quests=self.sync_quests,
            diaries=self.sync_diaries,
            combat_achievements=self.sync_combat_achievements,
            equipment=self.sync_equipment,
            collection_log=self.sync_collection_log,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
