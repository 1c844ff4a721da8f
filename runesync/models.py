"""
RuneSync - Data Models

Pydantic models for the payload sent to the remote service, plus the small
dataclasses the orchestrator uses to describe a sync attempt.

The snapshot is serialized with camelCase keys. Optional sections are left as
``None`` when their feature is disabled or the host could not produce them,
and ``None`` fields are dropped from the JSON entirely, so the server can tell
"not sent" apart from "sent and empty".
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================

class SyncTrigger(str, Enum):
    """Where a sync request came from."""
    AMBIENT = "ambient"
    MANUAL = "manual"


class QuestState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"


# =============================================================================
# Payload Components
# =============================================================================

class _PayloadModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class CollectionLogEntry(_PayloadModel):
    """One collection log row, keyed elsewhere by its numeric item id."""

    obtained: bool
    count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _unobtained_has_no_count(self) -> "CollectionLogEntry":
        if not self.obtained and self.count != 0:
            raise ValueError("an unobtained entry must have count 0")
        return self

    @classmethod
    def from_quantity(cls, quantity: int) -> "CollectionLogEntry":
        """Build an entry from the raw quantity the host reports for a row."""
        obtained = quantity > 0
        return cls(obtained=obtained, count=quantity if obtained else 0)


class CollectionLogCounts(_PayloadModel):
    """Unique items obtained/total as shown in the collection log header."""
    obtained: int = Field(ge=0)
    total: int = Field(ge=0)


class SkillData(_PayloadModel):
    level: int
    xp: int


class DiaryData(_PayloadModel):
    easy: bool = False
    medium: bool = False
    hard: bool = False
    elite: bool = False


class CombatAchievementData(_PayloadModel):
    """Completed task counts per combat achievement tier."""

    easy: int = Field(default=0, alias="Easy")
    medium: int = Field(default=0, alias="Medium")
    hard: int = Field(default=0, alias="Hard")
    elite: int = Field(default=0, alias="Elite")
    master: int = Field(default=0, alias="Master")
    grandmaster: int = Field(default=0, alias="Grandmaster")


class SummaryCounters(_PayloadModel):
    """
    Character summary figures.

    These are read through bulk host queries, separately from the itemized
    detail sections. A counter the host could not supply stays ``None``.
    """

    combat_level: Optional[int] = None
    total_level: Optional[int] = None
    total_xp: Optional[int] = None
    quests_completed: Optional[int] = None
    quests_total: Optional[int] = None
    diary_tasks_completed: Optional[int] = None
    diary_tasks_total: Optional[int] = None
    combat_tasks_completed: Optional[int] = None
    combat_tasks_total: Optional[int] = None
    collection_log_obtained: Optional[int] = None
    collection_log_total: Optional[int] = None
    time_played_minutes: Optional[int] = None


# =============================================================================
# Snapshot
# =============================================================================

class Snapshot(_PayloadModel):
    """Immutable payload assembled once per sync attempt."""

    # Identity
    username: str
    account_type: Optional[int] = None
    world: Optional[int] = None

    # Summary
    combat_level: Optional[int] = None
    total_level: Optional[int] = None
    total_xp: Optional[int] = None
    quests_completed: Optional[int] = None
    quests_total: Optional[int] = None
    diary_tasks_completed: Optional[int] = None
    diary_tasks_total: Optional[int] = None
    combat_tasks_completed: Optional[int] = None
    combat_tasks_total: Optional[int] = None
    collection_log_obtained: Optional[int] = None
    collection_log_total: Optional[int] = None
    time_played_minutes: Optional[int] = None

    # Details, present only when the matching feature is enabled
    skills: Optional[dict[str, SkillData]] = None
    quests: Optional[dict[str, QuestState]] = None
    achievement_diaries: Optional[dict[str, DiaryData]] = None
    combat_achievements: Optional[CombatAchievementData] = None
    equipment: Optional[dict[str, int]] = None
    collection_log: Optional[dict[str, CollectionLogEntry]] = None
    recent_drops: Optional[list[str]] = None

    last_synced_at: int = Field(
        default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000)
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation (absent sections omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        """Serialize to the JSON request body."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def has_section(self, name: str) -> bool:
        """Check whether a detail section was included."""
        return getattr(self, name) is not None


# =============================================================================
# Sync Bookkeeping
# =============================================================================

@dataclass
class BuildResult:
    """A snapshot plus the diagnostics collected while reading the host."""
    snapshot: Snapshot
    notes: list[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.notes)


@dataclass
class SyncOutcome:
    """Result of one completed sync attempt."""
    trigger: SyncTrigger
    success: bool
    username: str
    started_at: float
    finished_at: float
    notes: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return self.finished_at - self.started_at
