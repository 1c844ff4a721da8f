"""
RuneSync - Data Sources

Stateless readers that turn host values into payload sections. Each reader
returns None (or raises :class:`HostReadError`) when the host cannot supply
its data yet, e.g. before the player is fully logged in; the snapshot
builder turns either into an omitted field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Optional

from runesync.collection_log import CollectionLogManager
from runesync.errors import HostReadError
from runesync.host import (
    SKILLS,
    IdentitySource,
    ItemContainerSource,
    ProgressScriptSource,
    QuestSource,
    StatSource,
)
from runesync.models import (
    CollectionLogEntry,
    CombatAchievementData,
    DiaryData,
    QuestState,
    SkillData,
    SummaryCounters,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Host Constants
# =============================================================================

# Completion varbits per diary area: (easy, medium, hard, elite)
DIARY_VARBITS: dict[str, tuple[int, int, int, int]] = {
    "Ardougne": (4458, 4459, 4460, 4461),
    "Desert": (4483, 4484, 4485, 4486),
    "Falador": (4462, 4463, 4464, 4465),
    "Fremennik": (4491, 4492, 4493, 4494),
    "Kandarin": (4475, 4476, 4477, 4478),
    "Karamja": (3578, 3598, 3611, 4566),
    "Kourend & Kebos": (7925, 7926, 7927, 7928),
    "Lumbridge & Draynor": (4495, 4496, 4497, 4498),
    "Morytania": (4487, 4488, 4489, 4490),
    "Varrock": (4479, 4480, 4481, 4482),
    "Western Provinces": (4471, 4472, 4473, 4474),
    "Wilderness": (4466, 4467, 4468, 4469),
}

# Completed task count varbits per combat achievement tier
COMBAT_ACHIEVEMENT_VARBITS: dict[str, int] = {
    "easy": 12855,
    "medium": 12856,
    "hard": 12857,
    "elite": 12858,
    "master": 12859,
    "grandmaster": 12860,
}

EQUIPMENT_SLOTS = (
    "Head", "Cape", "Amulet", "Weapon", "Body", "Shield",
    "Legs", "Gloves", "Boots", "Ring", "Ammo",
)


@dataclass(frozen=True)
class SummaryScripts:
    """
    Host procedures behind the character summary panel.

    Each returns an integer stack: ``[completed, total]`` for the progress
    scripts and ``[minutes]`` for play time. The ids belong to the host's
    client build and have no defaults; a counter whose script is not
    configured is left out of the summary without running anything.
    """
    quest_progress: Optional[int] = None
    diary_progress: Optional[int] = None
    combat_task_progress: Optional[int] = None
    time_played: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "SummaryScripts":
        data = data or {}
        return cls(**{f.name: int(data[f.name]) for f in fields(cls) if data.get(f.name) is not None})


# =============================================================================
# Readers
# =============================================================================

class SummarySource:
    """Summary counters, read through bulk host queries."""

    def __init__(
        self,
        identity: IdentitySource,
        stats: StatSource,
        scripts: ProgressScriptSource,
        collection_log: Optional[CollectionLogManager] = None,
        summary_scripts: Optional[SummaryScripts] = None,
    ):
        self._identity = identity
        self._stats = stats
        self._scripts = scripts
        self._collection_log = collection_log
        self._summary_scripts = summary_scripts or SummaryScripts()

    def read_summary(self, notes: Optional[list[str]] = None) -> SummaryCounters:
        """Read every counter; one that fails is left as None and noted."""
        notes = notes if notes is not None else []
        values: dict[str, Optional[int]] = {}

        def attempt(name: str, reader) -> Optional[object]:
            try:
                value = reader()
            except Exception as e:
                notes.append(f"summary.{name}: {e}")
                return None
            if value is None:
                notes.append(f"summary.{name}: unavailable")
            return value

        values["combat_level"] = attempt("combat_level", lambda: _optional_int(self._identity.combat_level()))
        values["total_level"] = attempt("total_level", lambda: _optional_int(self._stats.total_level()))
        values["total_xp"] = attempt("total_xp", lambda: _optional_int(self._stats.total_experience()))

        for prefix, script_id in (
            ("quests", self._summary_scripts.quest_progress),
            ("diary_tasks", self._summary_scripts.diary_progress),
            ("combat_tasks", self._summary_scripts.combat_task_progress),
        ):
            if script_id is None:
                continue
            pair = attempt(prefix, lambda sid=script_id: self._progress_pair(sid))
            if pair is not None:
                values[f"{prefix}_completed"], values[f"{prefix}_total"] = pair

        if self._summary_scripts.time_played is not None:
            values["time_played_minutes"] = attempt("time_played_minutes", self._time_played)

        counts = self._collection_log.counts if self._collection_log else None
        if counts is not None:
            values["collection_log_obtained"] = counts.obtained
            values["collection_log_total"] = counts.total

        return SummaryCounters(**values)

    def _progress_pair(self, script_id: int) -> Optional[tuple[int, int]]:
        stack = self._scripts.run_script(script_id)
        if stack is None:
            return None
        if len(stack) < 2:
            raise HostReadError(f"script {script_id} returned {len(stack)} values", "scripts")
        return int(stack[0]), int(stack[1])

    def _time_played(self) -> Optional[int]:
        stack = self._scripts.run_script(self._summary_scripts.time_played)
        if not stack:
            return None
        return int(stack[0])


def _optional_int(value) -> Optional[int]:
    return None if value is None else int(value)


class SkillsSource:
    def __init__(self, stats: StatSource):
        self._stats = stats

    def read(self) -> Optional[dict[str, SkillData]]:
        skills = {}
        for skill in SKILLS:
            level = self._stats.real_level(skill)
            xp = self._stats.experience(skill)
            if level is None or xp is None:
                raise HostReadError(f"no stats for {skill}", "stats")
            skills[skill] = SkillData(level=level, xp=xp)
        return skills


class QuestsSource:
    def __init__(self, quests: QuestSource):
        self._quests = quests

    def read(self) -> Optional[dict[str, QuestState]]:
        states = self._quests.quest_states()
        if states is None:
            return None

        result = {}
        for name, state in states.items():
            try:
                result[name] = QuestState(str(state).upper())
            except ValueError:
                logger.debug(f"Skipping quest {name!r} with unknown state {state!r}")
        return result


class DiarySource:
    def __init__(self, scripts: ProgressScriptSource):
        self._scripts = scripts

    def read(self) -> Optional[dict[str, DiaryData]]:
        diaries = {}
        for area, varbits in DIARY_VARBITS.items():
            tiers = [self._complete(varbit) for varbit in varbits]
            diaries[area] = DiaryData(easy=tiers[0], medium=tiers[1], hard=tiers[2], elite=tiers[3])
        return diaries

    def _complete(self, varbit: int) -> bool:
        value = self._scripts.varbit(varbit)
        if value is None:
            raise HostReadError(f"varbit {varbit} unavailable", "varbits")
        return value == 1


class CombatAchievementSource:
    def __init__(self, scripts: ProgressScriptSource):
        self._scripts = scripts

    def read(self) -> Optional[CombatAchievementData]:
        tiers = {}
        for tier, varbit in COMBAT_ACHIEVEMENT_VARBITS.items():
            value = self._scripts.varbit(varbit)
            if value is None:
                raise HostReadError(f"varbit {varbit} unavailable", "varbits")
            tiers[tier] = value
        return CombatAchievementData(**tiers)


class EquipmentSource:
    def __init__(self, items: ItemContainerSource):
        self._items = items

    def read(self) -> Optional[dict[str, int]]:
        item_ids = self._items.equipment_item_ids()
        if item_ids is None:
            # No equipment container means nothing is worn.
            return {}

        equipment = {}
        for slot, item_id in zip(EQUIPMENT_SLOTS, item_ids):
            if item_id is not None and item_id != -1:
                equipment[slot] = int(item_id)
        return equipment


class CollectionLogSource:
    """Read side of the collection log manager."""

    def __init__(self, manager: CollectionLogManager):
        self._manager = manager

    def read(self) -> Optional[dict[int, CollectionLogEntry]]:
        return self._manager.cached_log()

    def recent_drops(self) -> list[str]:
        return self._manager.recent_drops()


@dataclass
class DataSources:
    """Every reader the snapshot builder consults."""
    identity: IdentitySource
    summary: SummarySource
    skills: SkillsSource
    quests: QuestsSource
    diaries: DiarySource
    combat_achievements: CombatAchievementSource
    equipment: EquipmentSource
    collection_log: CollectionLogSource

    @classmethod
    def from_host(
        cls,
        host,
        collection_log: CollectionLogManager,
        summary_scripts: Optional[SummaryScripts] = None,
    ) -> "DataSources":
        """Build every reader on top of a host implementing all capabilities."""
        return cls(
            identity=host,
            summary=SummarySource(host, host, host, collection_log, summary_scripts),
            skills=SkillsSource(host),
            quests=QuestsSource(host),
            diaries=DiarySource(host),
            combat_achievements=CombatAchievementSource(host),
            equipment=EquipmentSource(host),
            collection_log=CollectionLogSource(collection_log),
        )
