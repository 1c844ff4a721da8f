"""
RuneSync - Snapshot Builder

Assembles one immutable :class:`Snapshot` from the data sources. The build
never raises: a section whose reader fails is left out and a note explains
why, so a half-loaded client still syncs what it can.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from pydantic import ValidationError

from runesync.config import FeatureFlags
from runesync.models import BuildResult, CollectionLogEntry, Snapshot
from runesync.sources import DataSources

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotBuilder:
    """Pure aggregation over :class:`DataSources`."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def build(
        self,
        flags: FeatureFlags,
        sources: DataSources,
        captured_log: Optional[dict[int, CollectionLogEntry]] = None,
    ) -> Optional[BuildResult]:
        """
        Build a snapshot.

        Args:
            flags: Which detail sections to include.
            sources: Host readers.
            captured_log: Items from a capture that completed this cycle.
                Takes precedence over the session cache.

        Returns:
            BuildResult with the snapshot and any diagnostic notes, or None
            when the player name cannot be resolved (not logged in yet).
        """
        notes: list[str] = []

        username = self._read("username", sources.identity.display_name, notes)
        if not username:
            logger.debug("Snapshot skipped - no player name available")
            return None
        username = str(username)

        fields: dict[str, object] = {
            "username": username,
            "account_type": self._read("account_type", sources.identity.account_type, notes),
            "world": self._read("world", sources.identity.world, notes),
            "last_synced_at": int(self._clock() * 1000),
        }

        summary = self._read("summary", lambda: sources.summary.read_summary(notes), notes)
        if summary is not None:
            fields.update(summary.model_dump())

        if flags.skills:
            fields["skills"] = self._read("skills", sources.skills.read, notes)
        if flags.quests:
            fields["quests"] = self._read("quests", sources.quests.read, notes)
        if flags.diaries:
            fields["achievement_diaries"] = self._read("achievement_diaries", sources.diaries.read, notes)
        if flags.combat_achievements:
            fields["combat_achievements"] = self._read(
                "combat_achievements", sources.combat_achievements.read, notes
            )
        if flags.equipment:
            fields["equipment"] = self._read("equipment", sources.equipment.read, notes)
        if flags.collection_log:
            log = captured_log
            if log is None:
                log = self._read("collection_log", sources.collection_log.read, notes)
            if log is not None:
                fields["collection_log"] = {str(item_id): entry for item_id, entry in log.items()}
            fields["recent_drops"] = self._read("recent_drops", sources.collection_log.recent_drops, notes)

        snapshot = self._validate(fields, notes)

        if notes:
            logger.debug(f"Snapshot for {username} built with {len(notes)} omissions: {notes}")
        return BuildResult(snapshot=snapshot, notes=notes)

    @staticmethod
    def _validate(fields: dict[str, object], notes: list[str]) -> Snapshot:
        """Construct the snapshot, leaving out each field the model rejects."""
        by_alias = {info.alias or name: name for name, info in Snapshot.model_fields.items()}
        while True:
            try:
                return Snapshot(**fields)
            except ValidationError as e:
                rejected: dict[str, str] = {}
                for error in e.errors():
                    if not error["loc"]:
                        continue
                    name = by_alias.get(error["loc"][0], error["loc"][0])
                    if name != "username" and fields.get(name) is not None:
                        rejected.setdefault(name, error["msg"])
                if not rejected:
                    break
                for name, reason in rejected.items():
                    notes.append(f"{name}: rejected ({reason})")
                    logger.warning(f"Dropping {name} from snapshot: {reason}")
                    fields[name] = None

        notes.append("snapshot: sending identity only")
        return Snapshot(username=fields["username"], last_synced_at=fields["last_synced_at"])

    @staticmethod
    def _read(name: str, reader: Callable[[], Optional[T]], notes: list[str]) -> Optional[T]:
        try:
            value = reader()
        except Exception as e:
            notes.append(f"{name}: {e}")
            return None
        if value is None:
            notes.append(f"{name}: unavailable")
        return value
