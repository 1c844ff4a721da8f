"""
RuneSync - Recorded Host Replay

Runs a full agent against a recorded host: static host values plus a list of
events, both read from a JSON file. Used by the CLI to exercise the
orchestration offline and by the test-suite as its fake host.

File format::

    {
      "host": {
        "name": "Zezima", "account_type": 0, "world": 301, "combat_level": 126,
        "stats": {"Attack": [99, 13034431], ...},
        "quests": {"Cook's Assistant": "FINISHED"},
        "varbits": {"4458": 1},
        "scripts": {"2266": [150, 158]},
        "summary_scripts": {"quest_progress": 2266},
        "widgets": {"621.1": "Collection Log - Unique: 854/1692"},
        "equipment": [1163, -1, 1704]
      },
      "events": [
        {"type": "GameStateChanged", "state": "LOGGED_IN"},
        {"type": "GameTick", "tick": 1},
        {"type": "ScriptPreFired", "script_id": 4100, "arguments": [0, 995, 100]}
      ]
    }
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from runesync.events import (
    ChatMessage,
    GameStateChanged,
    GameTick,
    ManualSyncRequested,
    ScriptPreFired,
    StatChanged,
    WallClockTick,
    WidgetClosed,
    WidgetLoaded,
)
from runesync.host import ChatMessageType, GameState
from runesync.models import Snapshot
from runesync.sources import SummaryScripts

logger = logging.getLogger(__name__)


class StaticHost:
    """Host whose values come from a plain dict (see module docstring)."""

    def __init__(self, data: Optional[dict[str, Any]] = None):
        data = data or {}
        self.name: Optional[str] = data.get("name")
        self.account: Optional[int] = data.get("account_type")
        self.world_id: Optional[int] = data.get("world")
        self.combat: Optional[int] = data.get("combat_level")
        self.stats: dict[str, tuple[int, int]] = {
            skill: (int(v[0]), int(v[1])) for skill, v in data.get("stats", {}).items()
        }
        self.boosts: dict[str, int] = dict(data.get("boosts", {}))
        self.quests: Optional[dict[str, str]] = data.get("quests")
        self.varbits: dict[int, int] = {int(k): int(v) for k, v in data.get("varbits", {}).items()}
        self.varps: dict[int, int] = {int(k): int(v) for k, v in data.get("varps", {}).items()}
        self.scripts: dict[int, list[int]] = {
            int(k): [int(x) for x in v] for k, v in data.get("scripts", {}).items()
        }
        self.widgets: dict[tuple[int, int], str] = {}
        for key, text in data.get("widgets", {}).items():
            group, _, child = str(key).partition(".")
            self.widgets[(int(group), int(child or 0))] = text
        self.equipment: Optional[list[int]] = data.get("equipment")
        self.summary_scripts = SummaryScripts.from_dict(data.get("summary_scripts"))
        self.tick = int(data.get("tick", 0))
        self.messages: list[str] = []
        self.scripts_run: list[tuple[int, tuple[int, ...]]] = []

    # IdentitySource
    def display_name(self) -> Optional[str]:
        return self.name

    def account_type(self) -> Optional[int]:
        return self.account

    def world(self) -> Optional[int]:
        return self.world_id

    def combat_level(self) -> Optional[int]:
        return self.combat

    # ClockSource
    def tick_count(self) -> int:
        return self.tick

    # StatSource
    def real_level(self, skill: str) -> Optional[int]:
        stat = self.stats.get(skill)
        return stat[0] if stat else None

    def boosted_level(self, skill: str) -> Optional[int]:
        if skill in self.boosts:
            return self.boosts[skill]
        return self.real_level(skill)

    def experience(self, skill: str) -> Optional[int]:
        stat = self.stats.get(skill)
        return stat[1] if stat else None

    def total_level(self) -> Optional[int]:
        if not self.stats:
            return None
        return sum(level for level, _ in self.stats.values())

    def total_experience(self) -> Optional[int]:
        if not self.stats:
            return None
        return sum(xp for _, xp in self.stats.values())

    # QuestSource
    def quest_states(self) -> Optional[dict[str, str]]:
        return None if self.quests is None else dict(self.quests)

    # ProgressScriptSource
    def run_script(self, script_id: int, *args: int) -> Optional[Sequence[int]]:
        self.scripts_run.append((script_id, args))
        return self.scripts.get(script_id)

    def varbit(self, varbit_id: int) -> Optional[int]:
        return self.varbits.get(varbit_id)

    def varp(self, varp_id: int) -> Optional[int]:
        return self.varps.get(varp_id)

    # WidgetSource
    def widget_text(self, group_id: int, child_id: int) -> Optional[str]:
        return self.widgets.get((group_id, child_id))

    def widget_children(self, group_id: int, child_id: int) -> Optional[Sequence[str]]:
        text = self.widget_text(group_id, child_id)
        return None if text is None else [text]

    def is_visible(self, group_id: int, child_id: int = 0) -> bool:
        return (group_id, child_id) in self.widgets

    # ItemContainerSource
    def equipment_item_ids(self) -> Optional[Sequence[int]]:
        return self.equipment

    # Notifier
    def add_chat_message(self, text: str) -> None:
        self.messages.append(text)
        logger.info(f"[chat] {text}")


class RecordingTransport:
    """Transport that keeps every snapshot instead of sending it."""

    def __init__(self, result: bool = True):
        self.result = result
        self.sent: list[Snapshot] = []

    def send(self, snapshot: Snapshot) -> "Future[bool]":
        self.sent.append(snapshot)
        future: Future[bool] = Future()
        future.set_result(self.result)
        return future


# =============================================================================
# Event Decoding
# =============================================================================

_EVENT_DECODERS: dict[str, Callable[[dict[str, Any]], Any]] = {
    "GameStateChanged": lambda d: GameStateChanged(state=GameState(d["state"])),
    "StatChanged": lambda d: StatChanged(
        skill=d["skill"], level=int(d["level"]), boosted_level=int(d["boosted_level"]),
        xp=int(d.get("xp", 0)),
    ),
    "ChatMessage": lambda d: ChatMessage(
        type=ChatMessageType(d.get("chat_type", "GAMEMESSAGE")),
        message=d["message"],
        sender=d.get("sender", ""),
    ),
    "WidgetLoaded": lambda d: WidgetLoaded(group_id=int(d["group_id"])),
    "WidgetClosed": lambda d: WidgetClosed(group_id=int(d["group_id"])),
    "ScriptPreFired": lambda d: ScriptPreFired(
        script_id=int(d["script_id"]), arguments=tuple(d.get("arguments", ())),
    ),
    "GameTick": lambda d: GameTick(tick=int(d["tick"])),
    "WallClockTick": lambda d: WallClockTick(fired_at=float(d.get("fired_at", time.time()))),
    "ManualSyncRequested": lambda d: ManualSyncRequested(source=d.get("source", "replay")),
}


def decode_event(record: dict[str, Any]) -> Any:
    """Turn one JSON event record into an event object."""
    event_type = record.get("type")
    decoder = _EVENT_DECODERS.get(event_type)
    if decoder is None:
        raise ValueError(f"Unknown event type: {event_type!r}")
    return decoder(record)


def load_recording(path: Path) -> tuple[StaticHost, list[Any]]:
    """Read a recording file into a host and its decoded events."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    host = StaticHost(data.get("host", {}))
    events = [decode_event(record) for record in data.get("events", [])]
    return host, events


def replay(agent, host: StaticHost, events: list[Any], settle_timeout: float = 15.0) -> dict:
    """
    Publish each event through the agent, pumping its dispatcher after each.

    Game ticks also advance the host clock. After the last event the
    dispatcher keeps being pumped until no send is in flight or
    ``settle_timeout`` elapses.

    Returns:
        The agent status afterwards.
    """
    for event in events:
        if isinstance(event, GameTick):
            host.tick = event.tick
        agent.publish(event)
        agent.pump()

    deadline = time.monotonic() + settle_timeout
    while agent.guard.in_flight and time.monotonic() < deadline:
        time.sleep(0.05)
        agent.pump()
    agent.pump()

    if agent.guard.in_flight:
        logger.warning("Replay finished with a sync still in flight")
    return agent.get_status()
