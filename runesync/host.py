"""
RuneSync - Host Capability Interfaces

The agent never talks to the game client directly. Everything it needs is
expressed here as small protocols which the embedding host implements.
Lookups that can legitimately find nothing (no local player yet, widget not
loaded, container empty) return ``None`` rather than raising.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable


class GameState(str, Enum):
    """Host session states the agent cares about."""
    STARTING = "STARTING"
    LOGIN_SCREEN = "LOGIN_SCREEN"
    LOGGING_IN = "LOGGING_IN"
    LOADING = "LOADING"
    LOGGED_IN = "LOGGED_IN"
    CONNECTION_LOST = "CONNECTION_LOST"
    HOPPING = "HOPPING"


class ChatMessageType(str, Enum):
    GAMEMESSAGE = "GAMEMESSAGE"
    SPAM = "SPAM"
    PUBLICCHAT = "PUBLICCHAT"
    PRIVATECHAT = "PRIVATECHAT"
    CLAN_CHAT = "CLAN_CHAT"
    BROADCAST = "BROADCAST"


# Skills in the order the host reports them ("Overall" is derived, not listed).
SKILLS: tuple[str, ...] = (
    "Attack", "Defence", "Strength", "Hitpoints", "Ranged", "Prayer",
    "Magic", "Cooking", "Woodcutting", "Fletching", "Fishing", "Firemaking",
    "Crafting", "Smithing", "Mining", "Herblore", "Agility", "Thieving",
    "Slayer", "Farming", "Runecraft", "Hunter", "Construction",
)


@runtime_checkable
class IdentitySource(Protocol):
    def display_name(self) -> Optional[str]: ...

    def account_type(self) -> Optional[int]: ...

    def world(self) -> Optional[int]: ...

    def combat_level(self) -> Optional[int]: ...


@runtime_checkable
class ClockSource(Protocol):
    def tick_count(self) -> int: ...


@runtime_checkable
class StatSource(Protocol):
    def real_level(self, skill: str) -> Optional[int]: ...

    def boosted_level(self, skill: str) -> Optional[int]: ...

    def experience(self, skill: str) -> Optional[int]: ...

    def total_level(self) -> Optional[int]: ...

    def total_experience(self) -> Optional[int]: ...


@runtime_checkable
class QuestSource(Protocol):
    def quest_states(self) -> Optional[dict[str, str]]:
        """Quest name -> NOT_STARTED / IN_PROGRESS / FINISHED."""
        ...


@runtime_checkable
class ProgressScriptSource(Protocol):
    def run_script(self, script_id: int, *args: int) -> Optional[Sequence[int]]:
        """Run a host procedure and return its integer stack, or ``None``."""
        ...

    def varbit(self, varbit_id: int) -> Optional[int]: ...

    def varp(self, varp_id: int) -> Optional[int]: ...


@runtime_checkable
class WidgetSource(Protocol):
    def widget_text(self, group_id: int, child_id: int) -> Optional[str]: ...

    def widget_children(self, group_id: int, child_id: int) -> Optional[Sequence[str]]: ...

    def is_visible(self, group_id: int, child_id: int = 0) -> bool: ...


@runtime_checkable
class ItemContainerSource(Protocol):
    def equipment_item_ids(self) -> Optional[Sequence[int]]:
        """Item id per equipment slot index, ``-1`` for an empty slot."""
        ...


@runtime_checkable
class Notifier(Protocol):
    def add_chat_message(self, text: str) -> None: ...


@runtime_checkable
class UiTrigger(Protocol):
    def register(self, on_click: Callable[[], None]) -> "Releasable":
        """Install the sync button; ``on_click`` runs on the dispatch loop."""
        ...


class Releasable(Protocol):
    def release(self) -> None: ...


@runtime_checkable
class Host(
    IdentitySource,
    ClockSource,
    StatSource,
    QuestSource,
    ProgressScriptSource,
    WidgetSource,
    ItemContainerSource,
    Notifier,
    Protocol,
):
    """Convenience union for hosts that implement every capability."""
