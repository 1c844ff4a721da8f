"""
RuneSync - Host Events and Event Bus

Typed events the host publishes, and an in-process bus that routes them by
event class. ``subscribe`` hands back a :class:`Subscription`; releasing it
(directly, or by leaving its ``with`` block) removes the handler.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from runesync.host import ChatMessageType, GameState

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class GameStateChanged:
    state: GameState


@dataclass(frozen=True)
class StatChanged:
    skill: str
    level: int
    boosted_level: int
    xp: int = 0


@dataclass(frozen=True)
class ChatMessage:
    type: ChatMessageType
    message: str
    sender: str = ""


@dataclass(frozen=True)
class WidgetLoaded:
    group_id: int


@dataclass(frozen=True)
class WidgetClosed:
    group_id: int


@dataclass(frozen=True)
class ScriptPreFired:
    script_id: int
    arguments: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GameTick:
    tick: int


@dataclass(frozen=True)
class WallClockTick:
    """Fired by the wall-clock timer; the host tick pauses when unfocused."""
    fired_at: float


@dataclass(frozen=True)
class ManualSyncRequested:
    source: str = "button"


E = TypeVar("E")
Handler = Callable[[Any], None]


# =============================================================================
# Bus
# =============================================================================

class Subscription:
    """Handle for one registered handler."""

    def __init__(self, bus: "EventBus", event_type: type, handler: Handler):
        self._bus: Optional[EventBus] = bus
        self.event_type = event_type
        self.handler = handler

    @property
    def active(self) -> bool:
        return self._bus is not None

    def release(self) -> None:
        """Unregister the handler. Safe to call more than once."""
        if self._bus is not None:
            self._bus._remove(self)
            self._bus = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class EventBus:
    """
    Routes events to handlers registered for their exact class.

    Handler exceptions are logged and swallowed so one faulty handler cannot
    break delivery to the others or leak into the host loop.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Subscription]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Subscription:
        subscription = Subscription(self, event_type, handler)
        self._subscribers[event_type].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.event_type, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def subscriber_count(self, event_type: Optional[type] = None) -> int:
        if event_type is not None:
            return len(self._subscribers.get(event_type, []))
        return sum(len(subs) for subs in self._subscribers.values())

    def publish(self, event: Any) -> None:
        """Deliver an event to every handler registered for its type."""
        for subscription in list(self._subscribers.get(type(event), [])):
            try:
                subscription.handler(event)
            except Exception:
                logger.exception(
                    "Handler %r failed for %s", subscription.handler, type(event).__name__
                )
