"""
RuneSync - Trigger Router

Listens to every host event that can justify a sync and funnels the ones
that qualify into :meth:`SyncGuard.request_sync`, after checking the rate
limiter. Handlers run on the dispatch loop and never let an exception escape
into the host.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

from runesync.collection_log import COLLECTION_LOG_GROUP_ID, CollectionLogManager, parse_drop_message
from runesync.config import Settings
from runesync.dispatch import Dispatcher
from runesync.events import (
    ChatMessage,
    EventBus,
    GameStateChanged,
    GameTick,
    ManualSyncRequested,
    ScriptPreFired,
    StatChanged,
    Subscription,
    WallClockTick,
    WidgetClosed,
    WidgetLoaded,
)
from runesync.guard import SyncGuard
from runesync.host import ChatMessageType, ClockSource, GameState, Notifier, StatSource
from runesync.models import CollectionLogEntry, SyncTrigger
from runesync.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

MSG_SYNC_STARTED = "RuneSync: Syncing data..."
MSG_SYNC_WAIT = "RuneSync: Please wait before syncing again."

# Chat types that can carry drop announcements
DROP_MESSAGE_TYPES = frozenset({ChatMessageType.GAMEMESSAGE, ChatMessageType.SPAM})


def _guarded(handler: Callable) -> Callable:
    """Log and swallow anything a handler raises."""
    @functools.wraps(handler)
    def wrapper(self, event):
        try:
            handler(self, event)
        except Exception:
            logger.exception("Error handling %s", type(event).__name__)
    return wrapper


class TriggerRouter:
    """Maps host events to sync requests."""

    def __init__(
        self,
        bus: EventBus,
        guard: SyncGuard,
        rate_limiter: RateLimiter,
        collection_log: CollectionLogManager,
        clock: ClockSource,
        stats: StatSource,
        dispatcher: Dispatcher,
        notifier: Notifier,
        settings: Callable[[], Settings] | Settings,
    ):
        self._bus = bus
        self._guard = guard
        self._rate_limiter = rate_limiter
        self._collection_log = collection_log
        self._clock = clock
        self._stats = stats
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._settings = settings if callable(settings) else (lambda: settings)
        self._subscriptions: list[Subscription] = []
        self.logged_in = False
        self._manual_capture_pending = False

    # === Lifecycle ===

    def start(self) -> None:
        if self._subscriptions:
            logger.warning("Trigger router already started")
            return
        handlers = {
            GameStateChanged: self.on_game_state_changed,
            StatChanged: self.on_stat_changed,
            ChatMessage: self.on_chat_message,
            WidgetLoaded: self.on_widget_loaded,
            WidgetClosed: self.on_widget_closed,
            ScriptPreFired: self.on_script_pre_fired,
            GameTick: self.on_game_tick,
            WallClockTick: self.on_wall_clock_tick,
            ManualSyncRequested: self.on_manual_sync,
        }
        self._subscriptions = [self._bus.subscribe(t, h) for t, h in handlers.items()]
        logger.debug("Trigger router subscribed to %d event types", len(self._subscriptions))

    def shutdown(self) -> None:
        for subscription in self._subscriptions:
            subscription.release()
        self._subscriptions = []
        self.logged_in = False
        self._manual_capture_pending = False
        self._collection_log.reset()

    # === Helpers ===

    def _sync_enabled(self) -> bool:
        return self._settings().enable_sync and self.logged_in

    def _request_ambient_if_due(self, reason: str = "") -> None:
        if not self._rate_limiter.can_ambient_sync():
            if reason:
                logger.debug(f"{reason}, sync interval not elapsed yet")
            return
        if reason:
            logger.debug(f"{reason}, triggering sync")
        self._guard.request_sync(SyncTrigger.AMBIENT)

    # === Session ===

    @_guarded
    def on_game_state_changed(self, event: GameStateChanged) -> None:
        if event.state is GameState.LOGGED_IN:
            if not self.logged_in:
                self.logged_in = True
                # Let the host finish loading player data before the first sync.
                self._dispatcher.invoke_later(self._initial_sync)
        elif event.state in (GameState.LOGIN_SCREEN, GameState.HOPPING, GameState.CONNECTION_LOST):
            if self.logged_in or self._collection_log.machine.is_capturing:
                logger.debug(f"Session ended ({event.state.value}), resetting session state")
            self.logged_in = False
            self._collection_log.reset()
            self._manual_capture_pending = False

    def _initial_sync(self) -> None:
        if self.logged_in:
            self._guard.request_sync(SyncTrigger.AMBIENT)

    # === Ambient sources ===

    @_guarded
    def on_stat_changed(self, event: StatChanged) -> None:
        if not self._sync_enabled():
            return
        real_level = self._stats.real_level(event.skill)
        if real_level is not None and real_level == event.boosted_level:
            self._request_ambient_if_due(f"Level up detected in {event.skill}")

    @_guarded
    def on_chat_message(self, event: ChatMessage) -> None:
        if event.type not in DROP_MESSAGE_TYPES or not self.logged_in:
            return
        drop = parse_drop_message(event.message)
        if drop is None:
            return
        self._collection_log.record_drop(drop)
        if self._settings().enable_sync:
            self._request_ambient_if_due(f"Collection log drop {drop!r}")

    @_guarded
    def on_widget_loaded(self, event: WidgetLoaded) -> None:
        if self.logged_in and event.group_id == COLLECTION_LOG_GROUP_ID:
            self._collection_log.is_open = True
            logger.debug("Collection log opened")

    @_guarded
    def on_widget_closed(self, event: WidgetClosed) -> None:
        if event.group_id != COLLECTION_LOG_GROUP_ID or not self._collection_log.is_open:
            return
        self._collection_log.is_open = False
        logger.debug("Collection log closed")
        if self._sync_enabled() and self._collection_log.has_data():
            self._request_ambient_if_due("Collection log closed with data")

    @_guarded
    def on_script_pre_fired(self, event: ScriptPreFired) -> None:
        if not self.logged_in or not self._settings().sync_collection_log:
            return
        self._collection_log.on_script_pre_fired(event, self._clock.tick_count())

    @_guarded
    def on_game_tick(self, event: GameTick) -> None:
        self._collection_log.on_tick(event.tick)
        if self._sync_enabled():
            self._request_ambient_if_due()

    @_guarded
    def on_wall_clock_tick(self, event: WallClockTick) -> None:
        # The host tick stops while the client is unfocused; this keeps syncs going.
        if self._sync_enabled():
            self._request_ambient_if_due()

    # === Manual ===

    @_guarded
    def on_manual_sync(self, event: ManualSyncRequested) -> None:
        if not self.logged_in:
            logger.debug("Manual sync ignored - not logged in")
            return
        if not self._rate_limiter.can_manual_sync():
            self._notifier.add_chat_message(MSG_SYNC_WAIT)
            return
        if self._guard.in_flight:
            logger.debug("Manual sync ignored - a sync is already in flight")
            return

        capture_log = self._settings().sync_collection_log and self._collection_log.is_open
        if self._manual_capture_pending or (capture_log and self._collection_log.machine.is_capturing):
            logger.debug("Manual sync ignored - a collection log capture is already running")
            return

        self._notifier.add_chat_message(MSG_SYNC_STARTED)
        logger.info(f"Manual sync requested from {event.source}")

        if capture_log:
            self._manual_capture_pending = self._collection_log.start_full_capture(
                self._clock.tick_count(), self._on_manual_capture_complete
            )
            if self._manual_capture_pending:
                return
        self._guard.request_sync(SyncTrigger.MANUAL)

    def _on_manual_capture_complete(self, items: dict[int, CollectionLogEntry]) -> None:
        self._manual_capture_pending = False
        logger.debug(f"Collection log capture complete with {len(items)} items")
        if not self._rate_limiter.can_manual_sync():
            logger.debug("Captured collection log not sent - a sync went out during the capture")
            return
        # An empty capture falls back to the session cache
        self._guard.request_sync(SyncTrigger.MANUAL, captured_log=items or None)

    def request_manual_sync(self, source: str = "button") -> None:
        """Entry point for the injected UI button."""
        self.on_manual_sync(ManualSyncRequested(source=source))
