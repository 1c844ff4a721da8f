"""
RuneSync - Agent

Composition root. Builds every orchestration component exactly once, wires
them to the host's event bus and tears them down again on shutdown. The
embedding host publishes its events through :meth:`SyncAgent.publish` and
calls :meth:`SyncAgent.pump` once per tick to run work marshaled back onto
its loop.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from runesync.collection_log import CollectionLogManager
from runesync.config import Settings, get_settings
from runesync.dispatch import IntervalTimer, QueueDispatcher
from runesync.events import EventBus, ManualSyncRequested, WallClockTick
from runesync.guard import SyncGuard
from runesync.host import Host, Releasable, UiTrigger
from runesync.rate_limit import RateLimiter
from runesync.snapshot import SnapshotBuilder
from runesync.sources import DataSources, SummaryScripts
from runesync.transport import HttpTransport, Transport
from runesync.triggers import TriggerRouter

logger = logging.getLogger(__name__)


class SyncAgent:
    """Owns the orchestrator context for one host process."""

    def __init__(
        self,
        host: Host,
        settings: Optional[Settings] = None,
        transport: Optional[Transport] = None,
        dispatcher: Optional[QueueDispatcher] = None,
        bus: Optional[EventBus] = None,
        ui_trigger: Optional[UiTrigger] = None,
        clock: Callable[[], float] = time.time,
        wall_clock_timer: bool = True,
        summary_scripts: Optional[SummaryScripts] = None,
    ):
        self.host = host
        self.settings = settings if settings is not None else get_settings()
        self.dispatcher = dispatcher or QueueDispatcher()
        self.bus = bus or EventBus()
        self._ui_trigger = ui_trigger
        self._ui_registration: Optional[Releasable] = None
        self._owns_transport = transport is None
        self.transport = transport or HttpTransport.from_settings(self.settings)
        self.running = False

        self.rate_limiter = RateLimiter(
            ambient_interval=lambda: self.settings.sync_interval_seconds,
            clock=clock,
        )
        self.collection_log = CollectionLogManager(host, host)
        self.sources = DataSources.from_host(host, self.collection_log, summary_scripts)
        self.guard = SyncGuard(
            settings=self._current_settings,
            sources=self.sources,
            builder=SnapshotBuilder(clock=clock),
            transport=self.transport,
            rate_limiter=self.rate_limiter,
            dispatcher=self.dispatcher,
            notifier=host,
        )
        self.router = TriggerRouter(
            bus=self.bus,
            guard=self.guard,
            rate_limiter=self.rate_limiter,
            collection_log=self.collection_log,
            clock=host,
            stats=host,
            dispatcher=self.dispatcher,
            notifier=host,
            settings=self._current_settings,
        )
        self._timer: Optional[IntervalTimer] = None
        if wall_clock_timer:
            self._timer = IntervalTimer(
                self.settings.wall_clock_check_seconds,
                lambda: self.bus.publish(WallClockTick(fired_at=clock())),
                self.dispatcher,
            )

    # === Lifecycle ===

    def start(self) -> None:
        """Subscribe to host events and start the wall-clock timer."""
        if self.running:
            logger.warning("Sync agent already running")
            return

        logger.info("RuneSync agent starting...")
        self.router.start()

        if self._ui_trigger is not None:
            try:
                self._ui_registration = self._ui_trigger.register(self._on_button_click)
            except Exception as e:
                logger.error(f"Failed to install sync button: {e}")

        if self._timer is not None:
            self._timer.start()
        self.running = True

    def shutdown(self) -> None:
        """Release every subscription and background resource."""
        logger.info("Stopping RuneSync agent...")
        self.running = False

        if self._timer is not None:
            self._timer.stop()
        if self._ui_registration is not None:
            self._ui_registration.release()
            self._ui_registration = None
        self.router.shutdown()

        if self._owns_transport and isinstance(self.transport, HttpTransport):
            self.transport.close()

    def __enter__(self) -> "SyncAgent":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def _current_settings(self) -> Settings:
        return self.settings

    # === Host entry points ===

    def publish(self, event: Any) -> None:
        """Deliver a host event (call on the dispatch loop)."""
        self.bus.publish(event)

    def pump(self) -> int:
        """Run callbacks marshaled onto the dispatch loop."""
        return self.dispatcher.drain()

    def update_settings(self, settings: Settings) -> None:
        """Apply changed settings; takes effect on the next trigger."""
        self.settings = settings
        logger.info("Settings updated")

    def _on_button_click(self) -> None:
        self.dispatcher.invoke_later(lambda: self.bus.publish(ManualSyncRequested(source="button")))

    # === Status ===

    def get_status(self) -> dict:
        """Current sync status information."""
        outcome = self.guard.last_outcome
        return {
            "running": self.running,
            "logged_in": self.router.logged_in,
            "in_flight": self.guard.in_flight,
            "capturing": self.collection_log.machine.is_capturing,
            "collection_log_items": len(self.collection_log.cached_log() or {}),
            "seconds_until_ambient": self.rate_limiter.seconds_until_ambient(),
            "last_outcome": None if outcome is None else {
                "trigger": outcome.trigger.value,
                "success": outcome.success,
                "username": outcome.username,
                "duration_seconds": round(outcome.duration_seconds, 3),
                "omitted": len(outcome.notes),
            },
        }
