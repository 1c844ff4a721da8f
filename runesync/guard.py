"""
RuneSync - Sync Guard

Single-flight coordinator: at most one snapshot is ever being sent. The
``in_flight`` flag spans the asynchronous gap between dispatching a send and
its completion, which is re-marshaled onto the dispatch loop before any state
is touched.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Callable, Optional

from runesync.config import Settings
from runesync.dispatch import Dispatcher
from runesync.host import Notifier
from runesync.models import BuildResult, CollectionLogEntry, SyncOutcome, SyncTrigger
from runesync.rate_limit import RateLimiter
from runesync.snapshot import SnapshotBuilder
from runesync.sources import DataSources
from runesync.transport import Transport

logger = logging.getLogger(__name__)

MSG_SYNC_SUCCESS = "RuneSync: Data synced successfully!"
MSG_SYNC_FAILED = "RuneSync: Sync failed!"


class SyncGuard:
    """Serializes snapshot build + send."""

    def __init__(
        self,
        settings: Callable[[], Settings] | Settings,
        sources: DataSources,
        builder: SnapshotBuilder,
        transport: Transport,
        rate_limiter: RateLimiter,
        dispatcher: Dispatcher,
        notifier: Notifier,
    ):
        self._settings = settings if callable(settings) else (lambda: settings)
        self._sources = sources
        self._builder = builder
        self._transport = transport
        self._rate_limiter = rate_limiter
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._in_flight = False
        self._started_at = 0.0
        self.last_outcome: Optional[SyncOutcome] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def request_sync(
        self,
        trigger: SyncTrigger,
        captured_log: Optional[dict[int, CollectionLogEntry]] = None,
    ) -> bool:
        """
        Start a sync unless one is already running.

        Args:
            trigger: AMBIENT or MANUAL. Manual requests ignore ``enable_sync``
                but never pre-empt a send in flight.
            captured_log: Items from a capture that just completed.

        Returns:
            True if a snapshot was handed to the transport.
        """
        settings = self._settings()
        if trigger is SyncTrigger.AMBIENT and not settings.enable_sync:
            return False

        name = self._sources.identity.display_name()
        if not name:
            logger.debug("Cannot sync - no username available")
            return False

        if self._in_flight:
            logger.debug(f"Dropping {trigger.value} sync request, a sync is already in flight")
            return False

        self._in_flight = True
        self._started_at = self._rate_limiter.now()
        try:
            result = self._builder.build(settings.flags(), self._sources, captured_log)
        except Exception:
            logger.exception("Snapshot build failed")
            result = None

        if result is None:
            # Nothing was sent, so this is not a completed attempt.
            self._in_flight = False
            return False

        try:
            future = self._transport.send(result.snapshot)
        except Exception as e:
            logger.error(f"Transport rejected snapshot: {e}")
            future = Future()
            future.set_result(False)

        logger.info(f"Dispatched {trigger.value} sync for {result.snapshot.username}")
        future.add_done_callback(
            lambda f: self._dispatcher.invoke_later(
                lambda: self._on_send_complete(trigger, result, f)
            )
        )
        return True

    def _on_send_complete(self, trigger: SyncTrigger, result: BuildResult, future: "Future[bool]") -> None:
        """Runs on the dispatch loop once the transport finishes."""
        try:
            success = bool(future.result())
        except Exception as e:
            logger.error(f"Sync send raised: {e}")
            success = False

        now = self._rate_limiter.now()
        self._in_flight = False
        self._rate_limiter.record_sync(now)

        username = result.snapshot.username
        self.last_outcome = SyncOutcome(
            trigger=trigger,
            success=success,
            username=username,
            started_at=self._started_at,
            finished_at=now,
            notes=list(result.notes),
        )

        if success:
            logger.info(f"Successfully synced data for {username}")
            if trigger is SyncTrigger.MANUAL or self._settings().show_sync_notification:
                self._notify(MSG_SYNC_SUCCESS)
        else:
            logger.warning(f"Failed to sync data for {username}")
            if trigger is SyncTrigger.MANUAL:
                self._notify(MSG_SYNC_FAILED)

    def _notify(self, text: str) -> None:
        try:
            self._notifier.add_chat_message(text)
        except Exception:
            logger.exception("Failed to post sync notification")
