"""
RuneSync - Collection Log Capture State Machine

The host delivers the collection log as a burst of per-row script events
spread over an unpredictable number of ticks, with no "done" signal. A
capture is therefore declared complete once a quiescence window of ticks
passes without a new row.

The machine never reads a clock. Callers feed it ticks, which keeps it
deterministic under test.

Usage:
    machine = CaptureStateMachine()
    machine.start(tick=client.tick_count(), on_complete=handle_items)
    # per script event
    machine.on_item_update(item_id, quantity, tick)
    # per game tick
    machine.on_clock_tick(tick)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from runesync.models import CollectionLogEntry

logger = logging.getLogger(__name__)

# Ticks without a new row before a capture is considered complete.
QUIESCENCE_TICKS = 2

# Ticks to wait for the first row before giving up with an empty result.
FIRST_UPDATE_TIMEOUT_TICKS = 10

CompletionCallback = Callable[[dict[int, CollectionLogEntry]], None]


class CaptureState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"


@dataclass
class CaptureSession:
    """State of one capture, owned by the state machine."""
    start_tick: int
    on_complete: CompletionCallback
    last_update_tick: Optional[int] = None
    accumulated: dict[int, CollectionLogEntry] = field(default_factory=dict)

    @property
    def received_updates(self) -> bool:
        return self.last_update_tick is not None

    def is_quiescent(self, tick: int, window: int, first_update_timeout: int) -> bool:
        if self.last_update_tick is not None:
            return tick > self.last_update_tick + window
        return tick > self.start_tick + first_update_timeout


class CaptureStateMachine:
    """
    Coalesces per-row update events into one completed collection log.

    ``on_complete`` fires exactly once per session, from :meth:`on_clock_tick`,
    with every row seen (last write wins per item id). A session ended by
    :meth:`on_session_end` never completes.
    """

    def __init__(
        self,
        quiescence_ticks: int = QUIESCENCE_TICKS,
        first_update_timeout_ticks: int = FIRST_UPDATE_TIMEOUT_TICKS,
    ):
        if quiescence_ticks < 0:
            raise ValueError("quiescence_ticks must be >= 0")
        if first_update_timeout_ticks < quiescence_ticks:
            raise ValueError("first_update_timeout_ticks must be >= quiescence_ticks")
        self.quiescence_ticks = quiescence_ticks
        self.first_update_timeout_ticks = first_update_timeout_ticks
        self._session: Optional[CaptureSession] = None

    @property
    def state(self) -> CaptureState:
        return CaptureState.CAPTURING if self._session is not None else CaptureState.IDLE

    @property
    def is_capturing(self) -> bool:
        return self._session is not None

    @property
    def pending_count(self) -> int:
        """Rows accumulated so far in the active session."""
        return len(self._session.accumulated) if self._session else 0

    @property
    def last_update_tick(self) -> Optional[int]:
        return self._session.last_update_tick if self._session else None

    def start(self, tick: int, on_complete: CompletionCallback) -> bool:
        """
        Begin a capture.

        Args:
            tick: Current host tick.
            on_complete: Receives the finished item map.

        Returns:
            False if a capture is already running (the call is ignored).
        """
        if self._session is not None:
            logger.debug(
                "Capture already in progress since tick %d, ignoring start",
                self._session.start_tick,
            )
            return False

        self._session = CaptureSession(start_tick=tick, on_complete=on_complete)
        logger.debug("Collection log capture started at tick %d", tick)
        return True

    def on_item_update(self, item_id: int, quantity: int, tick: int) -> None:
        """Record one row. Ignored when no capture is running."""
        session = self._session
        if session is None:
            return

        session.accumulated[item_id] = CollectionLogEntry.from_quantity(quantity)
        session.last_update_tick = tick

    def on_clock_tick(self, tick: int) -> None:
        """Complete the capture if the quiescence window has elapsed."""
        session = self._session
        if session is None:
            return

        if not session.is_quiescent(tick, self.quiescence_ticks, self.first_update_timeout_ticks):
            return

        # Clear first so a callback that starts a new capture is not clobbered.
        self._session = None

        if session.received_updates:
            logger.debug(
                "Collection log capture complete at tick %d with %d items",
                tick,
                len(session.accumulated),
            )
        else:
            logger.info(
                "Collection log capture timed out at tick %d with no items", tick
            )

        try:
            session.on_complete(dict(session.accumulated))
        except Exception:
            logger.exception("Capture completion callback failed")

    def on_session_end(self) -> None:
        """Abandon any running capture without completing it."""
        if self._session is not None:
            logger.debug(
                "Capture cancelled by session end, discarding %d items",
                len(self._session.accumulated),
            )
        self._session = None
