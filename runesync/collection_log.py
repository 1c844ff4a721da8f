"""
RuneSync - Collection Log Manager

Binds the capture state machine to the host: starts the bulk-load script,
turns per-row script events into item updates, reads the "Unique: X/Y"
header once a capture settles, and keeps the last completed capture for the
rest of the host session so ambient syncs keep sending it.

Also recognizes the chat lines that announce a new collection log item or a
pet, so those drops can ride along with the next snapshot.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Callable, Optional

from runesync.capture import CaptureStateMachine
from runesync.events import ScriptPreFired
from runesync.host import ProgressScriptSource, WidgetSource
from runesync.models import CollectionLogCounts, CollectionLogEntry

logger = logging.getLogger(__name__)


# =============================================================================
# Host Constants
# =============================================================================

COLLECTION_LOG_GROUP_ID = 621
COLLECTION_LOG_TITLE_CHILD_ID = 1

# Fired once per collection log row: args[1] is the item id, args[2] the quantity.
COLLECTION_LOG_ROW_SCRIPT = 4100

# Loads every collection log page through the search view.
COLLECTION_LOG_SEARCH_SCRIPT = 2240

UNIQUE_COUNT_PATTERN = re.compile(r"Unique:\s*(\d+)\s*/\s*(\d+)")

MAX_RECENT_DROPS = 50

_TAG_PATTERN = re.compile(r"<[^>]*>")

NEW_ITEM_PATTERN = re.compile(r"New item added to your collection log:\s*(.+?)\s*$")

PET_MESSAGES = (
    "You have a funny feeling like you're being followed",
    "You feel something weird sneaking into your backpack",
    "You have a funny feeling like you would have been followed",
)


def strip_tags(text: str) -> str:
    """Remove host markup such as ``<col=ef1020>``."""
    return _TAG_PATTERN.sub("", text)


def parse_drop_message(message: str) -> Optional[str]:
    """
    Extract the announced drop from a chat message.

    Returns:
        The item name for a collection log announcement, ``"Pet"`` for any of
        the pet messages, or None if the message is not a drop announcement.
    """
    text = strip_tags(message).strip()
    match = NEW_ITEM_PATTERN.search(text)
    if match:
        return match.group(1).rstrip(".")
    if any(text.startswith(phrase) for phrase in PET_MESSAGES):
        return "Pet"
    return None


def parse_unique_counts(text: Optional[str]) -> Optional[CollectionLogCounts]:
    """Parse the header text, e.g. ``"Collection Log - Unique: 854/1692"``."""
    if not text:
        return None
    match = UNIQUE_COUNT_PATTERN.search(strip_tags(text))
    if not match:
        return None
    return CollectionLogCounts(obtained=int(match.group(1)), total=int(match.group(2)))


# =============================================================================
# Manager
# =============================================================================

class CollectionLogManager:
    """
    Per-session owner of collection log data.

    Two kinds of capture feed the cache:

    - a *full* capture, started explicitly (manual sync), which runs the
      search script to load every page and replaces the cache on completion;
    - a *passive* capture, started automatically when row events arrive while
      the player browses pages, which merges into the cache.
    """

    def __init__(
        self,
        scripts: ProgressScriptSource,
        widgets: WidgetSource,
        machine: Optional[CaptureStateMachine] = None,
    ):
        self._scripts = scripts
        self._widgets = widgets
        self.machine = machine or CaptureStateMachine()
        self._cache: Optional[dict[int, CollectionLogEntry]] = None
        self._counts: Optional[CollectionLogCounts] = None
        self._recent_drops: deque[str] = deque(maxlen=MAX_RECENT_DROPS)
        self.is_open = False

    # === Cached data ===

    @property
    def counts(self) -> Optional[CollectionLogCounts]:
        return self._counts

    def has_data(self) -> bool:
        return bool(self._cache)

    def cached_log(self) -> Optional[dict[int, CollectionLogEntry]]:
        """Last completed capture this session, or None if there was none."""
        if self._cache is None:
            return None
        return dict(self._cache)

    def recent_drops(self) -> list[str]:
        return list(self._recent_drops)

    def record_drop(self, name: str) -> None:
        self._recent_drops.append(name)
        logger.info("Collection log drop detected: %s", name)

    # === Capture ===

    def start_full_capture(
        self,
        tick: int,
        on_complete: Optional[Callable[[dict[int, CollectionLogEntry]], None]] = None,
    ) -> bool:
        """
        Load every collection log page and capture all rows.

        Args:
            tick: Current host tick.
            on_complete: Called with the captured map after the cache is updated.
                An empty capture leaves an earlier cache in place.

        Returns:
            False if a capture is already running.
        """
        def finish(items: dict[int, CollectionLogEntry]) -> None:
            if items or self._cache is None:
                self._cache = dict(items)
            else:
                logger.info("Full capture found no rows, keeping %d cached items", len(self._cache))
            self._read_counts()
            if on_complete is not None:
                on_complete(items)

        if not self.machine.start(tick, finish):
            return False

        stack = self._scripts.run_script(COLLECTION_LOG_SEARCH_SCRIPT)
        if stack is None:
            # The capture still times out on its own if nothing arrives.
            logger.warning("Collection log search script did not run")
        else:
            logger.debug("Triggered collection log full load via script %d", COLLECTION_LOG_SEARCH_SCRIPT)
        return True

    def on_script_pre_fired(self, event: ScriptPreFired, tick: int) -> None:
        """Feed a row script event into the running (or a new passive) capture."""
        if event.script_id != COLLECTION_LOG_ROW_SCRIPT:
            return

        args = event.arguments
        if len(args) < 3:
            logger.debug("Collection log row event with %d args ignored", len(args))
            return

        try:
            item_id = int(args[1])
            quantity = int(args[2])
        except (TypeError, ValueError):
            logger.debug("Collection log row event with non-integer args ignored: %r", args)
            return

        if not self.machine.is_capturing:
            if not self.is_open:
                return
            self.machine.start(tick, self._merge_passive)

        self.machine.on_item_update(item_id, quantity, tick)

    def on_tick(self, tick: int) -> None:
        self.machine.on_clock_tick(tick)

    def _merge_passive(self, items: dict[int, CollectionLogEntry]) -> None:
        if self._cache is None:
            self._cache = {}
        self._cache.update(items)
        self._read_counts()
        logger.debug("Merged %d browsed collection log items (%d cached)", len(items), len(self._cache))

    def _read_counts(self) -> None:
        text = self._widgets.widget_text(COLLECTION_LOG_GROUP_ID, COLLECTION_LOG_TITLE_CHILD_ID)
        counts = parse_unique_counts(text)
        if counts is None:
            if text:
                logger.warning("Could not parse collection log counts from text: %s", text)
            return
        self._counts = counts
        logger.info("Captured collection log counts from UI: %d/%d", counts.obtained, counts.total)

    # === Lifecycle ===

    def reset(self) -> None:
        """Forget everything tied to the host session (logout, world hop)."""
        self.machine.on_session_end()
        self._cache = None
        self._counts = None
        self._recent_drops.clear()
        self.is_open = False
