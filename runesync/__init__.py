"""
RuneSync - Player Data Sync Agent

Embedded agent that watches a game client's player state and pushes a
consolidated snapshot (stats, quests, diaries, combat achievements,
equipment, collection log) to the RuneStatus service.
"""

# Defined before the imports below: config reads it for the User-Agent.
__version__ = "1.0.0"

from .agent import SyncAgent
from .capture import CaptureState, CaptureStateMachine
from .collection_log import CollectionLogManager
from .config import FeatureFlags, Settings, get_settings
from .dispatch import Dispatcher, IntervalTimer, QueueDispatcher
from .errors import HostReadError, SyncError, TransportError
from .events import EventBus, Subscription
from .guard import SyncGuard
from .models import (
    CollectionLogEntry,
    Snapshot,
    SyncOutcome,
    SyncTrigger,
)
from .rate_limit import RateLimiter
from .snapshot import SnapshotBuilder
from .sources import DataSources
from .transport import HttpTransport, Transport
from .triggers import TriggerRouter

__all__ = [
    # Main classes
    "SyncAgent",
    "SyncGuard",
    "TriggerRouter",
    "RateLimiter",
    "CaptureStateMachine",
    "CaptureState",
    "CollectionLogManager",
    "SnapshotBuilder",
    "DataSources",

    # Plumbing
    "EventBus",
    "Subscription",
    "Dispatcher",
    "QueueDispatcher",
    "IntervalTimer",
    "Transport",
    "HttpTransport",

    # Configuration
    "Settings",
    "FeatureFlags",
    "get_settings",

    # Data models
    "Snapshot",
    "CollectionLogEntry",
    "SyncTrigger",
    "SyncOutcome",

    # Exceptions
    "SyncError",
    "TransportError",
    "HostReadError",
]
