"""
RuneSync - Exceptions

None of these escape an event handler; they mark the failure class so the
boundary that catches them can log it appropriately.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for sync operations."""
    pass


class TransportError(SyncError):
    """The snapshot could not be delivered to the remote service."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HostReadError(SyncError):
    """A host value could not be read (e.g. mid-transition UI state)."""
    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source
