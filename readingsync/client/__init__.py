"""Device-side recorder, offline queue and delivery."""

from .config import ClientSettings
from .device import ReadingStatusClient
from .offline_queue import DurableOfflineQueue, QueueEntry
from .recorder import EventRecorder
from .scheduler import ConnectivityChannel, SyncScheduler
from .session_context import DocumentInfo, ReaderState, RecorderMode, SessionContext
from .transport import DeliveryResult, DeliveryStatus, SyncTransport

__all__ = [
    "ClientSettings",
    "ConnectivityChannel",
    "DeliveryResult",
    "DeliveryStatus",
    "DocumentInfo",
    "DurableOfflineQueue",
    "EventRecorder",
    "QueueEntry",
    "ReaderState",
    "ReadingStatusClient",
    "RecorderMode",
    "SessionContext",
    "SyncScheduler",
    "SyncTransport",
]
