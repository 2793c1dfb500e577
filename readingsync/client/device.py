"""Wiring of the device-side components."""

import logging
from typing import Optional

import httpx

from .config import ClientSettings
from .offline_queue import DurableOfflineQueue
from .recorder import EventRecorder
from .scheduler import ConnectivityChannel, SyncScheduler
from .transport import SyncTransport

logger = logging.getLogger(__name__)


class ReadingStatusClient:
    """Recorder, queue, transport and scheduler built from one settings object.

    Call ``start()`` from the device's event loop once, feed reader callbacks
    to ``recorder``, report network changes on ``connectivity`` and call
    ``stop()`` on shutdown.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        connectivity: Optional[ConnectivityChannel] = None,
    ):
        self.settings = settings or ClientSettings()
        if not self.settings.auth_token:
            logger.warning("No auth token configured; the server will reject deliveries")

        self.connectivity = connectivity or ConnectivityChannel()
        self.queue = DurableOfflineQueue(self.settings.queue_path, capacity=self.settings.queue_capacity)
        self.transport = SyncTransport(
            self.settings.sync_endpoint,
            auth_token=self.settings.auth_token,
            timeout=self.settings.request_timeout,
            client=http_client,
        )
        self.scheduler = SyncScheduler(
            self.queue,
            self.transport,
            connectivity=self.connectivity,
            flush_delay=self.settings.flush_delay,
            startup_flush_delay=self.settings.startup_flush_delay,
            sync_interval=self.settings.sync_interval,
        )
        self.recorder = EventRecorder.from_settings(self.settings, self.queue, scheduler=self.scheduler)

    def start(self) -> None:
        self.scheduler.start()
        logger.info(f"Reading status client started, {len(self.queue)} record(s) pending")

    async def stop(self, final_flush: bool = True) -> None:
        if self.recorder.context is not None:
            self.recorder.on_book_close()
        await self.scheduler.stop(final_flush=final_flush)
        await self.transport.aclose()
