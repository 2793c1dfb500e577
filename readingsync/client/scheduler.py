"""Delivery scheduling for the offline queue."""

import asyncio
import logging
from typing import Callable, Optional

from .offline_queue import DurableOfflineQueue
from .transport import DeliveryResult, DeliveryStatus, SyncTransport

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityChannel:
    """Publishes network up/down changes to subscribers."""

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, online: bool) -> None:
        changed = online != self._online
        self._online = online
        if not changed:
            return
        logger.info(f"Connectivity {'regained' if online else 'lost'}")
        for listener in list(self._listeners):
            listener(online)


class SyncScheduler:
    """
    Decides when the queue is offered to the transport.

    Attempts are triggered by:
    - recorder requests (deferred by ``flush_delay`` and coalesced)
    - an optional periodic timer
    - connectivity regained
    - start-up with a non-empty queue
    - explicit ``flush()``

    Only one attempt is in flight at a time. Every attempt sends the whole
    pending batch; there is no backoff between attempts.
    """

    def __init__(
        self,
        queue: DurableOfflineQueue,
        transport: SyncTransport,
        connectivity: Optional[ConnectivityChannel] = None,
        flush_delay: float = 0.5,
        startup_flush_delay: float = 5.0,
        sync_interval: Optional[float] = None,
    ):
        self.queue = queue
        self.transport = transport
        self.connectivity = connectivity
        self.flush_delay = flush_delay
        self.startup_flush_delay = startup_flush_delay
        self.sync_interval = sync_interval
        self.last_result: Optional[DeliveryResult] = None

        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._periodic: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        """Attach to the running loop and arm the start-up and periodic triggers."""
        self._loop = asyncio.get_running_loop()
        if self.connectivity is not None:
            self._unsubscribe = self.connectivity.subscribe(self._on_connectivity)
        if len(self.queue):
            self._schedule(self.startup_flush_delay, "startup")
        if self.sync_interval:
            self._periodic = self._loop.create_task(self._run_periodic())

    async def stop(self, final_flush: bool = False) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._periodic is not None:
            self._periodic.cancel()
            await asyncio.gather(self._periodic, return_exceptions=True)
            self._periodic = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if final_flush:
            await self.flush("shutdown")

    def request_delivery(self, reason: str = "requested") -> None:
        """Ask for a delivery attempt shortly. Repeated requests coalesce."""
        self._schedule(self.flush_delay, reason)

    async def flush(self, reason: str = "explicit") -> DeliveryResult:
        """Offer every pending entry to the transport now."""
        async with self._lock:
            entries = self.queue.peek_all()
            if not entries:
                result = DeliveryResult(DeliveryStatus.DELIVERED, processed=0, succeeded=0, failed=0)
                self.last_result = result
                return result

            if self.connectivity is not None and not self.connectivity.online:
                logger.debug(f"Skipping {reason} delivery of {len(entries)} record(s): offline")
                result = DeliveryResult(DeliveryStatus.UNREACHABLE, error="offline")
            else:
                logger.debug(f"Delivering {len(entries)} record(s) ({reason})")
                result = await self.transport.deliver([entry.record for entry in entries])

            if result.clears_batch:
                # Entries enqueued during the attempt have a higher seq and stay.
                self.queue.acknowledge(entries[-1].seq)
                if result.status == DeliveryStatus.REJECTED:
                    logger.error(f"Dropped {len(entries)} rejected record(s)")
            self.last_result = result
            return result

    def _schedule(self, delay: float, reason: str) -> None:
        if self._handle is not None:
            return
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, reason)

    def _fire(self, reason: str) -> None:
        self._handle = None
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._flush_logged(reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _flush_logged(self, reason: str) -> None:
        try:
            await self.flush(reason)
        except Exception as e:
            logger.error(f"Delivery attempt ({reason}) failed: {e}", exc_info=True)

    def _on_connectivity(self, online: bool) -> None:
        if online and len(self.queue):
            self._schedule(self.flush_delay, "connectivity")

    async def _run_periodic(self) -> None:
        while True:
            await asyncio.sleep(self.sync_interval)
            await self._flush_logged("periodic")
