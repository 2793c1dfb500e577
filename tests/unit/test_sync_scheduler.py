"""Tests for delivery scheduling and connectivity handling."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from readingsync.client.offline_queue import DurableOfflineQueue
from readingsync.client.scheduler import ConnectivityChannel, SyncScheduler
from readingsync.client.transport import DeliveryResult, DeliveryStatus


def record(page: int) -> dict:
    return {"title": "Dune", "event_type": "page_turn", "current_page": page}


@pytest.fixture
def queue(tmp_path):
    return DurableOfflineQueue(tmp_path / "queue.ndjson")


@pytest.fixture
def transport():
    mock = MagicMock()
    mock.deliver = AsyncMock(return_value=DeliveryResult(DeliveryStatus.DELIVERED, status_code=200))
    return mock


@pytest.fixture
def channel():
    return ConnectivityChannel(online=True)


def make_scheduler(queue, transport, channel, **kwargs):
    kwargs.setdefault("flush_delay", 0)
    kwargs.setdefault("startup_flush_delay", 0)
    return SyncScheduler(queue, transport, connectivity=channel, **kwargs)


class TestFlush:
    """Test a single delivery attempt."""

    @pytest.mark.asyncio
    async def test_delivered_clears_queue(self, queue, transport, channel):
        queue.enqueue(record(1))
        queue.enqueue(record(2))
        scheduler = make_scheduler(queue, transport, channel)

        result = await scheduler.flush()

        assert result.status == DeliveryStatus.DELIVERED
        transport.deliver.assert_awaited_once_with([record(1), record(2)])
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_unreachable_retains_batch(self, queue, transport, channel):
        queue.enqueue(record(1))
        transport.deliver.return_value = DeliveryResult(DeliveryStatus.UNREACHABLE, status_code=503)
        scheduler = make_scheduler(queue, transport, channel)

        result = await scheduler.flush()

        assert result.status == DeliveryStatus.UNREACHABLE
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_rejected_clears_batch(self, queue, transport, channel):
        queue.enqueue(record(1))
        transport.deliver.return_value = DeliveryResult(DeliveryStatus.REJECTED, status_code=400)
        scheduler = make_scheduler(queue, transport, channel)

        await scheduler.flush()

        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_offline_skips_network(self, queue, transport):
        queue.enqueue(record(1))
        scheduler = make_scheduler(queue, transport, ConnectivityChannel(online=False))

        result = await scheduler.flush()

        assert result.status == DeliveryStatus.UNREACHABLE
        assert result.error == "offline"
        transport.deliver.assert_not_awaited()
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_empty_queue_sends_nothing(self, queue, transport, channel):
        scheduler = make_scheduler(queue, transport, channel)

        result = await scheduler.flush()

        assert result.processed == 0
        transport.deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_records_enqueued_during_delivery_are_kept(self, queue, transport, channel):
        queue.enqueue(record(1))

        async def deliver(records):
            queue.enqueue(record(2))
            return DeliveryResult(DeliveryStatus.DELIVERED, status_code=200)

        transport.deliver.side_effect = deliver
        scheduler = make_scheduler(queue, transport, channel)

        await scheduler.flush()

        assert [e.record for e in queue.peek_all()] == [record(2)]


class TestTriggers:
    """Test when attempts are made."""

    @pytest.mark.asyncio
    async def test_requests_coalesce(self, queue, transport, channel):
        queue.enqueue(record(1))
        scheduler = make_scheduler(queue, transport, channel, flush_delay=0.01)
        scheduler.start()

        for _ in range(3):
            scheduler.request_delivery("pages")
        await asyncio.sleep(0.1)

        assert transport.deliver.await_count == 1
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_startup_flush_with_pending_records(self, queue, transport, channel):
        queue.enqueue(record(1))
        scheduler = make_scheduler(queue, transport, channel)

        scheduler.start()
        await asyncio.sleep(0.05)

        transport.deliver.assert_awaited_once()
        assert len(queue) == 0
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_no_startup_flush_when_empty(self, queue, transport, channel):
        scheduler = make_scheduler(queue, transport, channel)

        scheduler.start()
        await asyncio.sleep(0.05)

        transport.deliver.assert_not_awaited()
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_connectivity_regained_retries(self, queue, transport):
        channel = ConnectivityChannel(online=False)
        queue.enqueue(record(1))
        scheduler = make_scheduler(queue, transport, channel)
        scheduler.start()
        await asyncio.sleep(0.05)
        transport.deliver.assert_not_awaited()

        channel.publish(True)
        await asyncio.sleep(0.05)

        transport.deliver.assert_awaited_once()
        assert len(queue) == 0
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_periodic_timer(self, queue, transport, channel):
        scheduler = make_scheduler(queue, transport, channel, sync_interval=0.02)
        scheduler.start()

        queue.enqueue(record(1))
        await asyncio.sleep(0.1)

        transport.deliver.assert_awaited()
        assert len(queue) == 0
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_with_final_flush(self, queue, transport, channel):
        scheduler = make_scheduler(queue, transport, channel)
        queue.enqueue(record(1))

        await scheduler.stop(final_flush=True)

        transport.deliver.assert_awaited_once()


class TestConnectivityChannel:
    """Test the observer channel."""

    def test_publish_notifies_only_on_change(self):
        channel = ConnectivityChannel(online=True)
        listener = MagicMock()
        channel.subscribe(listener)

        channel.publish(True)
        channel.publish(False)
        channel.publish(False)
        channel.publish(True)

        assert [call.args[0] for call in listener.call_args_list] == [False, True]
        assert channel.online

    def test_unsubscribe(self):
        channel = ConnectivityChannel(online=True)
        listener = MagicMock()
        unsubscribe = channel.subscribe(listener)

        unsubscribe()
        channel.publish(False)

        listener.assert_not_called()
