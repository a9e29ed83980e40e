"""
Unit tests for the work queue and its retry/dead-letter routing.
"""

import asyncio
import json

import pytest

from autoreply.domain.event import decode_envelope
from autoreply.infrastructure.work_queue import DESTINATION_FAILED, DESTINATION_RETRY


def retry_count_of(payload: str) -> int:
    return json.loads(payload)["data"]["retryCount"]


class TestWorkQueuePushPop:
    """Tests for enqueue and blocking dequeue."""

    @pytest.mark.asyncio
    async def test_payload_survives_unchanged(self, work_queue, event_factory):
        payload = event_factory(text="가격이 얼마에요 😀").to_payload()

        await work_queue.push(payload)

        assert await work_queue.pop(1) == payload
        event = decode_envelope(payload)
        assert event.text == "가격이 얼마에요 😀"
        assert event.retry_count == 0

    @pytest.mark.asyncio
    async def test_first_in_first_out(self, work_queue):
        await work_queue.push("a")
        await work_queue.push("b")

        assert await work_queue.pop(1) == "a"
        assert await work_queue.pop(1) == "b"

    @pytest.mark.asyncio
    async def test_pop_times_out_on_empty_queue(self, work_queue):
        assert await work_queue.pop(1) is None

    @pytest.mark.asyncio
    async def test_blocked_pop_wakes_on_push(self, work_queue):
        waiter = asyncio.create_task(work_queue.pop(5))
        await asyncio.sleep(0.05)

        await work_queue.push("late")

        assert await asyncio.wait_for(waiter, 2) == "late"


class TestRequeueFailed:
    """Tests for routing failed payloads."""

    @pytest.mark.asyncio
    async def test_below_limit_goes_to_retry_with_incremented_count(self, work_queue, event_factory):
        payload = event_factory(id="evt-9").to_payload()

        destination = await work_queue.requeue_failed(payload, max_retries=3)

        assert destination == DESTINATION_RETRY
        retried = (await work_queue.store.lrange(work_queue.retry_key, 0, -1))[0]
        data = json.loads(retried)["data"]
        assert data["id"] == "evt-9"
        assert data["retryCount"] == 1
        assert data["retryAt"] is not None
        assert await work_queue.stats() == {"main": 0, "retry": 1, "failed": 0}

    @pytest.mark.asyncio
    async def test_at_limit_goes_to_dead_letter_unchanged(self, work_queue, event_factory):
        payload = event_factory(retryCount=3).to_payload()

        destination = await work_queue.requeue_failed(payload, max_retries=3)

        assert destination == DESTINATION_FAILED
        assert await work_queue.peek_failed() == [payload]
        assert await work_queue.stats() == {"main": 0, "retry": 0, "failed": 1}

    @pytest.mark.asyncio
    async def test_unreadable_payload_goes_to_dead_letter(self, work_queue):
        assert await work_queue.requeue_failed("not json", max_retries=3) == DESTINATION_FAILED
        assert await work_queue.requeue_failed('{"other": 1}', max_retries=3) == DESTINATION_FAILED
        assert await work_queue.peek_failed() == ['{"other": 1}', "not json"]

    @pytest.mark.asyncio
    async def test_repeated_failure_reaches_dead_letter_after_max_retries(self, work_queue, event_factory):
        payload = event_factory().to_payload()
        await work_queue.push(payload)

        attempts = 0
        while True:
            current = await work_queue.pop(1)
            if current is None:
                break
            attempts += 1
            await work_queue.requeue_failed(current, max_retries=3)
            await work_queue.sweep_retry_queue()

        assert attempts == 4
        failed = await work_queue.peek_failed()
        assert len(failed) == 1
        assert retry_count_of(failed[0]) == 3


class TestSweepRetryQueue:
    """Tests for moving retries back to the main queue."""

    @pytest.mark.asyncio
    async def test_empty_retry_queue(self, work_queue):
        assert await work_queue.sweep_retry_queue() == 0

    @pytest.mark.asyncio
    async def test_retries_jump_ahead_newest_first(self, work_queue, event_factory):
        await work_queue.push(event_factory(id="fresh").to_payload())
        await work_queue.requeue_failed(event_factory(id="older").to_payload(), max_retries=3)
        await work_queue.requeue_failed(event_factory(id="newer").to_payload(), max_retries=3)

        moved = await work_queue.sweep_retry_queue()

        assert moved == 2
        order = [decode_envelope(await work_queue.pop(1)).id for _ in range(3)]
        assert order == ["newer", "older", "fresh"]
        assert await work_queue.stats() == {"main": 0, "retry": 0, "failed": 0}


class TestPeekFailed:
    """Tests for dead-letter inspection."""

    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self, work_queue):
        for i in range(3):
            await work_queue.requeue_failed(f"bad-{i}", max_retries=3)

        assert await work_queue.peek_failed(2) == ["bad-2", "bad-1"]
        assert await work_queue.peek_failed(0) == []
