"""
Durable work queue for incoming events, with retry and dead-letter lists.

List layout in the store: producers push onto the left end (tail) and
workers pop from the right end (head). Moving an entry onto the right end
of the main list therefore puts it first in line.
"""

import json
import logging
from typing import List, Optional

from autoreply.infrastructure.kv_store import KeyValueStore
from autoreply.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

RETRY_SUFFIX = ".retry"
FAILED_SUFFIX = ".failed"

DESTINATION_RETRY = "retry"
DESTINATION_FAILED = "failed"


class WorkQueue:
    """Main, retry and dead-letter queues sharing one base key."""

    def __init__(self, store: KeyValueStore, base_key: str):
        self.store = store
        self.main_key = base_key
        self.retry_key = base_key + RETRY_SUFFIX
        self.failed_key = base_key + FAILED_SUFFIX

    async def push(self, payload: str) -> None:
        """Append a payload to the tail of the main queue."""
        await self.store.lpush(self.main_key, payload)

    async def pop(self, timeout: int) -> Optional[str]:
        """
        Block up to `timeout` seconds for the next payload.

        Returns:
            The payload, or None if nothing arrived in time
        """
        return await self.store.brpop(self.main_key, timeout)

    async def requeue_failed(self, payload: str, max_retries: int) -> str:
        """
        Route a payload whose processing failed.

        Payloads below the retry limit go to the retry queue with their
        retry count incremented; the rest go to the dead-letter queue.

        Args:
            payload: Raw payload as popped from the main queue
            max_retries: Retry limit

        Returns:
            DESTINATION_RETRY or DESTINATION_FAILED
        """
        try:
            root = json.loads(payload)
            data = root["data"]
            retry_count = int(data.get("retryCount") or 0)
        except (TypeError, ValueError, KeyError, AttributeError):
            logger.error("Unreadable payload moved to dead-letter queue")
            await self.store.lpush(self.failed_key, payload)
            return DESTINATION_FAILED

        if retry_count < max_retries:
            data["retryCount"] = retry_count + 1
            data["retryAt"] = utc_now_iso()
            await self.store.lpush(self.retry_key, json.dumps(root, ensure_ascii=False))
            logger.info(f"Event {data.get('id')} queued for retry {retry_count + 1}/{max_retries}")
            return DESTINATION_RETRY

        await self.store.lpush(self.failed_key, payload)
        logger.error(f"Event {data.get('id')} exhausted {max_retries} retries, moved to dead-letter queue")
        return DESTINATION_FAILED

    async def sweep_retry_queue(self) -> int:
        """
        Move every entry of the retry queue to the head of the main queue.

        Returns:
            Number of entries moved
        """
        pending = await self.store.llen(self.retry_key)
        if not pending:
            return 0

        logger.info(f"Processing retry queue: {pending} messages")

        moved = 0
        for _ in range(pending):
            if await self.store.lmove_right(self.retry_key, self.main_key) is None:
                break
            moved += 1
        return moved

    async def stats(self) -> dict:
        """Current length of each queue."""
        return {
            "main": await self.store.llen(self.main_key),
            "retry": await self.store.llen(self.retry_key),
            "failed": await self.store.llen(self.failed_key),
        }

    async def peek_failed(self, limit: int = 50) -> List[str]:
        """Most recent dead-lettered payloads, newest first."""
        if limit <= 0:
            return []
        return await self.store.lrange(self.failed_key, 0, limit - 1)
