"""
Message processor: the worker pool that turns queued events into replies.

Each worker blocks on the main queue, processes one event at a time and
writes one audit log entry per processed event. Failures are routed to the
retry or dead-letter queue; nothing escapes a worker loop.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from autoreply.ai.responder import AIResponder
from autoreply.domain.account import User, Channel
from autoreply.domain.event import EventType, IncomingEvent, MalformedEventError, decode_envelope
from autoreply.domain.message_log import MessageLog, ResponseType
from autoreply.domain.rule import AutoRule
from autoreply.infrastructure.channel_senders import OutboundSender
from autoreply.infrastructure.database import DatabaseSession
from autoreply.infrastructure.repositories import (
    get_user,
    get_active_channel,
    get_active_rules,
    increment_trigger_count,
    save_message_log,
)
from autoreply.infrastructure.work_queue import WorkQueue
from autoreply.usecases.cooldown_store import CooldownStore
from autoreply.usecases.rule_matcher import find_matching_rule

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MINUTES = 1
DELIVERY_FAILED_ERROR = "Failed to deliver response"


def cooldown_minutes(rule: AutoRule) -> int:
    """Cooldown length in whole minutes; anything under 60 seconds is zero."""
    if rule.cooldown_seconds is None:
        return DEFAULT_COOLDOWN_MINUTES
    return rule.cooldown_seconds // 60


def build_rule_response(rule: AutoRule, user: User, public_base_url: str) -> str:
    """
    Build the reply text for a matched rule.

    Args:
        rule: Matched rule
        user: Owner of the rule
        public_base_url: Base URL of the public reservation/estimate pages

    Returns:
        Template text with the requested links appended
    """
    response = rule.response_template
    base_url = public_base_url.rstrip("/")

    if rule.include_reservation_link and user.reservation_slug:
        response += f"\n\n📅 예약하기: {base_url}/r/{user.reservation_slug}"

    if rule.include_estimate_link and user.reservation_slug:
        response += f"\n\n📝 견적 요청: {base_url}/e/{user.reservation_slug}"

    return response


class MessageProcessor:
    """Pool of queue workers plus the per-message processing pipeline."""

    def __init__(
        self,
        queue: WorkQueue,
        cooldowns: CooldownStore,
        ai_responder: AIResponder,
        senders: Dict[str, OutboundSender],
        session_factory: async_sessionmaker,
        worker_count: int = 4,
        poll_timeout: int = 5,
        max_retries: int = 3,
        public_base_url: str = "https://autoreplyx.com"
    ):
        self.queue = queue
        self.cooldowns = cooldowns
        self.ai_responder = ai_responder
        self.senders = senders
        self.session_factory = session_factory
        self.worker_count = worker_count
        self.poll_timeout = poll_timeout
        self.max_retries = max_retries
        self.public_base_url = public_base_url
        self._stopping = asyncio.Event()
        self._workers: List[asyncio.Task] = []
        # Workers take turns on the database; SQLite has a single writer
        self._db_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._workers)

    def start(self) -> None:
        """Start the worker tasks."""
        if self.running:
            return
        self._stopping.clear()
        self._workers = [
            asyncio.create_task(self._worker_loop(i), name=f"message-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"MessageProcessor started with {self.worker_count} workers")

    async def stop(self) -> None:
        """
        Stop the workers.

        Workers finish the message they are processing and exit at their next
        queue poll, so this waits at most one poll timeout after that.
        """
        self._stopping.set()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("MessageProcessor stopped")

    @asynccontextmanager
    async def _database(self):
        async with self._db_lock:
            async with DatabaseSession(self.session_factory) as session:
                yield session

    async def _worker_loop(self, worker_id: int) -> None:
        logger.info(f"Worker {worker_id} started")
        while not self._stopping.is_set():
            try:
                payload = await self.queue.pop(self.poll_timeout)
                if payload is not None:
                    await self.handle_payload(payload)
            except Exception as e:
                logger.exception(f"Error in message processing loop (worker {worker_id}): {e}")
                await asyncio.sleep(1)
        logger.info(f"Worker {worker_id} stopped")

    async def handle_payload(self, payload: str) -> Optional[MessageLog]:
        """
        Process one payload, routing it to retry or dead-letter on failure.

        Returns:
            The audit log entry, or None if the event was dropped or failed
        """
        try:
            return await self.process_payload(payload)
        except Exception as e:
            logger.exception(f"Failed to process message: {e}")
            await self.queue.requeue_failed(payload, self.max_retries)
            return None

    async def process_payload(self, payload: str) -> Optional[MessageLog]:
        """
        Run the processing pipeline for one payload.

        Malformed payloads and events whose user or channel no longer exists
        are dropped. Any other error propagates to the caller.

        Args:
            payload: Raw JSON envelope from the queue

        Returns:
            The saved audit log entry, or None if the event was dropped
        """
        start_time = time.monotonic()

        try:
            event = decode_envelope(payload)
        except MalformedEventError as e:
            logger.warning(f"Invalid message payload dropped: {e}")
            return None

        logger.info(f"Processing message: type={event.type}, channel={event.channel}, userId={event.user_id}")

        rules: List[AutoRule] = []
        async with self._database() as session:
            user = await get_user(session, event.user_id)
            if user is None:
                logger.warning(f"User not found: {event.user_id}")
                return None

            channel = await get_active_channel(session, event.channel_id)
            if channel is None:
                logger.warning(f"Channel not found or inactive: {event.channel_id}")
                return None

            if event.type == EventType.MESSAGE:
                rules = await get_active_rules(session, user.id, event.channel)

        response_text: Optional[str] = None
        response_type = ResponseType.NONE
        matched_rule_id: Optional[int] = None
        ai_tokens_used = 0
        error_message: Optional[str] = None

        if event.type == EventType.MESSAGE:
            rule = find_matching_rule(rules, event.text, event.channel)

            if rule is not None:
                if not await self.cooldowns.is_suppressed(rule.id, event.sender_id):
                    response_text = build_rule_response(rule, user, self.public_base_url)
                    response_type = ResponseType.RULE
                    matched_rule_id = rule.id

                    await self.cooldowns.suppress(rule.id, event.sender_id, cooldown_minutes(rule))
                else:
                    logger.debug(f"Rule {rule.id} is in cooldown for sender {event.sender_id}")
            elif user.ai_enabled:
                ai_response = await self.ai_responder.generate(event.text, user)
                response_text = ai_response.text
                response_type = ResponseType.AI
                ai_tokens_used = ai_response.tokens_used

        if response_text:
            sent = await self._send_response(channel, event, response_text)
            if not sent:
                response_type = ResponseType.NONE
                error_message = DELIVERY_FAILED_ERROR
                logger.error("Failed to send response")

        async with self._database() as session:
            if matched_rule_id is not None:
                await increment_trigger_count(session, matched_rule_id)

            processing_time_ms = int((time.monotonic() - start_time) * 1000)

            entry = await save_message_log(session, MessageLog(
                user_id=user.id,
                channel_id=channel.id,
                channel=event.channel,
                sender_id=event.sender_id,
                sender_name=event.sender_name,
                received_message=event.text,
                response_message=response_text,
                response_type=response_type.value,
                matched_rule_id=matched_rule_id,
                ai_tokens_used=ai_tokens_used,
                processing_time_ms=processing_time_ms,
                error_message=error_message,
            ))

        logger.info(
            f"Message processed: type={event.type}, responseType={response_type.value}, "
            f"time={processing_time_ms}ms"
        )
        return entry

    async def _send_response(self, channel: Channel, event: IncomingEvent, text: str) -> bool:
        sender = self.senders.get((channel.channel_type or "").lower())
        if sender is None:
            logger.warning(f"Unsupported channel type: {channel.channel_type}")
            return False
        return await sender.send(channel, event, text)
