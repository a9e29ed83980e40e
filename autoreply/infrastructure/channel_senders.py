"""
Outbound message delivery per channel, with retry logic.

Each sender reports delivery as a boolean and never raises, so a failed
delivery cannot fail the processing of the message that triggered it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Protocol

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from autoreply.config.settings import Settings
from autoreply.domain.account import Channel
from autoreply.domain.event import ChannelType, IncomingEvent

logger = logging.getLogger(__name__)


class OutboundSender(Protocol):
    """Delivers a reply back to the sender of an event."""

    async def send(self, channel: Channel, event: IncomingEvent, text: str) -> bool:
        ...


class HttpChannelSender(ABC):
    """Base class for senders that call a JSON HTTP API."""

    channel_type: str = ""

    def __init__(self, api_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    async def _post(self, url: str, headers: dict, payload: dict) -> httpx.Response:
        """POST a JSON payload, retrying on transport errors."""
        return await self.client.post(url, headers=headers, json=payload)

    @abstractmethod
    def build_request(self, channel: Channel, event: IncomingEvent, text: str) -> tuple:
        """Return (url, headers, payload) for the provider API."""

    async def send(self, channel: Channel, event: IncomingEvent, text: str) -> bool:
        """
        Send a text reply to the event's sender.

        Args:
            channel: Connected channel holding the access token
            event: Event being answered
            text: Reply text

        Returns:
            True if the provider accepted the message, False otherwise
        """
        if not channel.access_token:
            logger.error(f"{self.channel_type} channel {channel.id} has no access token")
            return False

        url, headers, payload = self.build_request(channel, event, text)
        try:
            response = await self._post(url, headers, payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {self.channel_type} message to {event.sender_id} after retries: {e}")
            return False

        if response.is_success:
            logger.info(f"{self.channel_type} message sent successfully to {event.sender_id}")
            return True

        logger.error(f"{self.channel_type} send failed ({response.status_code}): {response.text}")
        return False

    async def aclose(self) -> None:
        await self.client.aclose()


class InstagramSender(HttpChannelSender):
    """Instagram DM via the Graph API messaging endpoint."""

    channel_type = ChannelType.INSTAGRAM.value

    def build_request(self, channel: Channel, event: IncomingEvent, text: str) -> tuple:
        return (
            f"{self.api_url}/me/messages",
            {"Authorization": f"Bearer {channel.access_token}"},
            {"recipient": {"id": event.sender_id}, "message": {"text": text}},
        )


class NaverTalkTalkSender(HttpChannelSender):
    """Naver TalkTalk chatbot send event."""

    channel_type = ChannelType.NAVER.value

    def build_request(self, channel: Channel, event: IncomingEvent, text: str) -> tuple:
        return (
            self.api_url,
            {"Authorization": channel.access_token},
            {"event": "send", "user": event.sender_id, "textContent": {"text": text}},
        )


class KakaoSender(HttpChannelSender):
    """Kakao channel message API."""

    channel_type = ChannelType.KAKAO.value

    def build_request(self, channel: Channel, event: IncomingEvent, text: str) -> tuple:
        return (
            self.api_url,
            {"Authorization": f"Bearer {channel.access_token}"},
            {"receiver_id": event.sender_id, "text": text},
        )


def build_senders(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> Dict[str, OutboundSender]:
    """
    Create one sender per supported channel type.

    Args:
        settings: Application settings with the provider API URLs
        client: Optional shared HTTP client

    Returns:
        Mapping of channel type (lower-case) to sender
    """
    client = client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    return {
        ChannelType.INSTAGRAM.value: InstagramSender(settings.instagram_api_url, client),
        ChannelType.KAKAO.value: KakaoSender(settings.kakao_api_url, client),
        ChannelType.NAVER.value: NaverTalkTalkSender(settings.naver_api_url, client),
    }
