"""
OpenAI-powered reply generation for messages no rule answered.
Replies are cached per (message, user) and never raise to the caller.
"""

import hashlib
import json
import logging
import random
import re
from typing import List, NamedTuple, Optional

from openai import AsyncOpenAI, APIError, APITimeoutError, RateLimitError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from autoreply.domain.account import User
from autoreply.infrastructure.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "ai_response:"

FALLBACK_RESPONSES = (
    "안녕하세요! 문의 주셔서 감사합니다. 잠시 후 담당자가 답변드리겠습니다.",
    "안녕하세요! 문의 내용 확인 후 빠르게 답변드리겠습니다.",
    "감사합니다! 조금만 기다려주시면 자세한 안내 도와드리겠습니다.",
)

TONE_GUIDES = {
    "professional": "전문적이고 신뢰감 있는 톤으로 응답하세요.",
    "formal": "격식을 차린 공손한 톤으로 응답하세요.",
    "casual": "편안하고 캐주얼한 톤으로 응답하세요.",
    "friendly": "친근하고 따뜻한 톤으로 응답하세요.",
}

# System prompt for customer replies
SYSTEM_PROMPT = """당신은 {brand_name}의 고객 응대 AI 어시스턴트입니다.

[비즈니스 정보]
- 영업시간: {business_hours}
- 주소: {address}
- 소개: {description}

[응답 규칙]
1. {tone_guide}
2. 150자 이내로 간결하게 응답하세요.
3. 확실하지 않은 정보는 "확인 후 안내드리겠습니다"라고 응답하세요.
4. 고객의 질문에 직접적으로 답변하세요.
5. 이모지를 적절히 사용해 친근한 느낌을 주세요."""


class AIResponse(NamedTuple):
    """Generated reply with its token cost."""
    text: str
    tokens_used: int
    cached: bool


def cache_key(message: str, user_id: int) -> str:
    """Cache key for a message sent to a given user."""
    digest = hashlib.sha256(f"{message}{user_id}".encode("utf-8")).hexdigest()
    return CACHE_KEY_PREFIX + digest


def get_fallback_response() -> str:
    """Pick one of the fixed replies used when the provider is unavailable."""
    return random.choice(FALLBACK_RESPONSES)


def build_system_prompt(user: User) -> str:
    """Build the system prompt from the user's business profile."""
    return SYSTEM_PROMPT.format(
        brand_name=user.brand_name,
        business_hours=user.business_hours or "미설정",
        address=user.address or "미설정",
        description=user.description or "",
        tone_guide=TONE_GUIDES.get(user.ai_tone or "friendly", TONE_GUIDES["friendly"]),
    )


def filter_banned_words(text: str, banned_words_json: Optional[str]) -> str:
    """
    Mask the user's banned words in a generated reply.

    Args:
        text: Generated reply
        banned_words_json: JSON array of words, as stored on the user

    Returns:
        Text with every banned word replaced by ***
    """
    if not banned_words_json:
        return text

    try:
        banned_words: List[str] = json.loads(banned_words_json)
    except json.JSONDecodeError:
        logger.warning("Failed to parse banned words")
        return text

    for word in banned_words:
        if word:
            text = re.sub(re.escape(word), "***", text, flags=re.IGNORECASE)
    return text


class AIResponder:
    """Generates customer replies with OpenAI, backed by a response cache."""

    def __init__(
        self,
        store: KeyValueStore,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        max_tokens: int = 200,
        cache_ttl_seconds: int = 24 * 3600,
        client: Optional[AsyncOpenAI] = None
    ):
        self.store = store
        self.model = model
        self.max_tokens = max_tokens
        self.cache_ttl_seconds = cache_ttl_seconds
        self.client = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(api_key=api_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((APIError, APITimeoutError, RateLimitError)),
        reraise=True
    )
    async def _call_openai(self, messages: list):
        """
        Make an OpenAI chat completion call with retry logic.

        Args:
            messages: Chat messages

        Returns:
            The chat completion response
        """
        return await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=0.7,
            max_tokens=self.max_tokens
        )

    async def generate(self, message: str, user: User) -> AIResponse:
        """
        Generate a reply to a customer message.

        Args:
            message: Customer's message text
            user: Business user the message was sent to

        Returns:
            AIResponse; on missing credentials or provider errors a fallback
            reply with zero tokens
        """
        key = cache_key(message, user.id)
        cached = await self.store.get(key)
        if cached is not None:
            logger.debug(f"AI response cache hit for user {user.id}")
            return AIResponse(cached, 0, True)

        if self.client is None:
            logger.warning("OpenAI API key not configured")
            return AIResponse(get_fallback_response(), 0, False)

        try:
            response = await self._call_openai([
                {"role": "system", "content": build_system_prompt(user)},
                {"role": "user", "content": f"고객 메시지: {message}"},
            ])
            text = (response.choices[0].message.content or "").strip()
            tokens_used = response.usage.total_tokens if response.usage else 0
        except Exception as e:
            logger.error(f"AI response generation failed: {e}")
            return AIResponse(get_fallback_response(), 0, False)

        if not text:
            logger.error("OpenAI returned an empty reply")
            return AIResponse(get_fallback_response(), 0, False)

        text = filter_banned_words(text, user.banned_words)
        await self.store.set(key, text, ttl_seconds=self.cache_ttl_seconds)

        logger.info(f"AI response generated for user {user.id}, tokens: {tokens_used}")
        return AIResponse(text, tokens_used, False)
