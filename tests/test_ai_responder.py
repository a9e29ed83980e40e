"""
Unit tests for AI reply generation.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from autoreply.ai.responder import (
    AIResponder,
    FALLBACK_RESPONSES,
    TONE_GUIDES,
    build_system_prompt,
    cache_key,
    filter_banned_words,
)
from autoreply.domain.account import User


def completion(content, total_tokens=42):
    """Minimal stand-in for an OpenAI chat completion response."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


@pytest.fixture
def user():
    return User(
        id=1,
        email="owner@example.com",
        brand_name="카페 모카",
        business_hours="10:00-21:00",
        ai_enabled=True,
        ai_tone="formal",
        banned_words=json.dumps(["경쟁사"]),
    )


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion(" 네, 주차 가능합니다! "))
    return client


class TestAIResponderGenerate:
    """Tests for AIResponder.generate."""

    @pytest.mark.asyncio
    async def test_fallback_without_api_key(self, kv_store, user):
        responder = AIResponder(kv_store, api_key=None)

        response = await responder.generate("주차 되나요?", user)

        assert response.text in FALLBACK_RESPONSES
        assert response.tokens_used == 0
        assert response.cached is False

    @pytest.mark.asyncio
    async def test_generates_and_caches(self, kv_store, user, openai_client):
        responder = AIResponder(kv_store, api_key=None, client=openai_client)

        first = await responder.generate("주차 되나요?", user)
        second = await responder.generate("주차 되나요?", user)

        assert first.text == "네, 주차 가능합니다!"
        assert first.tokens_used == 42
        assert first.cached is False
        assert second.text == first.text
        assert second.tokens_used == 0
        assert second.cached is True
        openai_client.chat.completions.create.assert_awaited_once()
        assert await kv_store.get(cache_key("주차 되나요?", user.id)) == first.text

    @pytest.mark.asyncio
    async def test_cache_expires(self, kv_store, clock, user, openai_client):
        responder = AIResponder(kv_store, api_key=None, client=openai_client, cache_ttl_seconds=60)

        await responder.generate("주차 되나요?", user)
        clock.advance(60)
        again = await responder.generate("주차 되나요?", user)

        assert again.cached is False
        assert openai_client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_hit_skips_provider(self, kv_store, user, openai_client):
        await kv_store.set(cache_key("영업시간?", user.id), "10시부터 21시까지 영업합니다.")
        responder = AIResponder(kv_store, api_key=None, client=openai_client)

        response = await responder.generate("영업시간?", user)

        assert response.text == "10시부터 21시까지 영업합니다."
        assert response.cached is True
        openai_client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_error_returns_fallback(self, kv_store, user, openai_client):
        responder = AIResponder(kv_store, api_key=None, client=openai_client)

        with patch.object(responder, "_call_openai", new_callable=AsyncMock, side_effect=RuntimeError("boom")):
            response = await responder.generate("주차 되나요?", user)

        assert response.text in FALLBACK_RESPONSES
        assert response.tokens_used == 0
        assert await kv_store.get(cache_key("주차 되나요?", user.id)) is None

    @pytest.mark.asyncio
    async def test_empty_reply_returns_fallback(self, kv_store, user, openai_client):
        openai_client.chat.completions.create.return_value = completion("   ")
        responder = AIResponder(kv_store, api_key=None, client=openai_client)

        response = await responder.generate("주차 되나요?", user)

        assert response.text in FALLBACK_RESPONSES
        assert response.tokens_used == 0

    @pytest.mark.asyncio
    async def test_banned_words_masked(self, kv_store, user, openai_client):
        openai_client.chat.completions.create.return_value = completion("경쟁사보다 저렴합니다")
        responder = AIResponder(kv_store, api_key=None, client=openai_client)

        response = await responder.generate("가격 비교해주세요", user)

        assert response.text == "***보다 저렴합니다"

    @pytest.mark.asyncio
    async def test_prompt_carries_business_profile(self, kv_store, user, openai_client):
        responder = AIResponder(kv_store, api_key=None, client=openai_client, model="gpt-4o-mini", max_tokens=150)

        await responder.generate("주차 되나요?", user)

        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 150
        system, customer = kwargs["messages"]
        assert "카페 모카" in system["content"]
        assert customer == {"role": "user", "content": "고객 메시지: 주차 되나요?"}


class TestPromptHelpers:
    """Tests for prompt and filtering helpers."""

    def test_system_prompt_defaults(self):
        prompt = build_system_prompt(User(id=1, brand_name="Shop", ai_tone="unknown"))

        assert "Shop" in prompt
        assert "미설정" in prompt
        assert TONE_GUIDES["friendly"] in prompt

    def test_system_prompt_tone(self, user):
        assert TONE_GUIDES["formal"] in build_system_prompt(user)

    def test_filter_is_case_insensitive(self):
        assert filter_banned_words("Call ACME now", '["acme"]') == "Call *** now"

    def test_filter_ignores_invalid_json(self):
        assert filter_banned_words("hello", "not json") == "hello"
        assert filter_banned_words("hello", None) == "hello"

    def test_cache_key_depends_on_user(self):
        assert cache_key("hi", 1) != cache_key("hi", 2)
        assert cache_key("hi", 1).startswith("ai_response:")
