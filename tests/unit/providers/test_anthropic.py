"""Tests for AnthropicAdapter against a mocked Messages API."""

from __future__ import annotations

import json

import httpx
import pytest

from aibridge.core.errors import ErrorKind, ProviderError
from aibridge.core.types import Capability
from aibridge.observability.trace import trace_call
from aibridge.providers.anthropic import ANTHROPIC_VERSION, AnthropicAdapter


def _make_adapter(response: httpx.Response, seen: list[httpx.Request] | None = None) -> AnthropicAdapter:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return response

    return AnthropicAdapter(
        api_key="ak-test",
        base_uri="https://anthropic.test/v1",
        transport=httpx.MockTransport(handler),
    )


def _message(text: str, stop_reason: str = "end_turn") -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "content": [{"type": "text", "text": text}],
            "stop_reason": stop_reason,
            "usage": {"input_tokens": 11, "output_tokens": 4},
        },
    )


class TestGenerateText:
    async def test_returns_text_and_sends_headers(self) -> None:
        seen: list[httpx.Request] = []
        adapter = _make_adapter(_message("Bonjour"), seen)

        assert await adapter.generate_text("Say hello in French", {"system": "Be terse"}) == "Bonjour"

        request = seen[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "ak-test"
        assert request.headers["anthropic-version"] == ANTHROPIC_VERSION
        body = json.loads(request.content)
        assert body["model"] == AnthropicAdapter.default_model
        assert body["system"] == "Be terse"
        assert body["messages"] == [{"role": "user", "content": "Say hello in French"}]

    async def test_usage_reported(self) -> None:
        adapter = _make_adapter(_message("ok"))
        with trace_call("anthropic", "generate_text") as trace:
            await adapter.generate_text("hi")
        assert trace.token_usage() == {
            "prompt_tokens": 11,
            "completion_tokens": 4,
            "total_tokens": 15,
        }

    async def test_null_usage_counts_as_zero(self) -> None:
        adapter = _make_adapter(
            httpx.Response(
                200,
                json={
                    "content": [{"type": "text", "text": "ok"}],
                    "usage": {"input_tokens": None, "output_tokens": 3},
                },
            )
        )
        with trace_call("anthropic", "generate_text") as trace:
            assert await adapter.generate_text("hi") == "ok"
        assert trace.token_usage() == {
            "prompt_tokens": 0,
            "completion_tokens": 3,
            "total_tokens": 3,
        }

    async def test_unreadable_usage_is_api_error(self) -> None:
        adapter = _make_adapter(
            httpx.Response(
                200,
                json={
                    "content": [{"type": "text", "text": "ok"}],
                    "usage": {"input_tokens": "many"},
                },
            )
        )
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("hi")
        assert excinfo.value.kind == ErrorKind.API_ERROR

    async def test_null_text_block_is_api_error(self) -> None:
        adapter = _make_adapter(
            httpx.Response(200, json={"content": [{"type": "text", "text": None}]})
        )
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("hi")
        assert excinfo.value.kind == ErrorKind.API_ERROR

    async def test_refusal_is_content_filtered(self) -> None:
        adapter = _make_adapter(_message("", stop_reason="refusal"))
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("something bad")
        assert excinfo.value.kind == ErrorKind.CONTENT_FILTERED

    async def test_error_message_extracted(self) -> None:
        adapter = _make_adapter(
            httpx.Response(
                401,
                json={"type": "error", "error": {"type": "authentication_error", "message": "bad key"}},
            )
        )
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("hi")
        assert excinfo.value.kind == ErrorKind.AUTHENTICATION_FAILED
        assert "bad key" in excinfo.value.message

    async def test_unexpected_shape(self) -> None:
        adapter = _make_adapter(httpx.Response(200, json={"nothing": True}))
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("hi")
        assert excinfo.value.kind == ErrorKind.API_ERROR


class TestUnsupported:
    async def test_embeddings_missing(self) -> None:
        adapter = _make_adapter(_message("x"))
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_embeddings(["a"])
        assert excinfo.value.kind == ErrorKind.MISSING_CAPABILITY
        assert excinfo.value.details["capability"] == Capability.GENERATE_EMBEDDINGS

    async def test_image_missing(self) -> None:
        adapter = _make_adapter(_message("x"))
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_image("fox")
        assert excinfo.value.kind == ErrorKind.MISSING_CAPABILITY

    async def test_entities_emulated(self) -> None:
        adapter = _make_adapter(
            _message('[{"entity": "Paris", "type": "LOC", "score": 0.9}]')
        )
        entities = await adapter.extract_entities("I visited Paris")
        assert [e.entity for e in entities] == ["Paris"]
