"""Tests for GeminiAdapter against a mocked Generative Language API."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from aibridge.core.errors import ErrorKind, ProviderError
from aibridge.observability.trace import trace_call
from aibridge.providers.gemini import GeminiAdapter


def _make_adapter(data: Any, seen: list[httpx.Request] | None = None, status_code: int = 200) -> GeminiAdapter:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=data)

    return GeminiAdapter(
        api_key="g-test",
        base_uri="https://gemini.test/v1beta",
        transport=httpx.MockTransport(handler),
    )


class TestGenerateText:
    async def test_returns_joined_parts(self) -> None:
        seen: list[httpx.Request] = []
        adapter = _make_adapter(
            {
                "candidates": [
                    {"content": {"parts": [{"text": "Hello "}, {"text": "there"}]}, "finishReason": "STOP"}
                ],
                "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2, "totalTokenCount": 5},
            },
            seen,
        )
        assert await adapter.generate_text("Hi", {"top_k": 4}) == "Hello there"

        request = seen[0]
        assert request.url.path == "/v1beta/models/gemini-1.5-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "g-test"
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"] == "Hi"
        assert body["generationConfig"]["topK"] == 4

    async def test_blocked_prompt(self) -> None:
        adapter = _make_adapter({"promptFeedback": {"blockReason": "SAFETY"}})
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("bad")
        assert excinfo.value.kind == ErrorKind.CONTENT_FILTERED

    async def test_safety_finish_reason(self) -> None:
        adapter = _make_adapter({"candidates": [{"finishReason": "SAFETY"}]})
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("bad")
        assert excinfo.value.kind == ErrorKind.CONTENT_FILTERED

    async def test_no_candidates(self) -> None:
        assert await _make_adapter({"candidates": []}).generate_text("hi") == ""

    @pytest.mark.parametrize(
        "data",
        [
            {"candidates": ["oops"]},
            {"candidates": [{"content": "text"}]},
            {"promptFeedback": "blocked"},
            {"candidates": [{"content": {"parts": [{"text": None}]}}]},
        ],
    )
    async def test_malformed_body_is_api_error(self, data: dict[str, Any]) -> None:
        with pytest.raises(ProviderError) as excinfo:
            await _make_adapter(data).generate_text("hi")
        assert excinfo.value.kind == ErrorKind.API_ERROR
        assert excinfo.value.provider == "gemini"

    async def test_null_usage_counts(self) -> None:
        adapter = _make_adapter(
            {
                "candidates": [{"content": {"parts": [{"text": "ok"}]}}],
                "usageMetadata": {"promptTokenCount": 2, "candidatesTokenCount": None},
            }
        )
        with trace_call("gemini", "generate_text") as trace:
            assert await adapter.generate_text("hi") == "ok"
        assert trace.token_usage()["completion_tokens"] == 0

    async def test_server_error(self) -> None:
        adapter = _make_adapter({"error": {"message": "internal"}}, status_code=500)
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_text("hi")
        assert excinfo.value.kind == ErrorKind.SERVICE_UNAVAILABLE


class TestEmbeddings:
    async def test_batch(self) -> None:
        seen: list[httpx.Request] = []
        adapter = _make_adapter(
            {"embeddings": [{"values": [0.1, 0.2]}, {"values": [0.3, 0.4]}]}, seen
        )
        assert await adapter.generate_embeddings(["a", "b"]) == [[0.1, 0.2], [0.3, 0.4]]
        assert seen[0].url.path.endswith("text-embedding-004:batchEmbedContents")
        requests = json.loads(seen[0].content)["requests"]
        assert requests[0]["model"] == "models/text-embedding-004"

    async def test_count_mismatch(self) -> None:
        adapter = _make_adapter({"embeddings": [{"values": [0.1]}]})
        with pytest.raises(ProviderError):
            await adapter.generate_embeddings(["a", "b"])

    @pytest.mark.parametrize(
        "embeddings",
        [["oops"], [{"vector": [0.1]}], [{"values": ["x"]}]],
    )
    async def test_malformed_item_is_api_error(self, embeddings: list[Any]) -> None:
        adapter = _make_adapter({"embeddings": embeddings})
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_embeddings(["a"])
        assert excinfo.value.kind == ErrorKind.API_ERROR


class TestImage:
    async def test_data_uri(self) -> None:
        adapter = _make_adapter(
            {"predictions": [{"bytesBase64Encoded": "QUJD", "mimeType": "image/png"}]}
        )
        assert await adapter.generate_image("fox") == "data:image/png;base64,QUJD"

    async def test_filtered_image(self) -> None:
        adapter = _make_adapter({"predictions": []})
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_image("fox")
        assert excinfo.value.kind == ErrorKind.CONTENT_FILTERED

    @pytest.mark.parametrize("predictions", [["oops"], {"0": {}}, [{"bytesBase64Encoded": None}]])
    async def test_malformed_predictions_yield_no_image(self, predictions: Any) -> None:
        adapter = _make_adapter({"predictions": predictions})
        with pytest.raises(ProviderError) as excinfo:
            await adapter.generate_image("fox")
        assert excinfo.value.kind == ErrorKind.CONTENT_FILTERED
