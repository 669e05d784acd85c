"""Anthropic Messages API adapter.

Only text generation is native. Sentiment, classification and entity
extraction are emulated; embeddings and image generation are not offered
by the API and raise ``missing_capability``.
"""

from __future__ import annotations

__all__ = ["AnthropicAdapter"]

from typing import Any, ClassVar

import structlog

from aibridge.core.errors import ProviderError
from aibridge.providers.base import HTTPAdapter

logger = structlog.get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

_MESSAGE_PASSTHROUGH = ("top_p", "top_k", "stop_sequences")


class AnthropicAdapter(HTTPAdapter):
    """Adapter for Claude models via the Messages API."""

    name: ClassVar[str] = "anthropic"
    default_model: ClassVar[str] = "claude-3-5-sonnet-latest"
    default_base_uri: ClassVar[str] = "https://api.anthropic.com/v1"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _extract_usage(self, data: Any) -> dict[str, int]:
        usage = data.get("usage") if isinstance(data, dict) else None
        if not isinstance(usage, dict):
            return {}
        prompt_tokens = int(usage.get("input_tokens") or 0)
        completion_tokens = int(usage.get("output_tokens") or 0)
        return {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        }

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        opts = options or {}
        model = self._resolve_model(opts, self.text_model)

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": opts.get("max_tokens", 500),
            "temperature": opts.get("temperature", 0.7),
            "messages": [{"role": "user", "content": prompt}],
        }
        if opts.get("system"):
            payload["system"] = str(opts["system"])
        for key in _MESSAGE_PASSTHROUGH:
            if key in opts:
                payload[key] = opts[key]

        logger.debug("anthropic_messages_request", model=model, prompt_length=len(prompt))
        data = await self._post_json(f"{self.base_uri}/messages", payload, model=model)

        if not isinstance(data, dict) or not isinstance(data.get("content"), list):
            raise ProviderError.api_error(
                self.name, "Unexpected messages response shape", model=model
            )
        if data.get("stop_reason") == "refusal":
            raise ProviderError.content_filtered(self.name, model)
        with self._reading(model):
            return "".join(
                block.get("text", "")
                for block in data["content"]
                if isinstance(block, dict) and block.get("type") == "text"
            )
