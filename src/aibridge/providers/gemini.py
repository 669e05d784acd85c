"""Google Gemini (Generative Language API) adapter.

Text generation, batch embeddings and Imagen image generation are native;
sentiment, classification and entity extraction are emulated.
"""

from __future__ import annotations

__all__ = ["GeminiAdapter"]

from typing import Any, ClassVar

import structlog

from aibridge.core.errors import ProviderError
from aibridge.providers.base import HTTPAdapter

logger = structlog.get_logger(__name__)

_BLOCKED_FINISH_REASONS = frozenset({"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"})


class GeminiAdapter(HTTPAdapter):
    """Adapter for Gemini text/embedding models and Imagen image models."""

    name: ClassVar[str] = "gemini"
    default_model: ClassVar[str] = "gemini-1.5-flash"
    default_embedding_model: ClassVar[str | None] = "text-embedding-004"
    default_image_model: ClassVar[str | None] = "imagen-3.0-generate-002"
    default_base_uri: ClassVar[str] = "https://generativelanguage.googleapis.com/v1beta"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def _model_url(self, model: str, method: str) -> str:
        return f"{self.base_uri}/models/{model}:{method}"

    def _extract_usage(self, data: Any) -> dict[str, int]:
        usage = data.get("usageMetadata") if isinstance(data, dict) else None
        if not isinstance(usage, dict):
            return {}
        return {
            "prompt_tokens": int(usage.get("promptTokenCount") or 0),
            "completion_tokens": int(usage.get("candidatesTokenCount") or 0),
            "total_tokens": int(usage.get("totalTokenCount") or 0),
        }

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        opts = options or {}
        model = self._resolve_model(opts, self.text_model)

        generation_config: dict[str, Any] = {
            "temperature": opts.get("temperature", 0.7),
            "maxOutputTokens": opts.get("max_tokens", 500),
        }
        if "top_p" in opts:
            generation_config["topP"] = opts["top_p"]
        if "top_k" in opts:
            generation_config["topK"] = opts["top_k"]

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if opts.get("system"):
            payload["systemInstruction"] = {"parts": [{"text": str(opts["system"])}]}

        logger.debug("gemini_generate_request", model=model, prompt_length=len(prompt))
        data = await self._post_json(self._model_url(model, "generateContent"), payload, model=model)

        if not isinstance(data, dict):
            raise ProviderError.api_error(self.name, "Unexpected response shape", model=model)
        with self._reading(model):
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            candidates = data.get("candidates") or []
            if block_reason or (
                candidates and candidates[0].get("finishReason") in _BLOCKED_FINISH_REASONS
            ):
                raise ProviderError.content_filtered(self.name, model)
            if not candidates:
                return ""
            parts = (candidates[0].get("content") or {}).get("parts") or []
            return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    async def generate_embeddings(
        self, input: str | list[str], options: dict[str, Any] | None = None
    ) -> list[list[float]]:
        opts = options or {}
        model = self._resolve_model(opts, self.embedding_model)
        inputs = input if isinstance(input, list) else [input]

        payload = {
            "requests": [
                {"model": f"models/{model}", "content": {"parts": [{"text": text}]}}
                for text in inputs
            ]
        }
        data = await self._post_json(
            self._model_url(model, "batchEmbedContents"), payload, model=model
        )

        embeddings = data.get("embeddings") if isinstance(data, dict) else None
        if not isinstance(embeddings, list) or len(embeddings) != len(inputs):
            raise ProviderError.api_error(
                self.name, "Unexpected embeddings response shape", model=model
            )
        with self._reading(model):
            return [[float(v) for v in item["values"]] for item in embeddings]

    async def generate_image(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        opts = options or {}
        model = self._resolve_model(opts, self.image_model)

        parameters: dict[str, Any] = {"sampleCount": 1}
        if "aspect_ratio" in opts:
            parameters["aspectRatio"] = opts["aspect_ratio"]
        payload = {"instances": [{"prompt": prompt}], "parameters": parameters}

        data = await self._post_json(self._model_url(model, "predict"), payload, model=model)
        predictions = data.get("predictions") if isinstance(data, dict) else None
        prediction = predictions[0] if isinstance(predictions, list) and predictions else None
        if not isinstance(prediction, dict) or not prediction.get("bytesBase64Encoded"):
            raise ProviderError.content_filtered(
                self.name, model, "Image generation returned no image"
            )
        mime_type = prediction.get("mimeType") or "image/png"
        return f"data:{mime_type};base64,{prediction['bytesBase64Encoded']}"
