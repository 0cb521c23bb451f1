"""OpenAI-compatible chat completion provider (OpenAI, DeepSeek)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger
from openai import APIConnectionError, APIStatusError, OpenAI

from app.core.errors import AIUpstreamError

from .base import CompletionRequest, CompletionResponse


@dataclass(slots=True)
class OpenAICompatibleProvider:
    name: str = "openai"
    default_model: str = "gpt-4"
    default_base_url: str | None = None

    def build_client(
        self,
        *,
        api_key: str,
        base_url: str | None,
        timeout: float,
    ) -> OpenAI:
        kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": timeout,
            "max_retries": 0,
        }
        resolved_base = base_url or self.default_base_url
        if resolved_base:
            kwargs["base_url"] = resolved_base
        return OpenAI(**kwargs)

    def complete(self, client: Any, request: CompletionRequest) -> CompletionResponse:
        try:
            raw = client.chat.completions.with_raw_response.create(**request.body())
        except APIStatusError as exc:
            logger.warning(
                "{} completion returned status={} model={}",
                self.name,
                exc.status_code,
                request.model,
            )
            return CompletionResponse(status_code=exc.status_code, body_text=exc.response.text)
        except APIConnectionError as exc:
            raise AIUpstreamError(0, str(exc), provider=self.name) from exc

        http_response = raw.http_response
        return CompletionResponse(
            status_code=http_response.status_code,
            body_text=http_response.text,
        )


__all__ = ["OpenAICompatibleProvider"]
