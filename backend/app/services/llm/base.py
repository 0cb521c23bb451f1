"""Provider contracts for outcome queries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """Chat completion request shared by every provider."""

    model: str
    messages: tuple[Mapping[str, str], ...]
    temperature: float = 0.0

    def body(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [dict(message) for message in self.messages],
            "temperature": self.temperature,
        }


@dataclass(frozen=True, slots=True)
class CompletionResponse:
    """Status code and raw body observed from the completion endpoint."""

    status_code: int
    body_text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class LLMProvider(Protocol):
    """Interface implemented by provider adapters."""

    name: str
    default_model: str
    default_base_url: str | None

    def build_client(
        self,
        *,
        api_key: str,
        base_url: str | None,
        timeout: float,
    ) -> Any:
        """Return a provider client for the resolved credentials."""

    def complete(self, client: Any, request: CompletionRequest) -> CompletionResponse:
        """Execute one completion round trip without retries."""


def build_messages(system_prompt: str, user_prompt: str) -> Sequence[Mapping[str, str]]:
    return (
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    )


__all__ = ["CompletionRequest", "CompletionResponse", "LLMProvider", "build_messages"]
