"""Named OpenAI-compatible completion backends the oracle can target."""

from __future__ import annotations

from app.core.errors import ConfigurationError

from .base import LLMProvider
from .openai import OpenAICompatibleProvider


class UnknownLLMProviderError(ConfigurationError, LookupError):
    """Raised when the workflow names a provider that is not registered."""


_BUILTIN_PROVIDERS: tuple[LLMProvider, ...] = (
    OpenAICompatibleProvider(),
    OpenAICompatibleProvider(
        name="deepseek",
        default_model="deepseek-chat",
        default_base_url="https://api.deepseek.com/v1",
    ),
)

_PROVIDERS: dict[str, LLMProvider] = {provider.name: provider for provider in _BUILTIN_PROVIDERS}


def register_provider(provider: LLMProvider) -> None:
    """Add a provider, replacing any existing one with the same name."""

    _PROVIDERS[provider.name.lower()] = provider


def get_provider(name: str) -> LLMProvider:
    key = name.strip().lower()
    if key not in _PROVIDERS:
        raise UnknownLLMProviderError(
            f"LLM provider '{name}' is not registered (available: {', '.join(available_providers())})"
        )
    return _PROVIDERS[key]


def resolve_provider(requested: str | None, default: str) -> LLMProvider:
    """Pick the workflow's provider when it names one, else the process default."""

    return get_provider((requested or "").strip() or default)


def available_providers() -> tuple[str, ...]:
    return tuple(sorted(_PROVIDERS))


__all__ = [
    "UnknownLLMProviderError",
    "available_providers",
    "get_provider",
    "register_provider",
    "resolve_provider",
]
