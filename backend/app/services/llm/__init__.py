"""Completion providers used by the outcome oracle."""

from .base import CompletionRequest, CompletionResponse, LLMProvider
from .registry import (
    UnknownLLMProviderError,
    available_providers,
    get_provider,
    register_provider,
    resolve_provider,
)

__all__ = [
    "CompletionRequest",
    "CompletionResponse",
    "LLMProvider",
    "UnknownLLMProviderError",
    "available_providers",
    "get_provider",
    "register_provider",
    "resolve_provider",
]
