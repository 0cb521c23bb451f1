import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import AnyUrl, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationError
from app.schemas import WorkflowConfig


_PROVIDER_KEY_FIELDS = {
    "openai": ("openai_api_key", "openai_api_base"),
    "deepseek": ("deepseek_api_key", "deepseek_api_base"),
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    workflow_config_path: str = Field(
        default="config.json",
        description="Path to the workflow JSON snapshot (feeds, sessions, chain targets)",
    )
    llm_default_provider: str = Field(
        default="deepseek",
        description="Provider used for outcome queries when the workflow does not override it",
    )
    openai_api_key: str | None = Field(
        default=None,
        description="API key used when the oracle provider is OpenAI",
    )
    openai_api_base: AnyUrl | str | None = Field(
        default=None,
        description="Optional override for the OpenAI API base URL (Azure/proxy support)",
    )
    deepseek_api_key: str | None = Field(
        default=None,
        description="API key used when the oracle provider is DeepSeek",
    )
    deepseek_api_base: AnyUrl | str = Field(
        default="https://api.deepseek.com/v1",
        description="Base URL for the DeepSeek chat completion API",
    )
    ai_request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to a single outcome query",
        gt=0,
    )
    ai_response_cache_seconds: float = Field(
        default=60.0,
        description="Window during which replicas reuse the same completion response",
        ge=0,
    )
    consensus_replicas: int = Field(
        default=3,
        description="Number of replicated executions that must agree on an observed value",
        ge=1,
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to feed source requests",
        gt=0,
    )
    chain_rpc_url: AnyUrl | str | None = Field(
        default=None,
        description="JSON-RPC endpoint used for contract reads and report writes",
    )
    relayer_private_key: str | None = Field(
        default=None,
        description="Key that pays for report transactions",
    )
    report_signing_key: str | None = Field(
        default=None,
        description="Key used to sign encoded reports (defaults to the relayer key)",
    )

    @field_validator("llm_default_provider")
    @classmethod
    def _normalize_provider(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("LLM_DEFAULT_PROVIDER must not be blank")
        return normalized

    @field_validator("relayer_private_key", "report_signing_key", mode="before")
    @classmethod
    def _blank_key_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def provider_credentials(self, provider: str) -> tuple[str | None, str | None]:
        """Return the ``(api_key, base_url)`` pair configured for ``provider``."""

        fields = _PROVIDER_KEY_FIELDS.get(provider.lower())
        if fields is None:
            return None, None
        key_field, base_field = fields
        base_url = getattr(self, base_field)
        return getattr(self, key_field), str(base_url) if base_url else None

    @property
    def resolved_signing_key(self) -> str | None:
        return self.report_signing_key or self.relayer_private_key


@lru_cache
def get_settings() -> Settings:
    return Settings()


def load_workflow_config(path: str | Path | None = None) -> WorkflowConfig:
    """Read and validate the workflow JSON snapshot."""

    config_path = Path(path or get_settings().workflow_config_path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Workflow config not found at {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Workflow config at {config_path} is not valid JSON") from exc
    try:
        return WorkflowConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Workflow config at {config_path} is invalid: {exc}") from exc


settings = get_settings()
