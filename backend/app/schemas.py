from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.domain import SessionRecord

PRICE_FEED = "priceFeed"
NEWS_FEED = "newsFeed"
TREND_FEED = "trendFeed"
CUSTOM_FEED = "customFeed"

FEED_KINDS = (PRICE_FEED, NEWS_FEED, TREND_FEED, CUSTOM_FEED)

_LEGACY_FEED_KINDS = {
    "coinGecko": PRICE_FEED,
    "newsAPI": NEWS_FEED,
    "githubTrends": TREND_FEED,
    "custom": CUSTOM_FEED,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FeedConfig(_CamelModel):
    id: str = ""
    kind: str = Field(default="", validation_alias=AliasChoices("type", "kind"))
    url: str | None = None
    method: Literal["GET", "POST"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] | None = None
    question_template: str | None = None
    value_path: str | None = None
    category: str | None = None
    resolve_seconds: int | None = Field(default=None, ge=0)
    mock: bool = False
    mock_value: float | int | str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    coin_id: str | None = None
    vs_currency: str | None = None
    multiplier: float | None = None
    cache_seconds: float = Field(default=0.0, ge=0)

    @field_validator("kind", mode="before")
    @classmethod
    def _map_legacy_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            stripped = value.strip()
            return _LEGACY_FEED_KINDS.get(stripped, stripped)
        return value


class SessionConfig(_CamelModel):
    market_id: int
    session_id: str
    participants: list[str]
    balances: list[int]
    signatures: list[str]
    backend_signature: str
    resolve_time: int

    @field_validator("market_id", mode="before")
    @classmethod
    def _coerce_market_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            return int(value.strip(), 0)
        return value

    @field_validator("balances", mode="before")
    @classmethod
    def _coerce_balances(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [int(item) if isinstance(item, str) else item for item in value]
        return value

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            market_id=self.market_id,
            session_id=self.session_id,
            participants=tuple(self.participants),
            balances=tuple(self.balances),
            signatures=tuple(self.signatures),
            backend_signature=self.backend_signature,
            resolve_time=self.resolve_time,
        )


class EvmConfig(_CamelModel):
    market_address: str
    chain_selector_name: str
    gas_limit: int = 500_000

    @field_validator("gas_limit", mode="before")
    @classmethod
    def _coerce_gas_limit(cls, value: Any) -> Any:
        if isinstance(value, str):
            return int(value.strip())
        return value


class WorkflowConfig(_CamelModel):
    gpt_model: str | None = None
    llm_provider: str | None = None
    deepseek_api_key: str | None = None
    use_mock_ai: bool = False
    mock_ai_response: str | None = None
    cron_schedule: str = "*/15 * * * *"
    session_cron_schedule: str = "*/5 * * * *"
    market_factory_address: str | None = None
    cre_receiver_address: str | None = None
    creator_address: str | None = None
    settle_on_request: bool = True
    default_resolve_seconds: int = Field(default=24 * 60 * 60, gt=0)
    feeds: list[FeedConfig] = Field(default_factory=list)
    yellow_sessions: list[SessionConfig] = Field(default_factory=list)
    evms: list[EvmConfig] = Field(default_factory=list)


class CreateMarketPayload(_CamelModel):
    question: str | None = None


class LogTriggerPayload(BaseModel):
    """Raw EVM log forwarded by the host (hex-encoded topics and data)."""

    address: str | None = None
    topics: list[str]
    data: str = "0x"


class TriggerResult(BaseModel):
    trigger: str
    result: str
