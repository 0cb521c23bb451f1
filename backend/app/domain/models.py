"""Typed domain representations handed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Literal

ZERO_ADDRESS = "0x" + "00" * 20
ZERO_BYTES32 = "0x" + "00" * 32
MAX_CONFIDENCE = 10_000

OutcomeLabel = Literal["YES", "NO"]


class Outcome(IntEnum):
    """On-chain outcome values understood by the market contract."""

    YES = 0
    NO = 1

    @classmethod
    def from_label(cls, label: str) -> "Outcome":
        return cls[label]


@dataclass(frozen=True, slots=True)
class FeedItem:
    """Candidate market question produced by one feed fetch."""

    feed_id: str
    question: str
    category: str
    resolve_time: int
    external_id: str
    source_url: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MarketInput:
    """Market creation request with its content-addressed dedup key."""

    question: str
    requested_by: str
    resolve_time: int
    category: str
    source: str
    external_id: str


@dataclass(frozen=True, slots=True)
class AIOutcome:
    result: OutcomeLabel
    confidence: int

    @property
    def outcome(self) -> Outcome:
        return Outcome.from_label(self.result)


@dataclass(frozen=True, slots=True)
class SettlementDecision:
    market_id: int
    outcome: Outcome
    confidence: int


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Off-chain session snapshot eligible for on-chain finalization."""

    market_id: int
    session_id: str
    participants: tuple[str, ...]
    balances: tuple[int, ...]
    signatures: tuple[str, ...]
    backend_signature: str
    resolve_time: int

    def __post_init__(self) -> None:
        if len(self.balances) != len(self.participants):
            raise ValueError(
                f"Session {self.session_id} has {len(self.balances)} balances for "
                f"{len(self.participants)} participants"
            )
        if len(self.signatures) != len(self.participants):
            raise ValueError(
                f"Session {self.session_id} has {len(self.signatures)} signatures for "
                f"{len(self.participants)} participants"
            )

    def is_due(self, as_of: int) -> bool:
        return self.resolve_time <= as_of


@dataclass(frozen=True, slots=True)
class MarketRecord:
    """Decoded ``getMarket`` result."""

    creator: str
    created_at: int
    settled_at: int
    settled: bool
    confidence: int
    outcome: int
    total_yes_pool: int
    total_no_pool: int
    question: str


@dataclass(frozen=True, slots=True)
class SettlementRequest:
    """Decoded ``SettlementRequested`` log."""

    market_id: int
    question: str
