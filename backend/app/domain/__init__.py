"""Domain models shared by feed ingestion, oracle queries and report encoding."""

from .models import (
    MAX_CONFIDENCE,
    ZERO_ADDRESS,
    ZERO_BYTES32,
    AIOutcome,
    FeedItem,
    MarketInput,
    MarketRecord,
    Outcome,
    SessionRecord,
    SettlementDecision,
    SettlementRequest,
)

__all__ = [
    "AIOutcome",
    "FeedItem",
    "MAX_CONFIDENCE",
    "MarketInput",
    "MarketRecord",
    "Outcome",
    "SessionRecord",
    "SettlementDecision",
    "SettlementRequest",
    "ZERO_ADDRESS",
    "ZERO_BYTES32",
]
