from __future__ import annotations

from eth_utils import is_address, keccak

from app.core.errors import InputValidationError
from app.domain import ZERO_ADDRESS, ZERO_BYTES32, FeedItem, MarketInput
from app.schemas import NEWS_FEED, PRICE_FEED, TREND_FEED, FeedConfig

MIN_QUESTION_LEN = 10
MAX_QUESTION_LEN = 200

# Kinds whose source falls back to a well-known public endpoint.
_DEFAULT_URL_KINDS = frozenset({PRICE_FEED, NEWS_FEED, TREND_FEED})


def validate_feed_config(feed: FeedConfig) -> None:
    if not feed.id or not feed.kind:
        raise InputValidationError("Feed config missing id or type")
    if not feed.mock and not feed.url and feed.kind not in _DEFAULT_URL_KINDS:
        raise InputValidationError(f"Feed {feed.id} missing url")


def validate_feed_item(item: FeedItem) -> None:
    if not item.question or len(item.question) < MIN_QUESTION_LEN:
        raise InputValidationError(f"Invalid question length for feed {item.feed_id}")
    if len(item.question) > MAX_QUESTION_LEN:
        raise InputValidationError(f"Question too long for feed {item.feed_id}")
    if not item.category:
        raise InputValidationError(f"Missing category for feed {item.feed_id}")
    if not item.resolve_time or item.resolve_time <= 0:
        raise InputValidationError(f"Invalid resolve time for feed {item.feed_id}")


def compute_external_id(feed_id: str, raw_external_id: str, resolve_time: int) -> str:
    """Return the bytes32 dedup key the market factory uses to reject duplicates."""

    digest = keccak(text=f"{feed_id}:{raw_external_id}:{resolve_time}")
    return "0x" + digest.hex()


def build_market_input(item: FeedItem, requested_by: str) -> MarketInput:
    validate_feed_item(item)
    return MarketInput(
        question=item.question,
        requested_by=requested_by,
        resolve_time=item.resolve_time,
        category=item.category,
        source=item.source_url or "unknown",
        external_id=compute_external_id(item.feed_id, item.external_id, item.resolve_time),
    )


def validate_market_input(market_input: MarketInput) -> None:
    requested_by = market_input.requested_by
    if not requested_by or requested_by.lower() == ZERO_ADDRESS:
        raise InputValidationError("Missing requestedBy address")
    if not is_address(requested_by):
        raise InputValidationError(f"Invalid requestedBy address {requested_by}")
    if not market_input.external_id or market_input.external_id.lower() == ZERO_BYTES32:
        raise InputValidationError("Missing externalId")
    if not market_input.category:
        raise InputValidationError("Missing category")
    if not market_input.source:
        raise InputValidationError("Missing source")
    validate_feed_item(
        FeedItem(
            feed_id="market-input",
            question=market_input.question,
            category=market_input.category,
            resolve_time=market_input.resolve_time,
            external_id=market_input.external_id,
            source_url=market_input.source,
        )
    )


__all__ = [
    "MAX_QUESTION_LEN",
    "MIN_QUESTION_LEN",
    "build_market_input",
    "compute_external_id",
    "validate_feed_config",
    "validate_feed_item",
    "validate_market_input",
]
