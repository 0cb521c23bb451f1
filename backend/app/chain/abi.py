"""ABI helpers for the market contract: reads and the settlement log."""

from __future__ import annotations

from typing import Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from app.core.errors import ChainError
from app.domain import MarketRecord, SettlementRequest

GET_MARKET_SIGNATURE = "getMarket(uint256)"
GET_MARKET_SELECTOR = keccak(text=GET_MARKET_SIGNATURE)[:4]
MARKET_TUPLE_TYPE = "(address,uint48,uint48,bool,uint16,uint8,uint256,uint256,string)"

SETTLEMENT_REQUESTED_SIGNATURE = "SettlementRequested(uint256,string)"
SETTLEMENT_REQUESTED_TOPIC = keccak(text=SETTLEMENT_REQUESTED_SIGNATURE)


def to_bytes(value: bytes | str) -> bytes:
    """Accept raw bytes or a ``0x``-prefixed hex string."""

    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value[:2].lower() == "0x" else value
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise ChainError(f"Invalid hex value: {value!r}") from exc


def encode_get_market_call(market_id: int) -> bytes:
    return GET_MARKET_SELECTOR + encode(["uint256"], [market_id])


def decode_market(data: bytes | str) -> MarketRecord:
    try:
        (market,) = decode([MARKET_TUPLE_TYPE], to_bytes(data))
    except (DecodingError, ValueError) as exc:
        raise ChainError(f"Failed to decode getMarket result: {exc}") from exc
    (
        creator,
        created_at,
        settled_at,
        settled,
        confidence,
        outcome,
        total_yes_pool,
        total_no_pool,
        question,
    ) = market
    return MarketRecord(
        creator=creator,
        created_at=created_at,
        settled_at=settled_at,
        settled=settled,
        confidence=confidence,
        outcome=outcome,
        total_yes_pool=total_yes_pool,
        total_no_pool=total_no_pool,
        question=question,
    )


def decode_settlement_requested(
    topics: Sequence[bytes | str],
    data: bytes | str,
) -> SettlementRequest:
    raw_topics = [to_bytes(topic) for topic in topics]
    if len(raw_topics) < 2:
        raise ChainError("SettlementRequested log is missing the indexed marketId topic")
    if raw_topics[0] != SETTLEMENT_REQUESTED_TOPIC:
        raise ChainError("Log topic does not match SettlementRequested(uint256,string)")
    try:
        (question,) = decode(["string"], to_bytes(data))
    except (DecodingError, ValueError) as exc:
        raise ChainError(f"Failed to decode SettlementRequested data: {exc}") from exc
    return SettlementRequest(
        market_id=int.from_bytes(raw_topics[1], "big"),
        question=question,
    )


__all__ = [
    "GET_MARKET_SELECTOR",
    "MARKET_TUPLE_TYPE",
    "SETTLEMENT_REQUESTED_SIGNATURE",
    "SETTLEMENT_REQUESTED_TOPIC",
    "decode_market",
    "decode_settlement_requested",
    "encode_get_market_call",
    "to_bytes",
]
