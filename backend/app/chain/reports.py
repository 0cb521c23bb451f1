"""Binary report layouts consumed by the on-chain receiver.

A report is one opcode byte that selects the receiver's handler route,
followed by the ABI encoding of that route's fields. Encoders are pure
functions of the decision; replicas must produce identical bytes.
"""

from __future__ import annotations

from functools import singledispatch
from typing import Any, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import is_address, to_checksum_address

from app.core.errors import ReportEncodingError
from app.domain import MAX_CONFIDENCE, MarketInput, Outcome, SessionRecord, SettlementDecision

from .abi import to_bytes

OPCODE_SETTLEMENT = 0x01
OPCODE_MARKET_CREATION = 0x02
OPCODE_SESSION_FINALIZATION = 0x03

SETTLEMENT_TYPES = ("uint256", "uint8", "uint16")
MARKET_CREATION_TYPES = (
    "string",
    "address",
    "uint48",
    "string",
    "string",
    "bytes32",
    "bytes",
)
SESSION_FINALIZATION_TYPES = (
    "uint256",
    "bytes32",
    "address[]",
    "uint256[]",
    "bytes[]",
    "bytes",
)

REPORT_LAYOUTS: dict[int, tuple[str, ...]] = {
    OPCODE_SETTLEMENT: SETTLEMENT_TYPES,
    OPCODE_MARKET_CREATION: MARKET_CREATION_TYPES,
    OPCODE_SESSION_FINALIZATION: SESSION_FINALIZATION_TYPES,
}

_OPCODES = (OPCODE_SETTLEMENT, OPCODE_MARKET_CREATION, OPCODE_SESSION_FINALIZATION)
if len(set(_OPCODES)) != len(_OPCODES):
    raise RuntimeError("Report opcodes must be unique")


def _address(value: str, *, field: str) -> str:
    if not is_address(value):
        raise ReportEncodingError(f"{field} is not a valid address: {value!r}")
    return to_checksum_address(value)


def _bytes32(value: bytes | str, *, field: str) -> bytes:
    raw = to_bytes(value)
    if len(raw) != 32:
        raise ReportEncodingError(f"{field} must be 32 bytes, got {len(raw)}")
    return raw


def _pack(opcode: int, types: Sequence[str], values: Sequence[Any]) -> bytes:
    try:
        body = encode(list(types), list(values))
    except (EncodingError, TypeError, ValueError) as exc:
        raise ReportEncodingError(f"Failed to encode report 0x{opcode:02x}: {exc}") from exc
    return bytes([opcode]) + body


def encode_settlement(decision: SettlementDecision) -> bytes:
    if not 0 <= decision.confidence <= MAX_CONFIDENCE:
        raise ReportEncodingError(f"Confidence out of range: {decision.confidence}")
    return _pack(
        OPCODE_SETTLEMENT,
        SETTLEMENT_TYPES,
        [decision.market_id, int(decision.outcome), decision.confidence],
    )


def encode_market_creation(market_input: MarketInput, signature: bytes | str = b"") -> bytes:
    return _pack(
        OPCODE_MARKET_CREATION,
        MARKET_CREATION_TYPES,
        [
            market_input.question,
            _address(market_input.requested_by, field="requestedBy"),
            market_input.resolve_time,
            market_input.category,
            market_input.source,
            _bytes32(market_input.external_id, field="externalId"),
            to_bytes(signature),
        ],
    )


def encode_session_finalization(session: SessionRecord) -> bytes:
    return _pack(
        OPCODE_SESSION_FINALIZATION,
        SESSION_FINALIZATION_TYPES,
        [
            session.market_id,
            _bytes32(session.session_id, field="sessionId"),
            [_address(participant, field="participant") for participant in session.participants],
            list(session.balances),
            [to_bytes(signature) for signature in session.signatures],
            to_bytes(session.backend_signature),
        ],
    )


@singledispatch
def encode_report(decision: Any) -> bytes:
    raise ReportEncodingError(f"No report layout for {type(decision).__name__}")


encode_report.register(SettlementDecision, encode_settlement)
encode_report.register(MarketInput, encode_market_creation)
encode_report.register(SessionRecord, encode_session_finalization)


def decode_report(payload: bytes | str) -> tuple[int, tuple[Any, ...]]:
    """Split a report into its opcode and decoded field values."""

    raw = to_bytes(payload)
    if not raw:
        raise ReportEncodingError("Empty report payload")
    opcode = raw[0]
    types = REPORT_LAYOUTS.get(opcode)
    if types is None:
        raise ReportEncodingError(f"Unknown report opcode 0x{opcode:02x}")
    try:
        values = decode(list(types), raw[1:])
    except (DecodingError, ValueError) as exc:
        raise ReportEncodingError(f"Failed to decode report 0x{opcode:02x}: {exc}") from exc
    return opcode, tuple(values)


def decode_settlement(payload: bytes | str) -> SettlementDecision:
    opcode, (market_id, outcome, confidence) = decode_report(payload)
    if opcode != OPCODE_SETTLEMENT:
        raise ReportEncodingError(f"Expected settlement report, got opcode 0x{opcode:02x}")
    return SettlementDecision(
        market_id=market_id,
        outcome=Outcome(outcome),
        confidence=confidence,
    )


__all__ = [
    "OPCODE_MARKET_CREATION",
    "OPCODE_SESSION_FINALIZATION",
    "OPCODE_SETTLEMENT",
    "REPORT_LAYOUTS",
    "decode_report",
    "decode_settlement",
    "encode_market_creation",
    "encode_report",
    "encode_session_finalization",
    "encode_settlement",
]
