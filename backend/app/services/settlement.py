"""Exactly-once submission of signed reports.

Every decision follows the same path: optionally read the market and stop if
it is already settled, otherwise sign and write the report once and classify
the returned transaction status. There is no retry inside an invocation; the
next trigger firing is the retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from loguru import logger

from app.chain.abi import decode_market, encode_get_market_call
from app.chain.client import ChainClient, ReportSigner, TxStatus
from app.core.errors import WorkflowError
from app.domain import MarketRecord

ALREADY_SETTLED = "already settled"


class SubmissionStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    status: SubmissionStatus
    tx_hash: str | None = None
    reason: str | None = None

    @classmethod
    def success(cls, tx_hash: str) -> "SubmissionResult":
        return cls(status=SubmissionStatus.SUCCESS, tx_hash=tx_hash)

    @classmethod
    def skipped(cls, reason: str) -> "SubmissionResult":
        return cls(status=SubmissionStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "SubmissionResult":
        return cls(status=SubmissionStatus.FAILED, reason=reason)

    def describe(self) -> str:
        if self.status is SubmissionStatus.SUCCESS:
            return self.tx_hash or ""
        if self.status is SubmissionStatus.SKIPPED:
            return f"Skipped: {self.reason}"
        return f"Error: {self.reason}"


@dataclass(frozen=True, slots=True)
class SubmissionTarget:
    receiver: str
    gas_limit: int
    market_address: str | None = None
    market_id: int | None = None

    @property
    def checks_state(self) -> bool:
        return self.market_address is not None and self.market_id is not None


@dataclass(frozen=True, slots=True)
class BatchItem:
    """One unit of a batch; ``build`` validates and encodes lazily so its errors stay local."""

    label: str
    build: Callable[[], tuple[bytes, SubmissionTarget]]


@dataclass(slots=True)
class BatchSummary:
    results: list[tuple[str, SubmissionResult]] = field(default_factory=list)

    def _count(self, status: SubmissionStatus) -> int:
        return sum(1 for _, result in self.results if result.status is status)

    @property
    def succeeded(self) -> int:
        return self._count(SubmissionStatus.SUCCESS)

    @property
    def skipped(self) -> int:
        return self._count(SubmissionStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(SubmissionStatus.FAILED)

    @property
    def tx_hashes(self) -> list[str]:
        return [
            result.tx_hash
            for _, result in self.results
            if result.status is SubmissionStatus.SUCCESS and result.tx_hash
        ]


class SettlementSubmitter:
    def __init__(self, chain: ChainClient, signer: ReportSigner) -> None:
        self.chain = chain
        self.signer = signer

    def read_market(self, market_address: str, market_id: int) -> MarketRecord:
        data = self.chain.call_contract(market_address, encode_get_market_call(market_id))
        return decode_market(data)

    def submit(self, report: bytes, target: SubmissionTarget) -> SubmissionResult:
        if target.checks_state:
            market = self.read_market(target.market_address, target.market_id)  # type: ignore[arg-type]
            if market.settled:
                logger.info("Market #{} is already settled; skipping write", target.market_id)
                return SubmissionResult.skipped(ALREADY_SETTLED)

        signed = self.signer.sign(report)
        logger.info("Writing report opcode=0x{:02x} to {}", report[0], target.receiver)
        write = self.chain.write_report(target.receiver, signed, target.gas_limit)
        if write.tx_status is TxStatus.SUCCESS:
            tx_hash = write.tx_hash_hex
            logger.info("Transaction successful: {}", tx_hash)
            return SubmissionResult.success(tx_hash)

        reason = f"Transaction failed with status: {write.tx_status.value}"
        if write.error_message:
            reason = f"{reason} ({write.error_message})"
        logger.error(reason)
        return SubmissionResult.failed(reason)

    def submit_batch(self, items: Iterable[BatchItem]) -> BatchSummary:
        summary = BatchSummary()
        for item in items:
            try:
                report, target = item.build()
                result = self.submit(report, target)
            except WorkflowError as exc:
                logger.warning("Batch item {} failed: {}", item.label, exc)
                result = SubmissionResult.failed(str(exc))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected error in batch item {}", item.label)
                result = SubmissionResult.failed(str(exc))
            summary.results.append((item.label, result))
        logger.info(
            "Batch finished: {} succeeded, {} skipped, {} failed",
            summary.succeeded,
            summary.skipped,
            summary.failed,
        )
        return summary


__all__ = [
    "ALREADY_SETTLED",
    "BatchItem",
    "BatchSummary",
    "SettlementSubmitter",
    "SubmissionResult",
    "SubmissionStatus",
    "SubmissionTarget",
]
