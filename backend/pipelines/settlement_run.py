"""Settle a market when its contract emits ``SettlementRequested``."""

from __future__ import annotations

import argparse

from loguru import logger

from app.chain.abi import decode_settlement_requested
from app.chain.reports import encode_settlement
from app.core.errors import ConfigurationError, WorkflowError
from app.domain import SettlementDecision
from app.schemas import LogTriggerPayload
from app.services.settlement import SubmissionTarget

from .context import WorkflowRuntime, add_runtime_arguments, runtime_from_args


def settle_market(runtime: WorkflowRuntime, market_id: int, question: str) -> str:
    """Ask the oracle for a verdict and write the settlement report.

    The submitter re-reads the market right before writing, so a second
    delivery of the same request ends in a skip instead of a second write.
    """

    evm = runtime.evm
    logger.info("[Settle] Querying AI for market #{}: {!r}", market_id, question)
    verdict = runtime.oracle.ask(question)
    logger.info("[Settle] Verdict {} with confidence {}", verdict.result, verdict.confidence)

    decision = SettlementDecision(
        market_id=market_id,
        outcome=verdict.outcome,
        confidence=verdict.confidence,
    )
    report = encode_settlement(decision)
    target = SubmissionTarget(
        receiver=evm.market_address,
        gas_limit=evm.gas_limit,
        market_address=evm.market_address,
        market_id=market_id,
    )
    return runtime.submitter.submit(report, target).describe()


def on_log_trigger(runtime: WorkflowRuntime, log: LogTriggerPayload) -> str:
    logger.info("[Settle] SettlementRequested log received from {}", log.address or "<unknown>")
    try:
        request = decode_settlement_requested(log.topics, log.data)
        logger.info("[Settle] Market #{} question: {!r}", request.market_id, request.question)

        evm = runtime.evm
        market = runtime.submitter.read_market(evm.market_address, request.market_id)
        if market.settled:
            logger.info("[Settle] Market #{} already settled", request.market_id)
            return "Market already settled"

        if not runtime.config.settle_on_request:
            logger.info("[Settle] settleOnRequest is disabled; leaving market #{} open", request.market_id)
            return "Success"

        return settle_market(runtime, request.market_id, request.question)
    except WorkflowError as exc:
        logger.error("[Settle] {}", exc)
        return f"Error: {exc}"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Settle a single market outside the log trigger")
    parser.add_argument("--market-id", type=int, required=True, help="Market identifier on the contract")
    parser.add_argument(
        "--question",
        default=None,
        help="Question to ask the oracle (defaults to the question stored on-chain)",
    )
    add_runtime_arguments(parser)
    return parser.parse_args()


def main() -> str:
    args = _parse_args()
    runtime = runtime_from_args(args)
    try:
        evm = runtime.evm
        market = runtime.submitter.read_market(evm.market_address, args.market_id)
        if market.settled:
            result = "Market already settled"
        else:
            question = args.question or market.question
            if not question:
                raise ConfigurationError(f"Market #{args.market_id} has no question to settle")
            result = settle_market(runtime, args.market_id, question)
    finally:
        runtime.close()
    logger.info("Settlement finished: {}", result)
    return result


if __name__ == "__main__":
    main()
