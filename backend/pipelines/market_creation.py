"""Market creation handlers: the feed cron and the manual HTTP request."""

from __future__ import annotations

import argparse
from typing import Any, Iterable, Mapping

from loguru import logger
from pydantic import ValidationError

from app.chain.reports import encode_market_creation
from app.core.errors import ConfigurationError, InputValidationError, WorkflowError
from app.domain import MarketInput
from app.schemas import CreateMarketPayload
from app.services.settlement import BatchItem, SubmissionTarget
from ingestion.normalize import build_market_input, compute_external_id, validate_market_input
from ingestion.service import collect_feed_items

from .context import WorkflowRuntime, add_runtime_arguments, runtime_from_args

MANUAL_CATEGORY = "manual"
MANUAL_SOURCE = "http"


def on_schedule_trigger(runtime: WorkflowRuntime) -> str:
    config = runtime.config
    if not config.feeds:
        logger.info("[Cron] No feeds configured.")
        return "No feeds"

    requested_by = config.creator_address
    if not requested_by:
        logger.warning("[Cron] Missing creatorAddress in config, skipping.")
        return "Missing creatorAddress"

    collection = collect_feed_items(config.feeds, http=runtime.http, as_of=runtime.as_of)
    if not collection.items:
        logger.info("[Cron] No feed items generated.")
        return "No items"

    inputs: list[MarketInput] = []
    for item in collection.items:
        try:
            inputs.append(build_market_input(item, requested_by))
        except InputValidationError as exc:
            logger.warning("[Cron] Feed item from {} dropped: {}", item.feed_id, exc)
    return create_markets(runtime, inputs)


def create_markets(runtime: WorkflowRuntime, inputs: Iterable[MarketInput]) -> str:
    factory_address = runtime.config.market_factory_address
    if not factory_address:
        logger.warning("[Cron] Missing marketFactoryAddress in config.")
        return "Missing marketFactoryAddress"

    try:
        gas_limit = runtime.evm.gas_limit
        submitter = runtime.submitter
    except WorkflowError as exc:
        logger.error("[Cron] {}", exc)
        return f"Error: {exc}"

    def _builder(market_input: MarketInput):
        def _build() -> tuple[bytes, SubmissionTarget]:
            validate_market_input(market_input)
            report = encode_market_creation(market_input)
            return report, SubmissionTarget(receiver=factory_address, gas_limit=gas_limit)

        return _build

    items = [
        BatchItem(label=market_input.external_id, build=_builder(market_input))
        for market_input in inputs
    ]
    summary = submitter.submit_batch(items)
    for label, result in summary.results:
        logger.info("[Cron] Market {}: {}", label, result.describe())
    return f"Created {summary.succeeded} markets"


def build_manual_market_input(runtime: WorkflowRuntime, question: str) -> MarketInput:
    requested_by = runtime.config.creator_address
    if not requested_by:
        raise ConfigurationError("Missing creatorAddress")
    resolve_time = runtime.as_of + runtime.config.default_resolve_seconds
    return MarketInput(
        question=question,
        requested_by=requested_by,
        resolve_time=resolve_time,
        category=MANUAL_CATEGORY,
        source=MANUAL_SOURCE,
        external_id=compute_external_id(MANUAL_SOURCE, question, resolve_time),
    )


def _is_empty(payload: Any) -> bool:
    if payload is None:
        return True
    if isinstance(payload, (bytes, bytearray, str)):
        return not payload.strip()
    return False


def on_http_trigger(runtime: WorkflowRuntime, payload: bytes | str | Mapping[str, Any] | None) -> str:
    logger.info("[HTTP] Create market request received")
    if _is_empty(payload):
        logger.error("[HTTP] Empty request payload")
        return "Error: Empty Request"

    try:
        if isinstance(payload, Mapping):
            request = CreateMarketPayload.model_validate(payload)
        else:
            request = CreateMarketPayload.model_validate_json(payload)
    except ValidationError as exc:
        logger.error("[HTTP] Invalid request payload: {}", exc)
        return "Error: Invalid request payload"

    question = (request.question or "").strip()
    logger.info("[HTTP] Received market question: {!r}", question)
    if not question:
        logger.error("[HTTP] Question is required")
        return "Error: Question is required"

    try:
        factory_address = runtime.config.market_factory_address
        if not factory_address:
            raise ConfigurationError("Missing marketFactoryAddress")
        market_input = build_manual_market_input(runtime, question)
        validate_market_input(market_input)
        report = encode_market_creation(market_input)
        target = SubmissionTarget(receiver=factory_address, gas_limit=runtime.evm.gas_limit)
        result = runtime.submitter.submit(report, target)
    except WorkflowError as exc:
        logger.error("[HTTP] {}", exc)
        return f"Error: {exc}"
    return result.describe()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run market creation once, from the configured feeds or a single question",
    )
    parser.add_argument(
        "--question",
        default=None,
        help="Create one manual market instead of polling the feeds",
    )
    add_runtime_arguments(parser)
    return parser.parse_args()


def main() -> str:
    args = _parse_args()
    runtime = runtime_from_args(args)
    try:
        if args.question is not None:
            result = on_http_trigger(runtime, {"question": args.question})
        else:
            result = on_schedule_trigger(runtime)
    finally:
        runtime.close()
    logger.info("Market creation finished: {}", result)
    return result


if __name__ == "__main__":
    main()
