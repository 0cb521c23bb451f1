"""Finalize off-chain payment sessions whose markets have reached resolve time."""

from __future__ import annotations

import argparse

from loguru import logger

from app.chain.reports import encode_session_finalization
from app.core.errors import InputValidationError, WorkflowError
from app.schemas import SessionConfig
from app.services.settlement import BatchItem, SubmissionTarget

from .context import WorkflowRuntime, add_runtime_arguments, runtime_from_args


def _session_builder(session: SessionConfig, target: SubmissionTarget):
    def _build() -> tuple[bytes, SubmissionTarget]:
        try:
            record = session.to_record()
        except ValueError as exc:
            raise InputValidationError(f"Session {session.session_id}: {exc}") from exc
        return encode_session_finalization(record), target

    return _build


def on_session_snapshot(runtime: WorkflowRuntime) -> str:
    sessions = runtime.config.yellow_sessions
    if not sessions:
        logger.info("[Sessions] No sessions configured.")
        return "No sessions"

    receiver = runtime.config.cre_receiver_address
    if not receiver:
        logger.warning("[Sessions] Missing creReceiverAddress in config.")
        return "Missing creReceiverAddress"

    try:
        evm = runtime.evm
        submitter = runtime.submitter
    except WorkflowError as exc:
        logger.error("[Sessions] {}", exc)
        return f"Error: {exc}"

    items: list[BatchItem] = []
    for session in sessions:
        if session.resolve_time > runtime.as_of:
            logger.debug(
                "[Sessions] Session {} resolves at {}; not due yet",
                session.session_id,
                session.resolve_time,
            )
            continue
        target = SubmissionTarget(
            receiver=receiver,
            gas_limit=evm.gas_limit,
            market_address=evm.market_address,
            market_id=session.market_id,
        )
        items.append(BatchItem(label=session.session_id, build=_session_builder(session, target)))

    if not items:
        logger.info("[Sessions] No sessions due at {}", runtime.as_of)
        return "Finalized 0 sessions"

    summary = submitter.submit_batch(items)
    for label, result in summary.results:
        logger.info("[Sessions] Session {}: {}", label, result.describe())
    return f"Finalized {summary.succeeded} sessions"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Finalize every configured session that is due")
    add_runtime_arguments(parser)
    return parser.parse_args()


def main() -> str:
    args = _parse_args()
    runtime = runtime_from_args(args)
    try:
        result = on_session_snapshot(runtime)
    finally:
        runtime.close()
    logger.info("Session finalization finished: {}", result)
    return result


if __name__ == "__main__":
    main()
