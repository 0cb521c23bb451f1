from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from app.chain.abi import SETTLEMENT_REQUESTED_TOPIC
from app.schemas import LogTriggerPayload, WorkflowConfig

from .context import WorkflowRuntime
from .market_creation import on_http_trigger, on_schedule_trigger
from .session_finalization import on_session_snapshot
from .settlement_run import on_log_trigger

CRON = "cron"
HTTP = "http"
LOG = "log"

LOG_CONFIDENCE_FINALIZED = "CONFIDENCE_LEVEL_FINALIZED"


@dataclass(frozen=True, slots=True)
class HandlerRegistration:
    """One trigger subscription and the handler it drives."""

    name: str
    trigger: str
    handler: Callable[..., str]
    options: dict[str, Any] = field(default_factory=dict)


def _run_schedule(runtime: WorkflowRuntime, payload: Any = None) -> str:
    return on_schedule_trigger(runtime)


def _run_http(runtime: WorkflowRuntime, payload: Any = None) -> str:
    return on_http_trigger(runtime, payload)


def _run_log(runtime: WorkflowRuntime, payload: Any = None) -> str:
    log = payload if isinstance(payload, LogTriggerPayload) else LogTriggerPayload.model_validate(payload or {})
    return on_log_trigger(runtime, log)


def _run_sessions(runtime: WorkflowRuntime, payload: Any = None) -> str:
    return on_session_snapshot(runtime)


def init_workflow(config: WorkflowConfig) -> list[HandlerRegistration]:
    market_address = config.evms[0].market_address if config.evms else None
    registrations = [
        HandlerRegistration(
            name="schedule",
            trigger=CRON,
            handler=_run_schedule,
            options={"schedule": config.cron_schedule},
        ),
        HandlerRegistration(name="http", trigger=HTTP, handler=_run_http),
        HandlerRegistration(
            name="log",
            trigger=LOG,
            handler=_run_log,
            options={
                "addresses": [market_address] if market_address else [],
                "topics": ["0x" + SETTLEMENT_REQUESTED_TOPIC.hex()],
                "confidence": LOG_CONFIDENCE_FINALIZED,
            },
        ),
        HandlerRegistration(
            name="sessions",
            trigger=CRON,
            handler=_run_sessions,
            options={"schedule": config.session_cron_schedule},
        ),
    ]
    logger.info(
        "Workflow initialised with handlers: {}",
        ", ".join(f"{reg.name}({reg.trigger})" for reg in registrations),
    )
    return registrations


def dispatch(name: str, runtime: WorkflowRuntime, payload: Any = None) -> str:
    for registration in init_workflow(runtime.config):
        if registration.name == name:
            logger.info("[{}] Dispatching run {}", registration.name, runtime.run_id)
            return registration.handler(runtime, payload)
    raise LookupError(f"Unknown handler '{name}'")


__all__ = [
    "CRON",
    "HTTP",
    "HandlerRegistration",
    "LOG",
    "LOG_CONFIDENCE_FINALIZED",
    "dispatch",
    "init_workflow",
]
