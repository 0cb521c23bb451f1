from __future__ import annotations

from typing import Any, Iterator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from pipelines.context import WorkflowRuntime, build_runtime
from pipelines.market_creation import on_http_trigger, on_schedule_trigger
from pipelines.registry import init_workflow
from pipelines.session_finalization import on_session_snapshot
from pipelines.settlement_run import on_log_trigger

from . import schemas
from .core.config import get_settings, settings
from .core.errors import ConfigurationError
from .services.llm import available_providers

app = FastAPI(title="Market Workflow API", version="0.1.0", debug=settings.debug)


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _runtime() -> Iterator[WorkflowRuntime]:
    """Build a fresh runtime per trigger so every run sees one ``as_of`` value."""

    try:
        runtime = build_runtime(get_settings())
    except ConfigurationError as exc:
        logger.error("Unable to build workflow runtime: {}", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    try:
        yield runtime
    finally:
        runtime.close()


@app.get("/debug", tags=["system"])
def debug_info(runtime: WorkflowRuntime = Depends(_runtime)) -> dict[str, Any]:
    """Expose non-secret configuration to help diagnose trigger wiring."""

    config = runtime.config
    return {
        "environment": runtime.settings.environment,
        "llm_provider": config.llm_provider or runtime.settings.llm_default_provider,
        "llm_providers": list(available_providers()),
        "use_mock_ai": config.use_mock_ai,
        "consensus_replicas": runtime.settings.consensus_replicas,
        "chain_configured": bool(runtime.settings.chain_rpc_url),
        "signer_configured": bool(runtime.settings.resolved_signing_key),
        "market_factory_address": config.market_factory_address,
        "cre_receiver_address": config.cre_receiver_address,
        "creator_address": config.creator_address,
        "feeds": [{"id": feed.id, "kind": feed.kind} for feed in config.feeds],
        "sessions": len(config.yellow_sessions),
        "evms": [evm.model_dump(by_alias=True) for evm in config.evms],
        "handlers": [
            {"name": reg.name, "trigger": reg.trigger, **reg.options}
            for reg in init_workflow(config)
        ],
    }


@app.post("/triggers/http", response_model=schemas.TriggerResult, tags=["triggers"])
async def http_trigger(request: Request, runtime: WorkflowRuntime = Depends(_runtime)):
    """Create a market from a ``{"question": ...}`` body."""

    body = await request.body()
    result = await run_in_threadpool(on_http_trigger, runtime, body)
    return schemas.TriggerResult(trigger="http", result=result)


@app.post("/triggers/schedule", response_model=schemas.TriggerResult, tags=["triggers"])
def schedule_trigger(runtime: WorkflowRuntime = Depends(_runtime)):
    """Poll the configured feeds and create markets."""

    return schemas.TriggerResult(trigger="schedule", result=on_schedule_trigger(runtime))


@app.post("/triggers/sessions", response_model=schemas.TriggerResult, tags=["triggers"])
def sessions_trigger(runtime: WorkflowRuntime = Depends(_runtime)):
    """Finalize payment sessions that have reached their resolve time."""

    return schemas.TriggerResult(trigger="sessions", result=on_session_snapshot(runtime))


@app.post("/triggers/log", response_model=schemas.TriggerResult, tags=["triggers"])
def log_trigger(log: schemas.LogTriggerPayload, runtime: WorkflowRuntime = Depends(_runtime)):
    """Handle a forwarded ``SettlementRequested`` log."""

    return schemas.TriggerResult(trigger="log", result=on_log_trigger(runtime, log))
