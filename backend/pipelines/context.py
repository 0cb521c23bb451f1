from __future__ import annotations

import argparse
import time
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

from app.chain.client import ChainClient, EcdsaReportSigner, ReportSigner, Web3ChainClient
from app.core.config import Settings, get_settings, load_workflow_config
from app.core.errors import ConfigurationError
from app.schemas import EvmConfig, WorkflowConfig
from app.services.consensus import ConsensusAggregator
from app.services.http_cache import ResponseCache
from app.services.llm import CompletionResponse
from app.services.oracle import AIOracleClient
from app.services.settlement import SettlementSubmitter
from ingestion.client import FeedHttpClient


@dataclass(slots=True)
class WorkflowRuntime:
    """Everything a trigger handler needs for one invocation.

    ``as_of`` is read once when the runtime is built and every handler uses it
    instead of the wall clock. Chain, signer and oracle are built on first use
    so handlers that stop early never need their credentials.
    """

    settings: Settings
    config: WorkflowConfig
    as_of: int
    http: FeedHttpClient
    aggregator: ConsensusAggregator
    ai_cache: ResponseCache[CompletionResponse] = field(default_factory=ResponseCache)
    run_id: str = field(default_factory=lambda: uuid4().hex[:12])
    chain_client: ChainClient | None = None
    report_signer: ReportSigner | None = None
    oracle_client: AIOracleClient | None = None

    @property
    def chain(self) -> ChainClient:
        if self.chain_client is None:
            if not self.settings.chain_rpc_url:
                raise ConfigurationError("CHAIN_RPC_URL is not configured")
            self.chain_client = Web3ChainClient.from_rpc_url(
                str(self.settings.chain_rpc_url),
                private_key=self.settings.relayer_private_key,
            )
        return self.chain_client

    @property
    def signer(self) -> ReportSigner:
        if self.report_signer is None:
            key = self.settings.resolved_signing_key
            if not key:
                raise ConfigurationError("REPORT_SIGNING_KEY is not configured")
            self.report_signer = EcdsaReportSigner(key)
        return self.report_signer

    @property
    def oracle(self) -> AIOracleClient:
        if self.oracle_client is None:
            self.oracle_client = AIOracleClient.from_config(
                self.settings,
                self.config,
                aggregator=self.aggregator,
                cache=self.ai_cache,
            )
        return self.oracle_client

    @property
    def submitter(self) -> SettlementSubmitter:
        return SettlementSubmitter(self.chain, self.signer)

    @property
    def evm(self) -> EvmConfig:
        if not self.config.evms:
            raise ConfigurationError("No evms entry configured")
        return self.config.evms[0]

    def close(self) -> None:
        self.http.close()


def build_runtime(
    settings: Settings | None = None,
    config: WorkflowConfig | None = None,
    *,
    as_of: int | None = None,
    chain: ChainClient | None = None,
    signer: ReportSigner | None = None,
    oracle: AIOracleClient | None = None,
    http: FeedHttpClient | None = None,
) -> WorkflowRuntime:
    settings = settings or get_settings()
    if config is None:
        config = load_workflow_config(settings.workflow_config_path)
    aggregator = ConsensusAggregator(replicas=settings.consensus_replicas)
    return WorkflowRuntime(
        settings=settings,
        config=config,
        as_of=int(time.time()) if as_of is None else as_of,
        http=http or FeedHttpClient(aggregator=aggregator, timeout=settings.http_timeout_seconds),
        aggregator=aggregator,
        chain_client=chain,
        report_signer=signer,
        oracle_client=oracle,
    )


def add_runtime_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Workflow config JSON (defaults to WORKFLOW_CONFIG_PATH)",
    )
    parser.add_argument(
        "--as-of",
        type=int,
        default=None,
        help="Unix timestamp to evaluate against instead of the current time",
    )
    return parser


def runtime_from_args(args: argparse.Namespace) -> WorkflowRuntime:
    settings = get_settings()
    config = load_workflow_config(args.config) if args.config else None
    return build_runtime(settings, config, as_of=args.as_of)


__all__ = ["WorkflowRuntime", "add_runtime_arguments", "build_runtime", "runtime_from_args"]
