from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from app.chain.abi import GET_MARKET_SELECTOR, MARKET_TUPLE_TYPE
from app.chain.client import SignedReport, TxStatus, WriteResult
from app.core.config import Settings
from app.schemas import WorkflowConfig
from pipelines.context import build_runtime

AS_OF = 1_700_000_000
CREATOR = "0x" + "11" * 20
FACTORY = "0x" + "22" * 20
MARKET = "0x" + "33" * 20
RECEIVER = "0x" + "44" * 20
ALICE = "0x" + "55" * 20
BOB = "0x" + "66" * 20
PRIVATE_KEY = "0x" + "4c" * 32
TX_HASH = b"\xab" * 32


def encoded_market(settled: bool = False, question: str = "Will it rain tomorrow?") -> bytes:
    """ABI-encode a ``getMarket`` return value."""
    market = (to_checksum_address(CREATOR), AS_OF - 3600, 0, settled, 0, 0, 0, 0, question)
    return encode([MARKET_TUPLE_TYPE], [market])


def mock_w3(receipt_status: int = 1) -> MagicMock:
    """A ``Web3`` stand-in whose onReport transaction signs and mines with ``receipt_status``."""
    w3 = MagicMock()
    on_report = w3.eth.contract.return_value.functions.onReport
    on_report.return_value.build_transaction.return_value = {
        "to": to_checksum_address(RECEIVER),
        "data": "0x",
        "value": 0,
        "gas": 500_000,
        "gasPrice": 1_000_000_000,
        "nonce": 0,
        "chainId": 11155111,
    }
    w3.eth.get_transaction_count.return_value = 0
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {"status": receipt_status}
    return w3


class FakeChain:
    """In-memory chain client: ``settled`` tracks market state, ``writes`` records reports."""

    def __init__(self, tx_status: TxStatus = TxStatus.SUCCESS) -> None:
        self.settled: dict[int, bool] = {}
        self.questions: dict[int, str] = {}
        self.tx_status = tx_status
        self.reads: list[tuple[str, int]] = []
        self.writes: list[tuple[str, SignedReport, int]] = []

    def call_contract(self, to: str, data: bytes) -> bytes:
        assert data[:4] == GET_MARKET_SELECTOR
        market_id = int.from_bytes(data[4:36], "big")
        self.reads.append((to, market_id))
        return encoded_market(
            self.settled.get(market_id, False),
            self.questions.get(market_id, "Will it rain tomorrow?"),
        )

    def write_report(self, receiver: str, report: SignedReport, gas_limit: int) -> WriteResult:
        self.writes.append((receiver, report, gas_limit))
        if self.tx_status is not TxStatus.SUCCESS:
            return WriteResult(tx_status=self.tx_status, error_message="execution reverted")
        return WriteResult(tx_status=TxStatus.SUCCESS, tx_hash=bytes([len(self.writes)]) * 32)


class FakeSigner:
    def sign(self, payload: bytes) -> SignedReport:
        return SignedReport(payload=payload, signature=b"\x01" * 65, digest=keccak(payload))


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        consensus_replicas=3,
        ai_response_cache_seconds=60,
        openai_api_key=None,
        deepseek_api_key=None,
        chain_rpc_url=None,
        relayer_private_key=None,
        report_signing_key=None,
    )


@pytest.fixture
def workflow_payload() -> dict[str, object]:
    return {
        "useMockAi": True,
        "creatorAddress": CREATOR,
        "marketFactoryAddress": FACTORY,
        "creReceiverAddress": RECEIVER,
        "feeds": [
            {"id": "btc", "type": "coinGecko", "mock": True, "mockValue": 30000},
            {
                "id": "repos",
                "type": "githubTrends",
                "mock": True,
                "mockValue": "octo/widgets",
            },
        ],
        "yellowSessions": [],
        "evms": [
            {
                "marketAddress": MARKET,
                "chainSelectorName": "ethereum-testnet-sepolia",
                "gasLimit": "500000",
            }
        ],
    }


@pytest.fixture
def workflow_config(workflow_payload) -> WorkflowConfig:
    return WorkflowConfig.model_validate(workflow_payload)


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def fake_signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def runtime(test_settings, workflow_config, fake_chain, fake_signer):
    runtime = build_runtime(
        test_settings,
        workflow_config,
        as_of=AS_OF,
        chain=fake_chain,
        signer=fake_signer,
    )
    yield runtime
    runtime.close()
