"""Chain-client and report-signer interfaces plus their web3 implementations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address
from loguru import logger
from web3 import Web3
from web3.exceptions import Web3Exception

from app.core.errors import ChainError

ON_REPORT_ABI = [
    {
        "name": "onReport",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "metadata", "type": "bytes"},
            {"name": "report", "type": "bytes"},
        ],
        "outputs": [],
    }
]


class TxStatus(str, Enum):
    SUCCESS = "SUCCESS"
    REVERTED = "REVERTED"
    FATAL = "FATAL"


@dataclass(frozen=True, slots=True)
class SignedReport:
    payload: bytes
    signature: bytes
    digest: bytes


@dataclass(frozen=True, slots=True)
class WriteResult:
    tx_status: TxStatus
    tx_hash: bytes | None = None
    error_message: str | None = None

    @property
    def tx_hash_hex(self) -> str:
        return "0x" + (self.tx_hash or bytes(32)).hex()


class ReportSigner(Protocol):
    def sign(self, payload: bytes) -> SignedReport:
        """Return the signed form of an encoded report."""


class ChainClient(Protocol):
    def call_contract(self, to: str, data: bytes) -> bytes:
        """Execute a read-only call and return the raw return data."""

    def write_report(self, receiver: str, report: SignedReport, gas_limit: int) -> WriteResult:
        """Deliver a signed report to ``receiver`` and report the transaction status."""


class EcdsaReportSigner:
    """Sign reports with a secp256k1 key (EIP-191 over the raw payload)."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, payload: bytes) -> SignedReport:
        signed = self._account.sign_message(encode_defunct(primitive=payload))
        return SignedReport(
            payload=payload,
            signature=bytes(signed.signature),
            digest=bytes(signed.message_hash),
        )


class Web3ChainClient:
    """JSON-RPC backed chain client; writes call ``onReport(bytes,bytes)`` on the receiver."""

    def __init__(
        self,
        w3: Web3,
        *,
        private_key: str | None = None,
        receipt_timeout: float = 180.0,
    ) -> None:
        self.w3 = w3
        self._account = Account.from_key(private_key) if private_key else None
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_rpc_url(cls, rpc_url: str, *, private_key: str | None = None) -> "Web3ChainClient":
        return cls(Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30})), private_key=private_key)

    def call_contract(self, to: str, data: bytes) -> bytes:
        try:
            result = self.w3.eth.call({"to": to_checksum_address(to), "data": "0x" + data.hex()})
        except (Web3Exception, ValueError) as exc:
            raise ChainError(f"eth_call to {to} failed: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            # HTTPProvider lets transport errors (connection refused, timeouts) through unwrapped.
            logger.exception("eth_call to {} failed at the transport", to)
            raise ChainError(f"eth_call to {to} failed: {exc}") from exc
        return bytes(result)

    def write_report(self, receiver: str, report: SignedReport, gas_limit: int) -> WriteResult:
        if self._account is None:
            raise ChainError("RELAYER_PRIVATE_KEY is required to write reports")
        sender = self._account.address
        try:
            contract = self.w3.eth.contract(address=to_checksum_address(receiver), abi=ON_REPORT_ABI)
            tx: dict[str, Any] = contract.functions.onReport(
                report.signature, report.payload
            ).build_transaction(
                {
                    "from": sender,
                    "nonce": self.w3.eth.get_transaction_count(sender),
                    "gas": gas_limit,
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except (Web3Exception, ValueError) as exc:
            logger.error("Report write to {} failed: {}", receiver, exc)
            return WriteResult(tx_status=TxStatus.FATAL, error_message=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Report write to {} failed at the transport", receiver)
            return WriteResult(tx_status=TxStatus.FATAL, error_message=str(exc))

        status = TxStatus.SUCCESS if receipt["status"] == 1 else TxStatus.REVERTED
        return WriteResult(tx_status=status, tx_hash=bytes(tx_hash))


__all__ = [
    "ChainClient",
    "EcdsaReportSigner",
    "ReportSigner",
    "SignedReport",
    "TxStatus",
    "Web3ChainClient",
    "WriteResult",
]
