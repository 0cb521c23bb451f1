"""Chain-facing codecs and client interfaces."""

from .client import ChainClient, ReportSigner, SignedReport, TxStatus, WriteResult
from .reports import decode_report, decode_settlement, encode_report

__all__ = [
    "ChainClient",
    "ReportSigner",
    "SignedReport",
    "TxStatus",
    "WriteResult",
    "decode_report",
    "decode_settlement",
    "encode_report",
]
