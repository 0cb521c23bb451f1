"""Exception hierarchy shared by feed ingestion, oracle queries and chain writes."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for failures that terminate one unit of workflow work."""


class ConfigurationError(WorkflowError):
    """Raised when required workflow configuration is missing or invalid."""


class FeedError(WorkflowError):
    """Raised when a feed source returns a response that cannot be normalized."""


class InputValidationError(WorkflowError):
    """Raised when a feed item or market input violates its invariants."""


class AIUpstreamError(WorkflowError):
    """Raised when the completion endpoint answers with a non-success status."""

    def __init__(self, status_code: int, body: str, *, provider: str = "ai") -> None:
        self.status_code = status_code
        self.body = body
        self.provider = provider
        super().__init__(f"{provider} API error: {status_code} - {body}")


class AIResponseError(WorkflowError):
    """Raised when the completion envelope is missing its message content."""


class AIOutcomeError(WorkflowError):
    """Raised when the model output does not satisfy the outcome grammar."""


class ConsensusError(WorkflowError):
    """Raised when replicated executions fail to agree on an observed value."""


class ReportEncodingError(WorkflowError):
    """Raised when a decision cannot be projected into its binary report layout."""


class ChainError(WorkflowError):
    """Raised when a chain read or write cannot be completed or decoded."""


__all__ = [
    "AIOutcomeError",
    "AIResponseError",
    "AIUpstreamError",
    "ChainError",
    "ConfigurationError",
    "ConsensusError",
    "FeedError",
    "InputValidationError",
    "ReportEncodingError",
    "WorkflowError",
]
