"""Consensus aggregation over replicated observations of external data.

Every value that crosses from the outside world into the workflow (a feed
response, an AI verdict) is observed by several independent executions. The
aggregator runs those executions and only releases a value once the configured
policy accepts the set of observations; any downstream side effect therefore
depends on an agreed fact rather than on one replica's view.
"""

from __future__ import annotations

import dataclasses
import enum
import json
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence, TypeVar

from loguru import logger

from app.core.errors import ConsensusError

T = TypeVar("T")


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            field.name: _to_jsonable(getattr(value, field.name))
            for field in dataclasses.fields(value)
        }
    if isinstance(value, enum.Enum):
        return _to_jsonable(value.value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, dict):
        return {str(key): _to_jsonable(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


def canonical_bytes(value: Any) -> bytes:
    """Serialize an observation into the byte string replicas must agree on."""

    serialized = json.dumps(
        _to_jsonable(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return serialized.encode("utf-8")


class AggregationPolicy(Protocol):
    """Strategy that folds replica observations into a single value."""

    name: str

    def aggregate(self, observations: Sequence[T]) -> T:
        """Return the agreed value or raise :class:`ConsensusError`."""


@dataclass(slots=True)
class IdenticalAggregation:
    """Accept only when every replica produced a byte-identical observation."""

    name: str = "identical"

    def aggregate(self, observations: Sequence[T]) -> T:
        if not observations:
            raise ConsensusError("No observations to aggregate")
        reference = canonical_bytes(observations[0])
        for index, observation in enumerate(observations[1:], start=1):
            if canonical_bytes(observation) != reference:
                raise ConsensusError(
                    f"Replica {index} diverged from replica 0 under identical aggregation"
                )
        return observations[0]


class ConsensusAggregator:
    """Run an observation once per replica and aggregate the results."""

    def __init__(self, policy: AggregationPolicy | None = None, *, replicas: int = 1) -> None:
        if replicas < 1:
            raise ValueError("replicas must be at least 1")
        self.policy = policy or IdenticalAggregation()
        self.replicas = replicas

    def aggregate(self, observations: Sequence[T]) -> T:
        """Aggregate observations collected elsewhere (e.g. from remote workers)."""

        return self.policy.aggregate(observations)

    def run(self, operation: Callable[[], T], *, label: str = "observation") -> T:
        observations: list[T] = []
        failures: list[Exception] = []
        for _ in range(self.replicas):
            try:
                observations.append(operation())
            except Exception as exc:  # noqa: BLE001 - classified below
                failures.append(exc)

        if failures and not observations:
            logger.warning(
                "Consensus step {} failed on all {} replicas: {}",
                label,
                self.replicas,
                failures[0],
            )
            raise failures[0]
        if failures:
            raise ConsensusError(
                f"Consensus step {label} diverged: {len(observations)} replicas succeeded, "
                f"{len(failures)} failed ({failures[0]})"
            )

        value = self.policy.aggregate(observations)
        logger.debug(
            "Consensus step {} agreed across {} replicas using {} policy",
            label,
            self.replicas,
            self.policy.name,
        )
        return value


__all__ = [
    "AggregationPolicy",
    "ConsensusAggregator",
    "IdenticalAggregation",
    "canonical_bytes",
]
