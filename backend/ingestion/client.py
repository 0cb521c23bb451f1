from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from app.core.config import settings
from app.core.errors import FeedError
from app.services.consensus import ConsensusAggregator
from app.services.http_cache import ResponseCache, request_fingerprint


@dataclass(frozen=True, slots=True)
class HttpRequest:
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    cache_max_age: float = 0.0


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status_code: int
    body_text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        try:
            return json.loads(self.body_text)
        except json.JSONDecodeError as exc:
            raise FeedError(f"Response body is not valid JSON: {exc}") from exc


class FeedHttpClient:
    """Consensus-wrapped JSON requests against feed sources."""

    def __init__(
        self,
        *,
        aggregator: ConsensusAggregator | None = None,
        cache: ResponseCache[HttpResponse] | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout or settings.http_timeout_seconds
        self.aggregator = aggregator or ConsensusAggregator()
        self.cache = cache if cache is not None else ResponseCache()
        client_kwargs: dict[str, Any] = {"timeout": self.timeout}
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.Client(**client_kwargs)

    def send(self, request: HttpRequest) -> HttpResponse:
        """Perform one round trip; this is the unit each replica executes."""

        def _fetch() -> HttpResponse:
            logger.info("Feed {} {}", request.method, request.url)
            try:
                response = self.client.request(
                    request.method,
                    request.url,
                    headers=request.headers or None,
                    json=request.body,
                )
            except httpx.HTTPError as exc:
                raise FeedError(f"HTTP request to {request.url} failed: {exc}") from exc
            return HttpResponse(status_code=response.status_code, body_text=response.text)

        key = request_fingerprint(request.url, method=request.method, body=request.body)
        return self.cache.get_or_fetch(key, request.cache_max_age, _fetch)

    def request_json(self, request: HttpRequest) -> Any:
        """Fetch ``request`` on every replica, require agreement, and decode JSON."""

        def _observe() -> HttpResponse:
            response = self.send(request)
            if not response.ok:
                raise FeedError(f"HTTP error {response.status_code}: {response.body_text}")
            return response

        agreed = self.aggregator.run(_observe, label=f"http:{request.url}")
        return agreed.json()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "FeedHttpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["FeedHttpClient", "HttpRequest", "HttpResponse"]
