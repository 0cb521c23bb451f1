"""Feed source handlers, one per feed kind.

Each handler turns a :class:`FeedConfig` into zero or more :class:`FeedItem`
objects. Resolve times are derived from the shared ``as_of`` timestamp of the
trigger run, never from the local clock, so replicas build identical items.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable

from loguru import logger

from app.core.errors import FeedError
from app.domain import FeedItem
from app.schemas import CUSTOM_FEED, NEWS_FEED, PRICE_FEED, TREND_FEED, FeedConfig

from .client import FeedHttpClient, HttpRequest
from .json_path import MISSING, get_value_by_path

_DAY_SECONDS = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class _SourceDefaults:
    category: str
    resolve_seconds: int
    question_template: str
    value_path: str | None = None
    url: str | None = None
    mock_value: Any = None


_NEWS_DEFAULTS = _SourceDefaults(
    category="news",
    resolve_seconds=_DAY_SECONDS,
    question_template='Will "{{value}}" still lead the headlines in 24 hours?',
    value_path="articles.0.title",
    url="https://newsapi.org/v2/top-headlines?country=us&pageSize=1",
    mock_value="headline",
)
_TREND_DEFAULTS = _SourceDefaults(
    category="dev",
    resolve_seconds=7 * _DAY_SECONDS,
    question_template="Will {{value}} gain 1000 stars in 7 days?",
    value_path="items.0.full_name",
    url="https://api.github.com/search/repositories?q=stars:>50000&sort=stars&order=desc",
    mock_value="repo-name",
)
_CUSTOM_DEFAULTS = _SourceDefaults(
    category="custom",
    resolve_seconds=_DAY_SECONDS,
    question_template="Will the value be above {{value}}?",
    mock_value="N/A",
)


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    return str(value)


def render_template(template: str, value: Any) -> str:
    return template.replace("{{value}}", format_value(value), 1)


def round_half_up(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def _to_decimal(value: Any, *, label: str) -> Decimal:
    if isinstance(value, bool) or value is None or value is MISSING:
        raise FeedError(f"{label} is not numeric: {value!r}")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise FeedError(f"{label} is not numeric: {value!r}") from exc
    if not parsed.is_finite():
        raise FeedError(f"{label} is not finite: {value!r}")
    return parsed


def _resolve_hours(resolve_seconds: int) -> int:
    return int(math.floor(resolve_seconds / 3600 + 0.5))


def fetch_price_feed(feed: FeedConfig, *, http: FeedHttpClient, as_of: int) -> list[FeedItem]:
    coin_id = feed.coin_id or "bitcoin"
    vs_currency = feed.vs_currency or "usd"
    multiplier = Decimal(str(feed.multiplier if feed.multiplier is not None else 1.05))
    resolve_seconds = feed.resolve_seconds if feed.resolve_seconds is not None else _DAY_SECONDS
    category = feed.category or "crypto"
    url = feed.url or (
        f"https://api.coingecko.com/api/v3/simple/price?ids={coin_id}&vs_currencies={vs_currency}"
    )

    if feed.mock:
        observed = _to_decimal(
            feed.mock_value if feed.mock_value is not None else 30000,
            label=f"Mock value for feed {feed.id}",
        )
    else:
        payload = http.request_json(
            HttpRequest(
                url=url,
                method=feed.method,
                headers=dict(feed.headers),
                cache_max_age=feed.cache_seconds,
            )
        )
        value_path = feed.value_path or f"{coin_id}.{vs_currency}"
        observed = _to_decimal(
            get_value_by_path(payload, value_path),
            label=f"Price for path {value_path}",
        )

    target = round_half_up(observed * multiplier)
    if feed.question_template:
        question = render_template(feed.question_template, target)
    else:
        question = (
            f"Will {coin_id} price be above {target} {vs_currency} "
            f"within {_resolve_hours(resolve_seconds)} hours?"
        )
    return [
        FeedItem(
            feed_id=feed.id,
            question=question,
            category=category,
            resolve_time=as_of + resolve_seconds,
            external_id=f"{feed.id}:{coin_id}:{target}",
            source_url=url,
            metadata=dict(feed.metadata),
        )
    ]


def _fetch_templated_feed(
    feed: FeedConfig,
    defaults: _SourceDefaults,
    *,
    http: FeedHttpClient,
    as_of: int,
) -> list[FeedItem]:
    category = feed.category or defaults.category
    resolve_seconds = (
        feed.resolve_seconds if feed.resolve_seconds is not None else defaults.resolve_seconds
    )
    template = feed.question_template or defaults.question_template
    url = feed.url or defaults.url

    if feed.mock:
        value = feed.mock_value if feed.mock_value is not None else defaults.mock_value
        source_url = feed.url
    else:
        if not url:
            raise FeedError(f"Feed {feed.id} missing url")
        payload = http.request_json(
            HttpRequest(
                url=url,
                method=feed.method,
                headers=dict(feed.headers),
                body=feed.body,
                cache_max_age=feed.cache_seconds,
            )
        )
        value_path = feed.value_path or defaults.value_path
        value = get_value_by_path(payload, value_path)
        if value is MISSING or value is None:
            raise FeedError(f"Feed {feed.id} has no value at path {value_path}")
        source_url = url

    return [
        FeedItem(
            feed_id=feed.id,
            question=render_template(template, value),
            category=category,
            resolve_time=as_of + resolve_seconds,
            external_id=f"{feed.id}:{format_value(value)}",
            source_url=source_url,
            metadata=dict(feed.metadata),
        )
    ]


def fetch_news_feed(feed: FeedConfig, *, http: FeedHttpClient, as_of: int) -> list[FeedItem]:
    return _fetch_templated_feed(feed, _NEWS_DEFAULTS, http=http, as_of=as_of)


def fetch_trend_feed(feed: FeedConfig, *, http: FeedHttpClient, as_of: int) -> list[FeedItem]:
    return _fetch_templated_feed(feed, _TREND_DEFAULTS, http=http, as_of=as_of)


def fetch_custom_feed(feed: FeedConfig, *, http: FeedHttpClient, as_of: int) -> list[FeedItem]:
    return _fetch_templated_feed(feed, _CUSTOM_DEFAULTS, http=http, as_of=as_of)


FeedHandler = Callable[..., list[FeedItem]]

FEED_HANDLERS: dict[str, FeedHandler] = {
    PRICE_FEED: fetch_price_feed,
    NEWS_FEED: fetch_news_feed,
    TREND_FEED: fetch_trend_feed,
    CUSTOM_FEED: fetch_custom_feed,
}


def fetch_feed(feed: FeedConfig, *, http: FeedHttpClient, as_of: int) -> list[FeedItem]:
    handler = FEED_HANDLERS.get(feed.kind)
    if handler is None:
        logger.warning("Feed {} has unsupported kind {!r}; ignoring", feed.id, feed.kind)
        return []
    return handler(feed, http=http, as_of=as_of)


__all__ = [
    "FEED_HANDLERS",
    "fetch_custom_feed",
    "fetch_feed",
    "fetch_news_feed",
    "fetch_price_feed",
    "fetch_trend_feed",
    "format_value",
    "render_template",
    "round_half_up",
]
