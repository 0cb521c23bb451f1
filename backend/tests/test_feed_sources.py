from __future__ import annotations

import httpx
import pytest

from app.core.errors import FeedError
from app.schemas import FeedConfig
from app.services.consensus import ConsensusAggregator
from ingestion.client import FeedHttpClient
from ingestion.service import collect_feed_items
from ingestion.sources import fetch_feed, fetch_price_feed, render_template

AS_OF = 1_700_000_000


def _client(handler, replicas: int = 3) -> FeedHttpClient:
    return FeedHttpClient(
        aggregator=ConsensusAggregator(replicas=replicas),
        transport=httpx.MockTransport(handler),
    )


def _offline_client() -> FeedHttpClient:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    return _client(_handler)


def test_mock_price_feed_builds_deterministic_question():
    feed = FeedConfig.model_validate(
        {"id": "btc", "type": "priceFeed", "mock": True, "mockValue": 30000}
    )
    with _offline_client() as http:
        items = fetch_price_feed(feed, http=http, as_of=AS_OF)
        again = fetch_price_feed(feed, http=http, as_of=AS_OF)

    assert items == again
    (item,) = items
    assert item.question == "Will bitcoin price be above 31500 usd within 24 hours?"
    assert item.category == "crypto"
    assert item.resolve_time == AS_OF + 86400
    assert item.external_id == "btc:bitcoin:31500"


def test_price_feed_reads_value_from_response():
    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["ids"] == "ethereum"
        return httpx.Response(200, json={"ethereum": {"eur": 2000}})

    feed = FeedConfig.model_validate(
        {
            "id": "eth",
            "type": "coinGecko",
            "coinId": "ethereum",
            "vsCurrency": "eur",
            "multiplier": 1.1,
            "questionTemplate": "Will ETH close above {{value}} EUR?",
        }
    )
    with _client(_handler) as http:
        (item,) = fetch_price_feed(feed, http=http, as_of=AS_OF)

    assert item.question == "Will ETH close above 2200 EUR?"


def test_custom_feed_renders_value_at_path():
    requests = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"data": {"rate": 5.25}})

    feed = FeedConfig.model_validate(
        {
            "id": "rates",
            "type": "customFeed",
            "url": "https://example.com/rates",
            "valuePath": "data.rate",
            "questionTemplate": "Will the policy rate stay at {{value}} percent?",
            "category": "macro",
            "resolveSeconds": 3600,
        }
    )
    with _client(_handler) as http:
        (item,) = fetch_feed(feed, http=http, as_of=AS_OF)

    assert item.question == "Will the policy rate stay at 5.25 percent?"
    assert item.external_id == "rates:5.25"
    assert item.resolve_time == AS_OF + 3600
    assert item.source_url == "https://example.com/rates"
    assert len(requests) == 3


def test_feed_cache_shares_response_across_replicas():
    requests = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"items": [{"full_name": "octo/widgets"}]})

    feed = FeedConfig.model_validate(
        {
            "id": "repos",
            "type": "trendFeed",
            "url": "https://example.com/search",
            "cacheSeconds": 30,
        }
    )
    with _client(_handler) as http:
        (item,) = fetch_feed(feed, http=http, as_of=AS_OF)

    assert item.question == "Will octo/widgets gain 1000 stars in 7 days?"
    assert len(requests) == 1


def test_non_success_status_raises_feed_error():
    feed = FeedConfig.model_validate(
        {"id": "news", "type": "newsFeed", "url": "https://example.com/news"}
    )
    with _client(lambda request: httpx.Response(503, text="busy")) as http:
        with pytest.raises(FeedError, match="HTTP error 503"):
            fetch_feed(feed, http=http, as_of=AS_OF)


def test_missing_value_raises_feed_error():
    feed = FeedConfig.model_validate(
        {"id": "news", "type": "newsFeed", "url": "https://example.com/news"}
    )
    with _client(lambda request: httpx.Response(200, json={"articles": []})) as http:
        with pytest.raises(FeedError, match="no value"):
            fetch_feed(feed, http=http, as_of=AS_OF)


def test_unknown_feed_kind_yields_nothing():
    feed = FeedConfig.model_validate({"id": "x", "type": "weather", "mock": True})
    with _offline_client() as http:
        assert fetch_feed(feed, http=http, as_of=AS_OF) == []


def test_collect_feed_items_isolates_failing_feed():
    feeds = [
        FeedConfig.model_validate({"id": "broken", "type": "customFeed"}),
        FeedConfig.model_validate({"id": "btc", "type": "priceFeed", "mock": True}),
    ]
    with _offline_client() as http:
        collection = collect_feed_items(feeds, http=http, as_of=AS_OF)

    assert [item.feed_id for item in collection.items] == ["btc"]
    assert "broken" in collection.skipped


def test_collect_feed_items_uses_default_news_endpoint():
    """A live news feed without a url is fetched from NewsAPI top headlines."""
    requested = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url)
        return httpx.Response(200, json={"articles": [{"title": "Rates hold steady"}]})

    feeds = [FeedConfig.model_validate({"id": "news", "type": "newsFeed"})]
    with _client(_handler) as http:
        collection = collect_feed_items(feeds, http=http, as_of=AS_OF)

    assert collection.skipped == {}
    (item,) = collection.items
    assert item.question == 'Will "Rates hold steady" still lead the headlines in 24 hours?'
    assert requested[0].host == "newsapi.org"
    assert requested[0].path == "/v2/top-headlines"


def test_render_template_substitutes_first_placeholder_only():
    assert render_template("{{value}} and {{value}}", 3.0) == "3 and {{value}}"
