from __future__ import annotations

from dataclasses import replace

import pytest

from app.core.errors import InputValidationError
from app.domain import ZERO_ADDRESS, FeedItem
from app.schemas import FeedConfig
from ingestion.normalize import (
    MAX_QUESTION_LEN,
    build_market_input,
    compute_external_id,
    validate_feed_config,
    validate_feed_item,
    validate_market_input,
)

CREATOR = "0x" + "11" * 20


def _item(**overrides) -> FeedItem:
    base = FeedItem(
        feed_id="btc",
        question="Will bitcoin price be above 31500 usd within 24 hours?",
        category="crypto",
        resolve_time=1_700_086_400,
        external_id="btc:bitcoin:31500",
        source_url="https://api.coingecko.com",
    )
    return replace(base, **overrides)


def test_build_market_input_hashes_external_id():
    market_input = build_market_input(_item(), CREATOR)

    assert market_input.requested_by == CREATOR
    assert market_input.source == "https://api.coingecko.com"
    assert market_input.external_id == compute_external_id("btc", "btc:bitcoin:31500", 1_700_086_400)
    assert len(market_input.external_id) == 66
    validate_market_input(market_input)


def test_external_id_is_stable_and_sensitive_to_resolve_time():
    first = compute_external_id("btc", "raw", 100)
    assert first == compute_external_id("btc", "raw", 100)
    assert first != compute_external_id("btc", "raw", 101)
    assert first != compute_external_id("eth", "raw", 100)


def test_missing_source_defaults_to_unknown():
    assert build_market_input(_item(source_url=None), CREATOR).source == "unknown"


@pytest.mark.parametrize(
    "overrides",
    [
        {"question": "Too short"},
        {"question": "x" * (MAX_QUESTION_LEN + 1)},
        {"category": ""},
        {"resolve_time": 0},
    ],
)
def test_validate_feed_item_rejects_bad_items(overrides):
    with pytest.raises(InputValidationError):
        validate_feed_item(_item(**overrides))


def test_question_length_bounds_are_inclusive():
    validate_feed_item(_item(question="x" * 10))
    validate_feed_item(_item(question="x" * MAX_QUESTION_LEN))


@pytest.mark.parametrize("requested_by", ["", ZERO_ADDRESS, "0x1234"])
def test_validate_market_input_rejects_bad_requester(requested_by):
    market_input = replace(build_market_input(_item(), CREATOR), requested_by=requested_by)
    with pytest.raises(InputValidationError):
        validate_market_input(market_input)


def test_validate_market_input_rejects_zero_external_id():
    market_input = replace(build_market_input(_item(), CREATOR), external_id="0x" + "00" * 32)
    with pytest.raises(InputValidationError, match="externalId"):
        validate_market_input(market_input)


def test_validate_feed_config_requires_url_for_live_feeds():
    """Only kinds without a default endpoint need an explicit url."""
    validate_feed_config(FeedConfig.model_validate({"id": "btc", "type": "priceFeed"}))
    validate_feed_config(FeedConfig.model_validate({"id": "n", "type": "newsFeed"}))
    validate_feed_config(FeedConfig.model_validate({"id": "t", "type": "trendFeed"}))
    validate_feed_config(FeedConfig.model_validate({"id": "c", "type": "customFeed", "mock": True}))
    with pytest.raises(InputValidationError, match="missing url"):
        validate_feed_config(FeedConfig.model_validate({"id": "c", "type": "customFeed"}))
    with pytest.raises(InputValidationError):
        validate_feed_config(FeedConfig.model_validate({"type": "newsFeed"}))
