from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger

from app.core.errors import WorkflowError
from app.domain import FeedItem
from app.schemas import FeedConfig

from .client import FeedHttpClient
from .normalize import validate_feed_config
from .sources import fetch_feed


@dataclass(slots=True)
class FeedCollection:
    items: list[FeedItem] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


def collect_feed_items(
    feeds: Iterable[FeedConfig],
    *,
    http: FeedHttpClient,
    as_of: int,
) -> FeedCollection:
    """Fetch every configured feed, isolating failures to the feed that raised them."""

    collection = FeedCollection()
    for feed in feeds:
        label = feed.id or "<unnamed>"
        try:
            validate_feed_config(feed)
            items = fetch_feed(feed, http=http, as_of=as_of)
        except WorkflowError as exc:
            logger.warning("[Cron] Feed {} skipped: {}", label, exc)
            collection.skipped[label] = str(exc)
            continue
        collection.items.extend(items)
    logger.info(
        "[Cron] Collected {} feed items ({} feeds skipped)",
        len(collection.items),
        len(collection.skipped),
    )
    return collection


__all__ = ["FeedCollection", "collect_feed_items"]
