"""Print the market inputs the feed cron would submit, without touching the chain."""

import argparse
import json
import time
from pathlib import Path

from loguru import logger

from app.core.config import get_settings, load_workflow_config
from app.core.errors import InputValidationError
from app.services.consensus import ConsensusAggregator
from ingestion.client import FeedHttpClient
from ingestion.normalize import build_market_input, validate_market_input
from ingestion.service import collect_feed_items


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Preview markets generated from the configured feeds")
    parser.add_argument("--config", type=Path, default=None, help="Workflow config JSON path")
    parser.add_argument(
        "--as-of",
        type=int,
        default=None,
        help="Unix timestamp used for resolve times (defaults to now)",
    )
    parser.add_argument("--feed", action="append", default=None, help="Only preview these feed ids")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = get_settings()
    config = load_workflow_config(args.config)
    as_of = args.as_of if args.as_of is not None else int(time.time())
    requested_by = config.creator_address or "0x" + "00" * 20

    feeds = [feed for feed in config.feeds if not args.feed or feed.id in args.feed]
    logger.info("Previewing {} feeds as of {}", len(feeds), as_of)

    aggregator = ConsensusAggregator(replicas=settings.consensus_replicas)
    with FeedHttpClient(aggregator=aggregator, timeout=settings.http_timeout_seconds) as http:
        collection = collect_feed_items(feeds, http=http, as_of=as_of)

    previews = []
    for item in collection.items:
        entry = {"feedId": item.feed_id, "question": item.question}
        try:
            market_input = build_market_input(item, requested_by)
            entry.update(
                resolveTime=market_input.resolve_time,
                category=market_input.category,
                source=market_input.source,
                externalId=market_input.external_id,
            )
            validate_market_input(market_input)
            entry["valid"] = True
        except InputValidationError as exc:
            entry.update(valid=False, reason=str(exc))
        previews.append(entry)

    print(json.dumps({"asOf": as_of, "items": previews, "skipped": collection.skipped}, indent=2))


if __name__ == "__main__":
    main()
