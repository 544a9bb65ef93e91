"""Time-ordering helpers shared by the timeline and snapshot code.

Timestamps arrive from the collect API as ISO-8601 strings. Everything that
orders records converts them to epoch milliseconds first; ``0`` means the
record has no usable timestamp and must be kept out of time-based views.
"""

import math
from datetime import datetime, timezone
from typing import Optional, Union

from crawlscope.core.models import CrawlRun, UrlCrawl

INVALID_EPOCH = 0.0


def to_epoch(value: Optional[str]) -> float:
    """Parse an ISO-8601 timestamp to epoch milliseconds.

    Args:
        value: Timestamp such as ``2024-05-01T10:00:00.000Z``. Naive
            timestamps are read as UTC.

    Returns:
        Milliseconds since the epoch, or ``0`` when the value is missing
        or cannot be parsed.
    """
    if not value or not isinstance(value, str):
        return INVALID_EPOCH

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return INVALID_EPOCH

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    try:
        ms = parsed.timestamp() * 1000
    except (OverflowError, OSError, ValueError):
        return INVALID_EPOCH

    return ms if math.isfinite(ms) else INVALID_EPOCH


def is_valid_epoch(ms: float) -> bool:
    return ms > 0


def run_position(run: CrawlRun) -> Optional[str]:
    """Timestamp that places a crawl run on the timeline."""
    return run.finished_at or run.started_at or run.created_at


def crawl_position(crawl: UrlCrawl) -> Optional[str]:
    """Timestamp that places a URL crawl on the timeline."""
    return crawl.crawled_at or crawl.finished_at or crawl.created_at


def run_epoch(run: CrawlRun) -> float:
    return to_epoch(run_position(run))


def crawl_epoch(crawl: UrlCrawl) -> float:
    return to_epoch(crawl_position(crawl))


def record_epoch(record: Union[CrawlRun, UrlCrawl]) -> float:
    if isinstance(record, CrawlRun):
        return run_epoch(record)
    return crawl_epoch(record)


def ascending_key(record: Union[CrawlRun, UrlCrawl]) -> tuple[float, str]:
    """Sort key for oldest-first ordering; equal epochs fall back to the id."""
    return (record_epoch(record), record.id)


def descending_key(record: Union[CrawlRun, UrlCrawl]) -> tuple[int, float, str]:
    """Sort key for newest-first ordering.

    Records without a valid epoch go last, ordered by id.
    """
    epoch = record_epoch(record)
    if not is_valid_epoch(epoch):
        return (1, 0.0, record.id)
    return (0, -epoch, record.id)


def format_epoch(ms: float) -> str:
    """Render epoch milliseconds for display."""
    if not is_valid_epoch(ms):
        return "-"
    moment = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")
