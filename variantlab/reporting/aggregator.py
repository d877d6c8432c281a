"""Per-entity reports computed from the event store.

A report is never stored: it is rebuilt on demand by scanning the day-files
that overlap the requested range. Day-files are coarser than the range, so
when either bound is given explicitly events are filtered a second time by
their exact Unix timestamp.
"""

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field

from variantlab.collector.schemas import Event, EventType
from variantlab.collector.sink import EventSource
from variantlab.collector.store import utc_now
from variantlab.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 30
DEFAULT_MAX_DAYS = 366


class Report(BaseModel):
    entity_id: str
    start: datetime
    end: datetime
    impressions: int = 0
    clicks: int = 0
    ctr: float = 0.0
    most_viewed_slide: int | None = None
    interaction_breakdown: dict[str, int] = Field(default_factory=dict)
    slide_impressions: dict[int, int] = Field(default_factory=dict)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def summarize(entity_id: str, events: list[Event], start: datetime, end: datetime) -> Report:
    """Reduce already-filtered events into a Report."""
    impressions = [e for e in events if e.event is EventType.IMPRESSION]
    clicks = sum(1 for e in events if e.event is EventType.CLICK)

    slide_impressions = Counter(e.slide_index for e in impressions if e.slide_index is not None)
    slide_impressions = dict(sorted(slide_impressions.items()))

    # Ascending index order, first maximum wins ties
    most_viewed = None
    for index, count in slide_impressions.items():
        if most_viewed is None or count > slide_impressions[most_viewed]:
            most_viewed = index

    breakdown = Counter(
        e.interaction_type or "unknown"
        for e in events if e.event is EventType.INTERACTION
    )

    total = len(impressions)
    return Report(
        entity_id=entity_id,
        start=start,
        end=end,
        impressions=total,
        clicks=clicks,
        ctr=round(clicks / total, 4) if total > 0 else 0.0,
        most_viewed_slide=most_viewed,
        interaction_breakdown=dict(breakdown),
        slide_impressions=slide_impressions,
    )


class ReportAggregator:
    def __init__(
        self,
        store: EventSource,
        clock: Callable[[], datetime] = utc_now,
        default_days: int = DEFAULT_RANGE_DAYS,
        max_days: int | None = DEFAULT_MAX_DAYS,
    ):
        self.store = store
        self.clock = clock
        self.default_days = default_days
        self.max_days = max_days

    def report(
        self,
        entity_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Report:
        """Summarize events for entity_id between start and end (inclusive).

        Omitted bounds default to now - default_days and now. Only bounds that
        were passed explicitly are applied at timestamp precision; an omitted
        bound only limits which day-files are read.
        """
        now = _as_utc(self.clock())
        range_start = _as_utc(start) if start is not None else now - timedelta(days=self.default_days)
        range_end = _as_utc(end) if end is not None else now
        if range_end < range_start:
            raise ConfigurationError("Report end must not be before its start")

        span = (range_end.date() - range_start.date()).days + 1
        if self.max_days is not None and span > self.max_days:
            raise ConfigurationError(
                f"Report range of {span} days exceeds the maximum of {self.max_days}"
            )

        events = [
            e for e in self.store.iter_events(range_start.date(), range_end.date())
            if e.entity_id == entity_id
        ]

        if start is not None or end is not None:
            lo = int(range_start.timestamp()) if start is not None else 0
            hi = int(range_end.timestamp()) if end is not None else None
            events = [
                e for e in events
                if e.timestamp >= lo and (hi is None or e.timestamp <= hi)
            ]

        logger.debug("Report for %s scanned %d days, %d matching events", entity_id, span, len(events))
        return summarize(entity_id, events, range_start, range_end)
