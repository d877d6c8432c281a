"""Event schema shared by the event store, the reports and the warehouse.

One Event is one element of a day-file's JSON array. The serialized keys are
the on-disk format and must stay read-compatible across releases.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class EventType(str, Enum):
    IMPRESSION = "impression"
    CLICK = "click"
    INTERACTION = "interaction"


class Event(BaseModel):
    event: EventType
    # Older day-files tag events with "carousel_id"
    entity_id: str = Field(validation_alias=AliasChoices("entity_id", "carousel_id"))
    timestamp: int  # Unix seconds
    slide_index: int | None = None
    url: str | None = None
    interaction_type: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def impression(cls, entity_id: str, slide_index: int, timestamp: int) -> "Event":
        return cls(
            event=EventType.IMPRESSION,
            entity_id=entity_id,
            slide_index=slide_index,
            timestamp=timestamp,
        )

    @classmethod
    def click(
        cls, entity_id: str, slide_index: int, timestamp: int, url: str | None = None,
    ) -> "Event":
        return cls(
            event=EventType.CLICK,
            entity_id=entity_id,
            slide_index=slide_index,
            url=url,
            timestamp=timestamp,
        )

    @classmethod
    def interaction(
        cls,
        entity_id: str,
        interaction_type: str | None,
        timestamp: int,
        data: dict[str, Any] | None = None,
    ) -> "Event":
        return cls(
            event=EventType.INTERACTION,
            entity_id=entity_id,
            interaction_type=interaction_type,
            data=data or {},
            timestamp=timestamp,
        )

    @property
    def occurred_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    def to_record(self) -> dict:
        """Serialize to the day-file record layout."""
        record = self.model_dump(mode="json", exclude_none=True)
        if self.event is not EventType.INTERACTION:
            record.pop("data", None)
        if self.event is EventType.CLICK:
            record.setdefault("url", None)
        return record
