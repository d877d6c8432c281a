"""The event sink interfaces that rendering code reports interactions to."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import date
from typing import Any, Protocol, runtime_checkable

from variantlab.collector.schemas import Event


class EventSink(ABC):
    """Records impression, click and custom interaction events.

    entity_id is the id of the rendered thing (e.g. a carousel) the event
    happened on; for experiments it is the selected variant's entity id.
    """

    @abstractmethod
    def track_impression(self, entity_id: str, slide_index: int) -> None:
        """Record that slide_index (0-based) of entity_id was displayed."""

    @abstractmethod
    def track_click(self, entity_id: str, slide_index: int, url: str | None = None) -> None:
        """Record a click on slide_index, optionally with the target url."""

    @abstractmethod
    def track_interaction(
        self,
        entity_id: str,
        interaction_type: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a custom interaction such as 'arrow_click', 'dot_click' or 'swipe'."""


@runtime_checkable
class EventSource(Protocol):
    """Anything that can replay recorded events; reports are built from these."""

    def iter_events(self, first_day: date, last_day: date) -> Iterator[Event]:
        """Events whose UTC day falls in [first_day, last_day], oldest day first."""
