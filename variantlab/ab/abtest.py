"""Per-request A/B test handle.

Wraps one experiment and one visitor's selection context: the variant is
picked once, when the ABTest is built, and stays fixed for the request.
"""

import logging
from datetime import datetime
from typing import Any

from variantlab.ab.assignment import SelectionContext, assign_variant
from variantlab.ab.experiment import ExperimentDefinition, Variant
from variantlab.collector.sink import EventSink, EventSource
from variantlab.collector.store import utc_now
from variantlab.errors import ConfigurationError
from variantlab.reporting.aggregator import Report, ReportAggregator
from variantlab.reporting.experiment_report import get_variant_stats

logger = logging.getLogger(__name__)

SELECTION_EVENT = "ab_test_variant_selected"


class ABTest:
    def __init__(
        self,
        experiment: ExperimentDefinition,
        context: SelectionContext,
        analytics: EventSink | None = None,
    ):
        self.experiment = experiment
        self.context = context
        self.analytics = analytics
        self.selected_variant = assign_variant(experiment, context)
        self._track_selection()

    @property
    def experiment_id(self) -> str:
        return self.experiment.experiment_id

    @property
    def variant(self) -> Variant:
        return self.experiment.get(self.selected_variant)

    @property
    def payload(self) -> Any:
        return self.variant.payload

    def variant_ids(self) -> list[str]:
        return self.experiment.variant_ids

    def is_variant_selected(self, variant_id: str) -> bool:
        return self.selected_variant == variant_id

    def variant_stats(
        self, start: datetime | None = None, end: datetime | None = None,
    ) -> dict[str, Report]:
        """Per-variant reports, or {} when no analytics sink is attached.

        Raises ConfigurationError if the attached sink cannot replay events.
        """
        aggregator = None
        if self.analytics is not None:
            if not isinstance(self.analytics, EventSource):
                raise ConfigurationError(
                    f"{type(self.analytics).__name__} cannot be read back for variant stats"
                )
            clock = getattr(self.analytics, "clock", utc_now)
            aggregator = ReportAggregator(self.analytics, clock=clock)
        return get_variant_stats(self.experiment, aggregator, start, end)

    def _track_selection(self) -> None:
        if self.analytics is None:
            return
        # Best effort: a failing sink must not break rendering the variant
        try:
            self.analytics.track_interaction(
                self.variant.entity_id,
                SELECTION_EVENT,
                {
                    "test_id": self.experiment_id,
                    "variant_id": self.selected_variant,
                    "method": self.context.method.value,
                },
            )
        except Exception:
            logger.exception("Could not record variant selection for %s", self.experiment_id)
