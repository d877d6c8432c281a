"""Experiment-level reporting: one Report per variant, keyed by variant id."""

from datetime import datetime

from pydantic import BaseModel

from variantlab.ab.experiment import ExperimentDefinition
from variantlab.reporting.aggregator import Report, ReportAggregator


class ExperimentReport(BaseModel):
    experiment_id: str
    start: datetime | None = None
    end: datetime | None = None
    weights: dict[str, int]
    variants: dict[str, Report]


def get_variant_stats(
    experiment: ExperimentDefinition,
    aggregator: ReportAggregator | None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, Report]:
    """Report on each variant's entity.

    An experiment without analytics has nothing to report, which is a valid
    state: the result is an empty dict rather than an error.
    """
    if aggregator is None:
        return {}
    return {
        v.variant_id: aggregator.report(v.entity_id, start, end)
        for v in experiment.variants
    }


def build_experiment_report(
    experiment: ExperimentDefinition,
    aggregator: ReportAggregator | None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> ExperimentReport:
    stats = get_variant_stats(experiment, aggregator, start, end)
    period_start = start
    period_end = end
    if stats:
        first = next(iter(stats.values()))
        period_start, period_end = first.start, first.end
    return ExperimentReport(
        experiment_id=experiment.experiment_id,
        start=period_start,
        end=period_end,
        weights=experiment.weights,
        variants=stats,
    )
