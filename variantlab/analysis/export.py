"""Export an experiment report as JSON.

Reads an experiment definition file and the event store, and writes one
report with per-variant impressions, clicks, CTR and breakdowns.

Usage:
    python -m variantlab.analysis.export experiment.json
    python -m variantlab.analysis.export experiment.json --start 2024-05-01 --end 2024-05-31
    python -m variantlab.analysis.export experiment.json --out data/report.json

The experiment file looks like:
    {"experiment_id": "exp_hero", "variants": {"control": {"entity_id": "hero-a", "weight": 50}, ...}}
"""

import argparse
import json
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from variantlab.ab.experiment import ExperimentDefinition
from variantlab.collector.sink import EventSource
from variantlab.config import Settings
from variantlab.errors import ConfigurationError
from variantlab.reporting.experiment_report import ExperimentReport, build_experiment_report

logger = logging.getLogger(__name__)


def load_experiment(path: str | Path) -> ExperimentDefinition:
    try:
        raw = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot load experiment definition {path}: {exc}") from exc
    if not isinstance(raw, dict) or "experiment_id" not in raw:
        raise ConfigurationError(f"{path} must be an object with an experiment_id")
    return ExperimentDefinition.from_mapping(raw["experiment_id"], raw.get("variants") or {})


def export_report(
    experiment: ExperimentDefinition,
    store: EventSource,
    out: str | Path,
    start: datetime | None = None,
    end: datetime | None = None,
    settings: Settings | None = None,
) -> ExperimentReport:
    aggregator = (settings or Settings()).create_aggregator(store)
    report = build_experiment_report(experiment, aggregator, start, end)
    out = Path(out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(report.model_dump(mode="json"), indent=2))
    logger.info("Wrote report for %s to %s", experiment.experiment_id, out)
    return report


def main(args: list[str] | None = None) -> None:
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Export an experiment report")
    parser.add_argument("experiment", help="Path to the experiment definition JSON")
    parser.add_argument("--storage", default=settings.storage_path, help="Event store directory")
    parser.add_argument("--start", type=datetime.fromisoformat, default=None, help="Range start (ISO)")
    parser.add_argument("--end", type=datetime.fromisoformat, default=None, help="Range end (ISO)")
    parser.add_argument("--out", default="data/report.json", help="Output JSON path")
    opts = parser.parse_args(args)
    settings.configure_logging()

    experiment = load_experiment(opts.experiment)
    settings = replace(settings, storage_path=opts.storage)
    report = export_report(
        experiment, settings.create_store(), opts.out, opts.start, opts.end, settings=settings,
    )

    print(f"Experiment {report.experiment_id}")
    for variant_id, r in report.variants.items():
        print(f"  {variant_id}: {r.impressions} impressions, {r.clicks} clicks, ctr={r.ctr:.2%}")
    print(f"Report written to {opts.out}")


if __name__ == "__main__":
    main()
