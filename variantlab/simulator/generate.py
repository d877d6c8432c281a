"""CLI entrypoint: generate simulated carousel events and write them to a store.

Usage:
    python -m variantlab.simulator.generate
    python -m variantlab.simulator.generate --visitors 5000 --days 30
    python -m variantlab.simulator.generate --experiment   # include A/B experiment
    python -m variantlab.simulator.generate --warehouse data/analytics.duckdb
"""

import argparse
from dataclasses import replace

from variantlab.ab.experiment import HERO_CAROUSEL_EXPERIMENT
from variantlab.config import Settings
from variantlab.simulator.config import SimulationConfig
from variantlab.simulator.engine import generate_events
from variantlab.warehouse.db import get_connection, init_db, insert_events


def main(args: list[str] | None = None) -> None:
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Generate simulated carousel events")
    parser.add_argument("--visitors", type=int, default=2000, help="Number of visitors")
    parser.add_argument("--days", type=int, default=14, help="Simulation window in days")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--storage", type=str, default=settings.storage_path, help="Event store directory")
    parser.add_argument("--warehouse", type=str, default=None, help="Also load events into this DuckDB file")
    parser.add_argument("--experiment", action="store_true", help="Run with A/B experiment")
    opts = parser.parse_args(args)
    settings.configure_logging()

    config = SimulationConfig(num_visitors=opts.visitors, days=opts.days, seed=opts.seed)
    experiment = HERO_CAROUSEL_EXPERIMENT if opts.experiment else None

    if experiment:
        print(f"Experiment: {experiment.experiment_id}")
        for v in experiment.variants:
            print(f"  {v.variant_id} ({v.entity_id}): {v.weight}% traffic")

    print(f"Generating events for {config.num_visitors} visitors over {config.days} days (seed={config.seed})...")
    events = generate_events(config, experiment)
    print(f"Generated {len(events)} events")

    # Summarize by type
    by_type = {}
    for e in events:
        key = e.event.value if e.interaction_type is None else f"{e.event.value}:{e.interaction_type}"
        by_type[key] = by_type.get(key, 0) + 1
    print("Event breakdown:")
    for etype, count in sorted(by_type.items()):
        print(f"  {etype}: {count}")

    print(f"\nWriting to event store at {opts.storage}...")
    # One flush for the whole batch
    settings = replace(settings, storage_path=opts.storage, flush_threshold=max(len(events), 1))
    with settings.create_store() as store:
        for e in events:
            store.record(e)

    if opts.warehouse:
        print(f"Loading into warehouse at {opts.warehouse}...")
        conn = get_connection(opts.warehouse)
        init_db(conn)
        inserted, dupes = insert_events(conn, [e.to_record() for e in events])
        conn.close()
        print(f"Inserted: {inserted}, Duplicates skipped: {dupes}")
    print("Done.")


if __name__ == "__main__":
    main()
