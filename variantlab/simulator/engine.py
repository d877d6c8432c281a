"""Simulation engine that generates realistic carousel visit events.

Each simulated visitor:
  experiment assignment -> impression(s) with interactions between them -> click

Visitors are hash-assigned, so the same visitor always sees the same variant.
At each slide the visitor may move on or stop; treatment variant visitors get
a configurable uplift to click probability. All randomness is seeded for full
reproducibility.
"""

import random
from datetime import datetime, timedelta, timezone

from variantlab.ab.abtest import SELECTION_EVENT
from variantlab.ab.assignment import SelectionContext, SelectionMethod, assign_variant
from variantlab.ab.experiment import ExperimentDefinition
from variantlab.collector.schemas import Event
from variantlab.simulator.config import SimulationConfig

DEFAULT_ENTITY_ID = "hero-carousel"


def generate_events(
    config: SimulationConfig | None = None,
    experiment: ExperimentDefinition | None = None,
) -> list[Event]:
    """Generate a full set of simulated carousel events.

    If an experiment is provided, each visitor is deterministically assigned
    to a variant, an ab_test_variant_selected interaction is emitted, and all
    of the visitor's events are tagged with the variant's entity id.

    Returns a list of Event objects sorted by timestamp.
    """
    if config is None:
        config = SimulationConfig()

    rng = random.Random(config.seed)
    all_events: list[Event] = []
    # End the window 1 day before now so no visit lands in the future
    end_time = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(days=1)
    start_time = end_time - timedelta(days=config.days)

    for i in range(config.num_visitors):
        visitor_id = f"visitor_{i:05d}"
        all_events.extend(_simulate_visit(visitor_id, start_time, config, rng, experiment))

    all_events.sort(key=lambda e: e.timestamp)
    return all_events


def _simulate_visit(
    visitor_id: str,
    start_time: datetime,
    config: SimulationConfig,
    rng: random.Random,
    experiment: ExperimentDefinition | None = None,
) -> list[Event]:
    """Simulate a single visitor's pass over the carousel."""
    events: list[Event] = []
    arrival_offset = timedelta(seconds=rng.randint(0, config.days * 86400))
    current_time = start_time + arrival_offset

    entity_id = DEFAULT_ENTITY_ID
    variant_id = None
    if experiment is not None:
        context = SelectionContext(method=SelectionMethod.HASH, visitor_id=visitor_id)
        variant_id = assign_variant(experiment, context)
        entity_id = experiment.get(variant_id).entity_id
        events.append(Event.interaction(
            entity_id, SELECTION_EVENT, _ts(current_time),
            data={
                "test_id": experiment.experiment_id,
                "variant_id": variant_id,
                "method": SelectionMethod.HASH.value,
            },
        ))

    # --- Impressions, with a navigation interaction between each ---
    slide = 0
    events.append(Event.impression(entity_id, slide, _ts(current_time)))
    while slide < config.num_slides - 1 and rng.random() < config.prob_advance:
        current_time += timedelta(seconds=rng.randint(2, 12))
        kind = rng.choices(config.interaction_types, weights=config.interaction_weights, k=1)[0]
        data = {"from": slide, "to": slide + 1}
        if kind == "arrow_click":
            data["direction"] = "next"
        events.append(Event.interaction(entity_id, kind, _ts(current_time), data=data))
        slide += 1
        events.append(Event.impression(entity_id, slide, _ts(current_time)))

    # --- Click (funnel gate) ---
    click_prob = config.prob_click
    if variant_id == "treatment":
        click_prob = min(click_prob + config.treatment_uplift, 1.0)

    if rng.random() >= click_prob:
        return events  # left without clicking

    current_time += timedelta(seconds=rng.randint(1, 20))
    url = config.target_urls[slide % len(config.target_urls)]
    events.append(Event.click(entity_id, slide, _ts(current_time), url=url))
    return events


def _ts(moment: datetime) -> int:
    return int(moment.timestamp())
