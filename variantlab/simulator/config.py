"""Simulation parameters for realistic carousel traffic.

A simulated visit is:
  impression(s) -> interaction(s) -> click

Each visitor sees the first slide, then may advance through more slides with
arrows, dots or swipes, and may click the slide in view. Probabilities are
tuned to give a click-through rate in the low single digits, typical for
hero carousels.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SimulationConfig:
    num_visitors: int = 2000
    # Number of days the simulation spans
    days: int = 14
    # Random seed for reproducibility
    seed: int = 42

    # Slides in each carousel variant
    num_slides: int = 5

    # Probability of advancing to the next slide after each impression
    prob_advance: float = 0.45
    prob_click: float = 0.04         # 4% of visits end in a click
    treatment_uplift: float = 0.02   # +2pp click probability for treatment variant

    # How visitors move between slides
    interaction_types: tuple[str, ...] = (
        "arrow_click",
        "dot_click",
        "swipe",
        "autoplay",
    )
    interaction_weights: tuple[float, ...] = (0.4, 0.2, 0.25, 0.15)

    # Landing pages behind the slides
    target_urls: tuple[str, ...] = (
        "/pricing",
        "/features",
        "/blog/launch",
        "/signup",
        "/docs",
    )
