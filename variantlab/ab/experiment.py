"""Experiment definitions and metadata.

Each experiment has a unique ID and an ordered list of variants. A variant
carries a relative integer weight and the id of the entity rendered for it
(the id that analytics events are tagged with).

Weights are normalized once, at construction: when they do not sum to 100
each one is rescaled to round(weight * 100 / total). Rounding drift is kept
as-is, so normalized weights may sum to slightly more or less than 100.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from variantlab.errors import ConfigurationError

DEFAULT_WEIGHT = 50
VARIANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class Variant:
    variant_id: str
    entity_id: str
    weight: int = DEFAULT_WEIGHT
    # Opaque renderable object supplied by the caller, never inspected here
    payload: Any = field(default=None, compare=False, repr=False)


def normalize_weights(weights: list[int]) -> list[int]:
    """Rescale weights so they sum to (roughly) 100.

    Rounds half up in integer arithmetic. A zero total is returned unchanged.
    """
    total = sum(weights)
    if total == 0 or total == 100:
        return list(weights)
    return [(w * 200 + total) // (2 * total) for w in weights]


@dataclass(frozen=True)
class ExperimentDefinition:
    experiment_id: str
    variants: tuple[Variant, ...]

    def __post_init__(self):
        if not self.experiment_id:
            raise ConfigurationError("Experiment id must not be empty")
        variants = tuple(self.variants)
        if not variants:
            raise ConfigurationError(
                f"Experiment '{self.experiment_id}' needs at least one variant"
            )

        seen = set()
        for v in variants:
            if not isinstance(v.variant_id, str) or not VARIANT_ID_PATTERN.match(v.variant_id):
                raise ConfigurationError(f"Invalid variant id: {v.variant_id!r}")
            if v.variant_id in seen:
                raise ConfigurationError(f"Variant ids must be unique, got '{v.variant_id}' twice")
            seen.add(v.variant_id)
            if not v.entity_id:
                raise ConfigurationError(
                    f"Variant '{v.variant_id}' must reference a renderable entity id"
                )
            if isinstance(v.weight, bool) or not isinstance(v.weight, int):
                raise ConfigurationError(
                    f"Variant '{v.variant_id}' weight must be an integer, got {v.weight!r}"
                )
            if v.weight < 0:
                raise ConfigurationError(f"Variant '{v.variant_id}' weight must be >= 0")

        normalized = normalize_weights([v.weight for v in variants])
        object.__setattr__(
            self,
            "variants",
            tuple(replace(v, weight=w) for v, w in zip(variants, normalized)),
        )

    @classmethod
    def from_mapping(
        cls, experiment_id: str, variants: Mapping[str, Mapping[str, Any]]
    ) -> "ExperimentDefinition":
        """Build an experiment from {variant_id: {"entity_id": ..., "weight": ...}}.

        Insertion order of the mapping is the variant order. "weight" defaults
        to 50 and "payload" is optional.
        """
        built = []
        for variant_id, options in variants.items():
            if not isinstance(options, Mapping):
                raise ConfigurationError(
                    f"Variant '{variant_id}' options must be a mapping"
                )
            built.append(Variant(
                variant_id=variant_id,
                entity_id=options.get("entity_id", ""),
                weight=options.get("weight", DEFAULT_WEIGHT),
                payload=options.get("payload"),
            ))
        return cls(experiment_id=experiment_id, variants=tuple(built))

    @property
    def variant_ids(self) -> list[str]:
        return [v.variant_id for v in self.variants]

    @property
    def weights(self) -> dict[str, int]:
        return {v.variant_id: v.weight for v in self.variants}

    def get(self, variant_id: str) -> Variant | None:
        for v in self.variants:
            if v.variant_id == variant_id:
                return v
        return None

    def has_variant(self, variant_id: str) -> bool:
        return self.get(variant_id) is not None


# Default experiment used by the simulator
HERO_CAROUSEL_EXPERIMENT = ExperimentDefinition(
    experiment_id="exp_hero_carousel_v1",
    variants=(
        Variant(variant_id="control", entity_id="hero-carousel-control", weight=50),
        Variant(variant_id="treatment", entity_id="hero-carousel-autoplay", weight=50),
    ),
)
