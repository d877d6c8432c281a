"""A/B experiment assignment.

Three selection methods are supported:

- hash: deterministic. Given the same (experiment_id, visitor_id) pair the
  visitor always gets the same variant, with no storage involved.
- random: a fresh weighted draw on every call.
- cookie: session-sticky. The first call makes a random weighted draw and
  stores it in the visitor's session; later calls in that session reuse it.

All three walk the normalized weights in declared order and fall back to the
last variant when rounding drift leaves the draw above every cumulative sum.
"""

import hashlib
import logging
import random
from dataclasses import dataclass, field
from enum import Enum

from variantlab.ab.experiment import VARIANT_ID_PATTERN, ExperimentDefinition
from variantlab.ab.sticky import StickyStore
from variantlab.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SelectionMethod(str, Enum):
    COOKIE = "cookie"
    RANDOM = "random"
    HASH = "hash"


@dataclass
class SelectionContext:
    method: SelectionMethod = SelectionMethod.COOKIE
    visitor_id: str | None = None
    sticky: StickyStore | None = None
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self):
        try:
            self.method = SelectionMethod(self.method)
        except ValueError:
            raise ConfigurationError(f"Unknown selection method: {self.method!r}") from None
        if self.method is SelectionMethod.HASH and self.visitor_id is None:
            raise ConfigurationError("Hash selection requires a visitor_id")
        if self.method is SelectionMethod.COOKIE and self.sticky is None:
            raise ConfigurationError("Cookie selection requires a sticky store")


def hash_bucket(experiment_id: str, visitor_id: str) -> int:
    """Map (experiment_id, visitor_id) to a stable bucket in [0, 100).

    Uses the first 8 hex characters of the MD5 digest of
    "<experiment_id>_<visitor_id>" as an unsigned 32-bit integer.
    """
    digest = hashlib.md5(f"{experiment_id}_{visitor_id}".encode()).hexdigest()
    return int(digest[:8], 16) % 100


def select_by_hash(experiment: ExperimentDefinition, visitor_id: str) -> str:
    bucket = hash_bucket(experiment.experiment_id, visitor_id)

    # bucket / 100 < cumulative / 100, compared exactly in integers
    cumulative = 0
    for variant in experiment.variants:
        cumulative += variant.weight
        if bucket < cumulative:
            return variant.variant_id

    # Fallback to last variant (handles rounding drift)
    return experiment.variants[-1].variant_id


def select_by_weight(experiment: ExperimentDefinition, rng: random.Random) -> str:
    draw = rng.randint(1, 100)

    cumulative = 0
    for variant in experiment.variants:
        cumulative += variant.weight
        if draw <= cumulative:
            return variant.variant_id

    return experiment.variants[-1].variant_id


def _sticky_value(experiment: ExperimentDefinition, sticky: StickyStore) -> str | None:
    value = sticky.get(experiment.experiment_id)
    if value is None:
        return None
    if not VARIANT_ID_PATTERN.match(value) or not experiment.has_variant(value):
        logger.debug(
            "Ignoring stale sticky value %r for experiment %s",
            value, experiment.experiment_id,
        )
        return None
    return value


def assign_variant(experiment: ExperimentDefinition, context: SelectionContext) -> str:
    """Assign the visitor described by context to a variant of experiment.

    Call once per request. The cookie method performs at most one session
    read and one session write.
    """
    if context.method is SelectionMethod.HASH:
        chosen = select_by_hash(experiment, context.visitor_id)
    elif context.method is SelectionMethod.RANDOM:
        chosen = select_by_weight(experiment, context.rng)
    else:
        stored = _sticky_value(experiment, context.sticky)
        if stored is not None:
            return stored
        chosen = select_by_weight(experiment, context.rng)
        context.sticky.set(experiment.experiment_id, chosen)

    logger.debug(
        "Assigned %s to variant %s (method=%s)",
        experiment.experiment_id, chosen, context.method.value,
    )
    return chosen
