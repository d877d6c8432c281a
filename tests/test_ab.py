"""Tests for experiment definitions, variant assignment and sticky sessions."""

import random

import pytest

from variantlab.ab.assignment import (
    SelectionContext,
    SelectionMethod,
    assign_variant,
    hash_bucket,
    select_by_hash,
    select_by_weight,
)
from variantlab.ab.experiment import (
    HERO_CAROUSEL_EXPERIMENT,
    ExperimentDefinition,
    Variant,
    normalize_weights,
)
from variantlab.ab.sticky import SessionStickyStore
from variantlab.errors import ConfigurationError


def _experiment(weights: dict[str, int], experiment_id: str = "test") -> ExperimentDefinition:
    return ExperimentDefinition(
        experiment_id=experiment_id,
        variants=[Variant(vid, f"carousel-{vid}", w) for vid, w in weights.items()],
    )


class RecordingSession(dict):
    """Session mapping that counts writes."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.writes = 0

    def __setitem__(self, key, value):
        self.writes += 1
        super().__setitem__(key, value)


class TestExperimentDefinition:
    def test_valid_experiment(self):
        exp = _experiment({"a": 50, "b": 50})
        assert exp.variant_ids == ["a", "b"]
        assert exp.weights == {"a": 50, "b": 50}

    def test_single_variant_allowed(self):
        exp = _experiment({"only": 100})
        assert exp.variant_ids == ["only"]

    def test_no_variants_rejected(self):
        with pytest.raises(ConfigurationError, match="at least one variant"):
            ExperimentDefinition(experiment_id="empty", variants=[])

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            ExperimentDefinition(experiment_id="empty", variants=())

    def test_negative_weight_rejected(self):
        with pytest.raises(ConfigurationError, match=">= 0"):
            _experiment({"a": -10})

    def test_non_integer_weight_rejected(self):
        with pytest.raises(ConfigurationError, match="integer"):
            _experiment({"a": 0.5, "b": 0.5})

    def test_missing_entity_rejected(self):
        with pytest.raises(ConfigurationError, match="entity"):
            ExperimentDefinition(experiment_id="x", variants=[Variant("a", "")])

    def test_variant_ids_must_be_unique(self):
        with pytest.raises(ConfigurationError, match="unique"):
            ExperimentDefinition(
                experiment_id="x",
                variants=[Variant("a", "c1"), Variant("a", "c2")],
            )

    def test_malformed_variant_id_rejected(self):
        with pytest.raises(ConfigurationError, match="Invalid variant id"):
            _experiment({"bad id!": 50})

    def test_weight_defaults_to_50(self):
        exp = ExperimentDefinition.from_mapping("x", {
            "a": {"entity_id": "c1"},
            "b": {"entity_id": "c2"},
        })
        assert exp.weights == {"a": 50, "b": 50}

    def test_from_mapping_keeps_order_and_payload(self):
        payload = object()
        exp = ExperimentDefinition.from_mapping("x", {
            "z": {"entity_id": "c1", "weight": 10, "payload": payload},
            "a": {"entity_id": "c2", "weight": 90},
        })
        assert exp.variant_ids == ["z", "a"]
        assert exp.get("z").payload is payload

    def test_from_mapping_requires_entity(self):
        with pytest.raises(ConfigurationError, match="entity"):
            ExperimentDefinition.from_mapping("x", {"a": {"weight": 50}})

    def test_immutable(self):
        exp = _experiment({"a": 50, "b": 50})
        with pytest.raises(AttributeError):
            exp.experiment_id = "other"

    def test_default_experiment_valid(self):
        assert HERO_CAROUSEL_EXPERIMENT.experiment_id == "exp_hero_carousel_v1"
        assert HERO_CAROUSEL_EXPERIMENT.variant_ids == ["control", "treatment"]


class TestNormalization:
    def test_weights_over_100_rescaled(self):
        exp = _experiment({"a": 120, "b": 80})
        assert exp.weights == {"a": 60, "b": 40}

    def test_weights_summing_to_100_untouched(self):
        assert normalize_weights([33, 33, 34]) == [33, 33, 34]

    def test_rounds_half_up(self):
        # 12.5 -> 13, 87.5 -> 88: drift is kept, not corrected
        assert normalize_weights([1, 7]) == [13, 88]

    def test_rounding_drift_accepted(self):
        assert normalize_weights([1, 1, 1]) == [33, 33, 33]

    def test_zero_total_left_alone(self):
        assert normalize_weights([0, 0]) == [0, 0]

    @pytest.mark.parametrize("weights", [
        [1, 2],
        [5, 5, 5],
        [1, 7],
        [3, 3, 3, 3, 3, 3, 3],
        [250, 1, 0, 40],
        [10, 20, 30, 41],
        [999, 1],
    ])
    def test_sum_within_rounding_tolerance(self, weights):
        normalized = normalize_weights(weights)
        assert all(w >= 0 for w in normalized)
        assert abs(sum(normalized) - 100) <= len(weights) - 1


class TestHashAssignment:
    def test_deterministic(self):
        """Same visitor + experiment always gets the same variant."""
        exp = _experiment({"variant_a": 50, "variant_b": 50}, "test-hash")
        picks = {
            assign_variant(exp, SelectionContext(SelectionMethod.HASH, visitor_id="user123"))
            for _ in range(10)
        }
        assert len(picks) == 1

    def test_bucket_in_range(self):
        for i in range(200):
            assert 0 <= hash_bucket("exp", f"visitor_{i}") < 100

    def test_different_visitors_can_get_different_variants(self):
        exp = HERO_CAROUSEL_EXPERIMENT
        variants = {select_by_hash(exp, f"visitor_{i}") for i in range(100)}
        assert variants == {"control", "treatment"}

    def test_roughly_even_split(self):
        exp = HERO_CAROUSEL_EXPERIMENT
        assignments = [select_by_hash(exp, f"visitor_{i}") for i in range(10000)]
        control_count = assignments.count("control")
        assert 4500 <= control_count <= 5500

    def test_uneven_split(self):
        exp = _experiment({"heavy": 90, "light": 10}, "uneven")
        assignments = [select_by_hash(exp, f"visitor_{i}") for i in range(10000)]
        assert 8500 <= assignments.count("heavy") <= 9500

    def test_different_experiment_different_assignment(self):
        exp_a = _experiment({"c": 50, "t": 50}, "exp_a")
        exp_b = _experiment({"c": 50, "t": 50}, "exp_b")
        assert any(
            select_by_hash(exp_a, f"visitor_{i}") != select_by_hash(exp_b, f"visitor_{i}")
            for i in range(100)
        )

    def test_zero_weight_variant_never_chosen(self):
        exp = _experiment({"always": 100, "never": 0})
        assert {select_by_hash(exp, f"visitor_{i}") for i in range(500)} == {"always"}

    def test_all_zero_weights_fall_back_to_last(self):
        exp = _experiment({"a": 0, "b": 0, "c": 0})
        assert {select_by_hash(exp, f"visitor_{i}") for i in range(50)} == {"c"}

    def test_requires_visitor_id(self):
        with pytest.raises(ConfigurationError, match="visitor_id"):
            SelectionContext(SelectionMethod.HASH)


class TestRandomAssignment:
    def test_weighted_distribution(self):
        """80/20 weights should give roughly 80% to the heavy variant."""
        exp = _experiment({"variant_a": 80, "variant_b": 20}, "test-weight")
        context = SelectionContext(SelectionMethod.RANDOM, rng=random.Random(1234))
        picks = [assign_variant(exp, context) for _ in range(1000)]
        ratio_a = picks.count("variant_a") / 1000
        assert 0.70 < ratio_a < 0.90

    def test_returns_valid_variant(self):
        exp = _experiment({"a": 33, "b": 33, "c": 34})
        rng = random.Random(5)
        for _ in range(200):
            assert select_by_weight(exp, rng) in {"a", "b", "c"}

    def test_rounding_drift_falls_back_to_last(self):
        # Normalizes to 33/33/33; a draw of 100 exceeds every cumulative sum
        exp = _experiment({"a": 1, "b": 1, "c": 1})

        class MaxDraw(random.Random):
            def randint(self, a, b):
                return b

        assert select_by_weight(exp, MaxDraw()) == "c"

    def test_accepts_method_string(self):
        context = SelectionContext("random")
        assert context.method is SelectionMethod.RANDOM

    def test_unknown_method_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown selection method"):
            SelectionContext("coinflip")


class TestCookieAssignment:
    def test_requires_sticky_store(self):
        with pytest.raises(ConfigurationError, match="sticky"):
            SelectionContext(SelectionMethod.COOKIE)

    def test_sticky_within_session(self):
        session = RecordingSession()
        exp = _experiment({"variant_a": 50, "variant_b": 50}, "test-cookie")
        context = SelectionContext(SelectionMethod.COOKIE, sticky=SessionStickyStore(session))

        first = assign_variant(exp, context)
        assert session.writes == 1
        second = assign_variant(exp, context)
        assert second == first
        assert session.writes == 1

    def test_uses_existing_session_value(self):
        session = RecordingSession({"carousel_variant_test-cookie": "variant_b"})
        exp = _experiment({"variant_a": 50, "variant_b": 50}, "test-cookie")
        context = SelectionContext(SelectionMethod.COOKIE, sticky=SessionStickyStore(session))

        assert assign_variant(exp, context) == "variant_b"
        assert session.writes == 0

    @pytest.mark.parametrize("stored", ["ghost", "variant_a; drop", "", "../variant_a"])
    def test_tampered_value_reassigned(self, stored):
        session = RecordingSession({"carousel_variant_test-cookie": stored})
        exp = _experiment({"variant_a": 50, "variant_b": 50}, "test-cookie")
        context = SelectionContext(SelectionMethod.COOKIE, sticky=SessionStickyStore(session))

        chosen = assign_variant(exp, context)
        assert chosen in {"variant_a", "variant_b"}
        assert session["carousel_variant_test-cookie"] == chosen
        assert session.writes == 1

    def test_stale_variant_after_experiment_change(self):
        session = {}
        sticky = SessionStickyStore(session)
        old = _experiment({"old_only": 100}, "exp")
        assert assign_variant(old, SelectionContext(SelectionMethod.COOKIE, sticky=sticky)) == "old_only"

        new = _experiment({"fresh": 100}, "exp")
        assert assign_variant(new, SelectionContext(SelectionMethod.COOKIE, sticky=sticky)) == "fresh"
        assert session["carousel_variant_exp"] == "fresh"

    def test_sessions_are_independent_per_experiment(self):
        session = {}
        sticky = SessionStickyStore(session)
        assign_variant(_experiment({"a": 100}, "one"), SelectionContext(SelectionMethod.COOKIE, sticky=sticky))
        assign_variant(_experiment({"b": 100}, "two"), SelectionContext(SelectionMethod.COOKIE, sticky=sticky))
        assert session == {"carousel_variant_one": "a", "carousel_variant_two": "b"}


class TestSessionStickyStore:
    def test_get_missing(self):
        assert SessionStickyStore().get("exp") is None

    def test_set_then_get(self):
        store = SessionStickyStore(prefix="ab_")
        store.set("exp", "variant_a")
        assert store.get("exp") == "variant_a"
        assert store.session == {"ab_exp": "variant_a"}

    def test_non_string_value_ignored(self):
        store = SessionStickyStore({"carousel_variant_exp": 42})
        assert store.get("exp") is None
