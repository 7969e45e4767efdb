"""Tests for strategy evaluation and variant selection."""

from flagsync.replica import ToggleDefinition
from flagsync.strategies import StrategyRegistry, normalized_value, select_variant


def toggle(**kwargs):
    kwargs.setdefault("name", "t")
    kwargs.setdefault("enabled", True)
    kwargs.setdefault("strategies", ["default"])
    return ToggleDefinition(**kwargs)


class TestStrategyRegistry:
    def test_default_registered(self):
        assert "default" in StrategyRegistry().names

    def test_enabled_with_default(self):
        assert StrategyRegistry().evaluate(toggle(), {}) is True

    def test_disabled_toggle(self):
        assert StrategyRegistry().evaluate(toggle(enabled=False), {}) is False

    def test_non_boolean_enabled_is_off(self):
        assert StrategyRegistry().evaluate(toggle(enabled="true"), {}) is False

    def test_no_strategies_is_on(self):
        assert StrategyRegistry().evaluate(toggle(strategies=[]), {}) is True

    def test_malformed_strategies_treated_as_none(self):
        assert StrategyRegistry().evaluate(toggle(strategies="default"), {}) is True

    def test_unknown_strategy_is_off(self):
        assert StrategyRegistry().evaluate(toggle(strategies=[{"name": "gradual"}]), {}) is False

    def test_any_strategy_matches(self):
        registry = StrategyRegistry()
        registry.register("never", lambda params, ctx: False)

        assert registry.evaluate(toggle(strategies=["never", "default"]), {}) is True
        assert registry.evaluate(toggle(strategies=["never"]), {}) is False

    def test_parameters_passed(self):
        seen = []
        registry = StrategyRegistry({"spy": lambda params, ctx: seen.append((params, ctx)) or True})

        registry.evaluate(toggle(strategies=[{"name": "spy", "parameters": {"p": 1}}]), {"userId": "u"})

        assert seen == [({"p": 1}, {"userId": "u"})]


class TestVariants:
    def test_no_variants(self):
        assert select_variant(toggle(), {}) is None

    def test_sticky_on_user_id(self):
        t = toggle(variants=[{"name": "a", "weight": 50}, {"name": "b", "weight": 50}])
        first = select_variant(t, {"userId": "123"})
        assert all(select_variant(t, {"userId": "123"}) == first for _ in range(10))

    def test_zero_weights(self):
        assert select_variant(toggle(variants=[{"name": "a", "weight": 0}]), {}) is None

    def test_override_from_properties(self):
        t = toggle(
            variants=[
                {"name": "a", "weight": 100},
                {"name": "b", "weight": 0, "overrides": [{"contextName": "tier", "values": ["gold"]}]},
            ]
        )
        assert select_variant(t, {"properties": {"tier": "gold"}})["name"] == "b"

    def test_bad_weight_variant_skipped(self):
        t = toggle(variants=[{"name": "a", "weight": "heavy"}, {"name": "b", "weight": 100}, {"name": "c", "weight": -5}])
        assert all(select_variant(t, {"userId": str(i)})["name"] == "b" for i in range(20))

    def test_malformed_overrides_ignored(self):
        t = toggle(
            variants=[
                {"name": "a", "weight": 100, "overrides": ["tier"]},
                {"name": "b", "weight": 0, "overrides": {"contextName": "tier"}},
                {"name": "c", "weight": 0, "overrides": [{"contextName": "tier", "values": "gold"}]},
            ]
        )
        assert select_variant(t, {"tier": "gold"})["name"] == "a"

    def test_normalized_value_range(self):
        values = {normalized_value(str(i), "group") for i in range(200)}
        assert min(values) >= 1
        assert max(values) <= 100
