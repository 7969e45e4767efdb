"""Pluggable activation strategies and variant selection."""

import hashlib
import logging
import random
from typing import Any, Callable

from .replica.toggles import ToggleDefinition

logger = logging.getLogger(__name__)

# (parameters, context) -> enabled
Strategy = Callable[[dict[str, Any], dict[str, Any]], bool]

DISABLED_VARIANT = {"name": "disabled", "enabled": False}

STICKINESS_FIELDS = ("userId", "sessionId", "remoteAddress")


def default_strategy(parameters: dict[str, Any], context: dict[str, Any]) -> bool:
    """Always on."""
    return True


def _context_value(context: dict[str, Any], field: str) -> Any:
    if field in context:
        return context[field]
    properties = context.get("properties") or {}
    return properties.get(field)


def _strategy_ref(ref: Any) -> tuple[str | None, dict[str, Any]]:
    """Accept both "name" and {"name": ..., "parameters": {...}} references."""
    if isinstance(ref, str):
        return ref, {}
    if isinstance(ref, dict):
        return ref.get("name"), ref.get("parameters") or {}
    return None, {}


class StrategyRegistry:
    """Maps strategy names to evaluation functions."""

    def __init__(self, strategies: dict[str, Strategy] | None = None):
        self._strategies: dict[str, Strategy] = {"default": default_strategy}
        if strategies:
            self._strategies.update(strategies)

    def register(self, name: str, strategy: Strategy) -> None:
        self._strategies[name] = strategy

    def get(self, name: str) -> Strategy | None:
        return self._strategies.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._strategies)

    def evaluate(self, toggle: ToggleDefinition, context: dict[str, Any]) -> bool:
        """Decide whether a toggle is on for a context.

        A disabled toggle is off. An enabled toggle without a usable list of
        strategies is on. Otherwise any matching strategy turns it on;
        unknown strategies never match.
        """
        if toggle.enabled is not True:
            return False

        strategies = toggle.strategies if isinstance(toggle.strategies, list) else []
        if not strategies:
            return True

        for ref in strategies:
            name, parameters = _strategy_ref(ref)
            strategy = self._strategies.get(name) if name else None
            if strategy is None:
                logger.debug(f"Unknown strategy {name!r} on toggle {toggle.name}")
                continue
            if strategy(parameters, context):
                return True
        return False


def normalized_value(identifier: str, group_id: str, normalizer: int = 100) -> int:
    """Map an identifier to a stable bucket in 1..normalizer."""
    digest = hashlib.md5(f"{group_id}:{identifier}".encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % normalizer + 1


def _as_variant(variant: dict[str, Any]) -> dict[str, Any]:
    result = {"name": variant.get("name"), "enabled": True}
    if "payload" in variant:
        result["payload"] = variant["payload"]
    return result


def _weight(variant: dict[str, Any]) -> int | None:
    raw = variant.get("weight", 0)
    if raw is None:
        return 0
    if isinstance(raw, bool):
        return None
    try:
        weight = int(raw)
    except (TypeError, ValueError):
        return None
    return weight if weight >= 0 else None


def _override_matches(override: Any, context: dict[str, Any]) -> bool:
    if not isinstance(override, dict):
        return False
    field = override.get("contextName")
    values = override.get("values")
    if not isinstance(field, str) or not isinstance(values, list):
        return False
    value = _context_value(context, field)
    return value is not None and str(value) in values


def select_variant(toggle: ToggleDefinition, context: dict[str, Any]) -> dict[str, Any] | None:
    """Pick a variant of an enabled toggle for a context.

    Overrides win first. Then the variant is chosen by weight, sticky on the
    first of userId, sessionId, remoteAddress present in the context.
    Variants with an unusable weight and malformed overrides are skipped.

    Returns:
        The chosen variant, or None if the toggle has no usable variants.
    """
    if not isinstance(toggle.variants, list):
        return None
    variants = [v for v in toggle.variants if isinstance(v, dict)]
    if not variants:
        return None

    for variant in variants:
        overrides = variant.get("overrides")
        if not isinstance(overrides, list):
            continue
        if any(_override_matches(o, context) for o in overrides):
            return _as_variant(variant)

    weighted = []
    for variant in variants:
        weight = _weight(variant)
        if weight is None:
            logger.debug(f"Skipping variant {variant.get('name')!r} of {toggle.name}: bad weight")
            continue
        weighted.append((variant, weight))
    total = sum(weight for _, weight in weighted)
    if total <= 0:
        return None

    identifier = None
    for field in STICKINESS_FIELDS:
        identifier = _context_value(context, field)
        if identifier is not None:
            break

    if identifier is None:
        target = random.randint(1, total)
    else:
        target = normalized_value(str(identifier), toggle.name, total)

    counter = 0
    for variant, weight in weighted:
        counter += weight
        if target <= counter:
            return _as_variant(variant)
    return None
