"""Toggle definitions as received from the remote source."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToggleDefinition:
    """A named feature toggle.

    Values are kept exactly as received, even when they fail validation, so
    that a malformed definition still round-trips through the backup file.
    Fields this class does not model are preserved in ``extra``.
    """

    name: str
    enabled: Any = False
    strategies: Any = field(default_factory=list)
    variants: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN_FIELDS = ("name", "enabled", "strategies", "variants")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire/backup representation."""
        data = dict(self.extra)
        data["name"] = self.name
        data["enabled"] = self.enabled
        data["strategies"] = self.strategies
        if self.variants is not None:
            data["variants"] = self.variants
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToggleDefinition":
        """Deserialize without coercing any field."""
        return cls(
            name=data.get("name"),
            enabled=data.get("enabled"),
            strategies=data.get("strategies"),
            variants=data.get("variants"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_FIELDS},
        )


def has_usable_name(data: dict[str, Any]) -> bool:
    name = data.get("name")
    return isinstance(name, str) and bool(name)


def validate_toggle(data: dict[str, Any]) -> list[str]:
    """Check the structure of a raw toggle definition.

    Returns:
        List of problems; empty when the definition is well formed.
    """
    errors = []
    strategies = data.get("strategies")
    if not isinstance(strategies, list):
        errors.append(
            f"feature.strategies should be an array, but was {type(strategies).__name__}"
        )

    variants = data.get("variants")
    if variants is not None and not isinstance(variants, list):
        errors.append(
            f"feature.variants should be an array, but was {type(variants).__name__}"
        )

    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        errors.append(
            f"feature.enabled should be a boolean, but was {type(enabled).__name__}"
        )

    return errors
