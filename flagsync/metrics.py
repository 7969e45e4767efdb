"""In-process usage counters for toggle evaluations."""

import logging
from datetime import datetime
from typing import Any

from .events import EventEmitter

logger = logging.getLogger(__name__)


def valid_toggle_name(name: object) -> bool:
    return isinstance(name, str) and bool(name)


class Metrics(EventEmitter):
    """Counts yes/no evaluations and variant hits per toggle.

    Reporting the counts anywhere is up to the host; this class only
    collects them and forwards its ``error``/``warn`` events.
    """

    def __init__(self, app_name: str, instance_id: str | None = None, disabled: bool = False):
        super().__init__()
        self.app_name = app_name
        self.instance_id = instance_id
        self.disabled = disabled
        self._bucket: dict[str, Any] = self._new_bucket()

    @staticmethod
    def _new_bucket() -> dict[str, Any]:
        return {"start": datetime.now(), "stop": None, "toggles": {}}

    def _entry(self, name: str) -> dict[str, Any]:
        return self._bucket["toggles"].setdefault(name, {"yes": 0, "no": 0, "variants": {}})

    def count(self, name: str, enabled: bool) -> bool:
        """Record one evaluation.

        Returns:
            True if counted.
        """
        if self.disabled:
            return False
        if not valid_toggle_name(name):
            self.emit("warn", f"Metrics ignored evaluation of invalid toggle name {name!r}")
            return False
        entry = self._entry(name)
        entry["yes" if enabled else "no"] += 1
        return True

    def count_variant(self, name: str, variant_name: str) -> bool:
        if self.disabled or not isinstance(name, str):
            return False
        variants = self._entry(name)["variants"]
        variants[variant_name] = variants.get(variant_name, 0) + 1
        return True

    def get_bucket(self) -> dict[str, Any]:
        """Snapshot of the current bucket."""
        return {
            "appName": self.app_name,
            "instanceId": self.instance_id,
            "start": self._bucket["start"].isoformat(),
            "stop": datetime.now().isoformat(),
            "toggles": {
                name: {"yes": e["yes"], "no": e["no"], "variants": dict(e["variants"])}
                for name, e in self._bucket["toggles"].items()
            },
        }

    def reset_bucket(self) -> dict[str, Any]:
        """Return the current bucket and start a new one."""
        snapshot = self.get_bucket()
        self._bucket = self._new_bucket()
        return snapshot

    def stop(self) -> None:
        self.disabled = True
        self.remove_all_listeners()
        logger.debug("Metrics stopped")
