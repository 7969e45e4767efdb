"""Host-facing client: one event surface and the toggle query API."""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

from .config import Config, default_instance_id
from .errors import ConfigurationError
from .events import EventEmitter
from .http_client import FetchClient, HeadersProvider
from .log import setup_logging
from .metrics import Metrics, valid_toggle_name
from .replica import Repository, ToggleDefinition
from .strategies import DISABLED_VARIANT, Strategy, StrategyRegistry, select_variant

logger = logging.getLogger(__name__)


class ReadinessState(Enum):
    """One-way latch: NOT_READY until the replica first holds data."""

    NOT_READY = "not_ready"
    READY = "ready"


class FlagClient(EventEmitter):
    """Feature toggle client backed by a locally synchronized replica.

    Events (re-emitted from the synchronizer, its store and metrics):
        ready: emitted once, when data is first available.
        changed: a new replica was committed.
        unchanged: the remote reported no change.
        error: any background failure.
        warn: recoverable misuse, e.g. querying an unknown toggle before ready.
    """

    def __init__(
        self,
        url: str,
        app_name: str,
        instance_id: str | None = None,
        project_name: str | None = None,
        refresh_interval: float | None = 15.0,
        backup_path: str | Path | None = None,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        custom_headers_provider: HeadersProvider | None = None,
        name_prefix: str | None = None,
        tags: Iterable[Any] | None = None,
        disable_metrics: bool = False,
        strategies: StrategyRegistry | dict[str, Strategy] | None = None,
        error_handler: Callable[[Exception], Any] | None = None,
        strict_validation: bool = False,
        fetch_client: FetchClient | None = None,
    ):
        """Initialize the client and schedule the first sync.

        Args:
            url: Base URL of the API.
            app_name: Application identity.
            error_handler: Receives every ``error`` event, alongside any
                listeners registered with ``on("error", ...)``.
            strategies: Registry, or extra strategies merged into the default
                registry.

            Remaining arguments are passed to ``Repository``.

        Raises:
            ConfigurationError: url or app_name missing.
        """
        super().__init__()
        if not url or not isinstance(url, str):
            raise ConfigurationError("API url missing: url")
        if not app_name or not isinstance(app_name, str):
            raise ConfigurationError("Application name missing: app_name")

        self.app_name = app_name
        self.instance_id = instance_id or default_instance_id()
        self.readiness = ReadinessState.NOT_READY

        if isinstance(strategies, StrategyRegistry):
            self.strategies = strategies
        else:
            self.strategies = StrategyRegistry(strategies)

        if error_handler is not None:
            self.on("error", error_handler)

        self.repository = Repository(
            url=url,
            app_name=app_name,
            instance_id=self.instance_id,
            project_name=project_name,
            refresh_interval=refresh_interval,
            backup_path=backup_path,
            timeout=timeout,
            headers=headers,
            custom_headers_provider=custom_headers_provider,
            name_prefix=name_prefix,
            tags=tags,
            strict_validation=strict_validation,
            fetch_client=fetch_client,
        )
        self.repository.on("error", lambda err: self.emit("error", err))
        self.repository.on("warn", lambda msg: self.emit("warn", msg))
        self.repository.on("ready", self._on_ready)
        self.repository.on("changed", lambda toggles: self.emit("changed", toggles))
        self.repository.on("unchanged", lambda: self.emit("unchanged"))

        self.metrics = Metrics(app_name, self.instance_id, disabled=disable_metrics)
        self.metrics.on("error", lambda err: self.emit("error", err))
        self.metrics.on("warn", lambda msg: self.emit("warn", msg))

    @classmethod
    def from_config(
        cls, config: Config, configure_logging: bool = True, **kwargs: Any
    ) -> "FlagClient":
        """Build a client from loaded configuration.

        Args:
            config: Loaded configuration.
            configure_logging: Apply ``config.logging`` to the ``flagsync``
                logger. Hosts with their own logging setup pass False.
            **kwargs: Extra ``FlagClient`` arguments.

        Raises:
            ConfigurationError: The client section is invalid.
        """
        config.client.validate()
        if configure_logging:
            setup_logging(config.logging.level, config.logging.json_output)
        kwargs.setdefault(
            "fetch_client",
            FetchClient(timeout=config.http.timeout, retries=config.http.retries),
        )
        return cls(
            url=config.client.url,
            app_name=config.client.app_name,
            instance_id=config.client.instance_id,
            project_name=config.client.project_name,
            refresh_interval=config.client.refresh_interval,
            backup_path=config.backup.path if config.backup.explicit else None,
            timeout=config.http.timeout,
            headers=config.http.headers or None,
            name_prefix=config.client.name_prefix,
            tags=config.client.tags,
            disable_metrics=config.client.disable_metrics,
            **kwargs,
        )

    @property
    def is_ready(self) -> bool:
        return self.readiness is ReadinessState.READY

    def _on_ready(self) -> None:
        if self.readiness is ReadinessState.READY:
            return
        self.readiness = ReadinessState.READY
        logger.info(f"Client {self.app_name} is ready")
        self.emit("ready")

    def start(self) -> None:
        """Start syncing; only needed when constructed outside an event loop."""
        self.repository.start()

    async def wait_until_ready(self, timeout: float | None = None) -> None:
        """Wait for the ready latch.

        Raises:
            asyncio.TimeoutError: Not ready within ``timeout`` seconds.
        """
        if self.is_ready:
            return
        future = asyncio.get_running_loop().create_future()

        def resolve() -> None:
            if not future.done():
                future.set_result(None)

        self.on("ready", resolve)
        try:
            await asyncio.wait_for(future, timeout=timeout)
        finally:
            self.off("ready", resolve)

    def _warn_not_ready(self, call: str, fallback: Any) -> None:
        self.emit(
            "warn",
            f"Client has not synchronized yet. {call} defaulted to {fallback}",
        )

    def is_enabled(
        self,
        name: str,
        context: dict[str, Any] | None = None,
        fallback: bool | None = None,
    ) -> bool:
        """Check whether a toggle is on.

        Args:
            name: Toggle name.
            context: Evaluation context passed to strategies.
            fallback: Returned when the toggle is unknown; defaults to False.

        Returns:
            The evaluated state, or the fallback for unknown toggles.
        """
        toggle = self.repository.get_toggle(name)
        if toggle is None:
            result = bool(fallback) if fallback is not None else False
            if self.readiness is ReadinessState.NOT_READY:
                self._warn_not_ready(f"is_enabled({name})", result)
                if not valid_toggle_name(name):
                    # One warn per call; metrics would warn about the name again
                    return result
        else:
            result = self.strategies.evaluate(toggle, context or {})

        self.metrics.count(name, result)
        return result

    def get_variant(
        self,
        name: str,
        context: dict[str, Any] | None = None,
        fallback_variant: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Resolve the variant of a toggle for a context.

        Returns:
            The selected variant, or ``fallback_variant`` (default
            ``{"name": "disabled", "enabled": False}``) when the toggle is
            unknown, off, or has no variants.
        """
        fallback = dict(fallback_variant or DISABLED_VARIANT)
        context = context or {}

        toggle = self.repository.get_toggle(name)
        if toggle is None:
            if self.readiness is ReadinessState.NOT_READY:
                self._warn_not_ready(f"get_variant({name})", fallback["name"])
            return fallback

        enabled = self.strategies.evaluate(toggle, context)
        self.metrics.count(name, enabled)
        if not enabled:
            return fallback

        variant = select_variant(toggle, context)
        if variant is None:
            return fallback
        self.metrics.count_variant(name, variant["name"])
        return variant

    def get_toggle_definition(self, name: str) -> ToggleDefinition | None:
        return self.repository.get_toggle(name)

    def get_toggle_definitions(self) -> list[ToggleDefinition]:
        return self.repository.get_toggles()

    def destroy(self) -> None:
        """Stop syncing and metrics. Queries keep answering from the replica."""
        self.repository.stop()
        self.metrics.stop()

    async def close(self) -> None:
        """Destroy and release background resources."""
        self.destroy()
        await self.repository.close()
