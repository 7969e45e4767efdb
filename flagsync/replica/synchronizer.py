"""Poll loop that keeps the local replica in sync with the remote API.

Each cycle issues a conditional GET. A 304 leaves everything untouched, a
2xx body replaces the whole replica, anything else is reported and retried
on the next cycle.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from ..config import parse_tags
from ..errors import ConfigurationError, FetchStatusError, ToggleValidationError
from ..events import EventEmitter
from ..http_client import DEFAULT_TIMEOUT, FetchClient, HeadersProvider, build_url
from .store import BackingStore
from .toggles import ToggleDefinition, has_usable_name, validate_toggle

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Where the synchronizer is in its cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    COMMITTING = "committing"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    SCHEDULED = "scheduled"
    STOPPED = "stopped"


@dataclass
class SyncResult:
    """Outcome of one fetch cycle."""

    state: SyncState
    toggle_count: int = 0
    error: str | None = None
    timestamp: datetime | None = None


class Repository(EventEmitter):
    """Replica synchronizer.

    Events:
        ready: first usable data (backup recovery or first live sync).
        changed: a new replica was committed; carries the full mapping.
        unchanged: the remote answered 304.
        error: fetch, validation or backup failure.
        warn: recoverable misuse.

    The loop starts on the next event loop iteration after construction,
    so listeners attached right after ``Repository(...)`` see every event.
    Without a running loop, call ``start()`` from inside one.
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
        strict_validation: bool = False,
        store: BackingStore | None = None,
        fetch_client: FetchClient | None = None,
        autostart: bool = True,
    ):
        """Initialize the synchronizer.

        Args:
            url: Base URL of the API.
            app_name: Application identity sent with every request.
            instance_id: Instance identity sent with every request.
            project_name: Restrict fetches to one project.
            refresh_interval: Seconds between cycles; 0 or None fetches once.
            backup_path: Directory of the backup file.
            timeout: Request timeout in seconds.
            headers: Static headers added to every request.
            custom_headers_provider: Async callable returning headers, called
                once per cycle; takes precedence over ``headers``.
            name_prefix: Restrict fetches to names with this prefix.
            tags: Tag filters rendered as "name:value".
            strict_validation: Drop malformed definitions instead of storing
                them as received.
            store: Store to commit into; one is created if omitted.
            fetch_client: HTTP collaborator; one is created if omitted.
            autostart: Schedule ``start()`` on the running loop.

        Raises:
            ConfigurationError: url or app_name missing, or a tag filter
                is malformed.
        """
        super().__init__()
        if not url or not isinstance(url, str):
            raise ConfigurationError("API url missing: url")
        if not app_name or not isinstance(app_name, str):
            raise ConfigurationError("Application name missing: app_name")

        self.url = url
        self.app_name = app_name
        self.instance_id = instance_id
        self.project_name = project_name
        self.refresh_interval = refresh_interval
        self.timeout = timeout
        self.headers = headers
        self.custom_headers_provider = custom_headers_provider
        self.name_prefix = name_prefix
        self.tags = parse_tags(tags)
        self.strict_validation = strict_validation

        self.store = store or BackingStore(app_name, backup_path)
        self.store.on("error", lambda err: self.emit("error", err))
        self.store.on("ready", lambda: self.emit("ready"))

        self.fetch_client = fetch_client or FetchClient(timeout or DEFAULT_TIMEOUT)

        self.etag: str | None = None
        self.state = SyncState.IDLE
        self.last_result: SyncResult | None = None
        self._stopped = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._start_handle: asyncio.Handle | None = None

        if autostart:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; call start() to begin polling")
            else:
                self._start_handle = loop.call_soon(self.start)

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        """Start the poll loop as a background task."""
        self._start_handle = None
        if self._stopped or self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run_loop())
        logger.info(
            f"Replica sync started for {self.app_name} "
            f"(interval={self.refresh_interval or 0}s)"
        )

    async def _run_loop(self) -> None:
        """Recover from backup, then fetch until stopped."""
        try:
            await self.store.load()
        except Exception as e:
            logger.error(f"Backup recovery failed: {e}", exc_info=True)

        while not self._stopped:
            try:
                await self.fetch()
            except Exception as e:
                # Only reachable when a listener raises
                logger.error(f"Sync cycle error: {e}", exc_info=True)

            if self._stopped or not self.refresh_interval or self.refresh_interval <= 0:
                break

            self.state = SyncState.SCHEDULED
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.refresh_interval)
                break
            except asyncio.TimeoutError:
                pass

    def _build_toggles(self, data: Any) -> dict[str, ToggleDefinition]:
        """Turn a response body into a fresh replica keyed by name."""
        if not isinstance(data, dict) or not isinstance(data.get("features"), list):
            raise ValueError("Response body has no features list")

        toggles: dict[str, ToggleDefinition] = {}
        for feature in data["features"]:
            if not isinstance(feature, dict):
                problem = f"feature should be an object, but was {type(feature).__name__}"
                self.emit("error", ToggleValidationError(None, [problem]))
                continue
            if not has_usable_name(feature):
                # Unaddressable, so never stored even in permissive mode
                problem = f"feature.name should be a non-empty string, but was {feature.get('name')!r}"
                self.emit("error", ToggleValidationError(None, [problem]))
                continue

            problems = validate_toggle(feature)
            if problems:
                self.emit("error", ToggleValidationError(feature.get("name"), problems))
                if self.strict_validation:
                    continue

            toggle = ToggleDefinition.from_dict(feature)
            toggles[toggle.name] = toggle
        return toggles

    def _finish(self, state: SyncState, toggle_count: int = 0, error: str | None = None) -> SyncResult:
        self.state = state
        self.last_result = SyncResult(
            state=state,
            toggle_count=toggle_count,
            error=error,
            timestamp=datetime.now(),
        )
        return self.last_result

    async def fetch(self) -> SyncResult:
        """Run one fetch cycle.

        Returns:
            SyncResult describing the outcome.
        """
        if self._stopped:
            return SyncResult(state=SyncState.STOPPED)

        self.state = SyncState.FETCHING
        try:
            url = build_url(self.url, self.project_name, self.name_prefix, self.tags)
            if self.custom_headers_provider is not None:
                headers = await self.custom_headers_provider()
            else:
                headers = self.headers

            res = await self.fetch_client.get(
                url,
                etag=self.etag,
                app_name=self.app_name,
                instance_id=self.instance_id,
                headers=headers,
                timeout=self.timeout,
            )
            if self._stopped:
                logger.debug("Discarding response that arrived after stop")
                return SyncResult(state=SyncState.STOPPED)

            if res.status_code == 304:
                result = self._finish(SyncState.UNCHANGED)
                logger.debug("Toggles unchanged (304)")
                self.emit("unchanged")
                return result

            if not res.is_success:
                err = FetchStatusError(res.status_code, url)
                result = self._finish(SyncState.FAILED, error=str(err))
                logger.warning(f"Fetch failed: {err}")
                self.emit("error", err)
                return result

            toggles = self._build_toggles(res.json())
            if self._stopped:
                return SyncResult(state=SyncState.STOPPED)

            self.state = SyncState.COMMITTING
            self.store.reset(toggles)
            self.etag = res.headers.get("etag")
            result = self._finish(SyncState.COMMITTING, toggle_count=len(toggles))
            logger.info(f"Replica updated: {len(toggles)} toggles")
            self.emit("changed", self.store.get_all())
            return result

        except Exception as e:
            if self._stopped:
                return SyncResult(state=SyncState.STOPPED)
            result = self._finish(SyncState.FAILED, error=str(e))
            logger.warning(f"Fetch failed: {type(e).__name__}: {e}")
            self.emit("error", e)
            return result

    def stop(self) -> None:
        """Stop polling and detach all listeners. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True
        self.state = SyncState.STOPPED

        if self._start_handle is not None:
            self._start_handle.cancel()
            self._start_handle = None
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()

        self.remove_all_listeners()
        self.store.remove_all_listeners()
        logger.info(f"Replica sync stopped for {self.app_name}")

    async def close(self) -> None:
        """Stop, wait for the loop and pending backup writes, release HTTP."""
        self.stop()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self.store.flush()
        await self.fetch_client.close()

    def get_toggle(self, name: str) -> ToggleDefinition | None:
        return self.store.get(name)

    def get_toggles(self) -> list[ToggleDefinition]:
        return list(self.store.get_all().values())

    def get_sync_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary with sync diagnostics.
        """
        last = self.last_result
        return {
            "url": self.url,
            "state": self.state.value,
            "etag": self.etag,
            "toggle_count": len(self.store.get_all()),
            "last_result": last.state.value if last else None,
            "last_error": last.error if last else None,
            "last_sync": last.timestamp.isoformat() if last and last.timestamp else None,
        }
