"""In-memory toggle store with a JSON backup file for cold starts."""

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path

from ..errors import BackupCorruptError, BackupNotFoundError
from ..events import EventEmitter
from .toggles import ToggleDefinition, has_usable_name

logger = logging.getLogger(__name__)

BACKUP_FILE_TEMPLATE = "flagsync-repo-schema-v1-{name}.json"


def safe_name(name: str) -> str:
    """Make an application name usable as part of a file name."""
    return re.sub(r"[/\\.]", "_", name or "")


class BackingStore(EventEmitter):
    """Holds the current replica and mirrors it to a backup file.

    Events:
        ready: the store received its first usable data set.
        error: a backup read or write failed.
    """

    def __init__(
        self,
        app_name: str,
        backup_path: str | Path | None = None,
    ):
        """Initialize the store.

        Args:
            app_name: Application identity; selects the backup file.
            backup_path: Directory for the backup file. Defaults to the
                system temp directory. A directory passed here explicitly
                must exist, otherwise loading reports an error.
        """
        super().__init__()
        self.app_name = app_name
        self._explicit_path = backup_path is not None
        self.backup_path = Path(backup_path) if backup_path else Path(tempfile.gettempdir())
        self._data: dict[str, ToggleDefinition] = {}
        self._ready = False
        self._write_lock = asyncio.Lock()
        self._pending_writes: set[asyncio.Task] = set()

    @property
    def backup_file(self) -> Path:
        return self.backup_path / BACKUP_FILE_TEMPLATE.format(name=safe_name(self.app_name))

    @property
    def ready(self) -> bool:
        return self._ready

    def reset(self, data: dict[str, ToggleDefinition], persist: bool = True) -> None:
        """Replace the whole replica with ``data``.

        The new mapping is visible to readers before ``ready`` fires. The
        backup write happens afterwards and never rolls back the swap.
        """
        self._data = dict(data)
        first = not self._ready
        self._ready = True
        if first:
            self.emit("ready")
        if persist:
            self._schedule_persist(self._data)

    def get(self, name: str) -> ToggleDefinition | None:
        return self._data.get(name)

    def get_all(self) -> dict[str, ToggleDefinition]:
        return dict(self._data)

    def _schedule_persist(self, data: dict[str, ToggleDefinition]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (plain synchronous use): write inline
            try:
                self._write_backup(data)
            except OSError as e:
                logger.error(f"Failed to write backup {self.backup_file}: {e}")
                self.emit("error", e)
            return

        task = loop.create_task(self.persist(data))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def persist(self, data: dict[str, ToggleDefinition] | None = None) -> bool:
        """Write a snapshot to the backup file off the event loop.

        Returns:
            True if the file was written.
        """
        if data is None:
            data = self._data
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._write_backup, data)
            except OSError as e:
                logger.error(f"Failed to write backup {self.backup_file}: {e}")
                self.emit("error", e)
                return False
        return True

    async def flush(self) -> None:
        """Wait for scheduled backup writes to finish."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))

    def _write_backup(self, data: dict[str, ToggleDefinition]) -> None:
        payload = {name: toggle.to_dict() for name, toggle in data.items()}
        target = self.backup_file
        fd, tmp_name = tempfile.mkstemp(
            dir=self.backup_path, prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug(f"Wrote {len(payload)} toggles to {target}")

    def read_backup(self, required: bool = True) -> dict[str, ToggleDefinition] | None:
        """Read the backup file.

        Args:
            required: Raise BackupNotFoundError if the file is missing,
                instead of returning None.

        Returns:
            The stored mapping, or None when absent and not required.

        Raises:
            BackupNotFoundError: File missing and ``required`` is set.
            BackupCorruptError: File present but not a valid snapshot.
        """
        path = self.backup_file
        if not path.exists():
            if required:
                raise BackupNotFoundError(str(path))
            return None

        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BackupCorruptError(str(path), str(e)) from e

        if not isinstance(raw, dict) or not all(isinstance(v, dict) for v in raw.values()):
            raise BackupCorruptError(str(path), "expected an object of toggle objects")

        toggles = {}
        for key, value in raw.items():
            if not has_usable_name(value):
                logger.warning(f"Skipping backup entry {key!r} without a name")
                continue
            toggle = ToggleDefinition.from_dict(value)
            toggles[toggle.name] = toggle
        return toggles

    async def load(self) -> bool:
        """Best-effort startup recovery from the backup file.

        A missing file is normal. A corrupt file is logged and ignored. A
        backup directory that was configured explicitly but does not exist
        is reported as an ``error`` event.

        Returns:
            True if the replica was populated from the backup.
        """
        if self._explicit_path and not self.backup_path.is_dir():
            err = BackupNotFoundError(str(self.backup_path))
            logger.error(f"Backup directory does not exist: {self.backup_path}")
            self.emit("error", err)
            return False

        try:
            data = await asyncio.to_thread(self.read_backup, False)
        except BackupCorruptError as e:
            logger.warning(f"Ignoring corrupt backup: {e}")
            return False
        except OSError as e:
            logger.error(f"Failed to read backup {self.backup_file}: {e}")
            self.emit("error", e)
            return False

        if not data:
            return False
        if self._ready:
            # A live sync already landed; it is newer than the backup
            return False

        self.reset(data, persist=False)
        logger.info(f"Recovered {len(data)} toggles from {self.backup_file}")
        return True
