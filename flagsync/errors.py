"""Exception types for flagsync."""

import errno


class FlagSyncError(Exception):
    """Base class for all flagsync errors."""


class ConfigurationError(FlagSyncError, ValueError):
    """Invalid or missing configuration detected at construction time."""


class FetchStatusError(FlagSyncError):
    """The remote answered with a status that is neither 2xx nor 304."""

    def __init__(self, status: int, url: str | None = None):
        self.status = status
        self.url = url
        super().__init__(f"Response was not statusCode 2XX, but was {status}")


class ToggleValidationError(FlagSyncError):
    """A toggle definition failed structural validation."""

    def __init__(self, toggle_name: str | None, problems: list[str]):
        self.toggle_name = toggle_name
        self.problems = problems
        super().__init__(", ".join(problems))


class BackupNotFoundError(FlagSyncError, FileNotFoundError):
    """An explicitly requested backup file or directory does not exist."""

    def __init__(self, path: str):
        super().__init__(errno.ENOENT, "Backup not found", path)


class BackupCorruptError(FlagSyncError):
    """A backup file exists but could not be parsed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Failed parsing backup file {path}: {reason}")
