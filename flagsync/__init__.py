"""flagsync: feature toggles served from a locally synchronized replica."""

from .client import FlagClient, ReadinessState
from .config import ClientConfig, Config, TagFilter, load_config
from .errors import (
    BackupCorruptError,
    BackupNotFoundError,
    ConfigurationError,
    FetchStatusError,
    FlagSyncError,
    ToggleValidationError,
)
from .events import EventEmitter
from .http_client import FetchClient
from .metrics import Metrics
from .replica import BackingStore, Repository, SyncState, ToggleDefinition
from .strategies import StrategyRegistry

__all__ = [
    "BackingStore",
    "BackupCorruptError",
    "BackupNotFoundError",
    "ClientConfig",
    "Config",
    "ConfigurationError",
    "EventEmitter",
    "FetchClient",
    "FetchStatusError",
    "FlagClient",
    "FlagSyncError",
    "Metrics",
    "ReadinessState",
    "Repository",
    "StrategyRegistry",
    "SyncState",
    "TagFilter",
    "ToggleDefinition",
    "ToggleValidationError",
    "load_config",
]
