"""Configuration loading for flagsync."""

import os
import socket
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError


def default_instance_id() -> str:
    """Build an instance id unique enough to tell processes apart."""
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = "undefined"
    return f"generated-{uuid.uuid4().hex[:8]}-{hostname}"


@dataclass
class TagFilter:
    """Restricts a fetch to toggles carrying a tag."""

    name: str
    value: str

    def __str__(self) -> str:
        return f"{self.name}:{self.value}"


@dataclass
class BackupConfig:
    path: str = field(default_factory=tempfile.gettempdir)
    explicit: bool = False  # True when the host chose the directory


@dataclass
class HTTPConfig:
    timeout: float = 10.0
    retries: int = 2
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    level: str = "info"
    json_output: bool = False


@dataclass
class ClientConfig:
    """Identity and scope of one synchronized replica."""

    url: str = ""
    app_name: str = ""
    instance_id: str = field(default_factory=default_instance_id)
    project_name: str | None = None
    name_prefix: str | None = None
    tags: list[TagFilter] = field(default_factory=list)
    refresh_interval: float = 15.0  # seconds; 0 disables polling
    disable_metrics: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError if url or app_name is unusable."""
        if not self.url or not isinstance(self.url, str):
            raise ConfigurationError("API url missing: url")
        if not self.url.startswith(("http://", "https://")):
            raise ConfigurationError(f"API url must be http(s): {self.url}")
        if not self.app_name or not isinstance(self.app_name, str):
            raise ConfigurationError("Application name missing: app_name")


@dataclass
class Config:
    client: ClientConfig = field(default_factory=ClientConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with FLAGSYNC_ prefix."""
    return os.environ.get(f"FLAGSYNC_{key}", default)


def _is_true(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _parse_tag(item: Any) -> TagFilter:
    if isinstance(item, TagFilter):
        return item
    if isinstance(item, str):
        name, sep, value = item.partition(":")
        if sep and name:
            return TagFilter(name=name, value=value)
    elif isinstance(item, dict):
        for name_key, value_key in (("name", "value"), ("tagName", "tagValue")):
            if name_key in item and value_key in item:
                return TagFilter(name=str(item[name_key]), value=str(item[value_key]))
    elif isinstance(item, (tuple, list)) and len(item) == 2:
        return TagFilter(name=str(item[0]), value=str(item[1]))
    raise ConfigurationError(f"Tag filter must be name:value, got {item!r}")


def parse_tags(raw: Any) -> list[TagFilter]:
    """Parse tag filters.

    Accepts a comma separated "name:value" string, or an iterable of
    TagFilter, "name:value" strings, {name, value} or {tagName, tagValue}
    dicts and (name, value) pairs.

    Raises:
        ConfigurationError: A tag has none of these shapes.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [part.strip() for part in raw.split(",") if part.strip()]
    return [_parse_tag(item) for item in raw]


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if url := _get_env("URL"):
        config.client.url = url
    if app_name := _get_env("APP_NAME"):
        config.client.app_name = app_name
    if instance_id := _get_env("INSTANCE_ID"):
        config.client.instance_id = instance_id
    if project := _get_env("PROJECT"):
        config.client.project_name = project
    if name_prefix := _get_env("NAME_PREFIX"):
        config.client.name_prefix = name_prefix
    if tags := _get_env("TAGS"):
        config.client.tags = parse_tags(tags)
    if interval := _get_env("REFRESH_INTERVAL"):
        config.client.refresh_interval = float(interval)
    if disable_metrics := _get_env("DISABLE_METRICS"):
        config.client.disable_metrics = _is_true(disable_metrics)

    if backup_path := _get_env("BACKUP_PATH"):
        config.backup.path = backup_path
        config.backup.explicit = True

    if timeout := _get_env("TIMEOUT"):
        config.http.timeout = float(timeout)

    if log_level := _get_env("LOG_LEVEL"):
        config.logging.level = log_level
    if log_json := _get_env("LOG_JSON"):
        config.logging.json_output = _is_true(log_json)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object. Call ``config.client.validate()`` before use.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "client" in data:
                client_data = data["client"]
                config.client = ClientConfig(
                    url=client_data.get("url", config.client.url),
                    app_name=client_data.get("app_name", config.client.app_name),
                    instance_id=client_data.get(
                        "instance_id", config.client.instance_id
                    ),
                    project_name=client_data.get("project_name"),
                    name_prefix=client_data.get("name_prefix"),
                    tags=parse_tags(client_data.get("tags")),
                    refresh_interval=client_data.get(
                        "refresh_interval", config.client.refresh_interval
                    ),
                    disable_metrics=client_data.get(
                        "disable_metrics", config.client.disable_metrics
                    ),
                )

            if "backup" in data:
                backup_data = data["backup"]
                config.backup = BackupConfig(
                    path=backup_data.get("path", config.backup.path),
                    explicit="path" in backup_data,
                )

            if "http" in data:
                http_data = data["http"]
                config.http = HTTPConfig(
                    timeout=http_data.get("timeout", config.http.timeout),
                    retries=http_data.get("retries", config.http.retries),
                    headers=http_data.get("headers", {}),
                )

            if "logging" in data:
                log_data = data["logging"]
                config.logging = LoggingConfig(
                    level=log_data.get("level", config.logging.level),
                    json_output=log_data.get("json_output", config.logging.json_output),
                )

    return _apply_env_overrides(config)
