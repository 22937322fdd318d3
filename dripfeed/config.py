"""Config management for dripfeed.

Reads `config.ini` from DATA_DIR (env var, defaults to the project root).
The loaded config is immutable; the server builds it once at startup and
hands it to request handlers.
"""

from __future__ import annotations

import configparser
import dataclasses
import logging
import os
import pathlib
from typing import Optional

from .logging_config import get_logger

logger = get_logger(__name__)

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]

# DATA_DIR holds config.ini and, by default, dripfeed.log and the data/ folder.
DATA_DIR = pathlib.Path(os.environ.get("DATA_DIR", str(PROJECT_ROOT)))
DEFAULT_CONFIG_PATH = DATA_DIR / "config.ini"


@dataclasses.dataclass(frozen=True)
class DataConfig:
    directory: pathlib.Path = DATA_DIR / "data"
    catalog: str = "stories.conf"
    subscriptions: str = "readings.data"


@dataclasses.dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 2345


@dataclasses.dataclass(frozen=True)
class SourceConfig:
    timeout: float = 10.0
    method: str = "GET"
    retries: int = 0
    user_agent: str = "dripfeed/0.1 (+chapter release feeds)"


@dataclasses.dataclass(frozen=True)
class ReleaseConfig:
    """When strict_batch is on, every chapter of a batch must exist before advancing."""

    strict_batch: bool = False


@dataclasses.dataclass(frozen=True)
class MonitoringConfig:
    enabled: bool = True
    debounce_seconds: int = 2


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclasses.dataclass(frozen=True)
class LoggingConfig:
    """Console level and log file; file=None logs to the console only."""

    level: str = "INFO"
    file: Optional[pathlib.Path] = DATA_DIR / "dripfeed.log"

    @property
    def numeric_level(self) -> int:
        return logging.getLevelName(self.level)


@dataclasses.dataclass(frozen=True)
class DripfeedConfig:
    data: DataConfig = dataclasses.field(default_factory=DataConfig)
    server: ServerConfig = dataclasses.field(default_factory=ServerConfig)
    source: SourceConfig = dataclasses.field(default_factory=SourceConfig)
    release: ReleaseConfig = dataclasses.field(default_factory=ReleaseConfig)
    monitoring: MonitoringConfig = dataclasses.field(default_factory=MonitoringConfig)
    logging: LoggingConfig = dataclasses.field(default_factory=LoggingConfig)

    @property
    def data_dir(self) -> pathlib.Path:
        return self.data.directory

    @property
    def catalog_path(self) -> pathlib.Path:
        return self.data.directory / self.data.catalog

    @property
    def subscriptions_path(self) -> pathlib.Path:
        return self.data.directory / self.data.subscriptions


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_path(value: str, base: pathlib.Path) -> pathlib.Path:
    path = pathlib.Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def load_config(config_path: Optional[pathlib.Path] = None) -> DripfeedConfig:
    """Load configuration from config.ini.

    Defaults to `config.ini` in DATA_DIR. A relative data directory is
    resolved against the folder holding the config file.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    parser = configparser.ConfigParser()
    parser.read(path)
    base = path.resolve().parent

    data = DataConfig(
        directory=_resolve_path(
            parser.get("data", "directory", fallback="data"), base
        ),
        catalog=parser.get("data", "catalog", fallback="stories.conf"),
        subscriptions=parser.get("data", "subscriptions", fallback="readings.data"),
    )

    server = ServerConfig(
        host=parser.get("server", "host", fallback="0.0.0.0"),
        port=parser.getint("server", "port", fallback=2345),
    )

    source = SourceConfig(
        timeout=parser.getfloat("source", "timeout", fallback=10.0),
        method=parser.get("source", "method", fallback="GET").strip().upper(),
        retries=parser.getint("source", "retries", fallback=0),
        user_agent=parser.get(
            "source", "user_agent", fallback=SourceConfig.user_agent
        ),
    )
    if source.method not in ("GET", "HEAD"):
        raise ValueError(f"[source] method must be GET or HEAD, got {source.method}")
    if source.timeout <= 0:
        raise ValueError("[source] timeout must be positive")
    if source.retries < 0:
        raise ValueError("[source] retries must not be negative")

    release = ReleaseConfig(
        strict_batch=_parse_bool(
            parser.get("release", "strict_batch", fallback="false"), False
        ),
    )

    monitoring = MonitoringConfig(
        enabled=_parse_bool(
            parser.get("monitoring", "enabled", fallback="true"), True
        ),
        debounce_seconds=parser.getint(
            "monitoring", "debounce_seconds", fallback=2
        ),
    )

    level = parser.get("logging", "level", fallback="INFO").strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"[logging] level must be one of {', '.join(LOG_LEVELS)}, got {level}")
    log_file = parser.get("logging", "file", fallback="dripfeed.log").strip()
    logging_settings = LoggingConfig(
        level=level,
        file=_resolve_path(log_file, base) if log_file else None,
    )

    return DripfeedConfig(
        data=data,
        server=server,
        source=source,
        release=release,
        monitoring=monitoring,
        logging=logging_settings,
    )


def write_default_config(config_path: pathlib.Path, directory: pathlib.Path) -> pathlib.Path:
    """Write a config.ini with default settings and create empty store files.

    Existing store files are left untouched.
    """
    parser = configparser.ConfigParser()
    parser["data"] = {
        "directory": str(directory.expanduser()),
        "catalog": DataConfig.catalog,
        "subscriptions": DataConfig.subscriptions,
    }
    parser["server"] = {
        "host": ServerConfig.host,
        "port": str(ServerConfig.port),
    }
    parser["source"] = {
        "timeout": str(SourceConfig.timeout),
        "method": SourceConfig.method,
        "retries": str(SourceConfig.retries),
        "user_agent": SourceConfig.user_agent,
    }
    parser["release"] = {
        "strict_batch": "false",
    }
    parser["monitoring"] = {
        "enabled": "true",
        "debounce_seconds": str(MonitoringConfig.debounce_seconds),
    }
    parser["logging"] = {
        "level": LoggingConfig.level,
        "file": "dripfeed.log",
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w") as handle:
        parser.write(handle)

    data_dir = _resolve_path(str(directory), config_path.resolve().parent)
    data_dir.mkdir(parents=True, exist_ok=True)
    for name in (DataConfig.catalog, DataConfig.subscriptions):
        store = data_dir / name
        if not store.exists():
            store.touch()
            logger.info(f"Created empty store {store}")

    return config_path
