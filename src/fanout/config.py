"""Configuration loader for fanout."""

from __future__ import annotations

import getpass
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_PATH = Path("~/.config/fanout/config.yaml")


@dataclass
class Defaults:
    """Default values that command line flags can override."""

    user: str = field(default_factory=getpass.getuser)
    port: int = 22
    parallel: int = 100
    ssh_key: Path | None = None
    known_hosts: Path = field(default_factory=lambda: Path("~/.ssh/known_hosts").expanduser())
    connect_timeout: float | None = None
    log_level: str = "INFO"


@dataclass
class Config:
    """Main configuration for a run."""

    defaults: Defaults = field(default_factory=Defaults)
    source_path: Path | None = None  # Path to the file the config came from


def load_config(config_path: str | Path | None = None) -> Config:
    """Load and validate configuration from a YAML file.

    Without ``config_path`` the default location is tried and built-in
    defaults are used when it does not exist.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH.expanduser()
        if not config_path.exists():
            return Config()

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    config = Config(defaults=_parse_defaults(raw))
    config.source_path = config_path
    return config


def _parse_defaults(raw: dict[str, Any]) -> Defaults:
    """Parse the defaults section."""
    defaults_raw = raw.get("defaults") or {}
    if not isinstance(defaults_raw, dict):
        raise ValueError("'defaults' must be a mapping")

    known = {f.name for f in fields(Defaults)}
    unknown = sorted(set(defaults_raw) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

    defaults = Defaults()
    if "user" in defaults_raw:
        defaults.user = str(defaults_raw["user"])
    defaults.port = _positive_int(defaults_raw, "port", defaults.port)
    defaults.parallel = _positive_int(defaults_raw, "parallel", defaults.parallel)
    if defaults_raw.get("ssh_key"):
        defaults.ssh_key = Path(defaults_raw["ssh_key"]).expanduser()
    if defaults_raw.get("known_hosts"):
        defaults.known_hosts = Path(defaults_raw["known_hosts"]).expanduser()
    if defaults_raw.get("connect_timeout") is not None:
        timeout = defaults_raw["connect_timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError(f"'connect_timeout' must be a positive number, got {timeout!r}")
        defaults.connect_timeout = float(timeout)
    if "log_level" in defaults_raw:
        defaults.log_level = str(defaults_raw["log_level"]).upper()
    return defaults


def _positive_int(raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{key}' must be a positive integer, got {value!r}")
    return value
