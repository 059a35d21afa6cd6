"""Configuration loading and merging for headcount."""

from dataclasses import dataclass, fields, asdict
from pathlib import Path

import yaml

from .registry import DEFAULT_SESSION_TTL, DEFAULT_SWEEP_INTERVAL, HeadcountError


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(HeadcountError):
    """Configuration value out of range or malformed."""


@dataclass
class HeadcountConfig:
    # HTTP listener
    host: str = "0.0.0.0"
    port: int = 8080

    # Session expiry (seconds)
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    session_ttl: float = DEFAULT_SESSION_TTL

    # Value sent in Access-Control-Allow-Origin
    cors_origin: str = "*"

    log_level: str = "INFO"


def load_config(path: str | Path) -> HeadcountConfig:
    """Load a HeadcountConfig from a YAML file. Unknown keys are ignored."""
    path = Path(path)
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"{path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    valid_fields = {f.name for f in fields(HeadcountConfig)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return HeadcountConfig(**filtered)


def merge_cli_args(config: HeadcountConfig, args) -> HeadcountConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(HeadcountConfig):
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config


def validate_config(config: HeadcountConfig) -> HeadcountConfig:
    """Coerce numeric fields and reject values the server cannot run with."""
    try:
        config.port = int(config.port)
        config.sweep_interval = float(config.sweep_interval)
        config.session_ttl = float(config.session_ttl)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid numeric setting: {exc}") from exc

    if not 0 <= config.port <= 65535:
        raise ConfigError(f"port out of range: {config.port}")
    if config.sweep_interval <= 0:
        raise ConfigError("sweep_interval must be positive")
    if config.session_ttl <= 0:
        raise ConfigError("session_ttl must be positive")

    for name in ("host", "cors_origin"):
        if not isinstance(getattr(config, name), str):
            raise ConfigError(f"{name} must be a string")

    config.log_level = str(config.log_level).upper()
    if config.log_level not in LOG_LEVELS:
        raise ConfigError(f"unknown log_level: {config.log_level}")
    return config


def config_to_yaml(config: HeadcountConfig) -> str:
    """Serialize a HeadcountConfig to YAML."""
    return yaml.dump(asdict(config), default_flow_style=False, sort_keys=False)
