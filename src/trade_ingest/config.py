"""Configuration loading for the ingestion service.

Configuration is read from an optional YAML file and then overridden by
environment variables, so a container can be configured without a file.

Example config file (ingest.yaml):

    port: 3000
    log_level: "info"
    influxdb:
      url: "http://localhost:8086"
      token: "my-super-secret-auth-token"
      org: "ohlcv-poc"
      bucket: "trades"
    trade_generation:
      total_trades: 1000000
      batch_size: 10000
      start_date: "2024-01-01T00:00:00Z"
      end_date: "2024-12-31T23:59:59Z"
      symbols: ["AAPL", "MSFT", "AMZN", "GOOGL", "META"]
      random_seed: 42  # Optional

Environment overrides: PORT, HOST, LOG_LEVEL, JSON_LOGS, INFLUXDB_URL,
INFLUXDB_TOKEN, INFLUXDB_ORG, INFLUXDB_BUCKET, TOTAL_TRADES, BATCH_SIZE,
START_DATE, END_DATE, SYMBOLS (comma separated), RANDOM_SEED.
"""

from __future__ import annotations

import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from trade_ingest.exceptions import ConfigError
from trade_ingest.types import (
    AppConfig,
    InfluxDBConfig,
    Symbol,
    TradeGenerationConfig,
)

# Environment variable -> (section, key)
_ENV_STRINGS = {
    "HOST": (None, "host"),
    "LOG_LEVEL": (None, "log_level"),
    "INFLUXDB_URL": ("influxdb", "url"),
    "INFLUXDB_TOKEN": ("influxdb", "token"),
    "INFLUXDB_ORG": ("influxdb", "org"),
    "INFLUXDB_BUCKET": ("influxdb", "bucket"),
    "START_DATE": ("trade_generation", "start_date"),
    "END_DATE": ("trade_generation", "end_date"),
}

_ENV_INTS = {
    "PORT": (None, "port"),
    "TOTAL_TRADES": ("trade_generation", "total_trades"),
    "BATCH_SIZE": ("trade_generation", "batch_size"),
    "RANDOM_SEED": ("trade_generation", "random_seed"),
}

_TRUTHY = frozenset(["1", "true", "yes", "on"])
_FALSY = frozenset(["0", "false", "no", "off"])


def _parse_datetime(value: str | datetime) -> datetime:
    """Parse a datetime string or pass through datetime objects.

    :param value: ISO format string, date or datetime object.
    :returns: Timezone-aware datetime (UTC if no timezone specified).
    :raises ConfigError: If parsing fails.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if not isinstance(value, str):
        raise ConfigError(f"Invalid datetime format: {value!r}")

    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        pass

    try:
        dt = datetime.strptime(value, "%Y-%m-%d")
        return dt.replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise ConfigError(f"Invalid datetime format: {value}") from e


def _parse_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError as e:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}") from e


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigError(f"'{name}' must be a boolean, got {value!r}")


def _parse_symbols(value: Any) -> list[Symbol]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list) or len(value) == 0:
        raise ConfigError("'symbols' must be a non-empty list")

    symbols: list[Symbol] = []
    for raw in value:
        if not isinstance(raw, str) or not raw.strip():
            raise ConfigError("'symbols' must not contain empty entries")
        symbols.append(Symbol(raw.strip()))
    return symbols


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a YAML mapping")
    return raw_config


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return dict(section)


def _apply_env(raw: dict[str, Any], environ: Mapping[str, str]) -> None:
    """Overlay environment variables onto the raw configuration mapping."""

    def put(section: str | None, key: str, value: Any) -> None:
        if section is None:
            raw[key] = value
        else:
            raw[section][key] = value

    for var, (section, key) in _ENV_STRINGS.items():
        if environ.get(var):
            put(section, key, environ[var])

    for var, (section, key) in _ENV_INTS.items():
        if environ.get(var):
            put(section, key, _parse_int(var, environ[var]))

    if environ.get("JSON_LOGS"):
        raw["json_logs"] = _parse_bool("JSON_LOGS", environ["JSON_LOGS"])

    if environ.get("SYMBOLS"):
        raw["trade_generation"]["symbols"] = environ["SYMBOLS"]


def validate_trade_generation(raw: dict[str, Any]) -> TradeGenerationConfig:
    """Validate the ``trade_generation`` section.

    :param raw: Raw section mapping (missing keys fall back to defaults).
    :returns: Validated TradeGenerationConfig.
    :raises ConfigError: If any value is invalid.
    """
    defaults = TradeGenerationConfig()
    params: dict[str, Any] = {}

    total = _parse_int("total_trades", raw.get("total_trades", defaults.total_trades))
    if total < 0:
        raise ConfigError("'total_trades' must be zero or a positive integer")
    params["total_trades"] = total

    batch_size = _parse_int("batch_size", raw.get("batch_size", defaults.batch_size))
    if batch_size < 1:
        raise ConfigError("'batch_size' must be a positive integer")
    params["batch_size"] = batch_size

    start_dt = _parse_datetime(raw.get("start_date", defaults.start_date))
    end_dt = _parse_datetime(raw.get("end_date", defaults.end_date))
    if start_dt >= end_dt:
        raise ConfigError("'start_date' must be before 'end_date'")
    params["start_date"] = start_dt
    params["end_date"] = end_dt

    params["symbols"] = (
        _parse_symbols(raw["symbols"]) if "symbols" in raw else defaults.symbols
    )

    seed = raw.get("random_seed")
    params["random_seed"] = None if seed is None else _parse_int("random_seed", seed)

    return TradeGenerationConfig(**params)


def load_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Build the application configuration.

    :param config_path: Optional path to a YAML configuration file.
    :param environ: Environment mapping, defaults to ``os.environ``.
    :returns: Validated AppConfig object.
    :raises ConfigError: If the file cannot be read or any value is invalid.
    """
    raw: dict[str, Any] = {}
    if config_path is not None:
        raw = _read_yaml(Path(config_path))

    raw["influxdb"] = _section(raw, "influxdb")
    raw["trade_generation"] = _section(raw, "trade_generation")

    _apply_env(raw, os.environ if environ is None else environ)

    trade_generation = validate_trade_generation(raw["trade_generation"])

    port = _parse_int("port", raw.get("port", AppConfig().port))
    if not 0 < port < 65536:
        raise ConfigError(f"'port' must be between 1 and 65535, got {port}")

    try:
        return AppConfig(
            host=raw.get("host", AppConfig().host),
            port=port,
            log_level=str(raw.get("log_level", AppConfig().log_level)),
            json_logs=_parse_bool("json_logs", raw.get("json_logs", False)),
            influxdb=InfluxDBConfig(**raw["influxdb"]),
            trade_generation=trade_generation,
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


__all__ = ["load_config", "validate_trade_generation"]
