"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


CALENDAR_PROVIDERS = ("finnhub", "yahoo_finance")


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/earnings_alerts.db"


@dataclass
class ProvidersConfig:
    """External service credentials and settings."""

    finnhub_api_key: str = ""
    resend_api_key: str = ""
    from_address: str = "Earnings Alerts <alerts@example.com>"
    app_url: str = ""
    calendar: str = "finnhub"
    request_timeout_seconds: float = 15


@dataclass
class ExchangeConfig:
    """Exchange listing to sync."""

    mic: str
    exchange: str


def _default_exchanges() -> list[ExchangeConfig]:
    return [
        ExchangeConfig(mic="XNAS", exchange="NASDAQ"),
        ExchangeConfig(mic="XNYS", exchange="NYSE"),
    ]


@dataclass
class TickerSyncConfig:
    """Ticker universe sync configuration."""

    enabled: bool = True
    exchanges: list[ExchangeConfig] = field(default_factory=_default_exchanges)
    # 50 calls at 1.1s stays under a 60 calls/minute ceiling
    enrichment_batch_size: int = 50
    enrichment_delay_seconds: float = 1.1
    enrichment_retry_days: int = 30
    enrichment_time_budget_seconds: float = 300


@dataclass
class AlertsConfig:
    """After-alert sweep configuration."""

    calendar_lookahead_days: int = 120


@dataclass
class CronConfig:
    """Trigger authentication."""

    secret: Optional[str] = None


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    ticker_sync: TickerSyncConfig = field(default_factory=TickerSyncConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    cron: CronConfig = field(default_factory=CronConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path")
    if not db_path:
        raise ConfigValidationError("Database path is required")

    if db_path != ":memory:":
        parent = Path(db_path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    providers = config_dict.get("providers") or {}
    calendar = providers.get("calendar", "finnhub")
    if calendar not in CALENDAR_PROVIDERS:
        raise ConfigValidationError(
            f"Unknown calendar provider: {calendar} "
            f"(expected one of {', '.join(CALENDAR_PROVIDERS)})"
        )

    sync = config_dict.get("ticker_sync") or {}
    if int(sync.get("enrichment_batch_size", 50)) <= 0:
        raise ConfigValidationError("enrichment_batch_size must be positive")
    if float(sync.get("enrichment_delay_seconds", 1.1)) < 0:
        raise ConfigValidationError("enrichment_delay_seconds cannot be negative")
    if int(sync.get("enrichment_retry_days", 30)) < 0:
        raise ConfigValidationError("enrichment_retry_days cannot be negative")

    for entry in sync.get("exchanges") or []:
        if not isinstance(entry, dict) or not entry.get("mic") or not entry.get("exchange"):
            raise ConfigValidationError(f"Invalid exchange entry: {entry!r}")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    config_dict = _substitute_env_vars(raw_config)

    _validate_config(config_dict)

    database = DatabaseConfig(**config_dict.get("database", {}))
    providers = ProvidersConfig(**(config_dict.get("providers") or {}))

    # Ticker sync
    sync_dict = dict(config_dict.get("ticker_sync") or {})
    exchanges_list = sync_dict.pop("exchanges", None)
    ticker_sync = TickerSyncConfig(**sync_dict)
    if exchanges_list:
        ticker_sync.exchanges = [ExchangeConfig(**e) for e in exchanges_list]

    alerts = AlertsConfig(**(config_dict.get("alerts") or {}))

    # An empty secret means no secret
    cron_dict = config_dict.get("cron") or {}
    cron = CronConfig(secret=cron_dict.get("secret") or None)

    advanced = AdvancedConfig(**(config_dict.get("advanced") or {}))

    return AppConfig(
        database=database,
        providers=providers,
        ticker_sync=ticker_sync,
        alerts=alerts,
        cron=cron,
        advanced=advanced,
    )
