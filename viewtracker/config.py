"""
Configuration for the updater, provider client and storage.

Values come from environment variables (optionally loaded from .env).
Everything is validated up front so the scheduler never starts with a
configuration it cannot honour.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError


def _get(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = _get(env, name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float, minimum: Optional[float] = None) -> float:
    raw = _get(env, name)
    if raw is None:
        value = default
    else:
        try:
            value = float(raw)
        except ValueError:
            raise ConfigError(f"{name} must be a number, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class DatabaseConfig:
    path: Path = Path("data/viewtracker.db")


@dataclass(frozen=True)
class ProviderConfig:
    """Settings for the EnsembleData post-info endpoint."""

    base_url: str = "https://ensembledata.com/apis"
    token: str = ""
    max_retries: int = 3
    retry_timeout: float = 2.0  # seconds between attempts
    request_timeout: float = 15.0


@dataclass(frozen=True)
class EarningsConfig:
    rate: float = 0.10
    per: int = 1000

    def __post_init__(self):
        if self.per <= 0:
            raise ConfigError(f"EARNINGS_PER must be > 0, got {self.per}")


@dataclass(frozen=True)
class UpdaterConfig:
    interval: float = 3600.0
    batch_size: int = 100
    min_update_age: float = 3600.0
    max_concurrency: int = 5

    def __post_init__(self):
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_concurrency < 1:
            raise ConfigError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.interval <= 0:
            raise ConfigError(f"interval must be > 0, got {self.interval}")
        if self.min_update_age < 0:
            raise ConfigError(f"min_update_age must be >= 0, got {self.min_update_age}")


@dataclass(frozen=True)
class Settings:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    earnings: EarningsConfig = field(default_factory=EarningsConfig)
    updater: UpdaterConfig = field(default_factory=UpdaterConfig)
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (default: os.environ)

        Raises:
            ConfigError: On malformed or out-of-range values
        """
        env = os.environ if env is None else env

        database = DatabaseConfig(
            path=Path(_get(env, "VIEWTRACKER_DB_PATH", "data/viewtracker.db")),
        )
        provider = ProviderConfig(
            base_url=_get(env, "PROVIDER_URL", ProviderConfig.base_url),
            token=_get(env, "PROVIDER_TOKEN", ""),
            max_retries=_get_int(env, "PROVIDER_MAX_RETRIES", 3, minimum=1),
            retry_timeout=_get_float(env, "PROVIDER_RETRY_TIMEOUT", 2.0, minimum=0),
            request_timeout=_get_float(env, "PROVIDER_REQUEST_TIMEOUT", 15.0, minimum=0),
        )
        earnings = EarningsConfig(
            rate=_get_float(env, "EARNINGS_RATE", 0.10, minimum=0),
            per=_get_int(env, "EARNINGS_PER", 1000),
        )
        updater = UpdaterConfig(
            interval=_get_float(env, "UPDATER_INTERVAL", 3600.0),
            batch_size=_get_int(env, "UPDATER_BATCH_SIZE", 100, minimum=1),
            min_update_age=_get_float(env, "UPDATER_MIN_UPDATE_AGE", 3600.0, minimum=0),
            max_concurrency=_get_int(env, "UPDATER_MAX_CONCURRENCY", 5, minimum=1),
        )

        log_level = _get(env, "LOG_LEVEL", "INFO").upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"LOG_LEVEL must be a standard level name, got {log_level!r}")

        return cls(
            database=database,
            provider=provider,
            earnings=earnings,
            updater=updater,
            log_level=log_level,
            log_dir=Path(_get(env, "LOG_DIR", "logs")),
        )
