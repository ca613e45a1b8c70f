"""Configuration loader -- reads config.yaml + .env, validates with Pydantic.

Resolves ${ENV_VAR} references in YAML values from environment variables.
Fails fast with clear errors if the config is malformed.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from core.duration import parse_duration, to_seconds

logger = logging.getLogger(__name__)

# Default home directory for config, .env and the memory database
DEFAULT_HOME = Path.home() / ".sally"

HOME_ENV_VAR = "SALLY_HOME"

_ENV_REF_RE = re.compile(r"\$\{(\w+)\}")


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} references in config values."""
    if isinstance(value, str):
        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                logger.warning("Environment variable %s not set", var_name)
                return match.group(0)  # leave unresolved
            return env_value
        return _ENV_REF_RE.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def is_unresolved(value: str) -> bool:
    """True for empty values and ${VAR} references whose variable was unset."""
    return not value or bool(_ENV_REF_RE.search(value))


# ---------------------------------------------------------------------------
# Config models (Pydantic)
# ---------------------------------------------------------------------------

class LoggingConfig(BaseModel):
    level: str = "INFO"


class AIProviderConfig(BaseModel):
    api_key: str = ""
    model: str = ""
    base_url: str = ""
    max_tokens: int = 2048
    temperature: float = 0.3


class AIConfig(BaseModel):
    default_provider: str = "openrouter"
    providers: dict[str, AIProviderConfig] = Field(default_factory=dict)


class BybitConfig(BaseModel):
    enabled: bool = True
    testnet: bool = False
    category: str = "linear"
    base_url: str = ""


class MarketDataConfig(BaseModel):
    bybit: BybitConfig = Field(default_factory=BybitConfig)
    live_price: bool = True


class FallbackProviderConfig(BaseModel):
    enabled: bool = True
    priority: int | None = None


class FallbackConfig(BaseModel):
    probe_timeout: str = "5s"
    providers: dict[str, FallbackProviderConfig] = Field(default_factory=lambda: {
        "binance": FallbackProviderConfig(priority=1),
        "coinbase": FallbackProviderConfig(priority=2),
        "coingecko": FallbackProviderConfig(priority=3),
    })

    @field_validator("probe_timeout")
    @classmethod
    def _check_duration(cls, v: str) -> str:
        parse_duration(v)
        return v

    @property
    def probe_timeout_seconds(self) -> float:
        return to_seconds(self.probe_timeout)


class TavilyConfig(BaseModel):
    api_key: str = ""
    depth: str = "basic"
    max_results: int = Field(default=5, ge=1, le=20)


class WebSearchConfig(BaseModel):
    tavily: TavilyConfig = Field(default_factory=TavilyConfig)


class MemoryConfig(BaseModel):
    enabled: bool = True
    db_file: str = "memory.db"
    recent_limit: int = Field(default=12, ge=1)
    max_new_facts: int = Field(default=20, ge=0)


class TimeoutsConfig(BaseModel):
    network: str = "5s"
    web_search: str = "12s"
    oracle: str = "45s"

    @field_validator("network", "web_search", "oracle")
    @classmethod
    def _check_duration(cls, v: str) -> str:
        parse_duration(v)
        return v

    @property
    def network_seconds(self) -> float:
        return to_seconds(self.network)

    @property
    def web_search_seconds(self) -> float:
        return to_seconds(self.web_search)

    @property
    def oracle_seconds(self) -> float:
        return to_seconds(self.oracle)


class AggregatorConfig(BaseModel):
    max_concurrency: int = Field(default=4, ge=1)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    home_dir: str = str(DEFAULT_HOME)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    web_search: WebSearchConfig = Field(default_factory=WebSearchConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    aggregator: AggregatorConfig = Field(default_factory=AggregatorConfig)

    @property
    def home_path(self) -> Path:
        """Resolved home directory as a Path."""
        return Path(self.home_dir).expanduser()

    @property
    def memory_db_path(self) -> Path:
        return self.home_path / self.memory.db_file


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    env_path: str | Path | None = None,
) -> AppConfig:
    """Load configuration from YAML + .env files.

    1. Load .env into environment variables
    2. Load config.yaml and resolve ${ENV_VAR} references
    3. Validate against Pydantic models
    4. Create the home directory if needed
    """
    home = Path(os.environ.get(HOME_ENV_VAR, str(DEFAULT_HOME))).expanduser()

    if env_path is None:
        env_path = home / ".env"
    if config_path is None:
        config_path = home / "config.yaml"

    env_path = Path(env_path)
    config_path = Path(config_path)

    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from %s", env_path)
    else:
        logger.debug("No .env file at %s", env_path)

    raw_config: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}
        logger.info("Loaded config from %s", config_path)
    else:
        logger.warning("No config file at %s, using defaults", config_path)

    resolved = _resolve_env_vars(raw_config)

    if HOME_ENV_VAR in os.environ:
        resolved["home_dir"] = os.environ[HOME_ENV_VAR]

    config = AppConfig(**resolved)
    config.home_path.mkdir(parents=True, exist_ok=True)
    return config
