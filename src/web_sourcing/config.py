"""Configuration loader for web-sourcing."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; WebSourcing/0.1; +https://github.com/web-sourcing)"
)


class ProxyConfig(BaseModel):
    """Proxy configuration."""

    http: str | None = None
    https: str | None = None


class FetchSettings(BaseModel):
    """HTTP retrieval settings."""

    timeout: float = Field(default=30.0, gt=0)  # seconds per attempt
    retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=60.0, ge=0)
    user_agent: str = DEFAULT_USER_AGENT
    follow_redirects: bool = True
    max_redirects: int = Field(default=5, ge=0)


class CacheSettings(BaseModel):
    """On-disk content cache settings."""

    enabled: bool = True
    directory: str = "./.cache/web-content"
    ttl: float = Field(default=7 * 24 * 3600, gt=0)  # seconds


class BatchSettings(BaseModel):
    """Batch orchestration settings."""

    concurrency: int = Field(default=3, ge=1)
    max_urls: int = Field(default=100, ge=1)
    # Rough per-URL cost used to estimate job duration
    estimated_seconds_per_url: float = 5.0


class DedupWeights(BaseModel):
    """Weights of the similarity signals between two sources."""

    url: float = 0.5
    title_exact: float = 0.3
    title_partial: float = 0.15
    domain: float = 0.2
    content_hash: float = 0.2


class DedupSettings(BaseModel):
    """Duplicate detection settings."""

    threshold: float = Field(default=0.8, ge=0, le=1)
    weights: DedupWeights = Field(default_factory=DedupWeights)


class HealthSettings(BaseModel):
    """Source health check settings."""

    slow_threshold: float = 5000.0  # milliseconds, above this a source is a warning
    timeout: float = Field(default=10.0, gt=0)
    stale_after_days: int = 30


class Config(BaseModel):
    """Main configuration model."""

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    dedup: DedupSettings = Field(default_factory=DedupSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)

    # Proxy settings
    proxy: ProxyConfig | None = None

    def get_proxy_url(self) -> str | None:
        """Get proxy URL for httpx (prefers https, falls back to http)."""
        if not self.proxy:
            return None
        return self.proxy.https or self.proxy.http


_config: Config | None = None


def find_config_file() -> Path | None:
    """Find configuration file by searching multiple locations.

    Search order (first found wins):
    1. WEB_SOURCING_CONFIG environment variable
    2. Current working directory: ./web-sourcing.yaml
    3. User home directory: ~/.web-sourcing/config.yaml

    Returns:
        Path to config file if found, None otherwise.
    """
    env_path = os.environ.get("WEB_SOURCING_CONFIG")
    if env_path:
        path = Path(env_path).expanduser()
        if path.exists():
            return path
        logger.warning(f"WEB_SOURCING_CONFIG path does not exist: {env_path}")

    cwd_config = Path("web-sourcing.yaml")
    if cwd_config.exists():
        return cwd_config.resolve()

    home_config = Path.home() / ".web-sourcing" / "config.yaml"
    if home_config.exists():
        return home_config

    return None


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, searches the default
                    locations (see find_config_file).

    Returns:
        Config object with loaded settings.
    """
    global _config

    config_path = Path(config_path).expanduser() if config_path is not None else find_config_file()

    if config_path is not None and config_path.exists():
        logger.debug(f"Loading configuration from: {config_path}")
        with open(config_path) as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}
        _config = Config(**data)
    else:
        logger.debug("No configuration file found, using defaults")
        _config = Config()

    return _config


def get_config() -> Config:
    """Get the current configuration, loading if necessary."""
    global _config
    if _config is None:
        return load_config()
    return _config


def reset_config() -> None:
    """Reset the cached configuration."""
    global _config
    _config = None
