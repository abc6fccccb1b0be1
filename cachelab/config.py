"""
Configuration loading for cachelab.

Loads settings from config.yaml; ORIGIN_BASE_URL may override the origin.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from cachelab.navigation import DEFAULT_CAPACITY
from cachelab.policy import FetchOptions

POLICY_NAMES = ("users", "posts", "products")


class PolicyConfig(BaseModel):
    """TTL settings for one demo endpoint."""

    ttl_seconds: float = Field(ge=0)
    stale_window_seconds: float = Field(default=0, ge=0)

    def options(self) -> FetchOptions:
        return FetchOptions(
            ttl_seconds=self.ttl_seconds,
            stale_window_seconds=self.stale_window_seconds,
        )


def _default_policies() -> dict[str, PolicyConfig]:
    # s-maxage / stale-while-revalidate of the original demo endpoints
    return {
        "users": PolicyConfig(ttl_seconds=10, stale_window_seconds=59),
        "posts": PolicyConfig(ttl_seconds=30, stale_window_seconds=60),
        "products": PolicyConfig(ttl_seconds=3600, stale_window_seconds=86400),
    }


class AppConfig(BaseModel):
    """Application configuration."""

    # Origin settings; the built-in simulated origin is used when unset
    origin_base_url: Optional[str] = None
    origin_delay_seconds: float = Field(default=0.5, ge=0)

    # Cache settings
    policies: dict[str, PolicyConfig] = Field(default_factory=_default_policies)
    revalidate_seconds: float = Field(default=10, ge=0)
    router_cache_capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)

    @field_validator("policies")
    @classmethod
    def validate_policy_names(cls, value: dict[str, PolicyConfig]) -> dict[str, PolicyConfig]:
        unknown = set(value) - set(POLICY_NAMES)
        if unknown:
            raise ValueError(f"Unknown policies: {sorted(unknown)}")
        return {**_default_policies(), **value}

    def policy(self, name: str) -> PolicyConfig:
        """Look up a policy by endpoint name."""
        return self.policies[name]


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from YAML file + environment variables.

    Args:
        config_path: Path to config.yaml. If None, reads CONFIG_PATH env var
                     (default: config.yaml in current directory).

    Returns:
        Validated AppConfig instance.
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}

    origin_base_url = os.environ.get("ORIGIN_BASE_URL")
    if origin_base_url:
        raw = {**raw, "origin_base_url": origin_base_url}

    return AppConfig(**raw)
