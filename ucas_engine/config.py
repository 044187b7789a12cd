"""
Configuration.

Loaded from an optional YAML file, then overridden by UCAS_* environment
variables (nested keys use "__", e.g. UCAS_PROPOSALS__DB_PATH). Collaborators
receive their sub-config at construction; nothing reads globals.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from croniter import croniter
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SimulationConfig(BaseModel):
    max_workers: int = Field(default=8, ge=1)
    resolve_timeout_seconds: float = Field(default=10.0, gt=0)
    default_provider: str = "AWS"
    scenario_cache_size: int = Field(default=1024, ge=1)


class ProposalConfig(BaseModel):
    db_path: str = ":memory:"
    sweep_enabled: bool = True
    sweep_schedule: str = "*/15 * * * *"     # Cron expression

    @field_validator("sweep_schedule")
    @classmethod
    def _valid_cron(cls, value: str) -> str:
        if not croniter.is_valid(value):
            raise ValueError(f"Invalid cron expression: {value!r}")
        return value


class RecommendationConfig(BaseModel):
    limit: int = Field(default=3, ge=1)
    rules_dir: Optional[str] = None         # None = rules bundled with the package


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


class UcasConfig(BaseSettings):
    """Root configuration. Loads from YAML, overridable by env vars."""

    model_config = SettingsConfigDict(
        env_prefix="UCAS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    proposals: ProposalConfig = Field(default_factory=ProposalConfig)
    recommendations: RecommendationConfig = Field(default_factory=RecommendationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path | None = None) -> UcasConfig:
    """
    Load configuration from a YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Init kwargs outrank env in pydantic-settings; let env win over the file.
    env_only = UcasConfig().model_dump(exclude_unset=True)
    return UcasConfig(**_deep_merge(raw, env_only))


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
