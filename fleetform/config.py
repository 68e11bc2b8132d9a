"""Fleetform — Engine configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with FLEETFORM_
    3. System config: /etc/fleetform/config.yaml
    4. User config:   ~/.fleetform/config.yaml
    5. An explicit config file passed to ``Settings.load()``

File values are passed to the constructor, so a key set in a file wins
over the same key in the environment.  Files are merged at the top level
only: an ``executor:`` block in a later file replaces the whole
``executor:`` block of an earlier one.

All settings are immutable after load.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExecutorConfig(BaseModel):
    max_concurrency: Annotated[int, Field(ge=1, le=256)] = Field(
        default=10,
        description="Maximum number of tasks rendered at the same time within a level.",
    )
    kind_limits: dict[str, int] = Field(
        default_factory=dict,
        description=(
            "Per task-kind concurrency caps, keyed by task type name "
            "(e.g. {'Instance': 4}). Kinds not listed only share max_concurrency."
        ),
    )
    run_timeout_seconds: Annotated[float, Field(gt=0)] | None = Field(
        default=None,
        description=(
            "Stop dispatching new levels once this many seconds have elapsed. "
            "None = no deadline."
        ),
    )
    abandon_in_flight: bool = Field(
        default=False,
        description=(
            "On cancellation, cancel tasks that are still rendering instead of "
            "letting them finish."
        ),
    )

    @field_validator("kind_limits")
    @classmethod
    def _limits_positive(cls, v: dict[str, int]) -> dict[str, int]:
        for kind, limit in v.items():
            if limit < 1:
                raise ValueError(f"kind_limits[{kind!r}] must be >= 1, got {limit}")
        return v


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FLEETFORM_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/fleetform/config.yaml"),
            Path.home() / ".fleetform" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml  # lazy import — only needed when a file exists

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton — replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
