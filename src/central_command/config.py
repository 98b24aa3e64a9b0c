"""Configuration management for Central Command.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to CentralCommandConfig constructor)
2. Environment variables (CENTRAL_COMMAND_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [store]
    base_id = "appXXXXXXXXXXXXXX"
    api_token = "pat..."

    [poller]
    poll_interval_seconds = 30

Example environment variable override:
    CENTRAL_COMMAND_STORE__API_TOKEN="pat..."
    CENTRAL_COMMAND_POLLER__POLL_INTERVAL_SECONDS=10
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreConfig(BaseSettings):
    """External record store configuration.

    Attributes:
        api_url: Base URL of the record store REST API
        base_id: Identifier of the base holding both tables
        api_token: Bearer token used for every request
        work_queue_table: Table holding WorkItems
        ledger_table: Table holding ExecutionRecords
        queued_status_value: Literal the store uses for the queued state
        created_field: Field used to order the pending read
        page_size: Records requested per page
        timeout_seconds: Per-request timeout
    """

    model_config = SettingsConfigDict(
        env_prefix="CENTRAL_COMMAND_STORE__",
        extra="forbid",
    )

    api_url: str = Field(default="https://api.airtable.com/v0")
    base_id: str = Field(default="")
    api_token: str = Field(default="")
    work_queue_table: str = Field(default="Work Queue")
    ledger_table: str = Field(default="Agents Ledger")
    queued_status_value: str = Field(default="new")
    created_field: str = Field(default="created_date")
    page_size: int = Field(default=100, ge=1, le=100)
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)


class ExecutorConfig(BaseSettings):
    """Executor collaborator configuration.

    Attributes:
        url: Intake endpoint that performs the agent work
        auth_header: Optional Authorization header value
        timeout_seconds: Upper bound on a single executor call
    """

    model_config = SettingsConfigDict(
        env_prefix="CENTRAL_COMMAND_EXECUTOR__",
        extra="forbid",
    )

    url: str = Field(default="http://localhost:3000/api/intake")
    auth_header: str | None = Field(default=None)
    timeout_seconds: float = Field(default=300.0, gt=0, le=3600)


class PollerConfig(BaseSettings):
    """Polling loop configuration.

    Attributes:
        poll_interval_seconds: Idle time between poll cycles
        inter_item_delay_seconds: Courtesy delay between items in a batch
    """

    model_config = SettingsConfigDict(
        env_prefix="CENTRAL_COMMAND_POLLER__",
        extra="forbid",
    )

    poll_interval_seconds: float = Field(default=30.0, ge=0, le=3600)
    inter_item_delay_seconds: float = Field(default=1.0, ge=0, le=60)


class RoutingConfig(BaseSettings):
    """Agent assignment configuration.

    Attributes:
        default_agent: Agent used by override rules and when nothing matches
        default_target: System target assigned alongside the agent
        default_confidence: Confidence reported when no keyword matched
        override_confidence: Confidence reported when an override rule fires
    """

    model_config = SettingsConfigDict(
        env_prefix="CENTRAL_COMMAND_ROUTING__",
        extra="forbid",
    )

    default_agent: str = Field(default="claude")
    default_target: str = Field(default="superchase")
    default_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    override_confidence: float = Field(default=0.9, ge=0.0, le=1.0)


class CostConfig(BaseSettings):
    """Cost model rates.

    Attributes:
        base_costs: Per-request base cost by agent, in USD
        per_token_rate: USD per consumed token
        per_second_rate: USD per second of execution time
    """

    model_config = SettingsConfigDict(
        env_prefix="CENTRAL_COMMAND_COST__",
        extra="forbid",
    )

    base_costs: dict[str, float] = Field(
        default_factory=lambda: {
            "claude": 0.015,
            "gpt4": 0.03,
            "copilot": 0.008,
            "multi_agent": 0.05,
        }
    )
    per_token_rate: float = Field(default=0.000002, ge=0)
    per_second_rate: float = Field(default=0.001, ge=0)

    @field_validator("base_costs")
    @classmethod
    def validate_base_costs(cls, v: dict[str, float]) -> dict[str, float]:
        """Validate base costs are non-negative."""
        negative = sorted(agent for agent, cost in v.items() if cost < 0)
        if negative:
            raise ValueError(f"Negative base cost for agents: {negative}")
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="CENTRAL_COMMAND_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class CentralCommandConfig(BaseSettings):
    """Root configuration for Central Command.

    Aggregates all subsystem configurations. Environment variable format
    for nested config:
        CENTRAL_COMMAND_<SECTION>__<KEY>=value
    """

    model_config = SettingsConfigDict(
        env_prefix="CENTRAL_COMMAND_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    store: StoreConfig = Field(default_factory=StoreConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    cost: CostConfig = Field(default_factory=CostConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path | None = None) -> CentralCommandConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./central-command.toml (current directory)
    3. ~/.config/central-command/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        CentralCommandConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path = config_path
    else:
        search_paths = [
            Path.cwd() / "central-command.toml",
            Path.home() / ".config" / "central-command" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    # Pydantic overlays environment variables on top of the TOML data
    try:
        return CentralCommandConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(
                f"Invalid configuration in {selected_path}: {e}"
            ) from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e
