"""Configuration settings loader with YAML/JSON and environment variables support."""

from __future__ import annotations

import json
import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel, to_snake
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_LOCATIONS = (
    Path("automation-config.json"),
    Path("automation-config.yaml"),
    Path("config/automation-config.yaml"),
)

DEFAULT_WORKFLOWS: dict[str, tuple[str, ...]] = {
    "development": ("health-check", "lint", "build", "test"),
    "staging": (
        "health-check",
        "lint",
        "build",
        "automation-sync",
        "deploy-staging",
    ),
    "production": (
        "health-check",
        "lint",
        "build",
        "automation-sync",
        "final-validation",
        "deploy-production",
    ),
    "maintenance": ("automation-sync", "health-monitor", "cleanup", "backup"),
}

WORKFLOW_DESCRIPTIONS = {
    "development": "Run development workflow",
    "staging": "Run staging deployment workflow",
    "production": "Run production deployment workflow",
    "maintenance": "Run maintenance workflow",
}


class SectionModel(BaseModel):
    """Config section accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationsConfig(SectionModel):
    """Notification channels."""

    email: bool = True
    slack: bool = False
    discord: bool = False


class SchedulesConfig(SectionModel):
    """Cron expressions for recurring runs."""

    health_check: str = "0 */6 * * *"  # Every 6 hours
    backup: str = "0 2 * * *"  # Daily at 2 AM
    maintenance: str = "0 3 * * 0"  # Weekly on Sunday at 3 AM

    @field_validator("health_check", "backup", "maintenance")
    @classmethod
    def _check_cron(cls, value: str) -> str:
        if len(value.split()) != 5:
            raise ValueError(f"expected 5 cron fields, got {value!r}")
        return value


class DeploymentConfig(SectionModel):
    """Deployment flags."""

    auto_staging: bool = True
    auto_production: bool = False
    require_approval: bool = True


class MonitoringConfig(SectionModel):
    """Monitoring toggles."""

    uptime: bool = True
    performance: bool = True
    errors: bool = True
    donations: bool = True


class WorkflowDefinition(BaseModel):
    """Named, ordered list of tasks."""

    name: str = ""
    tasks: list[str] = Field(default_factory=list)
    description: str = ""


class TaskDefinition(SectionModel):
    """External-process task declared in the configuration file.

    Either ``command`` (argv list or a shell-like string) or ``script`` (run
    with the configured script interpreter) must be given.
    """

    command: list[str] = Field(default_factory=list)
    script: str | None = None
    args: list[str] = Field(default_factory=list)
    cwd: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    description: str = ""

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split()
        return value

    @model_validator(mode="after")
    def _check_target(self) -> "TaskDefinition":
        if bool(self.command) == bool(self.script):
            raise ValueError("task needs exactly one of 'command' or 'script'")
        return self


def default_workflows() -> dict[str, WorkflowDefinition]:
    """Build the built-in workflow map."""
    return {
        name: WorkflowDefinition(
            name=name,
            tasks=list(tasks),
            description=WORKFLOW_DESCRIPTIONS.get(name, ""),
        )
        for name, tasks in DEFAULT_WORKFLOWS.items()
    }


class Settings(BaseSettings):
    """Application settings."""

    # Working directories
    data_dir: str = "data"
    logs_dir: str = "logs"
    backup_dir: str = "backup"
    project_root: str = "."

    # Files
    log_file: str = "orchestrator.log"
    automation_config: str = "automation-config.json"

    # Execution
    default_workflow: str = "development"
    script_interpreter: str = "node"
    package_runner: str = "bun"
    package_executor: str = "bunx"
    task_timeout_seconds: float | None = Field(default=None, gt=0)
    log_retention_days: int = Field(default=7, ge=0)

    workflows: dict[str, WorkflowDefinition] = Field(default_factory=default_workflows)
    tasks: dict[str, TaskDefinition] = Field(default_factory=dict)

    # Site automation preferences
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    schedules: SchedulesConfig = Field(default_factory=SchedulesConfig)
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_prefix="RELIEF_ORCHESTRATOR_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("workflows", mode="before")
    @classmethod
    def _normalize_workflows(cls, value: Any) -> Any:
        """Accept ``name: [tasks]`` as well as ``name: {tasks: [...]}``."""
        if not isinstance(value, dict):
            return value

        normalized: dict[str, Any] = {}
        for name, definition in value.items():
            if isinstance(definition, WorkflowDefinition):
                definition = definition.model_dump()
            elif isinstance(definition, (list, tuple)):
                definition = {"tasks": list(definition)}
            elif isinstance(definition, dict):
                definition = dict(definition)
            else:
                normalized[name] = definition
                continue
            definition["name"] = name
            normalized[name] = definition
        return normalized

    def working_directories(self) -> list[Path]:
        """Directories that must exist before any task runs."""
        return [Path(self.data_dir), Path(self.logs_dir), Path(self.backup_dir)]

    @property
    def log_path(self) -> Path:
        """Append-only orchestrator log."""
        return Path(self.logs_dir) / self.log_file

    def get_workflow(self, name: str) -> WorkflowDefinition | None:
        """Look up a workflow by name."""
        return self.workflows.get(name)


class ConfigFileError(Exception):
    """Configuration file exists but cannot be read or parsed."""


def _resolve_env_vars(value: Any) -> Any:
    """Resolve environment variables in string values like ${VAR_NAME}."""
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for match in matches:
            env_value = os.getenv(match, "")
            value = value.replace(f"${{{match}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def find_config_file(config_path: Path | None = None) -> Path | None:
    """Return the configuration file to use, or None if there is none."""
    if config_path is not None:
        return config_path if config_path.exists() else None

    for loc in DEFAULT_CONFIG_LOCATIONS:
        if loc.exists():
            return loc
    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration from a YAML or JSON file.

    Raises:
        ConfigFileError: if the file cannot be read or is not a mapping
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(str(e)) from e

    if config_data is None:
        config_data = {}
    if not isinstance(config_data, dict):
        raise ConfigFileError(f"top level must be a mapping, got {type(config_data).__name__}")

    # Resolve environment variables
    return _resolve_env_vars(config_data)


def merge_with_defaults(config_data: dict[str, Any]) -> dict[str, Any]:
    """Normalize top-level keys and merge configured workflows over the defaults."""
    merged = {to_snake(key): value for key, value in config_data.items()}

    if isinstance(merged.get("workflows"), dict):
        workflows: dict[str, Any] = {
            name: {"tasks": list(tasks), "description": WORKFLOW_DESCRIPTIONS.get(name, "")}
            for name, tasks in DEFAULT_WORKFLOWS.items()
        }
        workflows.update(merged["workflows"])
        merged["workflows"] = workflows

    return merged


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings, falling back to the defaults when the file is missing or broken."""
    requested = Path(config_path) if config_path else None
    path = find_config_file(requested)

    if path is None:
        logger.warning("No configuration file found, using default configuration")
        settings = Settings()
        if requested is not None:
            settings.automation_config = str(requested)
        return settings

    try:
        config_data = load_config_file(path)
        settings = Settings(**merge_with_defaults(config_data))
    except (ConfigFileError, ValidationError) as e:
        logger.warning(f"Could not load {path} ({e}); using default configuration")
        settings = Settings()
    else:
        logger.info(f"Configuration loaded from {path}")

    settings.automation_config = str(path)
    return settings


def default_config_data() -> dict[str, Any]:
    """Sections written to a fresh configuration file."""
    return {
        "notifications": NotificationsConfig().model_dump(by_alias=True),
        "schedules": SchedulesConfig().model_dump(by_alias=True),
        "deployment": DeploymentConfig().model_dump(by_alias=True),
        "monitoring": MonitoringConfig().model_dump(by_alias=True),
    }


def write_default_config(config_path: str | Path) -> bool:
    """Write the default configuration file unless one already exists.

    Returns:
        True if a file was written
    """
    path = Path(config_path)
    if path.exists():
        return False

    data = default_config_data()
    if path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        if path.suffix == ".json":
            json.dump(data, f, indent=2)
            f.write("\n")
        else:
            yaml.safe_dump(data, f, sort_keys=False)
    return True


@lru_cache
def get_settings(config_path: str | None = None) -> Settings:
    """Get application settings (cached)."""
    return load_settings(config_path)


def clear_settings_cache() -> None:
    """Clear the settings cache."""
    get_settings.cache_clear()
