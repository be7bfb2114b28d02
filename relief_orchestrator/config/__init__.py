"""Configuration module."""

from .settings import (
    Settings,
    TaskDefinition,
    WorkflowDefinition,
    clear_settings_cache,
    get_settings,
    load_settings,
    write_default_config,
)

__all__ = [
    "Settings",
    "TaskDefinition",
    "WorkflowDefinition",
    "clear_settings_cache",
    "get_settings",
    "load_settings",
    "write_default_config",
]
