"""Task handlers: external processes and in-process functions."""

from .base import (
    CommandResult,
    CommandRunner,
    FunctionHandler,
    RunOptions,
    TaskHandler,
    TaskOutput,
)
from .process import CommandHandler, ScriptHandler, SubprocessRunner
from .maintenance import MaintenanceTasks

__all__ = [
    # Base
    "CommandResult",
    "CommandRunner",
    "FunctionHandler",
    "RunOptions",
    "TaskHandler",
    "TaskOutput",
    # External processes
    "CommandHandler",
    "ScriptHandler",
    "SubprocessRunner",
    # In-process
    "MaintenanceTasks",
]

# task name -> (script, args)
SCRIPT_TASKS: dict[str, tuple[str, tuple[str, ...]]] = {
    "health-check": ("health-check.js", ()),
    "system-health-check": ("health-check.js", ()),
    "test": ("automation-test.js", ()),
    "unit-tests": ("automation-test.js", ()),
    "integration-tests": ("automation-test.js", ()),
    "performance-tests": ("automation-test.js", ()),
    "smoke-tests": ("automation-test.js", ()),
    "automation-sync": ("master-automation.js", ()),
    "deploy-staging": ("enhanced-deploy.mjs", ("staging",)),
    "deploy-production": ("enhanced-deploy.mjs", ("production",)),
    "backup-database": ("enhanced-deploy.mjs", ("--backup",)),
    "final-validation": ("final-validation.js", ()),
    "health-monitor": ("health-monitor.js", ()),
    "social-media-automation": ("social-media-automation.js", ()),
    "donor-communication": ("donor-communication.js", ()),
    "campaign-milestone-tracking": ("campaign-milestone-tracker.js", ()),
}

# task name -> package script run through the package runner
PACKAGE_TASKS: dict[str, str] = {
    "lint": "lint",
    "lint-check": "lint",
    "build": "build",
    "build-test": "build",
}


def create_default_registry(settings, runner: CommandRunner | None = None):
    """
    Build a registry holding the built-in task catalogue.

    Tasks declared under ``tasks`` in the settings are registered last and
    override built-ins of the same name.

    Args:
        settings: Application settings
        runner: Command runner shared by every external-process task

    Returns:
        TaskRegistry instance
    """
    from relief_orchestrator.core.registry import TaskRegistry

    runner = runner or SubprocessRunner()
    registry = TaskRegistry()
    root = settings.project_root
    timeout = settings.task_timeout_seconds

    for name, (script, args) in SCRIPT_TASKS.items():
        registry.register(
            name,
            ScriptHandler(
                script,
                list(args),
                interpreter=settings.script_interpreter,
                runner=runner,
                cwd=root,
                timeout=timeout,
            ),
        )

    for name, package_script in PACKAGE_TASKS.items():
        registry.register(
            name,
            CommandHandler(
                [settings.package_runner, "run", package_script],
                runner=runner,
                cwd=root,
                timeout=timeout,
            ),
        )

    registry.register(
        "type-check",
        CommandHandler(
            [settings.package_executor, "tsc", "--noEmit"],
            runner=runner,
            cwd=root,
            timeout=timeout,
        ),
    )

    maintenance = MaintenanceTasks(settings, runner)
    for name, func in {
        "cleanup": maintenance.cleanup,
        "log-cleanup": maintenance.log_cleanup,
        "cache-cleanup": maintenance.cache_cleanup,
        "backup": maintenance.backup,
        "backup-verification": maintenance.verify_backups,
        "security-scan": maintenance.security_scan,
        "security-updates": maintenance.security_updates,
        "monitoring-setup": maintenance.setup_monitoring,
        "database-optimization": maintenance.optimize_database,
    }.items():
        registry.register(name, FunctionHandler(func))

    for name, definition in settings.tasks.items():
        cwd = definition.cwd or root
        task_timeout = definition.timeout_seconds or timeout
        if definition.script:
            handler: TaskHandler = ScriptHandler(
                definition.script,
                definition.args,
                interpreter=settings.script_interpreter,
                runner=runner,
                cwd=cwd,
                timeout=task_timeout,
                description=definition.description,
            )
        else:
            handler = CommandHandler(
                [*definition.command, *definition.args],
                runner=runner,
                cwd=cwd,
                timeout=task_timeout,
                description=definition.description,
            )
        registry.register(name, handler)

    return registry
