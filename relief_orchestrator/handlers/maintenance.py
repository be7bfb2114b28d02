"""Built-in maintenance tasks that run inside the orchestrator process."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import time
from datetime import date
from pathlib import Path
from typing import Any

from relief_orchestrator.config import Settings
from relief_orchestrator.handlers.base import CommandRunner
from relief_orchestrator.handlers.process import SubprocessRunner

logger = logging.getLogger(__name__)

CRITICAL_FILES = (
    "package.json",
    "next.config.js",
    "tailwind.config.ts",
    "tsconfig.json",
)

# Never descend into these while sweeping temp files
SKIP_DIRS = {"node_modules", ".git", ".next"}


class MaintenanceTasks:
    """
    Housekeeping operations for the site checkout.

    Failures of best-effort operations (cleanup, scans) are logged as warnings
    and reported in the returned mapping; only ``backup`` raises, because a
    missing backup must fail the maintenance workflow.

    Filesystem work runs in a worker thread via ``asyncio.to_thread``.
    """

    def __init__(self, settings: Settings, runner: CommandRunner | None = None):
        self._settings = settings
        self._runner = runner or SubprocessRunner()
        self._root = Path(settings.project_root)
        self._logs_dir = Path(settings.logs_dir)
        self._data_dir = Path(settings.data_dir)
        self._backup_dir = Path(settings.backup_dir)

    # ------------------------------------------------------------------
    # Blocking helpers
    # ------------------------------------------------------------------

    def _remove_tmp_files(self) -> int:
        removed = 0
        stack = [self._root]
        while stack:
            directory = stack.pop()
            try:
                entries = list(directory.iterdir())
            except OSError as e:
                logger.warning(f"Cannot scan {directory}: {e}")
                continue
            for entry in entries:
                if entry.is_dir() and not entry.is_symlink():
                    if entry.name not in SKIP_DIRS:
                        stack.append(entry)
                elif entry.suffix == ".tmp":
                    entry.unlink()
                    removed += 1
        return removed

    def _remove_old_logs(self) -> int:
        if not self._logs_dir.is_dir():
            return 0

        cutoff = time.time() - self._settings.log_retention_days * 86400
        removed = 0
        for log_file in self._logs_dir.glob("*.log"):
            if log_file.stat().st_mtime < cutoff:
                log_file.unlink()
                removed += 1
        return removed

    def _clear_caches(self) -> int:
        cache_dir = self._root / ".next" / "cache"
        if cache_dir.exists():
            shutil.rmtree(cache_dir)
        return self._remove_tmp_files()

    def _store_backup(self, target: Path) -> list[str]:
        # Propagates: a backup that cannot be stored fails the task
        target.mkdir(parents=True, exist_ok=True)

        sources = [self._root / name for name in CRITICAL_FILES]
        sources.append(Path(self._settings.automation_config))

        copied: list[str] = []
        for source in sources:
            try:
                shutil.copy2(source, target / source.name)
                copied.append(source.name)
            except OSError as e:
                logger.warning(f"Could not backup {source}: {e}")
        return copied

    def _count_backups(self) -> int:
        return sum(1 for entry in self._backup_dir.iterdir() if entry.name.startswith("backup_"))

    def _rewrite_json_files(self) -> tuple[list[str], list[str]]:
        rewritten: list[str] = []
        invalid: list[str] = []
        for path in sorted(self._data_dir.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping {path.name}: {e}")
                invalid.append(path.name)
                continue
            path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
            rewritten.append(path.name)
        return rewritten, invalid

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def cleanup(self) -> dict[str, Any]:
        """Remove temporary files and expired logs."""
        logger.info("Performing system cleanup")
        result: dict[str, Any] = {"cleanup": "completed", "tmp_files_removed": 0, "logs_removed": 0}
        try:
            result["tmp_files_removed"] = await asyncio.to_thread(self._remove_tmp_files)
            result["logs_removed"] = await asyncio.to_thread(self._remove_old_logs)
        except OSError as e:
            logger.warning(f"Cleanup warning: {e}")
            result["cleanup"] = "partial"
            result["warning"] = str(e)
        return result

    async def log_cleanup(self) -> dict[str, Any]:
        """Remove logs older than the retention period."""
        logger.info("Cleaning up log files")
        try:
            removed = await asyncio.to_thread(self._remove_old_logs)
        except OSError as e:
            logger.warning(f"Log cleanup failed: {e}")
            return {"log_cleanup": "failed", "error": str(e)}
        return {"log_cleanup": "completed", "logs_removed": removed}

    async def cache_cleanup(self) -> dict[str, Any]:
        """Clear the Next.js build cache and temporary files."""
        logger.info("Cleaning up caches")
        try:
            removed = await asyncio.to_thread(self._clear_caches)
        except OSError as e:
            logger.warning(f"Cache cleanup failed: {e}")
            return {"cache_cleanup": "failed", "error": str(e)}
        return {"cache_cleanup": "completed", "tmp_files_removed": removed}

    async def backup(self) -> dict[str, Any]:
        """Copy critical configuration files into a dated backup directory."""
        logger.info("Creating system backup")

        target = self._backup_dir / f"backup_{date.today().isoformat()}"
        copied = await asyncio.to_thread(self._store_backup, target)

        logger.info(f"Backup created: {target}")
        return {"backup": "created", "location": str(target), "files": copied}

    async def verify_backups(self) -> dict[str, Any]:
        """Count the backups present in the backup directory."""
        logger.info("Verifying backups")
        try:
            count = await asyncio.to_thread(self._count_backups)
        except OSError as e:
            logger.warning(f"Backup verification failed: {e}")
            return {"backup_verification": "failed", "error": str(e)}

        logger.info(f"Backup verification completed: {count} backups found")
        return {"backup_verification": "passed", "backup_count": count}

    async def _audit(self, args: list[str], key: str, ok_value: str) -> dict[str, Any]:
        try:
            result = await self._runner.run(["npm", "audit", *args], cwd=self._root)
        except OSError as e:
            logger.warning(f"npm audit unavailable: {e}")
            return {key: "warning", "issues": str(e)}

        if not result.success:
            issues = result.stderr.strip() or result.stdout.strip()
            logger.warning(f"npm audit reported issues (exit code {result.exit_code})")
            return {key: "warning", "issues": issues}
        return {key: ok_value, "output": result.stdout}

    async def security_scan(self) -> dict[str, Any]:
        """Audit dependencies; findings never fail the workflow."""
        logger.info("Running security scan")
        return await self._audit(["--audit-level", "moderate"], "security_scan", "passed")

    async def security_updates(self) -> dict[str, Any]:
        """Apply automatic dependency fixes."""
        logger.info("Applying security updates")
        return await self._audit(["fix"], "security_updates", "applied")

    async def setup_monitoring(self) -> dict[str, Any]:
        """Report which monitors are enabled."""
        logger.info("Setting up monitoring")
        monitors = self._settings.monitoring.model_dump()
        enabled = [name for name, on in monitors.items() if on]
        logger.info(f"Monitoring enabled for: {', '.join(enabled) or 'nothing'}")
        return {"monitoring": "configured", "enabled": enabled}

    async def optimize_database(self) -> dict[str, Any]:
        """Rewrite the JSON data files with stable formatting."""
        logger.info("Optimizing database")
        if not self._data_dir.is_dir():
            return {"database_optimization": "skipped", "reason": f"{self._data_dir} not found"}

        rewritten, invalid = await asyncio.to_thread(self._rewrite_json_files)
        return {
            "database_optimization": "completed" if not invalid else "partial",
            "files": rewritten,
            "invalid": invalid,
        }
