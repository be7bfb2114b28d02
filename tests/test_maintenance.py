"""Tests for built-in maintenance tasks."""

import json
import os
import time
from datetime import date
from pathlib import Path

import pytest

from relief_orchestrator.core import TaskRegistry, TaskRunner
from relief_orchestrator.handlers import CommandResult, FunctionHandler, MaintenanceTasks

from .conftest import FakeCommandRunner


@pytest.fixture
def site(settings):
    """Site checkout with working directories in place."""
    for directory in settings.working_directories():
        directory.mkdir(parents=True, exist_ok=True)
    root = Path(settings.project_root)
    (root / "package.json").write_text('{"name": "relief"}', encoding="utf-8")
    (root / "tsconfig.json").write_text("{}", encoding="utf-8")
    Path(settings.automation_config).write_text("{}", encoding="utf-8")
    return root


@pytest.fixture
def runner():
    return FakeCommandRunner()


@pytest.fixture
def maintenance(settings, runner, site):
    return MaintenanceTasks(settings, runner)


class TestCleanup:
    @pytest.mark.asyncio
    async def test_removes_tmp_files_and_old_logs(self, maintenance, settings, site):
        (site / "upload.tmp").write_text("x", encoding="utf-8")
        nested = site / "public" / "images"
        nested.mkdir(parents=True)
        (nested / "resize.tmp").write_text("x", encoding="utf-8")
        (nested / "photo.jpg").write_text("x", encoding="utf-8")
        vendored = site / "node_modules" / "pkg"
        vendored.mkdir(parents=True)
        (vendored / "keep.tmp").write_text("x", encoding="utf-8")

        logs = Path(settings.logs_dir)
        old_log = logs / "old.log"
        old_log.write_text("old", encoding="utf-8")
        ten_days_ago = time.time() - 10 * 86400
        os.utime(old_log, (ten_days_ago, ten_days_ago))
        fresh_log = logs / "orchestrator.log"
        fresh_log.write_text("fresh", encoding="utf-8")

        result = await maintenance.cleanup()

        assert result == {"cleanup": "completed", "tmp_files_removed": 2, "logs_removed": 1}
        assert not (site / "upload.tmp").exists()
        assert (nested / "photo.jpg").exists()
        assert (vendored / "keep.tmp").exists()
        assert not old_log.exists()
        assert fresh_log.exists()

    @pytest.mark.asyncio
    async def test_log_cleanup_without_logs_dir(self, settings, runner, tmp_path):
        settings.logs_dir = str(tmp_path / "missing")

        result = await MaintenanceTasks(settings, runner).log_cleanup()

        assert result == {"log_cleanup": "completed", "logs_removed": 0}

    @pytest.mark.asyncio
    async def test_cache_cleanup(self, maintenance, site):
        cache = site / ".next" / "cache" / "webpack"
        cache.mkdir(parents=True)
        (cache / "chunk").write_text("x", encoding="utf-8")

        result = await maintenance.cache_cleanup()

        assert result["cache_cleanup"] == "completed"
        assert not (site / ".next" / "cache").exists()
        assert (site / ".next").exists()

    @pytest.mark.asyncio
    async def test_slow_sweep_respects_task_timeout(self, maintenance, monkeypatch):
        monkeypatch.setattr(maintenance, "_remove_tmp_files", lambda: time.sleep(0.5) or 0)
        registry = TaskRegistry()
        registry.register("cleanup", FunctionHandler(maintenance.cleanup))

        result = await TaskRunner(registry, timeout=0.05).run("cleanup")

        assert not result.success
        assert result.error == "Task cleanup timed out after 0.05s"


class TestBackup:
    @pytest.mark.asyncio
    async def test_copies_existing_critical_files(self, maintenance, settings, caplog):
        result = await maintenance.backup()

        target = Path(settings.backup_dir) / f"backup_{date.today().isoformat()}"
        assert result["backup"] == "created"
        assert result["location"] == str(target)
        assert sorted(result["files"]) == ["automation-config.json", "package.json", "tsconfig.json"]
        assert (target / "package.json").read_text(encoding="utf-8") == '{"name": "relief"}'
        assert "Could not backup" in caplog.text

    @pytest.mark.asyncio
    async def test_unwritable_backup_dir_raises(self, settings, runner, site):
        blocker = site / "blocked"
        blocker.write_text("file", encoding="utf-8")
        settings.backup_dir = str(blocker)

        with pytest.raises(OSError):
            await MaintenanceTasks(settings, runner).backup()

    @pytest.mark.asyncio
    async def test_verify_counts_backups(self, maintenance, settings):
        backups = Path(settings.backup_dir)
        (backups / "backup_2026-01-01").mkdir()
        (backups / "backup_2026-01-02").mkdir()
        (backups / "notes.txt").write_text("x", encoding="utf-8")

        result = await maintenance.verify_backups()

        assert result == {"backup_verification": "passed", "backup_count": 2}


class TestSecurity:
    @pytest.mark.asyncio
    async def test_clean_audit(self, maintenance, runner):
        result = await maintenance.security_scan()

        assert result["security_scan"] == "passed"
        assert runner.commands == [["npm", "audit", "--audit-level", "moderate"]]

    @pytest.mark.asyncio
    async def test_findings_are_warnings(self, maintenance, runner):
        command = ("npm", "audit", "--audit-level", "moderate")
        runner.results[command] = CommandResult(list(command), 1, "3 moderate severity vulnerabilities")

        result = await maintenance.security_scan()

        assert result == {"security_scan": "warning", "issues": "3 moderate severity vulnerabilities"}

    @pytest.mark.asyncio
    async def test_missing_npm_is_a_warning(self, maintenance, runner):
        runner.error = FileNotFoundError("npm")

        result = await maintenance.security_updates()

        assert result["security_updates"] == "warning"


class TestMonitoringAndDatabase:
    @pytest.mark.asyncio
    async def test_monitoring_lists_enabled(self, maintenance, settings):
        settings.monitoring.donations = False

        result = await maintenance.setup_monitoring()

        assert result == {"monitoring": "configured", "enabled": ["uptime", "performance", "errors"]}

    @pytest.mark.asyncio
    async def test_optimize_database(self, maintenance, settings):
        data = Path(settings.data_dir)
        (data / "campaigns.json").write_text('{"b":1,"a":[1,2]}', encoding="utf-8")
        (data / "broken.json").write_text("{oops", encoding="utf-8")

        result = await maintenance.optimize_database()

        assert result == {
            "database_optimization": "partial",
            "files": ["campaigns.json"],
            "invalid": ["broken.json"],
        }
        assert json.loads((data / "campaigns.json").read_text(encoding="utf-8")) == {"b": 1, "a": [1, 2]}
        assert (data / "campaigns.json").read_text(encoding="utf-8").startswith("{\n")
