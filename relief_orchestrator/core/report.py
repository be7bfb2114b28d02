"""Workflow run reports: persisted JSON files and console summaries."""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

if TYPE_CHECKING:
    from relief_orchestrator.core.orchestrator import WorkflowRun

logger = logging.getLogger(__name__)


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name) or "workflow"


class ReportWriter:
    """Writes one JSON report per workflow run, never overwriting."""

    def __init__(self, reports_dir: str | Path):
        self._reports_dir = Path(reports_dir)

    @property
    def reports_dir(self) -> Path:
        return self._reports_dir

    def _open_new(self, workflow_name: str) -> tuple[str, Path, Any]:
        stem = f"{_safe_name(workflow_name)}_{int(time.time() * 1000)}"
        report_id = stem
        suffix = 0
        while True:
            path = self._reports_dir / f"workflow_{report_id}.json"
            try:
                return report_id, path, open(path, "x", encoding="utf-8")
            except FileExistsError:
                suffix += 1
                report_id = f"{stem}_{suffix}"

    def write(self, run: "WorkflowRun") -> Path | None:
        """
        Persist a run report.

        Returns:
            Path of the report, or None if it could not be written
        """
        try:
            report_id, path, f = self._open_new(run.workflow_name)
        except OSError as e:
            logger.warning(f"Could not save workflow report: {e}")
            return None

        try:
            with f:
                text = json.dumps(run.to_report(report_id), indent=2, default=str)
                f.write(text + "\n")
        except (OSError, TypeError, ValueError) as e:
            # Task output that cannot be serialized leaves no partial file
            path.unlink(missing_ok=True)
            logger.warning(f"Could not save workflow report: {e}")
            return None

        run.report_id = report_id
        run.report_path = path
        logger.info(f"Workflow report saved: {path}")
        return path

    def list_reports(self, workflow_name: str | None = None) -> list[Path]:
        """Existing reports, oldest first."""
        if not self._reports_dir.is_dir():
            return []

        reports = self._reports_dir.glob("workflow_*.json")
        if workflow_name:
            # Timestamp and optional collision suffix only, so "web" never matches "web_admin"
            exact = re.compile(rf"workflow_{re.escape(_safe_name(workflow_name))}_\d{{10,}}(_\d+)?\.json")
            reports = (p for p in reports if exact.fullmatch(p.name))
        return sorted(reports, key=lambda p: p.stat().st_mtime)


def display_summary(run: "WorkflowRun", console: Console) -> None:
    """Print the end-of-run summary."""
    summary = run.summary
    completed = run.end_time.astimezone() if run.end_time else None

    console.print()
    console.print(Rule(f"WORKFLOW SUMMARY: {escape(run.workflow_name.upper())}", style="bold magenta"))
    if completed:
        console.print(f"Completed: {completed.strftime('%Y-%m-%d %H:%M:%S')}")
    console.print(f"Duration:  {round(run.duration_ms / 1000)}s")
    if run.overall_success:
        console.print("Success:   [success]YES[/success]")
    else:
        console.print("Success:   [error]NO[/error]")
    console.print(f"Tasks:     {summary['successful']}/{summary['total']} successful")

    if summary["failed"] > 0:
        console.print("[error]Failed Tasks:[/error]")
        for result in run.task_results:
            if not result.success:
                console.print(f"   - {escape(result.name)}: {escape(result.error or '')}")

    if run.skipped_tasks:
        console.print(f"[warning]Not run:[/warning] {escape(', '.join(run.skipped_tasks))}")

    if run.report_path:
        console.print(f"Report:    {escape(str(run.report_path))}")
    console.print(Rule(style="bold magenta"))
    console.print()
