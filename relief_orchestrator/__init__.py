"""Workflow orchestrator for the relief site's automation scripts."""

__version__ = "0.1.0"
