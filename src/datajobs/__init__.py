"""Scheduling and workflow execution engine for multi-step SQL data jobs."""

__version__ = "0.1.0"
