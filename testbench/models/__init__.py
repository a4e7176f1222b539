"""Data models for testbench."""

from .execution import (
    ExecutionReport,
    ExecutionRequest,
    LogEntry,
    LogKind,
    TestOutcome,
    TestStatus,
)
from .project import Project, ProjectUpdate

__all__ = [
    "ExecutionReport",
    "ExecutionRequest",
    "LogEntry",
    "LogKind",
    "TestOutcome",
    "TestStatus",
    "Project",
    "ProjectUpdate",
]
