"""Execution data models.

These are the values exchanged between the execution host and the sandbox
runtime, and returned to callers. Python attributes are snake_case; the wire
form (``model_dump(by_alias=True)``) uses the camelCase names the API speaks.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class LogKind(str, Enum):
    """Kind of a captured console entry."""
    LOG = "log"
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    GROUP = "group"
    GROUP_END = "groupEnd"


class TestStatus(str, Enum):
    """Outcome of a single test body."""
    __test__ = False

    PASS = "pass"
    FAIL = "fail"


class LogEntry(BaseModel):
    """One console call or group boundary, immutable once created."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: LogKind = Field(..., alias="type")
    message: str
    timestamp: int = Field(..., description="Epoch milliseconds")


class TestOutcome(BaseModel):
    """Pass/fail record for one ``it`` call."""
    __test__ = False
    model_config = ConfigDict(populate_by_name=True)

    name: str
    status: TestStatus
    error_message: str | None = Field(default=None, alias="error")
    duration_ms: int = Field(default=0, alias="duration")
    logs: list[LogEntry] = Field(
        default_factory=list,
        description="Entries emitted while this test body was running"
    )


class ExecutionRequest(BaseModel):
    """Source and test program text for one run."""
    model_config = ConfigDict(populate_by_name=True)

    source_code: str = Field(default="", alias="sourceCode")
    test_code: str = Field(default="", alias="testCode")


class ExecutionReport(BaseModel):
    """The single structured result of one run.

    ``success`` says whether the run reached completion. A report can be
    successful while containing failing outcomes; ``success=False`` comes
    with empty ``results`` and an ``error_message``.
    """
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    results: list[TestOutcome] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)
    error_message: str | None = Field(default=None, alias="error")

    @classmethod
    def failure(cls, message: str) -> "ExecutionReport":
        """Build a report for a run that produced nothing."""
        return cls(success=False, results=[], logs=[], error_message=message)

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.status == TestStatus.PASS)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.status == TestStatus.FAIL)

    @property
    def all_passed(self) -> bool:
        return self.success and self.failed_count == 0
