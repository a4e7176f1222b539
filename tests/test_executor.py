"""Tests for SandboxExecutor."""

import multiprocessing
import time

import pytest

from testbench.config import get_config
from testbench.models.execution import ExecutionReport, ExecutionRequest, TestStatus
from testbench.vm.executor import SandboxExecutor, _run_in_process
from testbench.vm.sandbox import Sandbox
from testbench.vm.sanitizer import DEFAULT_LOCAL_MODULES


@pytest.fixture
def executor():
    """Create an executor with a generous limit for process start-up."""
    return SandboxExecutor(timeout_seconds=15.0)


def run(executor, source: str, tests: str) -> ExecutionReport:
    return executor.run(ExecutionRequest(source_code=source, test_code=tests))


def test_run_simple_tests(executor, sample_source_code, sample_test_code):
    """Test a run with one passing and one failing test."""
    report = run(executor, sample_source_code, sample_test_code)

    assert report.success
    assert [r.status for r in report.results] == [TestStatus.PASS, TestStatus.FAIL]
    assert report.results[1].error_message == "Expected 3 but got 2"


def test_report_wire_format(executor, sample_source_code):
    """The report serializes with the camelCase wire names."""
    report = run(executor, sample_source_code, "it('adds', lambda: expect(add(1, 2)).to_be(3))")
    data = report.model_dump(mode="json", by_alias=True)

    assert set(data) == {"success", "results", "logs", "error"}
    assert set(data["results"][0]) == {"name", "status", "error", "duration", "logs"}
    assert data["results"][0]["status"] == "pass"
    assert data["logs"][0]["type"] == "info"


def test_timeout():
    """An infinite loop is stopped at the deadline with an empty report."""
    executor = SandboxExecutor(timeout_seconds=1.0)

    start = time.monotonic()
    report = run(executor, "while True:\n    pass", "it('never', lambda: None)")
    elapsed = time.monotonic() - start

    assert not report.success
    assert report.results == []
    assert report.logs == []
    assert report.error_message == "Execution timed out (1s limit)"
    assert elapsed < 5


def test_timeout_inside_test():
    executor = SandboxExecutor(timeout_seconds=1.5)
    report = run(executor, "", "console.log('start')\nit('spins', lambda: next(x for x in iter(int, 1) if x))")

    assert report.error_message == "Execution timed out (1.5s limit)"
    assert report.logs == []


def test_source_fault(executor):
    """A fault in the source is reported with the stage named."""
    report = run(executor, "raise RuntimeError('no db')", "it('never', lambda: None)")

    assert not report.success
    assert report.results == []
    assert report.error_message == "Source Code Error: RuntimeError: no db"


def test_process_dies_without_report(executor):
    """A process that exits without replying is an environment fault."""
    report = run(executor, "import os\nos._exit(3)", "")

    assert not report.success
    assert report.results == []
    assert report.error_message == "Runtime Error: Execution process exited without returning a result"


def test_base_exception_in_test_keeps_results(executor):
    """A BaseException raised by user code fails one test, not the run."""
    source = "class Stop(BaseException):\n    pass\n\ndef halt():\n    raise Stop('halt')\n"
    tests = "it('a', lambda: halt())\nit('b', lambda: expect(1).to_be(1))"

    report = run(executor, source, tests)

    assert report.success
    assert [(r.name, r.status) for r in report.results] == [("a", TestStatus.FAIL), ("b", TestStatus.PASS)]
    assert report.results[0].error_message == "Stop: halt"


@pytest.mark.skipif("fork" not in multiprocessing.get_all_start_methods(), reason="needs fork")
def test_child_error_reply(monkeypatch):
    """An error reply from the child becomes a Runtime Error report."""
    def broken(self, request):
        raise RuntimeError("sandbox unavailable")

    monkeypatch.setattr(Sandbox, "execute", broken)
    executor = SandboxExecutor(timeout_seconds=15.0, start_method="fork")

    report = run(executor, "", "it('never', lambda: None)")

    assert not report.success
    assert report.results == []
    assert report.error_message == "Runtime Error: RuntimeError: sandbox unavailable"


def test_log_isolation(executor):
    tests = """
console.log("top")
it("one", lambda: console.log("in one"))
it("two", lambda: console.log("in two"))
"""
    report = run(executor, "", tests)

    assert [e.message for e in report.results[0].logs] == ["in one"]
    assert [e.message for e in report.results[1].logs] == ["in two"]
    assert [e.message for e in report.logs] == ["top", "in one", "in two"]


def test_nan_and_structural_equality(executor):
    tests = """
it("nan", lambda: expect(float("nan")).to_be(float("nan")))
it("equal", lambda: expect({"a": 1, "b": [1, 2]}).to_equal({"b": [1, 2], "a": 1}))
it("order", lambda: expect([1, 2]).to_equal([2, 1]))
"""
    report = run(executor, "", tests)

    assert [r.status for r in report.results] == [TestStatus.PASS, TestStatus.PASS, TestStatus.FAIL]


def test_repeated_runs_match(executor, sample_source_code, sample_test_code):
    """No state survives between runs."""
    first = run(executor, sample_source_code + "\ncounter = 0", sample_test_code)
    second = run(executor, sample_source_code + "\ncounter = 0", sample_test_code)

    assert [(r.name, r.status) for r in first.results] == [(r.name, r.status) for r in second.results]


def test_restricted_executor():
    executor = SandboxExecutor(timeout_seconds=15.0, restricted=True)
    report = run(executor, "import subprocess", "")

    assert report.error_message == "Source Code Error: Module 'subprocess' is not allowed in the sandbox"


@pytest.mark.asyncio
async def test_execute_async(executor, sample_source_code):
    """The async form does not block the event loop."""
    report = await executor.execute(sample_source_code, "it('adds', lambda: expect(add(2, 2)).to_be(4))")

    assert report.success
    assert report.results[0].status == TestStatus.PASS


def test_from_config(isolated_config, monkeypatch):
    monkeypatch.setenv("TESTBENCH_TIMEOUT", "7")
    monkeypatch.setenv("TESTBENCH_LOCAL_MODULES", "lib, helpers")

    from testbench.config import reset_config
    reset_config()
    executor = SandboxExecutor.from_config(get_config())

    assert executor.timeout_seconds == 7.0
    assert executor._local_modules == ("lib", "helpers")


class TestChildEntryPoint:
    """The function run inside the child process, called in-process."""

    def test_sends_report(self, sample_source_code):
        receiver, sender = multiprocessing.Pipe(duplex=False)
        payload = ExecutionRequest(source_code=sample_source_code, test_code="it('x', lambda: None)").model_dump(mode="json")

        _run_in_process(sender, payload, False, DEFAULT_LOCAL_MODULES, 0)

        status, data = receiver.recv()
        assert status == "report"
        assert ExecutionReport.model_validate(data).results[0].name == "x"

    def test_sends_error_for_bad_payload(self):
        receiver, sender = multiprocessing.Pipe(duplex=False)

        _run_in_process(sender, {"source_code": 5}, False, DEFAULT_LOCAL_MODULES, 0)

        status, message = receiver.recv()
        assert status == "error"
        assert message.startswith("ValidationError")
