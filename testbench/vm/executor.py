"""Executor - runs the sandbox in a disposable process with a deadline.

This module handles:
- Spawning one fresh process per run, never reused
- Enforcing the wall-clock timeout by terminating the process
- Translating environment faults and timeouts into reports
- Disposing of the process on every path

The caller always gets exactly one ``ExecutionReport`` back.
"""

import asyncio
import multiprocessing
import time
import traceback
from multiprocessing.connection import wait
from typing import Iterable, Optional

from testbench.core.errors import ExecutionError, ExecutionTimeout
from testbench.core.logging import get_logger
from testbench.models.execution import ExecutionReport, ExecutionRequest
from .sandbox import Sandbox
from .sanitizer import DEFAULT_LOCAL_MODULES


DEFAULT_TIMEOUT_SECONDS = 3.0

logger = get_logger("executor")


def _set_resource_limits(memory_mb: int):
    """Cap the address space of the current process."""
    import resource

    memory_bytes = memory_mb * 1024 * 1024
    resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))

    # No core dumps
    resource.setrlimit(resource.RLIMIT_CORE, (0, 0))


def _run_in_process(connection, payload: dict, restricted: bool, local_modules: tuple, memory_mb: int):
    """Entry point of the child process. Sends exactly one message."""
    try:
        if memory_mb:
            _set_resource_limits(memory_mb)

        request = ExecutionRequest.model_validate(payload)
        sandbox = Sandbox(restricted=restricted, local_modules=local_modules)
        report = sandbox.execute(request)
        message = ("report", report.model_dump(mode="json"))
    except MemoryError:
        message = ("error", f"Memory limit exceeded ({memory_mb}MB)")
    except Exception as e:
        message = ("error", f"{type(e).__name__}: {e}\n{traceback.format_exc()}")

    try:
        connection.send(message)
    finally:
        connection.close()


class SandboxExecutor:
    """Runs source and tests in an isolated process with a timeout.

    Each call to ``run`` starts a new process, waits for one of: a report,
    the process dying without one, or the deadline. Whichever happens first
    decides the result; the reply pipe is then closed and the process
    disposed of, so a late reply is never read.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        memory_mb: int = 0,
        restricted: bool = False,
        local_modules: Iterable[str] = DEFAULT_LOCAL_MODULES,
        start_method: Optional[str] = None
    ):
        self._timeout = timeout_seconds
        self._memory_mb = memory_mb
        self._restricted = restricted
        self._local_modules = tuple(local_modules)
        self._context = multiprocessing.get_context(start_method)

    @classmethod
    def from_config(cls, config) -> "SandboxExecutor":
        """Build an executor from ``Config.execution``."""
        execution = config.execution
        return cls(
            timeout_seconds=execution.timeout_seconds,
            memory_mb=execution.memory_mb,
            restricted=execution.restricted,
            local_modules=execution.local_modules,
            start_method=execution.start_method,
        )

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def run(self, request: ExecutionRequest) -> ExecutionReport:
        """Execute a request and return its report. Blocks; never raises."""
        start = time.monotonic()
        logger.run_started(
            source_lines=request.source_code.count("\n") + 1,
            test_lines=request.test_code.count("\n") + 1,
        )

        try:
            report = self._execute_with_timeout(request)
        except ExecutionTimeout as e:
            report = ExecutionReport.failure(e.message)
        except ExecutionError as e:
            report = ExecutionReport.failure(f"Runtime Error: {e.message}")
        except Exception as e:
            report = ExecutionReport.failure(f"Runtime Error: {type(e).__name__}: {e}")

        duration_ms = (time.monotonic() - start) * 1000
        if report.success:
            logger.run_completed(report.passed_count, report.failed_count, duration_ms)
        else:
            logger.run_failed(report.error_message or "unknown error", duration_ms)
        return report

    async def execute(self, source_code: str, test_code: str) -> ExecutionReport:
        """Execute without blocking the event loop."""
        request = ExecutionRequest(source_code=source_code, test_code=test_code)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.run, request)

    def _execute_with_timeout(self, request: ExecutionRequest) -> ExecutionReport:
        """Run the request in a child process and wait for the first outcome.

        Raises:
            ExecutionTimeout: no reply before the deadline
            ExecutionError: the process failed without producing a report
        """
        receiver, sender = self._context.Pipe(duplex=False)
        process = self._context.Process(
            target=_run_in_process,
            args=(
                sender,
                request.model_dump(mode="json"),
                self._restricted,
                self._local_modules,
                self._memory_mb,
            ),
            daemon=True,
        )

        try:
            try:
                process.start()
            except OSError as e:
                raise ExecutionError(f"Could not start execution process: {e}", cause=e)
            finally:
                # Only the child writes; closing our copy lets recv() see EOF
                sender.close()

            ready = wait([receiver, process.sentinel], timeout=self._timeout)

            if not ready:
                raise ExecutionTimeout(
                    f"Execution timed out ({self._timeout:g}s limit)",
                    timeout_seconds=self._timeout,
                )

            if receiver in ready or receiver.poll():
                try:
                    status, payload = receiver.recv()
                except EOFError:
                    raise ExecutionError(
                        "Execution process exited without returning a result",
                        exit_code=self._exit_code(process),
                    )

                if status == "report":
                    return ExecutionReport.model_validate(payload)
                raise ExecutionError(str(payload).splitlines()[0], details=str(payload))

            raise ExecutionError(
                "Execution process exited without returning a result",
                exit_code=self._exit_code(process),
            )
        finally:
            receiver.close()
            self._dispose(process)

    @staticmethod
    def _exit_code(process) -> Optional[int]:
        process.join(timeout=1.0)
        return process.exitcode

    @staticmethod
    def _dispose(process) -> None:
        """Stop the process if it is still running and release its resources."""
        if process.pid is None:
            return
        if process.is_alive():
            process.terminate()
            process.join(timeout=1.0)  # Give it a second to terminate gracefully
            if process.is_alive():
                process.kill()  # Force kill if terminate didn't work
        process.join()
        process.close()
