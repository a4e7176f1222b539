"""Test framework - describe/it/expect and console capture for sandboxed code.

One ``TestFramework`` is created per run. Its bindings are placed into the
scope that source and test code execute in:

- ``describe(name, body)`` groups tests in the log stream
- ``it(name, body)`` runs one test body and records exactly one outcome
- ``expect(actual)`` returns a ``Matcher`` with the assertion methods
- ``console`` / ``print`` append entries to the log stream

Everything here is synchronous. The only mutable cell shared between calls is
the active test-log buffer, which ``it`` opens and closes.
"""

import json
import math
import time
from collections.abc import Mapping, Sequence, Set
from dataclasses import asdict, is_dataclass
from typing import Any, Callable, Optional

from testbench.core.errors import TestbenchError
from testbench.models.execution import (
    ExecutionReport,
    LogEntry,
    LogKind,
    TestOutcome,
    TestStatus,
)


UNSERIALIZABLE = "[Circular/Unserializable]"


class _Undefined:
    """Sentinel for "no value", distinct from None."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


class AssertionFailure(AssertionError):
    """Raised by a matcher whose check does not hold."""
    pass


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _structural(value: Any) -> Any:
    """``json.dumps`` hook for values JSON has no encoding for."""
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, Set):
        return sorted(value, key=repr)
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, bytes):
        return repr(value)
    if hasattr(value, "__dict__") and not callable(value):
        return _json_keys(vars(value))
    return repr(value)


def _json_keys(value: Any, _seen: Optional[set] = None) -> Any:
    """Copy mappings with keys JSON can encode; tuple keys become their str()."""
    if not isinstance(value, (Mapping, list, tuple)):
        return value
    seen = _seen if _seen is not None else set()
    if id(value) in seen:
        # left as is so json.dumps reports the cycle
        return value
    seen.add(id(value))
    try:
        if isinstance(value, Mapping):
            return {
                (k if k is None or isinstance(k, (str, int, float)) else str(k)): _json_keys(v, seen)
                for k, v in value.items()
            }
        return [_json_keys(v, seen) for v in value]
    finally:
        seen.discard(id(value))


def safe_stringify(value: Any) -> str:
    """Render a value for messages and logs. Never raises."""
    if isinstance(value, str):
        return value
    if value is UNDEFINED:
        return "undefined"
    if _is_nan(value):
        return "NaN"
    try:
        if isinstance(value, BaseException):
            return error_message(value)
        if isinstance(value, (Mapping, list, tuple, Set)) or (
            hasattr(value, "__dict__") and not callable(value) and not isinstance(value, type)
        ):
            return json.dumps(_json_keys(value), indent=2, default=_structural)
        return str(value)
    except Exception:
        # circular structures, or a user __str__ that raises
        return UNSERIALIZABLE


def canonical(value: Any, _seen: Optional[set] = None) -> str:
    """Encode a value so that structurally equal values encode identically.

    Mapping keys are sorted, lists and tuples are both arrays, sets are
    order-independent, objects are their type name plus attributes.
    ``undefined``, NaN and circular references get their own tokens.
    """
    if value is UNDEFINED:
        return "undefined"
    if value is None or isinstance(value, (bool, str)):
        return json.dumps(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, bytes):
        return "b" + json.dumps(value.decode("latin-1"))

    seen = _seen if _seen is not None else set()
    if id(value) in seen:
        return "[Circular]"
    seen.add(id(value))
    try:
        if isinstance(value, Mapping):
            items = sorted(
                (canonical(k, seen), canonical(v, seen)) for k, v in value.items()
            )
            return "{" + ",".join(f"{k}:{v}" for k, v in items) + "}"
        if isinstance(value, (list, tuple)):
            return "[" + ",".join(canonical(v, seen) for v in value) + "]"
        if isinstance(value, Set):
            return "set(" + ",".join(sorted(canonical(v, seen) for v in value)) + ")"
        if is_dataclass(value) and not isinstance(value, type):
            return type(value).__name__ + canonical(asdict(value), seen)
        if hasattr(value, "__dict__") and not callable(value):
            return type(value).__name__ + canonical(vars(value), seen)
        return repr(value)
    finally:
        seen.discard(id(value))


def _strict_equal(actual: Any, expected: Any) -> bool:
    """Identity, or equality between scalars of the same kind."""
    if actual is expected:
        return True
    if _is_nan(actual) and _is_nan(expected):
        return True
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    if isinstance(actual, (str, bytes, complex)) and type(actual) is type(expected):
        return actual == expected
    return False


def error_message(error: BaseException) -> str:
    """Message for an exception raised by user code."""
    if isinstance(error, AssertionFailure):
        return str(error)
    if isinstance(error, TestbenchError):
        return error.message
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


def _now_ms() -> int:
    return int(time.time() * 1000)


class Matcher:
    """Assertion methods bound to one value under test."""

    def __init__(self, actual: Any):
        self.actual = actual

    def _fail(self, message: str):
        raise AssertionFailure(message)

    def to_be(self, expected: Any):
        if not _strict_equal(self.actual, expected):
            self._fail(
                f"Expected {safe_stringify(expected)} but got {safe_stringify(self.actual)}"
            )

    def to_equal(self, expected: Any):
        if canonical(self.actual) != canonical(expected):
            self._fail(
                f"Expected {safe_stringify(expected)} but got {safe_stringify(self.actual)}"
            )

    def to_be_defined(self):
        if self.actual is UNDEFINED:
            self._fail("Expected defined")

    def to_be_undefined(self):
        if self.actual is not UNDEFINED:
            self._fail(f"Expected undefined but got {safe_stringify(self.actual)}")

    def to_be_null(self):
        if self.actual is not None:
            self._fail(f"Expected None but got {safe_stringify(self.actual)}")

    def to_be_nan(self):
        if not _is_nan(self.actual):
            self._fail(f"Expected NaN but got {safe_stringify(self.actual)}")

    def to_be_truthy(self):
        if not self.actual:
            self._fail(f"Expected truthy but got {safe_stringify(self.actual)}")

    def to_be_falsy(self):
        if self.actual:
            self._fail(f"Expected falsy but got {safe_stringify(self.actual)}")

    def to_be_greater_than(self, expected: Any):
        if not self.actual > expected:
            self._fail(
                f"Expected {safe_stringify(self.actual)} to be greater than {safe_stringify(expected)}"
            )

    def to_be_less_than(self, expected: Any):
        if not self.actual < expected:
            self._fail(
                f"Expected {safe_stringify(self.actual)} to be less than {safe_stringify(expected)}"
            )

    def to_be_instance_of(self, expected: type):
        if not isinstance(self.actual, expected):
            name = getattr(expected, "__name__", safe_stringify(expected))
            self._fail(f"Expected instance of {name} but got {type(self.actual).__name__}")

    def to_contain(self, item: Any):
        actual = self.actual
        if isinstance(actual, str):
            if not isinstance(item, str) or item not in actual:
                self._fail(f"Expected {safe_stringify(actual)} to contain {safe_stringify(item)}")
            return
        if isinstance(actual, Sequence) and not isinstance(actual, (bytes, bytearray)):
            if item not in actual:
                self._fail(f"Expected {safe_stringify(actual)} to contain {safe_stringify(item)}")
            return
        self._fail(
            f"Expected a list or string for to_contain but got {type(actual).__name__}"
        )

    def to_throw(self, expected: Any = None):
        """Call the value and check that it raises.

        ``expected`` may be an exception class the error must be an instance
        of, or a string the error message must contain.
        """
        if not callable(self.actual):
            self._fail(f"Expected a function but got {safe_stringify(self.actual)}")

        try:
            returned = self.actual()
        except BaseException as e:
            if isinstance(expected, type) and not isinstance(e, expected):
                self._fail(
                    f"Expected function to throw {expected.__name__} but it threw {error_message(e)}"
                )
            if isinstance(expected, str) and expected not in str(e):
                self._fail(
                    f"Expected function to throw an error containing {expected!r} but got {str(e)!r}"
                )
            return
        self._fail(f"Expected function to throw but it returned {safe_stringify(returned)}")

    # Jest spellings
    toBe = to_be
    toEqual = to_equal
    toBeDefined = to_be_defined
    toBeUndefined = to_be_undefined
    toBeNull = to_be_null
    toBeNaN = to_be_nan
    toBeTruthy = to_be_truthy
    toBeFalsy = to_be_falsy
    toBeGreaterThan = to_be_greater_than
    toBeLessThan = to_be_less_than
    toBeInstanceOf = to_be_instance_of
    toContain = to_contain
    toThrow = to_throw


class Console:
    """``console`` object exposed to user code."""

    def __init__(self, framework: "TestFramework"):
        self._framework = framework

    def log(self, *args):
        self._framework.record(LogKind.LOG, args)

    def error(self, *args):
        self._framework.record(LogKind.ERROR, args)

    def warn(self, *args):
        self._framework.record(LogKind.WARN, args)

    def info(self, *args):
        self._framework.record(LogKind.INFO, args)


class TestFramework:
    """Per-run state: the global log stream, outcomes, and the active test buffer."""
    __test__ = False

    def __init__(self):
        self.logs: list[LogEntry] = []
        self.results: list[TestOutcome] = []
        self._current_test_logs: Optional[list[LogEntry]] = None
        self.console = Console(self)

    def _append(self, kind: LogKind, message: str, scoped: bool = True):
        entry = LogEntry(kind=kind, message=message, timestamp=_now_ms())
        self.logs.append(entry)
        if scoped and self._current_test_logs is not None:
            self._current_test_logs.append(entry)

    def record(self, kind: LogKind, args: tuple, sep: str = " "):
        """Join arguments into one entry on the global stream and the active test."""
        self._append(kind, sep.join(safe_stringify(a) for a in args))

    def print(self, *args, sep: Optional[str] = " ", end: str = "\n", file: Any = None, flush: bool = False):
        self.record(LogKind.LOG, args, sep=" " if sep is None else sep)

    def describe(self, name: str, body: Optional[Callable[[], Any]] = None):
        if body is None:
            def decorator(fn):
                self.describe(name, fn)
                return fn
            return decorator

        self._append(LogKind.GROUP, str(name), scoped=False)
        try:
            body()
        except BaseException as e:
            self._append(LogKind.ERROR, f"Error in describe: {error_message(e)}", scoped=False)
        finally:
            self._append(LogKind.GROUP_END, str(name), scoped=False)

    def it(self, name: str, body: Optional[Callable[[], Any]] = None):
        if body is None:
            def decorator(fn):
                self.it(name, fn)
                return fn
            return decorator

        if self._current_test_logs is not None:
            self.results.append(TestOutcome(
                name=str(name),
                status=TestStatus.FAIL,
                error_message="Nested it() calls are not supported",
            ))
            return

        test_logs: list[LogEntry] = []
        self._current_test_logs = test_logs
        error = None
        start = time.perf_counter()
        try:
            body()
        except BaseException as e:
            error = e
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000)
            self._current_test_logs = None

        self.results.append(TestOutcome(
            name=str(name),
            status=TestStatus.PASS if error is None else TestStatus.FAIL,
            error_message=None if error is None else error_message(error),
            duration_ms=duration_ms,
            logs=list(test_logs),
        ))

    def expect(self, actual: Any = UNDEFINED) -> Matcher:
        self.record(LogKind.INFO, ("Actual Value:", actual))
        return Matcher(actual)

    def bindings(self) -> dict[str, Any]:
        """Names injected into the sandbox scope."""
        return {
            "describe": self.describe,
            "it": self.it,
            "expect": self.expect,
            "console": self.console,
            "print": self.print,
            "undefined": UNDEFINED,
        }

    def report(self, error: Optional[str] = None) -> ExecutionReport:
        """Aggregate the run. A fatal error discards the outcomes."""
        if error is not None:
            return ExecutionReport(
                success=False,
                results=[],
                logs=list(self.logs),
                error_message=error,
            )
        return ExecutionReport(
            success=True,
            results=list(self.results),
            logs=list(self.logs),
        )
