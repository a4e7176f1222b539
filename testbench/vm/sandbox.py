"""Sandbox - runs source and test code against the test framework.

This module is the runtime half of an execution. Given a source blob and a
test blob it:
- Strips module syntax from both (see ``sanitizer``)
- Compiles them, optionally with RestrictedPython
- Executes source then tests in one fresh scope holding the framework bindings
- Aggregates everything into a single ``ExecutionReport``

It runs synchronously in whatever process calls it; the executor is what puts
it in a disposable child process with a deadline.
"""

import builtins
import operator as _operator
from typing import Any, Iterable

from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Eval import default_guarded_getattr, default_guarded_getitem
from RestrictedPython.Guards import (
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
)

from testbench.core.errors import SandboxError, SecurityViolation
from testbench.models.execution import ExecutionReport, ExecutionRequest
from .framework import TestFramework, error_message
from .sanitizer import DEFAULT_LOCAL_MODULES, strip_module_syntax


SOURCE_STAGE = "Source Code Error"
TEST_STAGE = "Test Code Error"


class _RestrictedPrint:
    """``_print_`` factory for RestrictedPython; routes print() to the framework."""

    framework: TestFramework = None

    def __init__(self, _getattr_=None):
        self._getattr_ = _getattr_

    def _call_print(self, *objects, **kwargs):
        self.framework.print(*objects, sep=kwargs.get("sep", " "))

    def __call__(self):
        return ""


class Sandbox:
    """Executes user code with the test framework bound into its scope.

    In the default mode code is compiled with the standard compiler and sees
    the full builtins. Restricted mode compiles with RestrictedPython's AST
    transformer and provides only safe builtins, guarded attribute and item
    access, and a whitelist of importable modules. Neither mode is a security
    boundary.
    """

    # Modules that restricted code may import
    WHITELISTED_MODULES = {
        "math": __import__("math"),
        "re": __import__("re"),
        "json": __import__("json"),
        "datetime": __import__("datetime"),
        "itertools": __import__("itertools"),
        "functools": __import__("functools"),
        "collections": __import__("collections"),
        "string": __import__("string"),
        "random": __import__("random"),
    }

    # Builtins allowed in restricted mode
    SAFE_BUILTINS = {
        **safe_builtins,
        "enumerate": enumerate,
        "map": map,
        "filter": filter,
        "reversed": reversed,
        "list": list,
        "dict": dict,
        "set": set,
        "frozenset": frozenset,
        "max": max,
        "min": min,
        "sum": sum,
        "any": any,
        "all": all,
        "iter": iter,
        "next": next,
        "type": type,
        "__build_class__": builtins.__build_class__,
    }

    _OPERATORS = {
        '+=': _operator.iadd,
        '-=': _operator.isub,
        '*=': _operator.imul,
        '/=': _operator.itruediv,
        '//=': _operator.ifloordiv,
        '%=': _operator.imod,
        '**=': _operator.ipow,
        '&=': _operator.iand,
        '|=': _operator.ior,
        '^=': _operator.ixor,
        '<<=': _operator.ilshift,
        '>>=': _operator.irshift,
    }

    @classmethod
    def _safe_import(cls, name, *args, **kwargs):
        """Import hook that only allows whitelisted modules."""
        if name in cls.WHITELISTED_MODULES:
            return cls.WHITELISTED_MODULES[name]
        raise SecurityViolation(f"Module '{name}' is not allowed in the sandbox", blocked_operation=f"import {name}")

    @classmethod
    def _inplacevar(cls, op, x, y):
        if op not in cls._OPERATORS:
            raise SecurityViolation(f"Operation '{op}' is not allowed", blocked_operation=op)
        return cls._OPERATORS[op](x, y)

    def __init__(
        self,
        restricted: bool = False,
        local_modules: Iterable[str] = DEFAULT_LOCAL_MODULES
    ):
        self._restricted = restricted
        self._local_modules = tuple(local_modules)

    def compile(self, source_code: str, filename: str = "<sandbox>") -> Any:
        """Compile source code.

        Args:
            source_code: Python source code to compile
            filename: Name for error messages

        Returns:
            Compiled code object

        Raises:
            SandboxError: the code does not compile
        """
        try:
            if self._restricted:
                return compile_restricted(source_code, filename=filename, mode="exec")
            return compile(source_code, filename, "exec")
        except SyntaxError as e:
            raise SandboxError(f"SyntaxError at line {e.lineno}: {e.msg}", lineno=e.lineno)
        except (ValueError, TypeError) as e:
            raise SandboxError(f"Compilation failed: {e}")

    def create_globals(self, framework: TestFramework) -> dict[str, Any]:
        """Create the scope shared by source and test code for one run."""
        if not self._restricted:
            scope = {
                "__builtins__": builtins,
                "__name__": "__sandbox__",
            }
            scope.update(framework.bindings())
            return scope

        printer = type("SandboxPrint", (_RestrictedPrint,), {"framework": framework})
        scope = {
            "__builtins__": {**self.SAFE_BUILTINS, "__import__": self._safe_import},
            "__name__": "__sandbox__",
            "__metaclass__": type,
            "_getattr_": default_guarded_getattr,
            "_getitem_": default_guarded_getitem,
            "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
            "_unpack_sequence_": guarded_unpack_sequence,
            "_getiter_": iter,
            "_write_": lambda x: x,
            "_inplacevar_": self._inplacevar,
            "_print_": printer,
        }
        scope.update(framework.bindings())
        return scope

    def _run_stage(self, text: str, filename: str, scope: dict[str, Any]) -> None:
        code = self.compile(strip_module_syntax(text, self._local_modules), filename)
        exec(code, scope)

    def run(self, source_code: str, test_code: str) -> ExecutionReport:
        """Execute source then tests and report.

        Never raises for faults in user code: a fault while running the
        source or the test module (outside any ``it``) produces an
        unsuccessful report with the stage named in ``error_message``.
        """
        framework = TestFramework()
        scope = self.create_globals(framework)

        for stage, text, filename in (
            (SOURCE_STAGE, source_code, "<source>"),
            (TEST_STAGE, test_code, "<tests>"),
        ):
            try:
                self._run_stage(text, filename, scope)
            except SandboxError as e:
                return framework.report(error=f"{stage}: {e.message}")
            except BaseException as e:
                return framework.report(error=f"{stage}: {error_message(e)}")

        return framework.report()

    def execute(self, request: ExecutionRequest) -> ExecutionReport:
        """Run an ``ExecutionRequest``."""
        return self.run(request.source_code, request.test_code)
