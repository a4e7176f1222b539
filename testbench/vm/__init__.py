"""VM package - sandboxed test execution runtime."""

from .sandbox import Sandbox
from .executor import SandboxExecutor
from .framework import TestFramework
from .sanitizer import strip_module_syntax

__all__ = ["Sandbox", "SandboxExecutor", "TestFramework", "strip_module_syntax"]
