"""Source sanitization - strip module syntax before code is run as one scope.

Source and test code are executed as plain top-level statements in a shared
scope, so statements that only make sense between separate modules are
removed first:

- imports of the project's own modules (relative imports, or a root module
  named in ``local_modules``)
- ``export`` / ``export default`` in front of a declaration (the declaration
  is kept)
- ``__all__`` export lists

This is a line-pattern rewrite, not a parser. Anything it does not recognize
passes through unchanged and, if invalid, fails later as a reported
compile or execution error. Removed lines become blank lines (or ``pass`` when
indented) so reported line numbers still match the user's text.
"""

import re
from typing import Iterable

DEFAULT_LOCAL_MODULES = ("source", "solution", "src", "main", "app")

_FROM_IMPORT = re.compile(r"^(?P<indent>\s*)from\s+(?P<module>\.+[\w.]*|[\w.]+)\s+import\b")
_PLAIN_IMPORT = re.compile(r"^(?P<indent>\s*)import\s+(?P<modules>[\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)\s*(?:#.*)?$")
_EXPORT_KEYWORD = re.compile(
    r"^(?P<indent>\s*)export\s+(?:default\s+)?"
    r"(?=(?:async\s+def|def|class)\b|[A-Za-z_]\w*\s*(?::[^=]*)?=[^=])"
)
_EXPORT_LIST = re.compile(r"^(?P<indent>\s*)__all__\s*(?::[^=]*)?\+?=")


def _root(module: str) -> str:
    return module.split(".", 1)[0]


def _is_local(module: str, local_modules: set[str]) -> bool:
    return module.startswith(".") or _root(module) in local_modules


def _bracket_depth(line: str) -> int:
    """Net count of open brackets on a line, ignoring a trailing comment."""
    code = line.split("#", 1)[0]
    return sum(code.count(c) for c in "([{") - sum(code.count(c) for c in ")]}")


def _removed(indent: str) -> str:
    return f"{indent}pass" if indent else ""


def strip_module_syntax(text: str, local_modules: Iterable[str] = DEFAULT_LOCAL_MODULES) -> str:
    """Return ``text`` with module-system lines removed.

    Args:
        text: Python program text
        local_modules: Root module names that refer to the user's own code

    Returns:
        The rewritten text, with the same number of lines
    """
    local = set(local_modules)
    lines = text.split("\n")
    output = []
    open_brackets = 0

    for line in lines:
        # Continuation of a removed multi-line statement
        if open_brackets > 0:
            open_brackets += _bracket_depth(line)
            output.append("")
            continue

        match = _FROM_IMPORT.match(line)
        if match and _is_local(match.group("module"), local):
            output.append(_removed(match.group("indent")))
            open_brackets = max(_bracket_depth(line), 0)
            continue

        match = _PLAIN_IMPORT.match(line)
        if match:
            modules = [m.split()[0] for m in match.group("modules").split(",")]
            if any(_is_local(m.strip(), local) for m in modules):
                output.append(_removed(match.group("indent")))
                continue

        match = _EXPORT_LIST.match(line)
        if match:
            output.append(_removed(match.group("indent")))
            open_brackets = max(_bracket_depth(line), 0)
            continue

        match = _EXPORT_KEYWORD.match(line)
        if match:
            output.append(match.group("indent") + line[match.end():])
            continue

        output.append(line)

    return "\n".join(output)
