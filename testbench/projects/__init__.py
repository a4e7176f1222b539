"""Projects package - persistent storage of source/test pairs."""

from .registry import ProjectRegistry

__all__ = ["ProjectRegistry"]
