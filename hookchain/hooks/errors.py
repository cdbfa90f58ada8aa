"""
Error types for the hooks engine.

Configuration-time errors are recorded as diagnostics and exclude a single
hook. Dispatch-time errors end the chain and become an ``Error`` outcome.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic import ValidationError

    from .types import HookDefinition


class HookError(Exception):
    """Base class for every hooks engine error."""


class ConfigurationError(HookError):
    """A raw hook definition is malformed (bad field, unresolved handler path)."""


class MatchCompileError(ConfigurationError):
    """A matcher pattern could not be compiled into a predicate."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"invalid matcher {pattern!r}: {reason}")


class ConfigLoadError(HookError):
    """A configuration file could not be read or has the wrong shape."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class DispatchError(HookError):
    """
    A hook failed while a chain was being executed.

    Attributes:
        hook: The definition of the handler that failed
        detail: Diagnostic text (usually the handler's stderr)
    """

    label = "dispatch error"

    def __init__(self, hook: "HookDefinition", detail: str = ""):
        self.hook = hook
        self.detail = detail.strip()
        message = f"{self.label}: {hook.describe()}"
        if self.detail:
            message = f"{message}: {self.detail}"
        super().__init__(message)


class HandlerTimeout(DispatchError):
    label = "handler timed out"


class HandlerCrash(DispatchError):
    label = "handler crashed"


class ChainError(DispatchError):
    label = "handler aborted the chain"


class HandlerCancelled(DispatchError):
    label = "handler cancelled"



def validation_summary(error: "ValidationError") -> str:
    """Render a pydantic ValidationError as one line: ``field: message; ...``."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "record"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
