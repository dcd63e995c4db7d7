"""
Wex — Error Taxonomy

Fatal errors (ConfigError, ResourceError) abort the suite before or
during staging. Per-experiment errors (MutationError, ExecutionFault) are
folded into that experiment's RunResult and never stop the loop.
"""

from __future__ import annotations


class WexError(Exception):
    """Base class for every error raised by the harness."""


class ConfigError(WexError):
    """Raised when a workflow or suite file is missing, unreadable or malformed."""
    def __init__(self, path: str, message: str):
        self.path = str(path)
        self.message = message
        super().__init__(f"{self.path}: {message}" if self.path else message)


class MutationError(WexError):
    """Raised when a step override names a step the workflow does not have."""
    def __init__(self, step_id: str, reason: str = ""):
        self.step_id = step_id
        self.reason = reason
        super().__init__(f"Step '{step_id}' " + (reason or "not found in workflow"))


class ExecutionFault(WexError):
    """Raised when the workflow runner cannot be started at all."""
    def __init__(self, command: list[str], reason: str = ""):
        self.command = list(command)
        self.reason = reason
        super().__init__(f"Cannot start runner '{' '.join(self.command)}'" +
                         (f" — {reason}" if reason else ""))


class ResourceError(WexError):
    """Raised when the staging area cannot be created or populated."""
