"""
Errors — Exception hierarchy for the hook sync package.

Resolution errors (NotFoundError, InvalidStateError) abort a whole update
because no repository is known yet. Everything raised while synchronising a
single repository is converted to a failed SyncOutcome so sibling
repositories still run.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class HookError(Exception):
    """Base class for all hook sync errors."""


class NotFoundError(HookError):
    """Project identifier missing or not present in the registry."""


class InvalidStateError(HookError):
    """Project exists but has nothing that can be synchronised."""


class ConfigurationError(HookError):
    """Raised when configuration is missing or invalid."""


class RegistryError(HookError):
    """The repository registry could not be read or written."""


class IndexerError(HookError):
    """The changeset indexer rejected or failed a request."""


class ExecutionFailure(HookError):
    """
    A mirror step's subprocess exited non-zero or could not be spawned.

    Carries the step's reason code, the (already redacted) command line and
    the captured output for the outcome log.
    """

    def __init__(
        self,
        reason: str,
        command: str = "",
        output: Optional[Sequence[str]] = None,
    ):
        self.reason = reason
        self.command = command
        self.output: List[str] = list(output or [])
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.command:
            return f"{self.reason}: {self.command}"
        return self.reason
