"""
Process Runner — Execute an external command and capture its output.

Commands are argument lists handed straight to the OS; no shell is
involved, so payload-derived strings can never be interpreted as shell
syntax. The working directory is passed to the spawn call rather than
changed process-wide, which keeps concurrent runs independent.

stdout and stderr are captured through one pipe so their lines stay
interleaved the way a terminal would show them.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from ..logging_config import null_logger

MASK = "***"


@dataclass
class ProcessResult:
    """Outcome of a single command."""

    success: bool
    output: List[str] = field(default_factory=list)
    returncode: Optional[int] = None


def mask_secrets(text: str, secrets: Sequence[str]) -> str:
    """Replace every occurrence of each non-empty secret with ``***``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


def _decode(data: Union[str, bytes, None]) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class ProcessRunner:
    """
    Runs commands with combined output capture and exit-status success.

    A ``timeout`` (seconds) bounds each command; expiry kills the child and
    counts as a failure. ``None`` or ``0`` disables it.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.timeout = timeout or None
        self.logger = logger or null_logger()

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        *,
        secrets: Sequence[str] = (),
        failure_level: int = logging.ERROR,
    ) -> ProcessResult:
        """
        Run ``args`` (optionally inside ``cwd``) and return success + output.

        Never raises for a failing or unspawnable command. ``secrets`` are
        masked in everything this method logs.
        """
        command = mask_secrets(shlex.join(args), secrets)
        self.logger.debug(f"[exec] Executing command: '{command}'")

        returncode: Optional[int] = None
        try:
            completed = subprocess.run(
                list(args),
                cwd=cwd or None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
            returncode = completed.returncode
            output = _decode(completed.stdout).splitlines()
        except subprocess.TimeoutExpired as e:
            output = _decode(e.output).splitlines()
            output.append(f"Command timed out after {self.timeout}s")
        except OSError as e:
            # Missing binary, missing working directory, permission denied
            output = [f"Failed to execute command: {e}"]

        success = returncode == 0
        logged_output = [mask_secrets(line, secrets) for line in output]

        if success:
            self.logger.debug(f"[exec] Command output: {logged_output!r}")
        else:
            self.logger.log(
                failure_level,
                f"[exec] Command '{command}' didn't exit properly. "
                f"Full output: {logged_output!r}",
            )

        return ProcessResult(success=success, output=output, returncode=returncode)
