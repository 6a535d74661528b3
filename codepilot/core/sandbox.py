"""
Allow-listed command execution.

This is a best-effort guard, not a sandbox: commands are admitted by prefix
match against a configured allow-list and then run through the shell with a
hard timeout. Execution failures come back as data, never as exceptions.
"""

import os
import signal
import subprocess
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional

from .errors import CommandNotAllowedError
from ..util.logging import StructuredLogger, logger as default_logger


@dataclass
class CommandResult:
    """Outcome of one command. Either stdout/stderr or error is meaningful."""
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class CommandGuard:
    """Prefix allow-list check plus bounded-timeout execution."""

    def __init__(self, allowed_prefixes: Iterable[str], default_timeout: float = 5.0,
                 logger: StructuredLogger = None):
        self.allowed_prefixes: List[str] = [p for p in allowed_prefixes if p]
        self.default_timeout = default_timeout
        self.logger = logger or default_logger

    def is_allowed(self, command: str) -> bool:
        """True iff command starts with one of the allow-listed prefixes."""
        if not command:
            return False
        return any(command.startswith(prefix) for prefix in self.allowed_prefixes)

    def check(self, command: str) -> None:
        """Raise CommandNotAllowedError if command is not allow-listed."""
        if not self.is_allowed(command):
            self.logger.log_command_execution(command, "rejected")
            raise CommandNotAllowedError(command)

    def execute(self, command: str, cwd: Optional[str] = None, timeout: Optional[float] = None) -> CommandResult:
        """
        Run an already-admitted command.

        Args:
            command: Shell command text
            cwd: Working directory, defaults to the current one
            timeout: Seconds before the process is killed

        Returns:
            CommandResult with output, or with error and any partial stderr
        """
        timeout = self.default_timeout if timeout is None else timeout
        start = time.monotonic()

        popen_kwargs: Dict[str, Any] = {}
        if os.name == "posix":
            # Own process group so the whole tree can be killed on timeout
            popen_kwargs["start_new_session"] = True

        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                cwd=cwd or ".",
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
                **popen_kwargs,
            )
        except OSError as e:
            self.logger.log_command_execution(command, "failed", {"error": str(e)})
            return CommandResult(error=str(e), stderr="", duration_ms=self._elapsed(start))

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except ValueError as e:
            # Undecodable output or a broken pipe; the process may still be running
            self._kill(proc)
            proc.wait()
            self.logger.log_command_execution(command, "failed", {"error": str(e)})
            return CommandResult(
                error=f"Could not read command output: {e}",
                stderr="",
                exit_code=proc.returncode,
                duration_ms=self._elapsed(start),
            )
        except subprocess.TimeoutExpired:
            self._kill(proc)
            stdout, stderr = proc.communicate()
            self.logger.log_command_execution(command, "timeout", {"timeout_sec": timeout})
            return CommandResult(
                error=f"Command timed out after {timeout}s: {command}",
                stderr=stderr or "",
                exit_code=proc.returncode,
                duration_ms=self._elapsed(start),
            )

        duration = self._elapsed(start)
        if proc.returncode != 0:
            self.logger.log_command_execution(command, "failed", {"exit_code": proc.returncode})
            return CommandResult(
                error=f"Command failed with exit code {proc.returncode}: {command}",
                stderr=stderr or "",
                exit_code=proc.returncode,
                duration_ms=duration,
            )

        self.logger.log_command_execution(command, "success", {"duration_ms": round(duration, 2)})
        return CommandResult(stdout=stdout or "", stderr=stderr or "", exit_code=0, duration_ms=duration)

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        if os.name == "posix":
            try:
                os.killpg(proc.pid, signal.SIGKILL)
                return
            except ProcessLookupError:
                return
        proc.kill()

    @staticmethod
    def _elapsed(start: float) -> float:
        return (time.monotonic() - start) * 1000
