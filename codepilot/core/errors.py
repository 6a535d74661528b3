"""
Error taxonomy for the orchestration core.
Cancellation has no exception here; the relay reports it as an outcome.
"""


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""


class BackendError(OrchestratorError):
    """Inference backend unreachable, hung up, or returned malformed data."""


class EmbeddingError(BackendError):
    """Embedding backend failed to return a usable vector."""


class CommandNotAllowedError(OrchestratorError):
    """Requested command is not covered by the allow-list."""

    def __init__(self, command: str):
        super().__init__(f"Command not allowed: {command}")
        self.command = command
