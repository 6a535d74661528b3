"""
Structured logging for the orchestration pipeline.
Wraps the standard library logger with operation-shaped helpers.
"""

import logging
from typing import Any, Dict, Optional


class StructuredLogger:
    """Structured logger for sessions, streaming, retrieval and command execution."""

    def __init__(self, name: str = "codepilot", level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("degraded", "rejected", "timeout"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_performance(self, session_id: str, ttft_ms: Optional[float], total_ms: Optional[float], aborted: bool):
        """Log time-to-first-token and total duration for one generation."""
        details = {
            "session_id": session_id,
            "ttft_ms": round(ttft_ms, 2) if ttft_ms is not None else None,
            "total_ms": round(total_ms, 2) if total_ms is not None else None,
            "aborted": aborted,
        }
        self.log_operation("generation.performance", "aborted" if aborted else "success", details)

    def log_session_operation(self, operation: str, session_id: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a session registry operation."""
        log_details = {"session_id": session_id}
        if details:
            log_details.update(details)

        self.log_operation(f"session.{operation}", status, log_details)

    def log_vector_operation(self, operation: str, source_name: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector store operation."""
        log_details = {"source_name": source_name}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_index_operation(self, filename: str, chunk_count: int, embedded_count: int, status: str = "success"):
        """Log a file indexing run."""
        log_details = {
            "filename": filename,
            "chunks": chunk_count,
            "embedded": embedded_count,
        }
        self.log_operation("index.file", status, log_details)

    def log_command_execution(self, command: str, status: str, details: Dict[str, Any] = None):
        """Log a guarded command execution."""
        # Commands can be long; keep the log line readable
        log_details = {"command": command[:80] + "..." if len(command) > 80 else command}
        if details:
            log_details.update(details)

        self.log_operation("command.execute", status, log_details)

    def warning(self, message: str) -> None:
        """Log a free-form warning (startup config issues)."""
        self.logger.warning(message)


# Global logger instance
logger = StructuredLogger()


def set_debug(enabled: bool) -> None:
    """Switch the shared logger between INFO and DEBUG."""
    logger.logger.setLevel(logging.DEBUG if enabled else logging.INFO)
