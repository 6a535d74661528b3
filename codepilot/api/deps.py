"""
Application components and their FastAPI dependency.
"""

from dataclasses import dataclass

from fastapi import Request

from ..core import config
from ..core.pipeline import CompletionPipeline
from ..core.request_manager import SessionRegistry
from ..core.sandbox import CommandGuard
from ..llm.ollama_stream import OllamaStreamRelay
from ..util.logging import logger
from ..vector.index import PersistentVectorStore


@dataclass
class AppComponents:
    """Explicitly constructed components shared by all requests."""
    registry: SessionRegistry
    store: PersistentVectorStore
    relay: OllamaStreamRelay
    guard: CommandGuard
    pipeline: CompletionPipeline

    async def shutdown(self) -> None:
        cancelled = self.registry.shutdown()
        await self.relay.aclose()
        logger.log_operation("app.shutdown", "success", {"cancelled_sessions": cancelled})


def build_components() -> AppComponents:
    """Build every component from the environment configuration."""
    for issue in config.validate_config():
        logger.warning(f"Config issue: {issue}")

    registry = SessionRegistry()
    store = config.get_vector_store()
    relay = config.get_stream_relay()
    guard = config.get_command_guard()
    pipeline = CompletionPipeline(registry, store, relay)
    return AppComponents(registry=registry, store=store, relay=relay, guard=guard, pipeline=pipeline)


def get_components(request: Request) -> AppComponents:
    return request.app.state.components
