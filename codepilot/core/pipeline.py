"""
Request pipeline: context assembly, session registration and streaming.

    request -> (extract + limit) || similarity search -> prompt
            -> register session -> relay stream -> unregister

The session is registered as soon as a request arrives, so a superseding
request cancels its predecessor even while that one is still assembling its
prompt.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .context import build_context_window
from .prompts import build_chat_messages, build_inline_prompt
from .request_manager import CancellationToken, SessionRegistry
from ..llm.ollama_stream import (
    OllamaStreamRelay,
    StreamOutcome,
    build_chat_payload,
    build_generate_payload,
)
from ..util.logging import StructuredLogger, logger as default_logger


class CompletionPipeline:
    """
    Orchestrates inline completion and chat for all sessions.

    Components are injected; the pipeline holds no global state of its own.
    """

    def __init__(self, registry: SessionRegistry, store, relay: OllamaStreamRelay,
                 model: str = None, options: Optional[Dict[str, Any]] = None,
                 max_lines: int = None, max_chars: int = None,
                 top_k_inline: int = None, top_k_chat: int = None,
                 logger: StructuredLogger = None):
        self.registry = registry
        self.store = store
        self.relay = relay
        self.model = model or config.OLLAMA_MODEL
        self.options = options if options is not None else config.get_generation_options()
        self.max_lines = max_lines or config.CONTEXT_MAX_LINES
        self.max_chars = max_chars or config.CONTEXT_MAX_CHARS
        self.top_k_inline = top_k_inline or config.RAG_TOP_K_INLINE
        self.top_k_chat = top_k_chat or config.RAG_TOP_K_CHAT
        self.logger = logger or default_logger

    async def prepare_inline_prompt(self, code_before_cursor: str, language: str,
                                    cursor_offset: Optional[int] = None) -> str:
        """Extract and limit local context while retrieval runs, then assemble."""
        window, chunks = await asyncio.gather(
            asyncio.to_thread(build_context_window, code_before_cursor, cursor_offset,
                              self.max_lines, self.max_chars),
            self.store.search(code_before_cursor, self.top_k_inline),
        )
        return build_inline_prompt(window.text, language, chunks)

    async def prepare_chat_messages(self, messages: Sequence[Dict[str, str]],
                                    active_file: Optional[Dict[str, str]] = None,
                                    os_name: str = "unknown") -> List[Dict[str, str]]:
        """RAG on the last message, then the system prompt ahead of the conversation."""
        query = messages[-1]["content"] if messages else ""
        chunks = await self.store.search(query, self.top_k_chat)
        self.logger.log_operation("chat.context", "success", {
            "rag_chunks": len(chunks),
            "active_file": bool(active_file),
        })
        return build_chat_messages(messages, chunks, active_file, os_name)

    async def complete_inline(self, session_id: str, code_before_cursor: str, language: str,
                              on_token, on_error=None, cursor_offset: Optional[int] = None,
                              cancel: Optional[CancellationToken] = None) -> StreamOutcome:
        """Stream an inline completion for session_id."""
        token = cancel or CancellationToken()
        self.registry.register(session_id, token)
        start = time.perf_counter()
        try:
            prompt = await self._unless_cancelled(
                self.prepare_inline_prompt(code_before_cursor, language, cursor_offset), token)
            if prompt is None:
                return self._aborted(session_id, start)
            payload = build_generate_payload(prompt, self.model, self.options)
            return await self._stream(session_id, payload, token, on_token, on_error)
        finally:
            self.registry.unregister(session_id, token)

    async def chat(self, session_id: str, messages: Sequence[Dict[str, str]], on_token, on_error=None,
                   active_file: Optional[Dict[str, str]] = None, os_name: str = "unknown",
                   cancel: Optional[CancellationToken] = None) -> StreamOutcome:
        """Stream a chat reply for session_id."""
        token = cancel or CancellationToken()
        self.registry.register(session_id, token)
        start = time.perf_counter()
        try:
            chat_messages = await self._unless_cancelled(
                self.prepare_chat_messages(messages, active_file, os_name), token)
            if chat_messages is None:
                return self._aborted(session_id, start)
            payload = build_chat_payload(chat_messages, self.model)
            return await self._stream(session_id, payload, token, on_token, on_error)
        finally:
            self.registry.unregister(session_id, token)

    async def _stream(self, session_id: str, payload: Dict[str, Any], token: CancellationToken,
                      on_token, on_error) -> StreamOutcome:
        outcome = await self.relay.stream(payload, token, on_token, on_error)
        self.logger.log_performance(session_id, outcome.ttft_ms, outcome.total_ms, outcome.aborted)
        return outcome

    def _aborted(self, session_id: str, start: float) -> StreamOutcome:
        outcome = StreamOutcome("aborted", (time.perf_counter() - start) * 1000)
        self.logger.log_performance(session_id, None, outcome.total_ms, aborted=True)
        return outcome

    @staticmethod
    async def _unless_cancelled(awaitable, token: CancellationToken):
        """
        Await prompt preparation unless the token fires first.

        Returns None when cancelled; the pending work (an embedding call, a
        store search) is cancelled with it.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return None
