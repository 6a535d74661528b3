"""
Bridge between pipeline callbacks and a chunked HTTP body.

The pipeline runs as a background task and pushes tokens into a queue. The
route waits for the first item before choosing a response: a generation that
fails before producing anything is answered with a JSON 500, anything else is
streamed. Client disconnect cancels the session's token, the same path a
superseding request takes.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import Request

from ..core.errors import BackendError
from ..core.request_manager import CancellationToken
from ..llm.ollama_stream import StreamOutcome

_END = object()

DISCONNECT_POLL_SEC = 0.25


class TokenStream:
    """One generation's queue, cancellation token and pipeline task."""

    def __init__(self, request: Request):
        self.request = request
        self.token = CancellationToken()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.task: Optional[asyncio.Task] = None

    async def on_token(self, text: str, ttft_ms: float) -> None:
        await self.queue.put(text)

    def start(self, run: Callable[["TokenStream"], Awaitable[StreamOutcome]]) -> None:
        self.task = asyncio.create_task(run(self))
        self.task.add_done_callback(lambda _: self.queue.put_nowait(_END))

    async def first_item(self):
        """Wait for the first token or the end, cancelling on disconnect."""
        getter = asyncio.ensure_future(self.queue.get())
        try:
            while True:
                done, _ = await asyncio.wait({getter}, timeout=DISCONNECT_POLL_SEC)
                if done:
                    return getter.result()
                if not self.token.cancelled and await self.request.is_disconnected():
                    self.token.cancel("client disconnected")
        finally:
            if not getter.done():
                getter.cancel()

    def outcome(self) -> Optional[StreamOutcome]:
        if self.task is None or not self.task.done() or self.task.cancelled():
            return None
        return self.task.result()

    async def body(self, first, error_trailer: Optional[Callable[[BackendError], str]] = None) -> AsyncIterator[str]:
        """Yield tokens until the pipeline ends; cancel the session if the client goes away."""
        try:
            item = first
            while item is not _END:
                yield item
                item = await self.queue.get()

            outcome = self.outcome()
            if error_trailer is not None and outcome is not None and outcome.failed:
                yield error_trailer(outcome.error)
        finally:
            if self.task is not None and not self.task.done():
                self.token.cancel("client disconnected")


def is_end(item) -> bool:
    return item is _END
