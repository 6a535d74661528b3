"""
Streaming relay to the local Ollama server.

Opens one streaming call per generation, parses the newline-delimited JSON
records as bytes arrive, and yields discrete events to a single consumer:

    TokenEvent   - a decoded text increment (with time-to-first-token)
    DoneEvent    - terminal record received
    AbortedEvent - the cancellation token fired; not an error
    ErrorEvent   - backend unreachable, hung up, or sent garbage

Cancellation is push-based. Every read is raced against the cancellation
token, so a cancel interrupts a pending read immediately and the response is
closed, which is what actually stops byte delivery.
"""

import asyncio
import inspect
import json
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import httpx
import ollama

from ..core.errors import BackendError
from ..core.request_manager import CancellationToken
from ..util.logging import StructuredLogger, logger as default_logger


@dataclass
class TokenEvent:
    text: str
    ttft_ms: float


@dataclass
class DoneEvent:
    total_ms: float
    ttft_ms: Optional[float]


@dataclass
class AbortedEvent:
    elapsed_ms: float
    ttft_ms: Optional[float]
    reason: Optional[str] = None


@dataclass
class ErrorEvent:
    error: BackendError
    elapsed_ms: float
    ttft_ms: Optional[float]


StreamEvent = Union[TokenEvent, DoneEvent, AbortedEvent, ErrorEvent]


@dataclass
class StreamOutcome:
    """Terminal result of one relay call."""
    status: str  # "completed", "aborted" or "failed"
    total_ms: float
    ttft_ms: Optional[float] = None
    tokens: int = 0
    error: Optional[BackendError] = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def aborted(self) -> bool:
        return self.status == "aborted"

    @property
    def failed(self) -> bool:
        return self.status == "failed"


class _Cancelled(Exception):
    """Raised internally when the cancellation token wins a race."""


class NDJSONLineBuffer:
    """
    Incremental newline-delimited JSON decoder.

    A record split across chunks stays in the buffer until its newline
    arrives. Buffering is done on bytes so multi-byte characters split across
    chunks decode correctly.
    """

    def __init__(self):
        self._buffer = b""

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(b"\n")
        return [record for record in (self._decode(line) for line in lines) if record is not None]

    def flush(self) -> List[Dict[str, Any]]:
        """Decode whatever is left once the stream has ended."""
        remaining, self._buffer = self._buffer, b""
        record = self._decode(remaining)
        return [record] if record is not None else []

    @property
    def pending(self) -> bool:
        return bool(self._buffer.strip())

    @staticmethod
    def _decode(line: bytes) -> Optional[Dict[str, Any]]:
        line = line.strip()
        if not line:
            return None
        try:
            record = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise BackendError(f"Malformed stream record: {line[:120]!r}") from e
        if not isinstance(record, dict):
            raise BackendError(f"Unexpected stream record: {line[:120]!r}")
        return record


def record_text(record: Dict[str, Any]) -> str:
    """Text increment of a generate or chat record."""
    if record.get("response"):
        return str(record["response"])
    message = record.get("message") or {}
    if isinstance(message, dict) and message.get("content"):
        return str(message["content"])
    return ""


def build_generate_payload(prompt: str, model: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"model": model, "prompt": prompt, "stream": True, "options": dict(options or {})}


def build_chat_payload(messages: List[Dict[str, str]], model: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"model": model, "messages": list(messages), "stream": True}
    if options:
        payload["options"] = dict(options)
    return payload


class OllamaStreamRelay:
    """
    Relay between one caller and Ollama's streaming endpoints.

    Payloads containing "messages" go to /api/chat, everything else to
    /api/generate. One relay instance is shared by all sessions; each call
    opens its own response on the shared connection pool.
    """

    def __init__(self, base_url: str = "http://localhost:11434", connect_timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 logger: StructuredLogger = None):
        self.base_url = base_url.rstrip("/")
        # Generations can stall between tokens; only connecting is bounded
        self._timeout = httpx.Timeout(None, connect=connect_timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logger or default_logger

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout,
                                             transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def endpoint_for(payload: Dict[str, Any]) -> str:
        return "/api/chat" if "messages" in payload else "/api/generate"

    async def events(self, payload: Dict[str, Any], cancel: CancellationToken) -> AsyncIterator[StreamEvent]:
        """
        Stream one request, yielding events until a terminal event.

        Exactly one terminal event (DoneEvent, AbortedEvent or ErrorEvent) is
        yielded last. No TokenEvent follows a cancellation.
        """
        start = time.perf_counter()
        ttft_ms: Optional[float] = None

        def elapsed() -> float:
            return (time.perf_counter() - start) * 1000

        if cancel.cancelled:
            yield AbortedEvent(elapsed_ms=elapsed(), ttft_ms=None, reason=cancel.reason)
            return

        response: Optional[httpx.Response] = None
        try:
            request = self.client.build_request("POST", self.endpoint_for(payload), json=payload)
            response = await self._race(self.client.send(request, stream=True), cancel)

            if response.status_code >= 400:
                body = await self._race(response.aread(), cancel)
                detail = body.decode("utf-8", errors="replace")[:300]
                raise BackendError(f"Ollama request failed: {response.status_code} {detail}")

            decoder = NDJSONLineBuffer()
            chunks = response.aiter_bytes().__aiter__()
            while True:
                chunk = await self._race(_next_chunk(chunks), cancel)
                records = decoder.feed(chunk) if chunk is not None else decoder.flush()

                for record in records:
                    if cancel.cancelled:
                        raise _Cancelled()
                    if record.get("error"):
                        raise BackendError(f"Ollama error: {record['error']}")

                    text = record_text(record)
                    if text:
                        if ttft_ms is None:
                            ttft_ms = elapsed()
                        yield TokenEvent(text=text, ttft_ms=ttft_ms)
                        if cancel.cancelled:
                            raise _Cancelled()

                    if record.get("done"):
                        yield DoneEvent(total_ms=elapsed(), ttft_ms=ttft_ms)
                        return

                if chunk is None:
                    raise BackendError("Ollama closed the stream before completion")

        except _Cancelled:
            yield AbortedEvent(elapsed_ms=elapsed(), ttft_ms=ttft_ms, reason=cancel.reason)
        except BackendError as e:
            yield ErrorEvent(error=e, elapsed_ms=elapsed(), ttft_ms=ttft_ms)
        except httpx.HTTPError as e:
            error = BackendError(f"Ollama connection error: {e.__class__.__name__}: {e}")
            yield ErrorEvent(error=error, elapsed_ms=elapsed(), ttft_ms=ttft_ms)
        finally:
            if response is not None:
                await response.aclose()

    async def stream(self, payload: Dict[str, Any], cancel: CancellationToken,
                     on_token: Callable[[str, float], Optional[Awaitable[None]]],
                     on_error: Optional[Callable[[BackendError], Optional[Awaitable[None]]]] = None) -> StreamOutcome:
        """
        Callback adapter over events().

        on_token(text, ttft_ms) is called once per text increment; ttft_ms is
        the same value on every call. on_error is called at most once, and
        never for cancellation.

        Returns:
            StreamOutcome with status completed, aborted or failed
        """
        tokens = 0
        events = self.events(payload, cancel)
        try:
            async for event in events:
                if isinstance(event, TokenEvent):
                    tokens += 1
                    await _maybe_await(on_token(event.text, event.ttft_ms))
                elif isinstance(event, DoneEvent):
                    return StreamOutcome("completed", event.total_ms, event.ttft_ms, tokens)
                elif isinstance(event, AbortedEvent):
                    return StreamOutcome("aborted", event.elapsed_ms, event.ttft_ms, tokens)
                elif isinstance(event, ErrorEvent):
                    self.logger.log_operation("relay.stream", "failed", {"error": str(event.error)})
                    if on_error is not None:
                        await _maybe_await(on_error(event.error))
                    return StreamOutcome("failed", event.elapsed_ms, event.ttft_ms, tokens, event.error)
        finally:
            await events.aclose()

        # events() always ends with a terminal event
        raise RuntimeError("relay stream ended without a terminal event")

    @staticmethod
    async def _race(awaitable: Awaitable[Any], cancel: CancellationToken) -> Any:
        """Await awaitable unless the token fires first; then raise _Cancelled."""
        if cancel.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise _Cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel.wait())
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
        raise _Cancelled()


async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


async def check_ollama_health(host: Optional[str] = None) -> bool:
    """
    Check if the Ollama service answers.
    Used by the health endpoint.
    """
    try:
        await ollama.AsyncClient(host=host).list()
        return True
    except (ollama.ResponseError, httpx.HTTPError, ConnectionError):
        return False
