"""
HTTP surface for the editor extension.

Thin FastAPI layer over the orchestration core: validates input, maps core
outcomes to status codes, and streams generated text back as chunked
text/plain. Components are built once in the lifespan and torn down with it.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .schemas import (
    CommandResponse,
    GenerateRequest,
    HealthResponse,
    IndexRequest,
    IndexResponse,
    TerminalRequest,
)
from .chat import router as chat_router
from .deps import AppComponents, build_components, get_components
from .streaming import TokenStream, is_end
from ..core import config
from ..core.errors import CommandNotAllowedError
from ..core.indexing import index_file
from ..llm.ollama_stream import check_ollama_health
from ..util.logging import logger, set_debug


def create_app(components_factory: Callable[[], AppComponents] = build_components) -> FastAPI:
    """
    Create the application.

    Args:
        components_factory: Builds the components at startup; tests pass
            their own to inject a fake backend or a temporary store
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        set_debug(config.debug_enabled())
        app.state.components = components_factory()
        logger.log_operation("app.startup", "success", {
            "model": app.state.components.pipeline.model,
            "store_records": len(app.state.components.store),
        })
        try:
            yield
        finally:
            await app.state.components.shutdown()

    app = FastAPI(
        title="Codepilot Orchestrator",
        version=config.VERSION,
        description="Local-first request orchestration between editor and Ollama",
        docs_url="/docs" if config.debug_enabled() else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Input errors are 400 for the editor client, not FastAPI's 422
        messages = [str(err.get("msg", "")).removeprefix("Value error, ") for err in exc.errors()]
        return JSONResponse(status_code=400, content={"error": "; ".join(messages) or "Invalid request"})

    @app.get("/health", response_model=HealthResponse)
    async def health(components: AppComponents = Depends(get_components)):
        """Check system health."""
        ollama_ok = await check_ollama_health(components.relay.base_url)
        return HealthResponse(
            status="ok",
            version=config.VERSION,
            ollama_available=ollama_ok,
            store_records=len(components.store),
            active_sessions=components.registry.active_count(),
        )

    @app.post("/generate")
    async def generate(req: GenerateRequest, request: Request,
                       components: AppComponents = Depends(get_components)):
        """Stream an inline completion for the code before the cursor."""
        stream = TokenStream(request)
        stream.start(lambda s: components.pipeline.complete_inline(
            req.request_id,
            req.code_before_cursor,
            req.language,
            on_token=s.on_token,
            cursor_offset=req.cursor_index,
            cancel=s.token,
        ))

        first = await stream.first_item()
        if is_end(first):
            outcome = stream.outcome()
            if outcome is not None and outcome.failed:
                return JSONResponse(status_code=500, content={"error": "Generation failed"})
            return Response(content="", media_type="text/plain")

        return StreamingResponse(stream.body(first), media_type="text/plain")

    @app.post("/index", response_model=IndexResponse)
    async def index(req: IndexRequest, components: AppComponents = Depends(get_components)):
        """Index a file into the similarity store."""
        try:
            result = await index_file(components.store, req.text, req.filename, config.INDEX_CHUNK_LINES)
        except OSError as e:
            return JSONResponse(status_code=500, content={"error": f"Failed to write the index: {e}"})
        if result.failed:
            return JSONResponse(status_code=500, content={
                "error": "Failed to generate any embeddings.",
                "suggestion": f"Ensure 'ollama pull {config.EMBED_MODEL}' has been run and Ollama is active.",
            })
        return IndexResponse(message="Indexed successfully", chunks=result.embedded, added=result.added)

    @app.post("/terminal/execute", response_model=CommandResponse, response_model_exclude_none=True)
    async def terminal_execute(req: TerminalRequest, components: AppComponents = Depends(get_components)):
        """Run an allow-listed command and return its output."""
        try:
            components.guard.check(req.command)
        except CommandNotAllowedError:
            return JSONResponse(status_code=403, content={
                "error": "Command not allowed in sandbox",
                "suggestion": "Only these commands are pre-approved: "
                              + ", ".join(components.guard.allowed_prefixes),
            })

        result = await asyncio.to_thread(components.guard.execute, req.command, req.cwd or ".")
        return CommandResponse(**result.to_dict())

    app.include_router(chat_router)

    return app


app = create_app()
