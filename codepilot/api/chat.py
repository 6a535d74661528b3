"""
Chat endpoint for the editor sidebar.

The active file (when the editor sends one) comes first in the context,
followed by retrieved project snippets. Replies stream as plain text; a
backend failure after streaming has started is reported inline. Edits the
reply proposes are applied to the file text through POST /chat/apply.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .deps import AppComponents, get_components
from .schemas import ApplyEditRequest, ApplyEditResponse, ChatRequest
from .streaming import TokenStream, is_end
from ..core.diff import apply_search_replace, parse_search_replace
from ..core.errors import BackendError

router = APIRouter(prefix="/chat", tags=["chat"])


def _error_trailer(error: BackendError) -> str:
    return f"\n[Chat Error]: {error}"


@router.post("")
async def chat(req: ChatRequest, request: Request, components: AppComponents = Depends(get_components)):
    """Stream a chat reply."""
    messages = [m.model_dump() for m in req.messages]
    active_file = req.active_context.model_dump() if req.active_context else None

    stream = TokenStream(request)
    stream.start(lambda s: components.pipeline.chat(
        req.request_id,
        messages,
        on_token=s.on_token,
        active_file=active_file,
        os_name=req.os,
        cancel=s.token,
    ))

    first = await stream.first_item()
    if is_end(first):
        outcome = stream.outcome()
        if outcome is not None and outcome.failed:
            return JSONResponse(status_code=500, content={"error": f"Chat failed: {outcome.error}"})
        return Response(content="", media_type="text/plain")

    return StreamingResponse(stream.body(first, error_trailer=_error_trailer), media_type="text/plain")


@router.post("/apply", response_model=ApplyEditResponse)
async def apply_edit(req: ApplyEditRequest):
    """Apply the SEARCH/REPLACE blocks of a chat reply to the original text."""
    return ApplyEditResponse(
        text=apply_search_replace(req.original, req.output),
        blocks=len(parse_search_replace(req.output)),
    )
