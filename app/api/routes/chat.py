from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from app.llm.streaming import SSE_HEADERS
from app.models.request import ChatRequest
from app.services.chat_service import ChatService, get_chat_service

router = APIRouter(tags=["Chat"])


@router.post("/chat")
async def chat(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service)
):
    """
    Stream a reply using Server-Sent Events (SSE).

    The upstream event stream is relayed verbatim and closed with a
    "data: [DONE]" event; the exchange is logged after the body completes.
    Errors before the stream opens map to 500/502 in app.main.
    """
    body, transcript = await service.start_relay(request)

    return StreamingResponse(
        body,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(
            service.log_exchange,
            request.session_id,
            request.message,
            transcript,
        ),
    )
