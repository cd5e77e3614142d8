"""
Chat Routes

Direct JSON entry point to the bot, for clients other than the messaging
webhook. The request goes through exactly the same handler as a webhook
message: commands work, the conversation's active namespace is used, and
answered questions are appended to the conversation's history.
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated

from .models import ChatRequest, ChatResponse
from .dependencies import get_bot_handler
from ..auth.models import Principal
from ..auth.security import require_scopes
from ..bot.handler import BotHandler

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post(
    "/",
    response_model=ChatResponse,
    summary="Send one message to the assistant",
    status_code=status.HTTP_200_OK,
)
async def chat(
    req: ChatRequest,
    principal: Annotated[Principal, Depends(require_scopes("chat"))],
    handler: Annotated[BotHandler, Depends(get_bot_handler)],
) -> ChatResponse:
    reply = await handler.handle(req.chat_id, req.message)

    if reply.turn is None:
        return ChatResponse(answer=reply.text)

    return ChatResponse(
        answer=reply.text,
        context=reply.turn.context,
        tool_results=reply.turn.tool_results,
    )
