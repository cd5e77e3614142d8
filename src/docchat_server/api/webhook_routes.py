"""
Messaging Webhook Routes

Receives updates from the messaging platform (Telegram Bot API webhook
format). Text messages and channel posts are handed to the bot handler and
the reply goes back in the response body as a `sendMessage` method call,
which the platform executes. Anything else is acknowledged and ignored so
the platform does not retry it.

Splitting replies over the platform's message length limit is the
transport's concern and is not done here.
"""

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from .dependencies import get_bot_handler
from .models import TelegramUpdate, WebhookReply
from ..auth.security import verify_webhook_secret
from ..bot.handler import BotHandler

logger = logging.getLogger("docchat.webhook")

router = APIRouter(prefix="/telegram", tags=["webhook"])


def _ignored(reason: str) -> Dict[str, Any]:
    return {"ok": True, "detail": reason}


@router.post(
    "/webhook",
    summary="Messaging platform webhook",
    dependencies=[Depends(verify_webhook_secret)],
)
async def telegram_webhook(
    request: Request,
    handler: Annotated[BotHandler, Depends(get_bot_handler)],
) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    try:
        update = TelegramUpdate.model_validate(payload if isinstance(payload, dict) else {})
    except ValidationError:
        logger.warning("Ignoring malformed update")
        return _ignored("Malformed update")

    message = update.effective_message
    if message is None:
        return _ignored("No message to handle")

    if not message.text:
        return _ignored("Ignored non-text update")

    reply = await handler.handle(message.chat.id, message.text)

    return WebhookReply(
        chat_id=message.chat.id,
        text=reply.text,
        reply_to_message_id=message.message_id,
    ).model_dump(exclude_none=True)
