"""
Telegram Webhook

Receives bot updates (messages and inline button callbacks), runs them
through the command dispatcher and sends the reply back to the chat.
"""

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel
from typing import Any, Dict, Optional
import logging

from ..core.commands import CommandReply
from ..core.errors import ProviderError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/telegram")


class WebhookResponse(BaseModel):
    """Response after processing an update."""

    ok: bool = True
    handled: bool = False
    reply: Optional[str] = None


@router.post("/webhook", response_model=WebhookResponse)
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(
        None, alias="X-Telegram-Bot-Api-Secret-Token"
    ),
):
    runtime = request.app.state.runtime
    settings = runtime.settings

    if settings.telegram_webhook_secret and x_telegram_bot_api_secret_token != settings.telegram_webhook_secret:
        raise HTTPException(status_code=403, detail="Invalid secret token")

    try:
        update: Dict[str, Any] = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(update, dict):
        raise HTTPException(status_code=400, detail="Update must be an object")

    callback = update.get("callback_query")
    message = update.get("message") or update.get("edited_message")
    if not isinstance(callback, dict):
        callback = None
    if not isinstance(message, dict):
        message = None

    if callback:
        chat_id = _chat_id(callback.get("message"))
    elif message:
        chat_id = _chat_id(message)
    else:
        return WebhookResponse()

    # Only the configured chat may control the bot
    if not settings.telegram_chat_id or str(chat_id) != str(settings.telegram_chat_id):
        logger.warning(f"Ignoring update from unauthorized chat {chat_id}")
        return WebhookResponse()

    if callback:
        data = callback.get("data")
        reply = await runtime.commands.dispatch_callback(data if isinstance(data, str) else "")
    else:
        text = message.get("text") or ""
        if not isinstance(text, str) or not text.startswith("/"):
            return WebhookResponse()
        reply = await runtime.commands.dispatch(text)

    await _deliver(runtime, chat_id, reply, callback_id=callback.get("id") if callback else None)
    return WebhookResponse(handled=True, reply=reply.text)


def _chat_id(message: Any) -> Any:
    if not isinstance(message, dict):
        return None
    chat = message.get("chat")
    return chat.get("id") if isinstance(chat, dict) else None


async def _deliver(runtime, chat_id: Any, reply: CommandReply, callback_id: Optional[str] = None) -> None:
    client = runtime.telegram
    if client is None:
        return
    try:
        if callback_id:
            await client.answer_callback_query(callback_id)
        await client.send_message(chat_id, reply.text, reply_markup=reply.reply_markup)
    except ProviderError as e:
        logger.error(f"Failed to send command reply: {e}")
