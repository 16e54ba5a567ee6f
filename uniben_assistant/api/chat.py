from fastapi import APIRouter, Depends

from uniben_assistant.api.dependencies import get_actor_or_guest, get_chat_engine, get_db, not_found
from uniben_assistant.config import Config
from uniben_assistant.core.identity import Actor
from uniben_assistant.engines.db_engine_async import preview
from uniben_assistant.schemas import ChatMessageRequest
from uniben_assistant.utils.logging_utils import anonymize_text, get_logger

router = APIRouter()
logger = get_logger("api.chat")


@router.post("/message")
async def send_message(
    request: ChatMessageRequest,
    actor: Actor = Depends(get_actor_or_guest),
    chat_engine=Depends(get_chat_engine),
):
    logger.info(f"Chat turn from {actor.role.value}: {anonymize_text(request.message[:80])}")
    turn = await chat_engine.handle_turn(actor, request.message, request.conversationId)
    return {
        "success": True,
        "conversationId": turn.conversation_id,
        "message": turn.reply_text,
        "hasLocation": turn.has_location,
        "functionCalls": turn.tool_invocations,
    }


@router.get("/conversations")
async def list_conversations(actor: Actor = Depends(get_actor_or_guest), db=Depends(get_db)):
    if actor.is_guest:
        return {"success": True, "conversations": []}

    conversations = await db.recent_conversations(actor.id, limit=Config.CONVERSATION_LIST_LIMIT)
    items = []
    for conv in conversations:
        messages = conv.get("messages") or []
        last = messages[-1].get("content", "") if messages else ""
        items.append({
            "id": conv["id"],
            "title": conv.get("title"),
            "lastMessage": preview(last, 100),
            "lastActivity": conv.get("lastActivity"),
            "messageCount": conv.get("messageCount", len(messages)),
        })
    return {"success": True, "conversations": items}


@router.get("/conversation/{conversation_id}")
async def get_conversation(conversation_id: str, actor: Actor = Depends(get_actor_or_guest),
                           db=Depends(get_db)):
    if actor.is_guest:
        raise not_found("Conversation not found")
    conversation = await db.get_conversation(conversation_id, actor.id)
    if not conversation:
        raise not_found("Conversation not found")
    return {"success": True, "conversation": conversation}
