"""
Conversation orchestration for a single chat turn.

converse() runs the model/tool loop and never raises: model failures fall
through to the local fallback responder. handle_turn() adds persistence on
top of converse() for non-guest actors.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from uniben_assistant.config import Config
from uniben_assistant.core.identity import Actor
from uniben_assistant.engines import fallback_engine
from uniben_assistant.engines.ai_engine_async import AIUnavailableError
from uniben_assistant.engines.tools import TOOL_DECLARATIONS, dispatch
from uniben_assistant.utils.logging_utils import get_logger, log_audit

logger = get_logger("chat")

SYSTEM_PROMPT = """You are a friendly, helpful AI assistant for the University of Benin (UNIBEN).
Your personality: Warm, encouraging, slightly playful but professional - like talking to a helpful friend.
Your role: Help students and staff find information, navigate campus, and learn better.

Guidelines:
- Be conversational and friendly, and keep responses concise but helpful
- When users ask about locations, always use the queryDatabase function to get building info
- When users ask about departments, HODs or courses, use queryDatabase
- When users need help studying a course, recommend resources using the recommendResources function
- When users ask about announcements or news, use the getNews function
- When users ask about school fees, use the getFeesCatalog function
- If you're not sure, be honest but still helpful

When responding about building locations:
- Use queryDatabase to get the building details
- Always mention you can help them navigate there"""

GENERIC_SUMMARY = "I found some information for you. Would you like more details?"


@dataclass
class ConverseResult:
    reply_text: str
    tool_invocations: List[Dict[str, Any]] = field(default_factory=list)
    updated_history: List[Dict[str, Any]] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def has_location(self) -> bool:
        return any(
            inv.get("name") == "queryDatabase" and (inv.get("args") or {}).get("queryType") == "building"
            for inv in self.tool_invocations
        )


@dataclass
class TurnResult:
    conversation_id: Optional[str]
    reply_text: str
    tool_invocations: List[Dict[str, Any]]
    has_location: bool
    used_fallback: bool = False


def _bullets(lines: List[str]) -> str:
    return "\n".join(f"- {line}" for line in lines)


def summarize_tool_result(name: str, result: Dict[str, Any]) -> str:
    """Deterministic reply built from a tool result when the model returns no text."""
    kind = result.get("type")
    rows = result.get("results") or []

    if kind in ("department", "hod") and rows:
        first = rows[0]
        department = first.get("name") or first.get("department")
        text = f"The {department} department"
        if first.get("hodName"):
            text += f" is headed by {first['hodName']}"
        text += "."
        location = first.get("location") or first.get("office")
        if location:
            text += f" It is located at {location}."
        return text

    if kind == "resources":
        items = (result.get("videos") or []) + (result.get("articles") or [])
        if items:
            lines = [f"{item.get('title')} ({item.get('source')})" for item in items[:3]]
            return "Here are some resources you might find helpful:\n" + _bullets(lines)

    if kind == "news" and rows:
        return "Here are the latest news items:\n" + _bullets([str(n.get("title")) for n in rows[:3]])

    return GENERIC_SUMMARY


def _filter_history(history: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [
        {"role": m.get("role"), "content": m.get("content")}
        for m in history or []
        if m.get("role") in ("user", "assistant") and str(m.get("content") or "").strip()
    ]


def _message(role: str, content: str, invocations: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "role": role,
        "content": content[:Config.MESSAGE_MAX_LENGTH],
        "timestamp": datetime.now(timezone.utc),
        "functionCalls": invocations or [],
    }


class ChatEngine:
    def __init__(self, ai, db, max_rounds: int = Config.MAX_TOOL_ROUNDS,
                 tool_timeout: float = Config.TOOL_TIMEOUT_SECONDS):
        self.ai = ai
        self.db = db
        self.max_rounds = max_rounds
        self.tool_timeout = tool_timeout

    async def converse(self, actor: Actor, latest_message: str,
                       prior_history: Optional[List[Dict[str, Any]]] = None) -> ConverseResult:
        history = _filter_history(prior_history)
        invocations: List[Dict[str, Any]] = []

        try:
            session = self.ai.start_session(SYSTEM_PROMPT, TOOL_DECLARATIONS, history)
            turn = await session.send(latest_message)

            rounds = 0
            while turn.tool_calls and rounds < self.max_rounds:
                rounds += 1
                call = turn.tool_calls[0]
                result = await dispatch(call.name, call.args, actor, self.db, timeout=self.tool_timeout)
                invocations.append({"name": call.name, "args": dict(call.args), "response": result})
                turn = await session.send_tool_result(call.name, result)

            if turn.tool_calls:
                logger.warning(f"Tool round cap ({self.max_rounds}) reached; stopping")

            reply = (turn.text or "").strip()
            if not reply and invocations:
                reply = summarize_tool_result(invocations[0]["name"], invocations[0]["response"])
            if not reply:
                reply = GENERIC_SUMMARY
            used_fallback = False
        except AIUnavailableError as e:
            logger.warning(f"Model unavailable, using fallback responder: {e}")
            fallback = await fallback_engine.respond(latest_message, self.db)
            reply, invocations, used_fallback = fallback.text, fallback.tool_invocations, True
        except Exception as e:
            logger.exception(f"Unexpected chat failure, using fallback responder: {e}")
            fallback = await fallback_engine.respond(latest_message, self.db)
            reply, invocations, used_fallback = fallback.text, fallback.tool_invocations, True

        updated = history + [
            {"role": "user", "content": latest_message},
            {"role": "assistant", "content": reply},
        ]
        return ConverseResult(reply, invocations, updated, used_fallback)

    async def handle_turn(self, actor: Actor, message: str,
                          conversation_id: Optional[str] = None) -> TurnResult:
        message = str(message or "").strip()

        conversation = None
        if not actor.is_guest and conversation_id:
            conversation = await self.db.get_conversation(conversation_id, actor.id)

        prior = conversation.get("messages") if conversation else []
        result = await self.converse(actor, message, prior)

        if actor.is_guest:
            return TurnResult(None, result.reply_text, result.tool_invocations,
                              result.has_location, result.used_fallback)

        new_messages = []
        if message:
            new_messages.append(_message("user", message))
        reply = result.reply_text.strip()
        if reply:
            new_messages.append(_message("assistant", reply, result.tool_invocations))

        saved_id = conversation["id"] if conversation else None
        if new_messages:
            if conversation is not None:
                await self.db.append_messages(saved_id, actor.id, new_messages)
            else:
                saved_id = await self.db.create_conversation(actor.id, new_messages)
                log_audit("CONVERSATION_CREATED", actor.id, saved_id)

        return TurnResult(saved_id, result.reply_text, result.tool_invocations,
                          result.has_location, result.used_fallback)
