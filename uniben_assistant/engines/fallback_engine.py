import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

from uniben_assistant.engines.tools import query_database
from uniben_assistant.utils.logging_utils import get_logger

logger = get_logger("fallback")

LOCATION_KEYWORDS = ("library", "building", "where is", "location", "hall", "faculty of")
COURSE_KEYWORDS = ("course", "courses", "class")
GREETING_KEYWORDS = ("hi", "hello", "hey", "good morning", "good afternoon", "good evening")

_FILLER = re.compile(
    r"\b(where\s+is|where's|location\s+of|how\s+do\s+i\s+get\s+to|can\s+you\s+find|"
    r"show\s+me|find|the|a|an|please|building)\b",
    re.IGNORECASE,
)

NO_BUILDING_TEXT = (
    "I couldn't find that place in the campus directory right now. "
    "Try the building's full name, or open the campus map to browse locations."
)
COURSE_TEXT = (
    "I can help with courses! Ask me things like \"200 level Computer Science courses\" "
    "or \"resources for Data Structures\" and I'll look them up for you."
)
GREETING_TEXT = (
    "Hey there! I'm the UNIBEN assistant. I can help you find buildings on campus, "
    "look up courses and departments, and share the latest news."
)
MENU_TEXT = (
    "I'm having trouble reaching my AI service right now, but I can still help with:\n"
    "- Finding buildings and locations on campus\n"
    "- Course and department information\n"
    "- University news and fee catalogs\n"
    "Try asking \"Where is the library?\""
)


@dataclass
class FallbackReply:
    text: str
    tool_invocations: List[Dict[str, Any]] = field(default_factory=list)


def _has_word(text: str, words) -> bool:
    return any(re.search(rf"\b{re.escape(w)}\b", text) for w in words)


def _location_term(message: str) -> str:
    lowered = message.lower()
    if "library" in lowered:
        return "library"
    term = _FILLER.sub(" ", message)
    term = re.sub(r"[^\w\s-]", " ", term)
    return re.sub(r"\s+", " ", term).strip()


def _describe_building(building: Dict[str, Any]) -> str:
    parts = [f"Found it! {building.get('name')}"]
    if building.get("department"):
        parts[0] += f" ({building['department']})"
    parts[0] += "."
    if building.get("description"):
        parts.append(str(building["description"]))
    parts.append("I can help you navigate there from the campus map.")
    return " ".join(parts)


async def respond(message: str, db) -> FallbackReply:
    """Local keyword-triggered reply used when the model is unavailable."""
    text = str(message or "").strip()
    lowered = text.lower()

    try:
        if any(k in lowered for k in LOCATION_KEYWORDS):
            term = _location_term(text) or "library"
            args = {"queryType": "building", "searchTerm": term}
            result = await query_database(db, "building", term)
            invocation = {"name": "queryDatabase", "args": args, "response": result}
            rows = result.get("results") or []
            if rows:
                return FallbackReply(_describe_building(rows[0]), [invocation])
            return FallbackReply(NO_BUILDING_TEXT, [invocation])

        if _has_word(lowered, COURSE_KEYWORDS):
            return FallbackReply(COURSE_TEXT)

        if _has_word(lowered, GREETING_KEYWORDS):
            return FallbackReply(GREETING_TEXT)
    except Exception as e:
        logger.error(f"Fallback responder error: {e}")

    return FallbackReply(MENU_TEXT)
