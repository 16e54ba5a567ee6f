import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from uniben_assistant.config import Config
from uniben_assistant.utils.logging_utils import get_logger

logger = get_logger("ai")

MAX_DELAY = 2.0
JITTER_FACTOR = 0.2
RETRYABLE_MARKERS = ("resource_exhausted", "429", "503", "unavailable", "overloaded")


class AIUnavailableError(Exception):
    """Raised when the model cannot produce a turn (no key, circuit open, timeout, upstream error)."""


# ============================================================
# ASYNC RESILIENCE
# ============================================================

class AsyncCircuitBreaker:
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(self, failure_threshold: int = Config.CIRCUIT_FAILURE_THRESHOLD,
                 recovery_timeout: int = Config.CIRCUIT_RECOVERY_TIMEOUT,
                 half_open_max_calls: int = Config.CIRCUIT_HALF_OPEN_MAX_CALLS):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self.state = self.CLOSED
        self.failure_count = 0
        self.last_failure_time = None
        self.half_open_calls = 0
        self._lock = asyncio.Lock()

    async def can_execute(self) -> bool:
        async with self._lock:
            if self.state == self.CLOSED:
                return True
            elif self.state == self.OPEN:
                if self.last_failure_time and \
                   datetime.now() - self.last_failure_time > timedelta(seconds=self.recovery_timeout):
                    self.state = self.HALF_OPEN
                    self.half_open_calls = 0
                    return True
                return False
            else:  # HALF_OPEN
                if self.half_open_calls < self.half_open_max_calls:
                    self.half_open_calls += 1
                    return True
                return False

    async def record_success(self):
        async with self._lock:
            self.state = self.CLOSED
            self.failure_count = 0

    async def record_failure(self):
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = datetime.now()
            if self.state == self.HALF_OPEN:
                self.state = self.OPEN
            elif self.failure_count >= self.failure_threshold:
                self.state = self.OPEN

    async def get_status(self):
        async with self._lock:
            return {
                "state": self.state,
                "failure_count": self.failure_count,
                "last_failure": self.last_failure_time.isoformat() if self.last_failure_time else None
            }


def _is_retryable(exc: Exception) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in RETRYABLE_MARKERS)


def _backoff(attempt: int) -> float:
    delay = min(Config.AI_BASE_DELAY * (2 ** attempt), MAX_DELAY)
    return delay + random.uniform(0, delay * JITTER_FACTOR)


# ============================================================
# TURNS / SESSIONS
# ============================================================

@dataclass
class ToolCall:
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMTurn:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


def _to_turn(response) -> LLMTurn:
    calls = [
        ToolCall(name=fc.name, args=dict(fc.args or {}))
        for fc in (getattr(response, "function_calls", None) or [])
        if getattr(fc, "name", None)
    ]
    text = ""
    try:
        text = response.text or ""
    except ValueError:
        # Responses made only of function-call parts have no text accessor value.
        text = ""
    return LLMTurn(text=text, tool_calls=calls)


def _history_contents(history: List[Dict[str, Any]]) -> List[types.Content]:
    contents = []
    for message in history or []:
        text = str(message.get("content") or "").strip()
        if not text:
            continue
        role = "user" if message.get("role") == "user" else "model"
        contents.append(types.Content(role=role, parts=[types.Part.from_text(text=text)]))
    return contents


class AISession:
    """One multi-turn chat with the model, bound to a system prompt and tool set."""

    def __init__(self, engine: "AsyncAIEngine", chat):
        self._engine = engine
        self._chat = chat

    async def send(self, message: str) -> LLMTurn:
        return await self._engine._call(self._chat.send_message, message)

    async def send_tool_result(self, name: str, result: Dict[str, Any]) -> LLMTurn:
        part = types.Part.from_function_response(name=name, response=result)
        return await self._engine._call(self._chat.send_message, part)


class AsyncAIEngine:
    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None,
                 timeout: float = Config.LLM_TIMEOUT_SECONDS):
        self.api_key = api_key if api_key is not None else Config.GEMINI_API_KEY
        self.model_name = (model_name or Config.GEMINI_MODEL).replace("models/", "")
        self.timeout = timeout
        self.circuit_breaker = AsyncCircuitBreaker()
        self.client = None

        if self.api_key:
            try:
                self.client = genai.Client(api_key=self.api_key)
                logger.info(f"Initialized Gemini client with model: {self.model_name}")
            except Exception as e:
                logger.error(f"Gemini client init failed: {e}")
        else:
            logger.warning("Missing API key. Set GEMINI_API_KEY (or legacy GOOGLE_API_KEY).")

    @property
    def available(self) -> bool:
        return self.client is not None

    def start_session(self, system_prompt: str, tools: List[types.FunctionDeclaration],
                      history: List[Dict[str, Any]]) -> AISession:
        if not self.client:
            raise AIUnavailableError("AI model not initialized")
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            tools=[types.Tool(function_declarations=tools)] if tools else None,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )
        chat = self.client.aio.chats.create(
            model=self.model_name,
            config=config,
            history=_history_contents(history),
        )
        return AISession(self, chat)

    async def _call(self, send, payload) -> LLMTurn:
        if not await self.circuit_breaker.can_execute():
            raise AIUnavailableError("Service paused for recovery")

        attempts = max(1, Config.AI_MAX_RETRIES)
        for attempt in range(attempts):
            try:
                response = await asyncio.wait_for(send(payload), timeout=self.timeout)
                await self.circuit_breaker.record_success()
                return _to_turn(response)
            except asyncio.TimeoutError:
                await self.circuit_breaker.record_failure()
                raise AIUnavailableError(f"Model call timed out after {self.timeout}s")
            except Exception as e:
                if _is_retryable(e) and attempt < attempts - 1:
                    logger.warning(f"Retryable model error (attempt {attempt + 1}): {e}")
                    await asyncio.sleep(_backoff(attempt))
                    continue
                await self.circuit_breaker.record_failure()
                raise AIUnavailableError(str(e)) from e
        raise AIUnavailableError("Model call failed")

    async def health(self) -> Dict[str, Any]:
        return {
            "configured": self.available,
            "model": self.model_name,
            "circuit": await self.circuit_breaker.get_status(),
        }
