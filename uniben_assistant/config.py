import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


class Config:
    # Security
    JWT_SECRET = os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY")
    if not JWT_SECRET:
        raise ValueError("No JWT_SECRET set. Please set JWT_SECRET in .env file for token signing.")

    JWT_ALGORITHM = "HS256"
    JWT_ISSUER = os.getenv("JWT_ISSUER", "uniben-ai-assistant")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "uniben-users")
    USER_TOKEN_DAYS = max(1, _env_int("USER_TOKEN_DAYS", 7))
    GUEST_TOKEN_HOURS = max(1, _env_int("GUEST_TOKEN_HOURS", 24))

    # Runtime
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development").strip().lower()
    IS_PRODUCTION = ENVIRONMENT == "production"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    CLIENT_URL = os.getenv("CLIENT_URL")
    CORS_ORIGINS = [
        "http://localhost:5173",
        "http://localhost:3000",
        "https://uniben-ai-assistant.vercel.app",
        "https://uniben-ai-assistant-client.vercel.app",
    ]
    if CLIENT_URL:
        CORS_ORIGINS.append(CLIENT_URL)

    # Database
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/uniben_assistant")
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME")
    MONGO_SERVER_SELECTION_TIMEOUT_MS = _env_int("MONGO_SERVER_SELECTION_TIMEOUT_MS", 5000)

    # AI Environment
    # Keep backward compatibility with older GOOGLE_API_KEY naming.
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # Orchestration limits
    LLM_TIMEOUT_SECONDS = max(1.0, _env_float("LLM_TIMEOUT_SECONDS", 30.0))
    TOOL_TIMEOUT_SECONDS = max(0.5, _env_float("TOOL_TIMEOUT_SECONDS", 10.0))
    MAX_TOOL_ROUNDS = max(1, _env_int("MAX_TOOL_ROUNDS", 5))

    # LLM resilience
    AI_MAX_RETRIES = max(1, _env_int("AI_MAX_RETRIES", 2))
    AI_BASE_DELAY = _env_float("AI_BASE_DELAY", 0.5)
    CIRCUIT_FAILURE_THRESHOLD = _env_int("AI_CIRCUIT_FAILURE_THRESHOLD", 8)
    CIRCUIT_RECOVERY_TIMEOUT = _env_int("AI_CIRCUIT_RECOVERY_TIMEOUT", 8)
    CIRCUIT_HALF_OPEN_MAX_CALLS = _env_int("AI_CIRCUIT_HALF_OPEN_MAX_CALLS", 3)

    # Catalog limits
    NEWS_LIMIT = 50
    CONVERSATION_LIST_LIMIT = 20
    MESSAGE_MAX_LENGTH = 5000
    TITLE_PREVIEW_LENGTH = 50

    # Keyword sets for conversation topics
    TOPIC_KEYWORDS = {
        "course": ["course", "class"],
        "navigation": ["building", "location", "where"],
        "department": ["department", "faculty"],
        "quiz": ["quiz", "exam", "test"],
    }
