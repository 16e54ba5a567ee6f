"""
UNIBEN Assistant API - Main Server (FastAPI)
Features:
- Gemini chat with function calling into the campus database
- JWT authentication for students, staff, admins and guests
- Role-based news visibility and course offering management
- Bursary fee catalogs and campus navigation data
- Practice quizzes with scoring
- Log anonymization
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from uniben_assistant.api import admin, auth, chat, courses, fees, navigation, news, quiz
from uniben_assistant.config import Config
from uniben_assistant.engines.ai_engine_async import AsyncAIEngine
from uniben_assistant.engines.chat_engine import ChatEngine
from uniben_assistant.engines.db_engine_async import AsyncDatabaseEngine
from uniben_assistant.utils import logging_utils

logger = logging_utils.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    db_engine = AsyncDatabaseEngine()
    await db_engine.connect()
    ai_engine = AsyncAIEngine()
    app.state.db = db_engine
    app.state.ai = ai_engine
    app.state.chat_engine = ChatEngine(ai_engine, db_engine)
    logger.info(f"UNIBEN Assistant API started ({Config.ENVIRONMENT})")

    yield

    # Shutdown
    await db_engine.close()
    logger.info("Application shutting down")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(x) for x in first.get("loc", ()) if x not in ("body", "query", "path"))
    message = str(first.get("msg") or "Invalid value").replace("Value error, ", "")
    return f"{field}: {message}" if field else message


def create_app() -> FastAPI:
    app = FastAPI(
        title="UNIBEN Assistant API",
        description="Campus information assistant for the University of Benin",
        version="1.0.0",
        docs_url=None if Config.IS_PRODUCTION else "/docs",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        content = {"success": False}
        if isinstance(exc.detail, dict):
            content.update(exc.detail)
        else:
            content["message"] = str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"success": False, "message": _validation_message(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        content = {"success": False, "message": "Something went wrong. Please try again.", "code": "SERVER_ERROR"}
        if not Config.IS_PRODUCTION:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
    app.include_router(news.router, prefix="/api/news", tags=["news"])
    app.include_router(fees.router, prefix="/api/bursary/fees", tags=["bursary"])
    app.include_router(navigation.router, prefix="/api/navigation", tags=["navigation"])
    app.include_router(courses.router, prefix="/api", tags=["courses"])
    app.include_router(quiz.router, prefix="/api/quiz", tags=["quiz"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

    @app.get("/")
    async def home():
        return {"status": "UNIBEN Assistant API is running", "docs": "/docs"}

    @app.get("/health")
    async def health(request: Request):
        db_ok = await request.app.state.db.ping()
        ai = getattr(request.app.state, "ai", None)
        return {
            "status": "OK" if db_ok else "DEGRADED",
            "database": "connected" if db_ok else "unavailable",
            "ai": await ai.health() if ai is not None else {"configured": False},
            "environment": Config.ENVIRONMENT,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "5000")), reload=not Config.IS_PRODUCTION)
