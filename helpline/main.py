"""
FastAPI application, the helpline entry point.

Endpoints:
  POST /chat/message              send a customer message, get the support reply
  GET  /chat/history/{session_id} ordered history for a session
  GET  /health                    database and cache status

One request is handled start to finish in sequence: resolve the
conversation, consult the reply cache, generate on a miss, then persist
the user message and the reply (in that order) and bump the timestamp.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpline.cache import ReplyCache, make_cache_key
from helpline.config import Settings, get_settings
from helpline.conversations import ConversationService
from helpline.errors import HelplineError
from helpline.generator import ReplyGenerator
from helpline.storage.models import Sender, is_session_id
from helpline.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)

# Hard limit on the request body; longer text is rejected, not truncated.
MAX_REQUEST_LENGTH = 2000


# ---------------------------------------------------------------------------
# Globals, initialized at startup
# ---------------------------------------------------------------------------
settings: Settings | None = None
store: SQLiteStore | None = None
conversations: ConversationService | None = None
reply_cache: ReplyCache | None = None
generator: ReplyGenerator | None = None


def _setup_logging(s: Settings):
    level = getattr(logging, s.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if s.log_file:
        Path(s.log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(s.log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    global settings, store, conversations, reply_cache, generator

    settings = get_settings()
    _setup_logging(settings)

    store = SQLiteStore(settings.sqlite_path)
    conversations = ConversationService(store)

    # Optional; the app works the same without it
    reply_cache = ReplyCache.from_settings(settings)
    cache_state = await reply_cache.connect()

    generator = ReplyGenerator.from_settings(settings)

    logger.info("helpline started, listening on %s:%s", settings.host, settings.port)
    logger.info("Storage: SQLite=%s", settings.sqlite_path)
    logger.info("Reply cache: %s (ttl=%ss)", cache_state.value, settings.cache_ttl_seconds)
    logger.info(
        "LLM: %s at %s (api key %s, %d attempts, history=%d)",
        settings.llm_model, settings.llm_url,
        "set" if settings.llm_api_key else "MISSING",
        settings.llm_max_attempts, settings.max_history,
    )
    if not settings.llm_api_key:
        logger.warning("No LLM API key configured, every chat request will fail until one is set")

    yield

    await reply_cache.close()
    logger.info("helpline shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="helpline",
    description="Customer-support chat backend.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse({"error": "Validation error", "details": details}, status_code=400)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse({"error": "Route not found"}, status_code=404)
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"error": "Internal server error", "message": _public_message(exc)},
        status_code=500,
    )


def _public_message(exc: Exception) -> str:
    """Message safe to show a client: ours always, anything else only in debug."""
    if isinstance(exc, HelplineError) or (settings and settings.debug):
        return str(exc) or exc.__class__.__name__
    return "Something went wrong"


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=MAX_REQUEST_LENGTH)
    sessionId: str | None = None

    @field_validator("message")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be empty")
        return v

    @field_validator("sessionId")
    @classmethod
    def _canonical_uuid(cls, v: str | None) -> str | None:
        if v is not None and not is_session_id(v):
            raise ValueError("sessionId must be a UUID")
        return v


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        logger.warning("Message truncated from %d to %d characters", len(text), limit)
        return text[:limit]
    return text


@app.post("/chat/message")
async def send_message(body: ChatMessageRequest):
    """Store the exchange and return the reply plus the (possibly new) session id."""
    try:
        text = _truncate(body.message, settings.max_message_length)
        session_id = body.sessionId or str(uuid4())

        conversation = conversations.get_or_create_conversation(session_id)

        cache_key = make_cache_key(conversation.id, text, settings.cache_key_prefix_chars)
        reply = await reply_cache.get(cache_key)

        if reply:
            logger.debug("Reply cache hit for conversation %s", conversation.id)
        else:
            history = conversations.get_conversation_history(conversation.id)
            reply = await generator.generate_reply(history, text)
            await reply_cache.set(cache_key, reply, settings.cache_ttl_seconds)

        conversations.save_message(conversation.id, Sender.USER, text)
        conversations.save_message(conversation.id, Sender.AI, reply)
        conversations.update_conversation_timestamp(conversation.id)
    except HelplineError as e:
        logger.error("Chat error: %s: %s", e.__class__.__name__, e)
        return JSONResponse(
            {"error": "Failed to process message", "message": _public_message(e)},
            status_code=e.status_code,
        )
    except Exception as e:
        logger.exception("Chat error")
        return JSONResponse(
            {"error": "Failed to process message", "message": _public_message(e)},
            status_code=500,
        )

    return JSONResponse({"reply": reply, "sessionId": session_id})


@app.get("/chat/history/{session_id}")
async def chat_history(session_id: str):
    """
    Full ordered history for a session. A well-formed id that has never
    been seen gets a fresh, empty conversation rather than a 404.
    """
    if not is_session_id(session_id):
        return JSONResponse({"error": "Invalid session ID"}, status_code=400)

    try:
        conversation = conversations.get_or_create_conversation(session_id)
        history = conversations.get_conversation_history(conversation.id)
    except Exception as e:
        logger.exception("History error for session %s", session_id)
        return JSONResponse(
            {"error": "Failed to fetch history", "message": _public_message(e)},
            status_code=500,
        )

    return JSONResponse({
        "sessionId": session_id,
        "messages": [m.to_dict() for m in history],
    })


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    """Database is required (503 if down); the cache is reported, never required."""
    try:
        if store is None:
            raise RuntimeError("Storage not initialized")
        store.ping()
    except Exception as e:
        logger.error("Health check: database unhealthy: %s", e)
        return JSONResponse(
            {"status": "error", "database": "unhealthy", "error": str(e)},
            status_code=503,
        )

    redis_status = await reply_cache.status() if reply_cache else "not_configured"

    return JSONResponse({
        "status": "ok",
        "database": "healthy",
        "redis": redis_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


# ---------------------------------------------------------------------------
# Run with: python -m helpline.main
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    s = get_settings()
    uvicorn.run(
        "helpline.main:app",
        host=s.host,
        port=s.port,
        reload=False,
    )
