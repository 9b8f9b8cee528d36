"""
FastAPI application factory.

Owns the lifecycle of:
- Session store (created explicitly, initialized on startup)
- Tool registry and turn driver
- Streaming chat endpoint
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from ..agent import StreamAdapter, TurnDriver, build_driver
from ..config import Settings, get_settings
from ..errors import InvalidRequest
from ..llm import BaseLLM
from ..sessions import SessionKey, SessionStore, create_session_store

logger = structlog.get_logger()

VERSION = "0.1.0"

INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Finance Agent</title>
    <style>
        body { font-family: sans-serif; max-width: 820px; margin: 2rem auto; }
        input, textarea { width: 100%; margin-bottom: .5rem; }
        pre { background: #f4f4f4; padding: 1rem; min-height: 12rem; white-space: pre-wrap; }
    </style>
</head>
<body>
    <h1>Finance Agent</h1>
    <input id="userId" placeholder="User ID" value="demo-user">
    <input id="sessionId" placeholder="Session ID" value="demo-session-001">
    <textarea id="message" rows="4" placeholder="Analyze transactions: ..."></textarea>
    <button id="send">Send</button>
    <button id="cancel" disabled>Cancel</button>
    <button id="clear">Clear</button>
    <span id="status"></span>
    <pre id="output"></pre>
    <script>
    const $ = (id) => document.getElementById(id);
    let controller = null;
    function append(text) { $('output').textContent += text; }
    async function send() {
        const message = $('message').value.trim();
        if (!message) return;
        $('send').disabled = true; $('cancel').disabled = false;
        $('status').textContent = 'Streaming...';
        append('\\n--- New message ---\\n');
        controller = new AbortController();
        try {
            const res = await fetch('/chat', {
                method: 'POST',
                headers: {'Content-Type': 'application/json'},
                body: JSON.stringify({message, userId: $('userId').value, sessionId: $('sessionId').value}),
                signal: controller.signal,
            });
            if (!res.ok) { append('\\n[Error] ' + await res.text() + '\\n'); $('status').textContent = 'Error'; return; }
            const reader = res.body.getReader();
            const decoder = new TextDecoder();
            while (true) {
                const {done, value} = await reader.read();
                if (done) break;
                append(decoder.decode(value, {stream: true}));
            }
            $('status').textContent = 'Completed';
        } catch (err) {
            append(err.name === 'AbortError' ? '\\n[Stream aborted]\\n' : '\\n[Error] ' + err.message + '\\n');
            $('status').textContent = err.name === 'AbortError' ? 'Aborted' : 'Error';
        } finally {
            $('send').disabled = false; $('cancel').disabled = true; controller = null;
        }
    }
    $('send').addEventListener('click', send);
    $('cancel').addEventListener('click', () => controller && controller.abort());
    $('clear').addEventListener('click', () => ($('output').textContent = ''));
    </script>
</body>
</html>
"""


class ChatRequest(BaseModel):
    """Turn submission."""

    model_config = ConfigDict(populate_by_name=True)

    message: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    session_id: str | None = Field(default=None, alias="sessionId")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    store: SessionStore = app.state.store
    await store.initialize()
    logger.info("Session store ready", backend=type(store).__name__)

    yield

    await store.close()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    llm: BaseLLM | None = None,
    store: SessionStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    missing = settings.missing_required_keys()
    if missing:
        logger.warning("Missing required environment variables", missing=missing)

    store = store or create_session_store(settings)
    driver = build_driver(settings, store, llm=llm)

    app = FastAPI(
        title="Finance Agent",
        description="Stateful personal finance agent with streaming turns",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.driver = driver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidRequest)
    async def invalid_request_handler(request: Request, exc: InvalidRequest):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            field = ".".join(str(p) for p in errors[0].get("loc", ()) if p != "body") or "body"
            message = f"Invalid {field}: {errors[0].get('msg', 'invalid value')}"
        else:
            message = "Invalid request"
        return await invalid_request_handler(request, InvalidRequest(message))

    # ------------------------------------------------------------------ #
    # Browser UI
    # ------------------------------------------------------------------ #
    @app.get("/", response_class=HTMLResponse)
    async def index():
        """Serve the demo chat page."""
        return INDEX_HTML

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #
    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": VERSION,
            "app_name": settings.app_name,
            "provider": driver.llm.provider_name,
            "mock_mode": settings.mock_mode,
            "session_backend": settings.session_backend,
            "tools": driver.tools.list_tools(),
            "llm_configured": not missing,
        }

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #
    @app.get("/api/sessions/{user_id}/{session_id}")
    async def get_session(user_id: str, session_id: str):
        """Show a session's history and state."""
        session = await store.get(SessionKey(settings.app_name, user_id, session_id))
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session.to_dict()

    # ------------------------------------------------------------------ #
    # Chat
    # ------------------------------------------------------------------ #
    @app.post("/chat")
    async def chat(payload: ChatRequest, request: Request):
        """Run one turn and stream its text back."""
        if not payload.message or not payload.message.strip():
            raise InvalidRequest("Message is required")

        key = SessionKey(
            app_name=settings.app_name,
            user_id=payload.user_id or settings.default_user_id,
            session_id=payload.session_id or settings.default_session_id,
        )
        logger.info("Processing message", user_id=key.user_id, session_id=key.session_id)

        turn_driver: TurnDriver = request.app.state.driver
        adapter = StreamAdapter(
            turn_driver.start(key, payload.message),
            disconnected=request.is_disconnected,
        )
        return StreamingResponse(adapter.chunks(), media_type="text/plain; charset=utf-8")

    return app
