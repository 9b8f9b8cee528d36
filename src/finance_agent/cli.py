"""
Command-line interface for the Finance Agent.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import structlog
import uvicorn

from .config import get_settings

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="finance-agent",
        description="Finance Agent - a stateful personal finance assistant",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP server")
    serve_parser.add_argument("--host", default=None, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    chat_parser = subparsers.add_parser("chat", help="Chat with the agent in the terminal")
    chat_parser.add_argument("--user", default=None, help="User ID")
    chat_parser.add_argument("--session", default=None, help="Session ID")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    subparsers.add_parser("init", help="Create a .env template and data directory")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        sys.exit(run_server(args.host, args.port, args.reload))
    elif args.command == "chat":
        asyncio.run(chat_loop(args.user, args.session))
    elif args.command == "config":
        sys.exit(0 if show_config(args.check) else 1)
    elif args.command == "init":
        init_project()
    else:
        parser.print_help()


def run_server(host: str | None, port: int | None, reload: bool) -> int:
    """Run the FastAPI server."""
    settings = get_settings()

    missing = settings.missing_required_keys()
    if missing:
        logger.error("Missing required environment variables", missing=missing)
        for key in missing:
            print(f'  export {key}="your-value-here"')
        print("Or run with USE_MOCK=1 to serve canned responses.")
        return 1

    host = host or settings.host
    port = port or settings.port
    logger.info("Starting Finance Agent server", host=host, port=port, mock_mode=settings.mock_mode)

    uvicorn.run(
        "finance_agent.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level="info",
    )
    return 0


async def chat_loop(user_id: str | None, session_id: str | None) -> None:
    """Interactive terminal chat that streams each turn."""
    from .agent import StreamAdapter, build_driver
    from .sessions import SessionKey, create_session_store

    settings = get_settings()
    store = create_session_store(settings)
    await store.initialize()
    driver = build_driver(settings, store)

    key = SessionKey(
        app_name=settings.app_name,
        user_id=user_id or settings.default_user_id,
        session_id=session_id or settings.default_session_id,
    )
    print(f"Chatting as {key.user_id} in session {key.session_id}. Type 'exit' to quit.\n")

    try:
        while True:
            try:
                message = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break
            message = message.strip()
            if not message:
                continue
            if message.lower() in ("exit", "quit"):
                break

            adapter = StreamAdapter(driver.start(key, message))
            print("agent> ", end="", flush=True)
            async for chunk in adapter.chunks():
                print(chunk, end="", flush=True)
            print("\n")
    finally:
        await store.close()


def show_config(check: bool) -> bool:
    """Show current configuration. Returns False if the check finds errors."""
    settings = get_settings()

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    def status(value: str) -> str:
        return "✅ Set" if value else "❌ Missing"

    print("\n=== Finance Agent Configuration ===\n")

    print("Server:")
    print(f"  App Name: {settings.app_name}")
    print(f"  Host: {settings.host}")
    print(f"  Port: {settings.port}")
    print(f"  Debug: {settings.debug}")

    print("\nLLM Providers:")
    print(f"  Default: {settings.default_provider}")
    print(f"  Default Model: {settings.get_llm_config().model}")
    print(f"  Mock Mode: {settings.mock_mode}")
    print(f"  Google Key: {mask(settings.google_api_key)}")
    print(f"  Google Cloud Project: {status(settings.google_cloud_project)}")
    print(f"  Google Cloud Location: {status(settings.google_cloud_location)}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")

    print("\nTurns:")
    print(f"  Max Tool Dispatches: {settings.max_tool_dispatches}")
    print(f"  Max Context Turns: {settings.max_context_turns}")

    print("\nSessions:")
    print(f"  Backend: {settings.session_backend}")
    if settings.session_backend == "sql":
        print(f"  Database URL: {settings.database_url}")

    if not check:
        return True

    print("\n=== Configuration Check ===\n")
    errors = [f"{key} is required" for key in settings.missing_required_keys()]
    warnings = []

    if settings.mock_mode:
        warnings.append("Mock mode is on - responses are canned")

    if errors:
        print("❌ Errors:")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print("⚠️  Warnings:")
        for w in warnings:
            print(f"   - {w}")

    if not errors and not warnings:
        print("✅ Configuration looks good!")
    elif not errors:
        print("\n✅ Configuration is valid (with warnings)")
    else:
        print("\n❌ Configuration has errors - fix them before starting")

    return not errors


def init_project() -> None:
    """Create a .env template and the data directory."""
    env_file = Path(".env")
    data_dir = Path("data")

    data_dir.mkdir(exist_ok=True)

    if not env_file.exists():
        env_content = """# Finance Agent Configuration

# === REQUIRED (unless USE_MOCK=1) ===

# Gemini API key (GOOGLE_API_KEY also works); DUMMY enables mock mode
GOOGLE_GENAI_API_KEY=

# === OPTIONAL ===

# Other providers
# DEFAULT_PROVIDER=google
# DEFAULT_MODEL=gemini-2.5-flash
# ANTHROPIC_API_KEY=
# OPENAI_API_KEY=
# OPENROUTER_API_KEY=

# Informational
# GOOGLE_CLOUD_PROJECT=
# GOOGLE_CLOUD_LOCATION=

# Canned responses without a model
USE_MOCK=0

# Turns
MAX_TOOL_DISPATCHES=10
MAX_CONTEXT_TURNS=50

# Sessions: memory or sql
SESSION_BACKEND=memory
DATABASE_URL=sqlite+aiosqlite:///./data/sessions.db

# Server
HOST=0.0.0.0
PORT=3000
DEBUG=false
"""
        env_file.write_text(env_content)
        print(f"✅ Created {env_file}")
    else:
        print(f"ℹ️  {env_file} already exists")

    print(f"✅ Created {data_dir}")
    print("\n=== Next Steps ===")
    print("1. Edit .env and add GOOGLE_GENAI_API_KEY (or set USE_MOCK=1)")
    print("2. Run: finance-agent serve")
    print("3. Open http://localhost:3000")


if __name__ == "__main__":
    main()
