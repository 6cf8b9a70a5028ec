#!/usr/bin/env python3
"""
helpline CLI: run and look after the support chat backend.

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    serve           start           Start the API server
    migrate         init-db         Create the database schema
    history         show            Print one session's history as JSON
    export          dump            Export every conversation to JSON
    purge           delete          Delete a session's conversation
    stats           info            Show config and row counts
    ping            status          Check /health of a running instance
"""

import argparse
import json
import sys

__version__ = "1.0.0"


def _settings(args):
    from helpline.config import load_config, Settings

    return Settings.from_config(load_config(args.config))


def _store(args):
    from helpline.storage.sqlite_store import SQLiteStore

    return SQLiteStore(_settings(args).sqlite_path)


def _session_conversation(args, store):
    """Resolve args.session_id without creating anything. Prints and returns None on failure."""
    from helpline.conversations import ConversationService
    from helpline.errors import HelplineError

    try:
        return ConversationService(store).require_conversation(args.session_id)
    except HelplineError as e:
        print(f"  ✗  {e}", file=sys.stderr)
        return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_serve(args):
    """Start the helpline API server."""
    import os

    import uvicorn

    from helpline.config import CONFIG_ENV_VAR

    s = _settings(args)
    if args.config:
        # The app may be imported in a fresh interpreter (--reload).
        os.environ[CONFIG_ENV_VAR] = os.path.abspath(args.config)
    host = args.host or s.host
    port = args.port or s.port

    print(f"  helpline v{__version__} on {host}:{port}")
    print(f"  Model: {s.llm_model} ({s.llm_url})")
    print(f"  SQLite: {s.sqlite_path}")
    print()

    uvicorn.run(
        "helpline.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )
    return 0


def cmd_migrate(args):
    """Create tables and indexes (safe to re-run)."""
    store = _store(args)
    print(f"  ✓  Schema ready in {store.db_path}")
    return 0


def cmd_history(args):
    """Print a session's ordered history. Read-only: never creates a conversation."""
    store = _store(args)
    conversation = _session_conversation(args, store)
    if conversation is None:
        return 1

    data = {
        "sessionId": conversation.session_id,
        "conversationId": conversation.id,
        "messages": [m.to_dict() for m in store.list_messages(conversation.id)],
    }
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


def cmd_export(args):
    """Export conversations to JSON."""
    store = _store(args)
    data = store.export_all_json()
    indent = 2 if args.pretty else None

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
        print(f"  📦 Dumped {len(data)} conversations to {args.output}", file=sys.stderr)
    else:
        json.dump(data, sys.stdout, indent=indent, ensure_ascii=False)
        sys.stdout.write("\n")
    return 0


def cmd_purge(args):
    """Delete a session's conversation; its messages are removed with it."""
    store = _store(args)
    conversation = _session_conversation(args, store)
    if conversation is None:
        return 1

    count = len(store.list_messages(conversation.id))
    store.delete_conversation(conversation.id)
    print(f"  ✓  Deleted conversation {conversation.id} ({count} messages)")
    return 0


def cmd_stats(args):
    """Show config and storage counts at a glance."""
    s = _settings(args)
    store = _store(args)
    stats = store.get_stats()

    print("  Configuration")
    print(f"  ├─ LLM:       {s.llm_model} ({s.llm_url})")
    print(f"  ├─ API key:   {'set' if s.llm_api_key else 'MISSING'}")
    print(f"  ├─ Cache:     {'redis ' + s.cache_host + ':' + str(s.cache_port) if s.cache_enabled else 'disabled'}")
    print(f"  └─ SQLite:    {s.sqlite_path}")
    print()
    print("  Storage")
    print(f"  ├─ Conversations: {stats['conversations']}")
    print(f"  ├─ Messages:      {stats['messages']}")
    print(f"  ├─ User msgs:     {stats['user_messages']}")
    print(f"  └─ AI msgs:       {stats['ai_messages']}")
    return 0


def cmd_ping(args):
    """Check /health of a running instance."""
    import httpx

    url = (args.url or "http://localhost:3001").rstrip("/")
    try:
        resp = httpx.get(f"{url}/health", timeout=5)
    except httpx.ConnectError:
        print(f"  ✗  Nothing listening at {url}")
        return 1
    except httpx.HTTPError as e:
        print(f"  ✗  Error: {e}")
        return 1

    try:
        data = resp.json()
    except ValueError:
        data = {}

    if resp.status_code == 200:
        print(f"  ✓  {url} is UP")
        print(f"  ├─ Database: {data.get('database', '?')}")
        print(f"  └─ Redis:    {data.get('redis', '?')}")
        return 0

    print(f"  ✗  {url} answered HTTP {resp.status_code}: {data.get('error', resp.text[:200])}")
    return 1


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under its name and aliases."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helpline",
        description="helpline: customer-support chat backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"helpline {__version__}",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to config.yaml")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_serve(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["serve", "start"], "Start the API server", cmd_serve, setup_serve)

    _add_command(sub, ["migrate", "init-db"], "Create the database schema", cmd_migrate)

    def setup_session(p):
        p.add_argument("session_id", help="Client session id (UUID)")

    _add_command(sub, ["history", "show"], "Print a session's history as JSON", cmd_history, setup_session)

    def setup_export(p):
        p.add_argument("--output", "-o", default=None, help="Output file (default: stdout)")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON")

    _add_command(sub, ["export", "dump"], "Export conversations to JSON", cmd_export, setup_export)

    _add_command(sub, ["purge", "delete"], "Delete a session's conversation", cmd_purge, setup_session)

    _add_command(sub, ["stats", "info"], "Show config and row counts", cmd_stats)

    def setup_ping(p):
        p.add_argument("--url", "-u", default=None, help="helpline URL (default: http://localhost:3001)")

    _add_command(sub, ["ping", "status"], "Check /health of a running instance", cmd_ping, setup_ping)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
