"""
interactive-bridge interactive shell.

Connects to a running bridge server as a plugin (or spins up an
in-memory one over a fresh document) and drops you into a Python REPL
with a live client pre-connected.

Usage:
    python -m interactive_bridge.shell                    # connect, fall back to in-memory
    python -m interactive_bridge.shell --url ws://host:9997
    python -m interactive_bridge.shell --inmemory         # always use in-memory server

Inside the shell, you have:
    client      PluginClient connected to the server
    p           protocol module (command constructors)
    req(...)    shorthand for await client.request(...)
    document    DocumentController (in-memory mode only)
    show(x)     pretty-print any dict/list

Example session:
    >>> req("create", "dataContext", {"name": "Mammals",
    ...     "collections": [{"name": "Species", "attrs": [{"name": "Name"}]}]})
    >>> req("get", "dataContext[Mammals].collectionList")
"""

from __future__ import annotations

import argparse
import asyncio
import code
import json
import os
import sys
import threading
from typing import Any

from interactive_bridge.client import PluginClient
from interactive_bridge.server import protocol as proto
from interactive_bridge.server.app import BridgeServer


# ─────────────────────────────────────────────────────────────
# Pretty printer
# ─────────────────────────────────────────────────────────────

def show(obj: Any, indent: int = 2) -> None:
    """Pretty-print a dict, list, or any JSON-serialisable object."""
    print(json.dumps(obj, indent=indent, default=str))


# ─────────────────────────────────────────────────────────────
# Async helpers for the sync REPL
# ─────────────────────────────────────────────────────────────

_loop: asyncio.AbstractEventLoop | None = None
_client: PluginClient | None = None
_server: BridgeServer | None = None


def _run_async(coro, timeout: float = 30.0):
    """Submit a coroutine to the background event loop and block for result."""
    if _loop is None:
        raise RuntimeError("No event loop running")
    future = asyncio.run_coroutine_threadsafe(coro, _loop)
    return future.result(timeout=timeout)


def req(action_or_command, resource: str | None = None, values: Any = None,
        timeout: float = 30.0):
    """Send a command and return the result.

    Usage:
        req("get", "dataContextList")
        req({"action": "get", "resource": "interactiveFrame"})
        req([cmd1, cmd2])
    """
    if isinstance(action_or_command, str):
        message = proto.command(action_or_command, resource, values)
    else:
        message = action_or_command
    return _run_async(_client.request(message, timeout=timeout), timeout=timeout + 1)


def on(resource: str):
    """Decorator to register a listener for host-initiated calls.

    Usage:
        @on("dataContextChangeNotice")
        def changed(message):
            show(message)
    """
    def decorator(fn):
        _client.on(resource)(fn)
        print(f"Registered listener for {resource!r}")
        return fn
    return decorator


def _start_memory_server(port: int) -> str:
    """Start a BridgeServer on the background loop. Returns the ws:// URL."""
    global _server
    _server = BridgeServer(host="127.0.0.1", port=port)
    _run_async(_server.start(), timeout=10)
    return _server.url


# ─────────────────────────────────────────────────────────────
# Shell banner and helpers
# ─────────────────────────────────────────────────────────────

BANNER = """
╔══════════════════════════════════════════════════════════╗
║          interactive-bridge shell                        ║
╠══════════════════════════════════════════════════════════╣
║  client     PluginClient (connected)                     ║
║  p          protocol module (command constructors)       ║
║  req(...)   send command(s), return result(s)            ║
║  on(res)    decorator to register a notice listener      ║
║  show(x)    pretty-print dict/list                       ║
║  document   DocumentController (in-memory mode only)     ║
╠══════════════════════════════════════════════════════════╣
║  Quick start:                                            ║
║    req("get", "interactiveFrame")                        ║
║    req("create", "dataContext", {"name": "D"})           ║
║    req("get", "dataContextList")                         ║
╚══════════════════════════════════════════════════════════╝
"""


def _make_namespace(memory_mode: bool) -> dict:
    """Build the REPL namespace with everything pre-imported."""
    namespace = {
        "client":  _client,
        "p":       proto,
        "req":     req,
        "on":      on,
        "show":    show,
        "command": proto.command,
        "notify":  proto.notify,
        "json":    json,
    }
    if memory_mode and _server is not None:
        namespace["document"] = _server.document
    return namespace


# ─────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────

def main():
    global _loop, _client

    parser = argparse.ArgumentParser(description="interactive-bridge shell")
    parser.add_argument(
        "--url", default=None,
        help="Server URL (default: ws://127.0.0.1:9997, or in-memory if unreachable)"
    )
    parser.add_argument(
        "--inmemory", action="store_true",
        help="Always use an in-memory server over a fresh document"
    )
    parser.add_argument(
        "--port", type=int, default=19877,
        help="Port for in-memory server (default: 19877)"
    )
    parser.add_argument(
        "--name", default="shell",
        help="Client name shown in server logs"
    )
    args = parser.parse_args()

    memory_mode = args.inmemory
    url = args.url or os.environ.get("INTERACTIVE_BRIDGE_URL", "ws://127.0.0.1:9997")

    # ── Start background event loop ──
    loop_ready = threading.Event()

    def _run_loop():
        global _loop
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
        loop_ready.set()
        _loop.run_forever()

    loop_thread = threading.Thread(target=_run_loop, daemon=True, name="interactive-shell-loop")
    loop_thread.start()
    loop_ready.wait()

    if memory_mode:
        print("Starting in-memory interactive-bridge server...", end=" ", flush=True)
        url = _start_memory_server(args.port)
        print(f"ready on {url}")

    print(f"Connecting to {url} as {args.name!r}...", end=" ", flush=True)
    _client = PluginClient(client_name=args.name, server_url=url, title=args.name)

    try:
        _run_async(_client.start(), timeout=10)
        print("connected ✓")
    except Exception as e:
        if not memory_mode and not args.url:
            print(f"\n  Could not reach {url}: {e}")
            print("  Starting in-memory server instead...")
            url = _start_memory_server(args.port)
            memory_mode = True
            _client = PluginClient(client_name=args.name, server_url=url, title=args.name)
            _run_async(_client.start(), timeout=10)
            print("  connected ✓")
        else:
            print(f"failed: {e}")
            sys.exit(1)

    print(f"  session  = {_client.session_id}")
    print(f"  frame    = {_client.frame.get('name')}")
    if memory_mode:
        print("  mode     = in-memory")

    # ── Drop into REPL ──
    console = code.InteractiveConsole(locals=_make_namespace(memory_mode))
    console.interact(banner=BANNER, exitmsg="Disconnecting...")

    # ── Cleanup ──
    try:
        _run_async(_client.stop(), timeout=5)
        if _server is not None:
            _run_async(_server.stop(), timeout=5)
    except Exception as e:
        print(f"Cleanup failed: {e}")


if __name__ == "__main__":
    main()
