#!/usr/bin/env python3
"""lineup MCP Server — Model Context Protocol server for aligned substitution.

Exposes lineup's substitution as MCP tools that any compatible AI agent can
use. Runs over stdio using JSON-RPC 2.0.

Tools provided:
  - lineup_substitute: Replace all occurrences in a file, keeping alignment
  - lineup_preview: Show the diff a substitution would produce (no write)

Usage:
  python lineup_mcp.py
"""

import json
import sys
from typing import Any

from lineup import result_to_dict, substitute_file

# MCP Protocol version
PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "lineup"
SERVER_VERSION = "0.1.0"

_SUBSTITUTION_PROPERTIES = {
    "file": {
        "type": "string",
        "description": "Path to the file to modify",
    },
    "search_text": {
        "type": "string",
        "description": "Literal, case-sensitive text to find (not a regex)",
    },
    "replacement": {
        "type": "string",
        "description": "Replacement text (may be empty)",
    },
}

TOOLS = [
    {
        "name": "lineup_substitute",
        "description": (
            "Replace every occurrence of search_text in a file by replacement. "
            "Argument lines aligned on an opening parenthesis that follows a "
            "match are re-indented so they stay aligned. Modifies the file "
            "in place."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                **_SUBSTITUTION_PROPERTIES,
                "dry_run": {
                    "type": "boolean",
                    "description": "If true, show what would change without saving",
                    "default": False,
                },
            },
            "required": ["file", "search_text", "replacement"],
        },
    },
    {
        "name": "lineup_preview",
        "description": (
            "Compute the substitution without modifying the file. Returns the "
            "number of matches, realigned lines and a unified diff."
        ),
        "inputSchema": {
            "type": "object",
            "properties": dict(_SUBSTITUTION_PROPERTIES),
            "required": ["file", "search_text", "replacement"],
        },
    },
]


def make_response(id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def make_error(id: Any, code: int, message: str, data: Any = None) -> dict:
    err = {"code": code, "message": message}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": err}


def handle_initialize(id: Any, params: dict) -> dict:
    return make_response(id, {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {
            "tools": {},
        },
        "serverInfo": {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
        },
    })


def handle_tools_list(id: Any, params: dict) -> dict:
    return make_response(id, {"tools": TOOLS})


def handle_tool_call(id: Any, params: dict) -> dict:
    name = params.get("name", "")
    args = params.get("arguments", {})

    if name not in ("lineup_substitute", "lineup_preview"):
        return make_error(id, -32601, f"Unknown tool: {name}")

    missing = [k for k in ("file", "search_text", "replacement") if k not in args]
    if missing:
        return make_error(id, -32602, f"Missing arguments: {', '.join(missing)}")
    if not args["search_text"]:
        return make_error(id, -32602, "search_text must not be empty")

    dry_run = name == "lineup_preview" or bool(args.get("dry_run", False))
    result = substitute_file(
        args["file"],
        args["search_text"],
        args["replacement"],
        dry_run=dry_run,
    )
    return make_response(id, {
        "content": [{"type": "text", "text": json.dumps(result_to_dict(result), indent=2)}],
        "isError": result.status == "error",
    })


HANDLERS = {
    "initialize": handle_initialize,
    "notifications/initialized": None,  # notification, no response
    "tools/list": handle_tools_list,
    "tools/call": handle_tool_call,
}


def run_stdio():
    """Main stdio loop — read JSON-RPC messages, dispatch, respond."""
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            resp = make_error(None, -32700, "Parse error")
            sys.stdout.write(json.dumps(resp) + "\n")
            sys.stdout.flush()
            continue

        method = msg.get("method", "")
        id = msg.get("id")
        params = msg.get("params", {})

        handler = HANDLERS.get(method)
        if handler is None:
            if id is not None and method not in HANDLERS:
                resp = make_error(id, -32601, f"Method not found: {method}")
                sys.stdout.write(json.dumps(resp) + "\n")
                sys.stdout.flush()
            # notifications (no id) or known notification methods → no response
            continue

        resp = handler(id, params)
        sys.stdout.write(json.dumps(resp) + "\n")
        sys.stdout.flush()


if __name__ == "__main__":
    run_stdio()
