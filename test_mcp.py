"""Tests for lineup_mcp.py — MCP server for lineup."""

import json
import os
import subprocess
import sys

HERE = os.path.dirname(os.path.abspath(__file__))

CALL = "function_call (param1,\n               param2);\n"


def mcp_call(*messages):
    """Send JSON-RPC messages to MCP server, return parsed responses."""
    input_str = "\n".join(json.dumps(m) for m in messages) + "\n"
    proc = subprocess.run(
        [sys.executable, "lineup_mcp.py"],
        input=input_str, capture_output=True, text=True,
        cwd=HERE,
    )
    lines = [l for l in proc.stdout.strip().split("\n") if l.strip()]
    return [json.loads(l) for l in lines]


def init_msg(id=1):
    return {"jsonrpc": "2.0", "id": id, "method": "initialize", "params": {}}


def tool_call(id, name, arguments):
    return {"jsonrpc": "2.0", "id": id, "method": "tools/call",
            "params": {"name": name, "arguments": arguments}}


def tool_result(resp):
    return json.loads(resp["result"]["content"][0]["text"])


class TestInitialize:
    def test_returns_server_info(self):
        [resp] = mcp_call(init_msg())
        assert resp["result"]["serverInfo"]["name"] == "lineup"
        assert resp["result"]["protocolVersion"] == "2024-11-05"

    def test_has_tools_capability(self):
        [resp] = mcp_call(init_msg())
        assert "tools" in resp["result"]["capabilities"]

    def test_initialized_notification_has_no_response(self):
        resps = mcp_call(init_msg(), {"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert len(resps) == 1


class TestToolsList:
    def test_lists_tools(self):
        resps = mcp_call(init_msg(), {"jsonrpc": "2.0", "id": 2, "method": "tools/list", "params": {}})
        tools = resps[1]["result"]["tools"]
        names = {t["name"] for t in tools}
        assert names == {"lineup_substitute", "lineup_preview"}
        for tool in tools:
            assert tool["inputSchema"]["required"] == ["file", "search_text", "replacement"]


class TestSubstitute:
    def test_realigns(self, tmp_path):
        f = tmp_path / "test.c"
        f.write_text(CALL)
        resps = mcp_call(init_msg(), tool_call(2, "lineup_substitute", {
            "file": str(f), "search_text": "function_call", "replacement": "fn",
        }))
        result = tool_result(resps[1])
        assert result["status"] == "applied"
        assert result["realigned_lines"] == 1
        assert resps[1]["result"]["isError"] is False
        assert f.read_text() == "fn (param1,\n    param2);\n"

    def test_dry_run(self, tmp_path):
        f = tmp_path / "test.c"
        f.write_text(CALL)
        resps = mcp_call(init_msg(), tool_call(2, "lineup_substitute", {
            "file": str(f), "search_text": "function_call", "replacement": "fn",
            "dry_run": True,
        }))
        result = tool_result(resps[1])
        assert result["status"] == "applied"
        assert result["dry_run"] is True
        assert f.read_text() == CALL  # unchanged

    def test_no_match_is_not_an_error(self, tmp_path):
        f = tmp_path / "test.c"
        f.write_text(CALL)
        resps = mcp_call(init_msg(), tool_call(2, "lineup_substitute", {
            "file": str(f), "search_text": "absent", "replacement": "x",
        }))
        assert tool_result(resps[1])["status"] == "unchanged"
        assert resps[1]["result"]["isError"] is False

    def test_file_not_found(self):
        resps = mcp_call(init_msg(), tool_call(2, "lineup_substitute", {
            "file": "/nonexistent/file.c", "search_text": "x", "replacement": "y",
        }))
        result = tool_result(resps[1])
        assert result["status"] == "error"
        assert resps[1]["result"]["isError"] is True


class TestPreview:
    def test_does_not_write(self, tmp_path):
        f = tmp_path / "test.c"
        f.write_text(CALL)
        resps = mcp_call(init_msg(), tool_call(2, "lineup_preview", {
            "file": str(f), "search_text": "function_call", "replacement": "fn",
        }))
        result = tool_result(resps[1])
        assert result["matches"] == 1
        assert "+    param2);" in result["diff"]
        assert f.read_text() == CALL


class TestErrors:
    def test_unknown_tool(self):
        resps = mcp_call(init_msg(), tool_call(2, "nonexistent_tool", {}))
        assert resps[1]["error"]["code"] == -32601

    def test_missing_arguments(self):
        resps = mcp_call(init_msg(), tool_call(2, "lineup_substitute", {"file": "x.c"}))
        assert resps[1]["error"]["code"] == -32602
        assert "search_text" in resps[1]["error"]["message"]

    def test_empty_search_text(self, tmp_path):
        f = tmp_path / "test.c"
        f.write_text(CALL)
        resps = mcp_call(init_msg(), tool_call(2, "lineup_substitute", {
            "file": str(f), "search_text": "", "replacement": "x",
        }))
        assert resps[1]["error"]["code"] == -32602

    def test_unknown_method(self):
        resps = mcp_call(init_msg(), {"jsonrpc": "2.0", "id": 2, "method": "fake/method", "params": {}})
        assert "error" in resps[1]

    def test_parse_error(self):
        proc = subprocess.run(
            [sys.executable, "lineup_mcp.py"],
            input="not json\n", capture_output=True, text=True,
            cwd=HERE,
        )
        resp = json.loads(proc.stdout.strip())
        assert resp["error"]["code"] == -32700
