"""Tests for the subprocess tool host transport, against a tiny Python host."""

import json
import textwrap
from concurrent.futures import ThreadPoolExecutor

import pytest

from sid_chat.errors import TransportError, UnknownTool
from sid_chat.tools.registry import ToolRegistryClient
from sid_chat.tools.transport import RpcError, StdioTransport

FAKE_HOST = textwrap.dedent(
    """
    import json
    import sys

    TOOLS = [{"name": "getDatabases", "description": "List databases",
              "inputSchema": {"type": "object"}}]

    print("tool host starting", flush=True)
    for line in sys.stdin:
        message = json.loads(line)
        if "id" not in message:
            continue
        method = message["method"]
        if method == "initialize":
            result = {"protocolVersion": "2025-03-26", "serverInfo": {"name": "fake"}}
        elif method == "tools/list":
            result = {"tools": TOOLS}
        elif method == "tools/call":
            if message["params"]["name"] == "exit":
                sys.exit(0)
            result = {"content": [{"type": "text", "text": json.dumps(message["params"])}]}
        else:
            reply = {"jsonrpc": "2.0", "id": message["id"],
                     "error": {"code": -32601, "message": "Method not found"}}
            print(json.dumps(reply), flush=True)
            continue
        print(json.dumps({"jsonrpc": "2.0", "method": "notifications/message"}), flush=True)
        print(json.dumps({"jsonrpc": "2.0", "id": message["id"], "result": result}), flush=True)
    """
)


@pytest.fixture
def host_script(tmp_path):
    script = tmp_path / "fake_host.py"
    script.write_text(FAKE_HOST)
    return str(script)


@pytest.fixture
def transport(host_script):
    transport = StdioTransport.for_script(host_script, timeout=10)
    transport.open()
    yield transport
    transport.close()


class TestStdioTransport:
    """Tests for StdioTransport."""

    def test_request_skips_noise_and_notifications(self, transport):
        result = transport.request("tools/list")
        assert result["tools"][0]["name"] == "getDatabases"

    def test_rpc_error(self, transport):
        with pytest.raises(RpcError) as exc_info:
            transport.request("bogus/method")
        assert exc_info.value.code == -32601

    def test_host_exit_is_transport_error(self, transport):
        with pytest.raises(TransportError):
            transport.request("tools/call", {"name": "exit", "arguments": {}})

    def test_close_idempotent(self, transport):
        transport.close()
        transport.close()
        assert transport.is_open is False

    def test_request_after_close(self, transport):
        transport.close()
        with pytest.raises(TransportError):
            transport.request("tools/list")

    def test_missing_executable(self):
        transport = StdioTransport(["definitely-not-a-real-binary-xyz"], timeout=1)
        with pytest.raises(TransportError):
            transport.open()


class TestRegistryOverStdio:
    """End-to-end registry usage over a subprocess host."""

    def test_connect_list_call_close(self, host_script):
        client = ToolRegistryClient(StdioTransport.for_script(host_script, timeout=10))
        try:
            tools = client.connect()
            assert [t.name for t in tools] == ["getDatabases"]
            assert client.server_info == {"name": "fake"}

            result = client.call_tool("getDatabases", {"pattern": "s*"})
            assert "s*" in result["content"][0]["text"]

            with pytest.raises(UnknownTool):
                client.call_tool("exit")
        finally:
            client.close()
        assert client.connected is False

    def test_reconnect_after_close(self, host_script):
        client = ToolRegistryClient(StdioTransport.for_script(host_script, timeout=10))
        try:
            client.connect()
            client.close()

            tools = client.connect()

            assert [t.name for t in tools] == ["getDatabases"]
            assert client.connected is True
            result = client.call_tool("getDatabases", {"round": 2})
            assert json.loads(result["content"][0]["text"])["arguments"] == {"round": 2}
        finally:
            client.close()

    def test_concurrent_calls_get_their_own_replies(self, host_script):
        client = ToolRegistryClient(StdioTransport.for_script(host_script, timeout=10))

        def call(n):
            result = client.call_tool("getDatabases", {"n": n})
            return json.loads(result["content"][0]["text"])["arguments"]["n"]

        try:
            client.connect()
            with ThreadPoolExecutor(max_workers=8) as pool:
                replies = list(pool.map(call, range(50)))
        finally:
            client.close()

        assert replies == list(range(50))
