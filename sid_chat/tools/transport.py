"""
JSON-RPC transports for talking to an MCP tool host.

Two transports are provided:
- StdioTransport: spawns the tool host as a subprocess and exchanges
  newline-delimited JSON-RPC messages over stdin/stdout.
- HttpTransport: MCP streamable HTTP. Each message is POSTed; the reply is
  either a JSON body or a ``text/event-stream`` carrying the response.

A transport instance is shared by every request the server handles, so all
exchanges are serialized by a lock.
"""

import json
import logging
import queue
import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import requests

from ..errors import SidChatError, TransportError

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

# Marks end of the subprocess stdout stream in the reader queue.
_EOF = None


class RpcError(SidChatError):
    """The tool host answered a request with a JSON-RPC error object."""

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        super().__init__(f"[{code}] {message}" if code is not None else message)
        self.code = code
        self.rpc_message = message
        self.data = data


class Transport(ABC):
    """Base class: request/notify over an exchange primitive."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._lock = threading.Lock()
        self._next_id = 0

    @abstractmethod
    def open(self) -> None:
        """Establish the underlying connection."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection. Safe to call repeatedly."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the connection is usable."""

    @abstractmethod
    def _exchange(self, message: dict, expect_reply: bool) -> Optional[dict]:
        """Send one message and, if expect_reply, return the matching reply."""

    def request(self, method: str, params: Optional[dict] = None) -> Any:
        """
        Send a JSON-RPC request and return its result.

        Raises:
            RpcError: If the host replied with an error object.
            TransportError: If the connection failed or the reply is malformed.
        """
        with self._lock:
            self._next_id += 1
            message: dict = {
                "jsonrpc": JSONRPC_VERSION,
                "id": self._next_id,
                "method": method,
            }
            if params is not None:
                message["params"] = params
            logger.debug("-> %s (id=%d)", method, self._next_id)
            reply = self._exchange(message, expect_reply=True)

        if reply is None:
            raise TransportError(f"No reply to '{method}'")
        if "error" in reply:
            error = reply["error"] or {}
            raise RpcError(
                error.get("code"),
                error.get("message", "unknown error"),
                error.get("data"),
            )
        if "result" not in reply:
            raise TransportError(f"Malformed reply to '{method}': {reply}")
        return reply["result"]

    def notify(self, method: str, params: Optional[dict] = None) -> None:
        """Send a JSON-RPC notification (no reply expected)."""
        message: dict = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            message["params"] = params
        with self._lock:
            logger.debug("-> %s (notification)", method)
            self._exchange(message, expect_reply=False)


class StdioTransport(Transport):
    """Newline-delimited JSON-RPC over a subprocess's stdin/stdout."""

    def __init__(self, command: list[str], timeout: float = 30.0):
        super().__init__(timeout=timeout)
        self.command = command
        self._process: Optional[subprocess.Popen] = None
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()

    @classmethod
    def for_script(cls, script_path: str, timeout: float = 30.0) -> "StdioTransport":
        """
        Build a transport that runs a tool host script.

        ``.py`` scripts run under the current interpreter, ``.js`` under node.

        Raises:
            ValueError: If the script is neither a .py nor a .js file.
        """
        suffix = Path(script_path).suffix
        if suffix == ".py":
            command = [sys.executable, script_path]
        elif suffix == ".js":
            command = ["node", script_path]
        else:
            raise ValueError("Server script must be a .js or .py file")
        return cls(command, timeout=timeout)

    @property
    def is_open(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def open(self) -> None:
        logger.info("Starting tool host: %s", " ".join(self.command))
        try:
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise TransportError(f"Failed to start tool host: {e}") from e

        # Fresh queue per process; a reader left over from an earlier
        # process keeps writing to its own.
        self._lines = queue.Queue()
        reader = threading.Thread(
            target=self._read_stdout,
            args=(self._process, self._lines),
            name="tool-host-reader",
            daemon=True,
        )
        reader.start()

    @staticmethod
    def _read_stdout(
        process: subprocess.Popen, lines: "queue.Queue[Optional[str]]"
    ) -> None:
        """Pump subprocess stdout lines into the queue until EOF."""
        assert process.stdout is not None
        for line in process.stdout:
            line = line.strip()
            if line:
                lines.put(line)
        lines.put(_EOF)

    def _exchange(self, message: dict, expect_reply: bool) -> Optional[dict]:
        if not self.is_open:
            raise TransportError("Tool host process is not running")
        assert self._process is not None and self._process.stdin is not None

        try:
            self._process.stdin.write(json.dumps(message) + "\n")
            self._process.stdin.flush()
        except (BrokenPipeError, OSError) as e:
            raise TransportError(f"Lost connection to tool host: {e}") from e

        if not expect_reply:
            return None

        while True:
            try:
                line = self._lines.get(timeout=self.timeout)
            except queue.Empty:
                raise TransportError(
                    f"Timed out after {self.timeout}s waiting for '{message['method']}'"
                )
            if line is _EOF:
                raise TransportError("Tool host process exited")
            try:
                reply = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON output from tool host: %.200s", line)
                continue
            if isinstance(reply, dict) and reply.get("id") == message["id"]:
                return reply
            logger.debug("Ignoring unsolicited tool host message: %.200s", line)

    def close(self) -> None:
        if self._process is None:
            return
        process, self._process = self._process, None
        try:
            if process.stdin:
                process.stdin.close()
            process.terminate()
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
        except OSError as e:
            logger.debug("Error stopping tool host: %s", e)
        logger.info("Tool host process stopped")


class HttpTransport(Transport):
    """MCP streamable HTTP transport."""

    SESSION_HEADER = "Mcp-Session-Id"

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(timeout=timeout)
        self.url = url
        self.token = token
        self._session = session
        self._owns_session = session is None
        self._session_id: Optional[str] = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        if self._session is None:
            self._session = requests.Session()
        if self.token:
            self._session.headers["Authorization"] = f"Bearer {self.token}"
        self._open = True
        logger.info("Using tool host at %s", self.url)

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/json, text/event-stream",
            "Content-Type": "application/json",
        }
        if self._session_id:
            headers[self.SESSION_HEADER] = self._session_id
        return headers

    def _exchange(self, message: dict, expect_reply: bool) -> Optional[dict]:
        if not self._open or self._session is None:
            raise TransportError("HTTP transport is not open")

        try:
            response = self._session.post(
                self.url,
                json=message,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Tool host request timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            self._open = False
            raise TransportError(f"Failed to reach tool host: {e}") from e

        if response.status_code >= 400:
            raise TransportError(
                f"Tool host returned HTTP {response.status_code}: {response.text[:200]}"
            )

        session_id = response.headers.get(self.SESSION_HEADER)
        if session_id:
            self._session_id = session_id

        if not expect_reply:
            return None

        content_type = response.headers.get("Content-Type", "")
        if "text/event-stream" in content_type:
            for event in parse_sse_messages(response.text):
                if event.get("id") == message["id"]:
                    return event
            raise TransportError(
                f"Event stream carried no reply to '{message['method']}'"
            )

        try:
            reply = response.json()
        except ValueError as e:
            raise TransportError(f"Tool host returned invalid JSON: {e}") from e
        if not isinstance(reply, dict):
            raise TransportError(f"Unexpected reply from tool host: {reply!r}")
        return reply

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        if self._session is None:
            return
        if self._session_id:
            try:
                self._session.delete(
                    self.url,
                    headers={self.SESSION_HEADER: self._session_id},
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as e:
                logger.debug("Error terminating tool host session: %s", e)
            self._session_id = None
        if self._owns_session:
            self._session.close()
            self._session = None


def parse_sse_messages(body: str) -> list[dict]:
    """
    Extract JSON-RPC messages from a ``text/event-stream`` body.

    Each event's ``data:`` lines are joined with newlines and parsed as JSON;
    events whose data is not a JSON object are skipped.
    """
    messages: list[dict] = []
    data_lines: list[str] = []

    def flush() -> None:
        if not data_lines:
            return
        payload = "\n".join(data_lines)
        data_lines.clear()
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON SSE event: %.200s", payload)
            return
        if isinstance(parsed, dict):
            messages.append(parsed)

    for line in body.splitlines():
        if not line:
            flush()
        elif line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
    flush()
    return messages
