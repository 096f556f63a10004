#!/usr/bin/env python3
"""
SID Chat Interactive CLI

A command-line chat with the database assistant, for exercising the tool
host and the orchestrator without the table browser UI.
"""

import argparse
import atexit
import json
import logging
import signal
import sys
import threading
from typing import Optional

from .completion import CompletionClient
from .config import config
from .conversation import Conversation, Role, Turn
from .errors import SidChatError
from .orchestration import ConversationOrchestrator, OrchestrationResult
from .tools import ToolRegistryClient

# Global shutdown flag for signal handling
_shutdown_requested = threading.Event()
_active_resources: list = []  # Tool registry and completion clients to close

logger = logging.getLogger(__name__)


def _signal_handler(signum: int, frame) -> None:
    """Handle SIGINT for graceful shutdown."""
    if _shutdown_requested.is_set():
        # Second interrupt - force exit
        logger.debug("Force shutdown requested")
        _cleanup_resources()
        sys.exit(1)
    else:
        logger.debug("Shutdown requested")
        _shutdown_requested.set()
        print("\n\nShutting down... (press Ctrl+C again to force)")


def _cleanup_resources() -> None:
    """Close all tracked resources, most recent first."""
    while _active_resources:
        resource = _active_resources.pop()
        try:
            resource.close()
            logger.debug(f"Closed {type(resource).__name__}")
        except Exception as e:
            logger.debug(f"Error closing {type(resource).__name__}: {e}")


def _register_resource(resource) -> None:
    """Register a resource for cleanup on exit."""
    if hasattr(resource, "close"):
        _active_resources.append(resource)


atexit.register(_cleanup_resources)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def print_banner() -> None:
    """Print the welcome banner."""
    banner = """
╔════════════════════════════════════════════════════════════════╗
║                      SID Chat Interactive                       ║
║        Database assistant backed by an MCP tool host            ║
╚════════════════════════════════════════════════════════════════╝

Available commands:
  /help     - Show this help message
  /trace    - Show the tool calls of the last answer
  /tools    - List the tool host's tools
  /clear    - Clear conversation history
  /quit     - Exit the CLI

Type your questions below.
"""
    print(banner)


def print_tools(tool_registry: ToolRegistryClient) -> None:
    """Print the cached tool catalog."""
    tools = tool_registry.list_tools()
    print("\nAvailable Tools:")
    print("─" * 64)
    if not tools:
        print("(the tool host exposes no tools)")
    for i, tool in enumerate(tools, start=1):
        print(f"{i}. {tool.name.ljust(20)} - {tool.description[:60]}")
    print()


def print_trace(result: Optional[OrchestrationResult]) -> None:
    """Print the tool calls made while producing the last answer."""
    if result is None:
        print("\nNo trace available. Ask a question first.\n")
        return
    if not result.tool_calls:
        print("\nNo tools were called for the last answer.\n")
        return

    print("\n" + "═" * 70)
    print("TOOL CALLS")
    print("═" * 70)
    for call in result.tool_calls:
        print(f"\n┌─ Round {call.round}: {call.name}")
        print(f"│  Arguments: {json.dumps(call.arguments)}")
        if call.error:
            print(f"│  Error: {call.error}")
        else:
            print("│  Status: ok")
        print("└" + "─" * 68)
    print()


def format_answer(result: OrchestrationResult) -> str:
    """The answer as shown to the user, with any side effect noted."""
    lines = [result.display_text]
    flags = result.to_wire()["flags"]["databaseChanged"]
    if flags["value"]:
        lines.append(f"(active database changed to '{flags['database']}')")
    return "\n".join(lines)


class InteractiveCLI:
    """Interactive chat session that keeps the history in memory."""

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        tool_registry: ToolRegistryClient,
        verbose: bool = False,
    ):
        self.orchestrator = orchestrator
        self.tool_registry = tool_registry
        self.verbose = verbose
        self.history = Conversation()
        self.last_result: Optional[OrchestrationResult] = None

    def clear_history(self) -> None:
        """Forget the conversation so far."""
        self.history = Conversation()
        self.last_result = None
        print("\nConversation history cleared.\n")

    def process_query(self, query: str) -> bool:
        """Send a user message through the orchestrator.

        Returns:
            True if should continue, False if shutdown requested
        """
        conversation = self.history.copy()
        conversation.append(Turn(Role.USER, query))

        try:
            result = self.orchestrator.run(conversation)
        except KeyboardInterrupt:
            _shutdown_requested.set()
            print("\n\nQuery interrupted, shutting down.\n")
            return False
        except (SidChatError, ValueError) as e:
            print(f"\nError: {e}\n")
            if self.verbose:
                logger.exception("Orchestration failed")
            return True

        if _shutdown_requested.is_set():
            print("\n\nQuery completed, shutting down.\n")
            return False

        # Only the visible exchange is kept, matching what the UI sends back.
        conversation.append(Turn(Role.ASSISTANT, result.display_text))
        self.history = conversation
        self.last_result = result

        print("\n" + format_answer(result) + "\n")
        if result.tool_calls:
            count = len(result.tool_calls)
            print(f"({count} tool call{'s' if count != 1 else ''}, use /trace for details)\n")
        return True

    def run(self) -> None:
        """Run the interactive loop."""
        print_banner()

        while not _shutdown_requested.is_set():
            try:
                user_input = input(">>> ").strip()

                if _shutdown_requested.is_set():
                    break
                if not user_input:
                    continue

                if user_input.startswith("/"):
                    command = user_input.lower()
                    if command in ("/quit", "/exit", "/q"):
                        print("\nGoodbye!\n")
                        break
                    elif command in ("/help", "/h", "/?"):
                        print_banner()
                    elif command == "/trace":
                        print_trace(self.last_result)
                    elif command == "/tools":
                        print_tools(self.tool_registry)
                    elif command == "/clear":
                        self.clear_history()
                    else:
                        print(f"\nUnknown command: {user_input}")
                        print("Type /help for available commands.\n")
                elif not self.process_query(user_input):
                    break

            except KeyboardInterrupt:
                if _shutdown_requested.is_set():
                    print("\n")
                    break
                print("\n\nType /quit to exit.\n")
            except EOFError:
                print("\nGoodbye!\n")
                break


def main() -> None:
    """Main entry point."""
    signal.signal(signal.SIGINT, _signal_handler)

    parser = argparse.ArgumentParser(
        description="SID Chat Interactive CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Start interactive mode
  %(prog)s -v                       # Start with verbose logging
  %(prog)s -q "list the databases"  # Ask a single question
""",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q",
        "--query",
        type=str,
        help="Ask a single question and exit",
    )
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=None,
        help=f"Maximum tool rounds per answer (default: from MAX_TOOL_ROUNDS env or {config.orchestrator.max_rounds})",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output the single-query result as JSON (for scripting)",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    tool_registry = ToolRegistryClient.from_config()
    try:
        tool_registry.connect()
    except SidChatError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    _register_resource(tool_registry)

    completion_client = CompletionClient(system_prompt=config.orchestrator.system_prompt)
    _register_resource(completion_client)

    try:
        orchestrator = ConversationOrchestrator(
            completion_client, tool_registry, max_rounds=args.max_rounds
        )
        if args.query:
            conversation = Conversation([Turn(Role.USER, args.query)])
            try:
                result = orchestrator.run(conversation)
            except SidChatError as e:
                print(f"Error: {e}", file=sys.stderr)
                sys.exit(1)
            if args.json:
                output = {
                    "query": args.query,
                    **result.to_wire(),
                    "toolCalls": [
                        {"round": c.round, "tool": c.name, "arguments": c.arguments, "error": c.error}
                        for c in result.tool_calls
                    ],
                }
                print(json.dumps(output, indent=2))
            else:
                print(format_answer(result))
        else:
            InteractiveCLI(orchestrator, tool_registry, verbose=args.verbose).run()
    finally:
        _cleanup_resources()


if __name__ == "__main__":
    main()
