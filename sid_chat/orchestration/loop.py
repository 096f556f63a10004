"""
Tool-use conversation loop.

Drives the exchange between the completion service and the tool host:

    AwaitingCompletion -> HasToolUse -> AwaitingToolResult -> AwaitingCompletion
                       -> HasFinalText -> Done

Text blocks are collected into a final-text buffer. Tool uses are dispatched
one at a time in the order the model emitted them, their results are appended
to the conversation as user-role tool results, and a single continuation
completion is requested per round. The loop stops on a response with no tool
uses or after ``max_rounds`` tool rounds.

The orchestrator itself is stateless between runs, so one instance can serve
concurrent requests; per-run state lives in ``_RunState``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..actions import ActionSignal, decode, decode_first, to_flags
from ..completion import CompletionClient, CompletionResponse
from ..config import config
from ..conversation import Conversation, Role, ToolResultBlock, ToolUseBlock, Turn
from ..errors import ToolError
from ..tools.registry import ToolDescriptor, ToolRegistryClient
from ..tracing import TracingContext

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 500


def format_tool_trace(name: str, arguments: dict) -> str:
    """Human-readable line recording a tool call in the final text."""
    return f"[Calling tool {name} with args {json.dumps(arguments, separators=(',', ':'))}]"


@dataclass
class ToolCallRecord:
    """A tool call dispatched during a run."""

    round: int
    name: str
    arguments: dict
    call_id: str
    result: Any = None
    error: Optional[str] = None


@dataclass
class OrchestrationResult:
    """Result from a complete orchestration run."""

    final_text: str
    side_effect: Optional[ActionSignal] = None
    rounds: int = 0
    tool_calls: list[ToolCallRecord] = field(default_factory=list)

    @property
    def display_text(self) -> str:
        """Text meant for the user: the action's message, or the final text."""
        if self.side_effect is not None:
            return self.side_effect.display_message
        return self.final_text

    def to_wire(self) -> dict:
        """The ``{finalText, flags}`` shape consumed by the chat UI."""
        return {
            "finalText": self.display_text,
            "flags": to_flags(self.side_effect),
        }


@dataclass
class _RunState:
    """Mutable state owned by a single run."""

    conversation: Conversation
    execution_id: Optional[str] = None
    tracing_context: Optional[TracingContext] = None
    segments: list[str] = field(default_factory=list)
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    completions: int = 0

    @property
    def prefix(self) -> str:
        return f"[{self.execution_id}] " if self.execution_id else ""


class ConversationOrchestrator:
    """
    Multi-round tool-use orchestrator.

    Both collaborators are injected so tests can substitute doubles.

    Args:
        completion_client: Completion service client.
        tool_registry: Connected tool registry client.
        max_rounds: Maximum number of tool rounds per run. 1 reproduces a
            single tool round followed by one continuation.
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        tool_registry: ToolRegistryClient,
        max_rounds: Optional[int] = None,
    ):
        self.completion_client = completion_client
        self.tool_registry = tool_registry
        self.max_rounds = max_rounds if max_rounds is not None else config.orchestrator.max_rounds
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")

    def run(
        self,
        conversation: Conversation,
        execution_id: Optional[str] = None,
        tracing_context: Optional[TracingContext] = None,
    ) -> OrchestrationResult:
        """
        Run the tool loop for a conversation.

        Args:
            conversation: Prior turns plus the new user turn. Not modified;
                the run works on its own copy.
            execution_id: Request identifier used as a log prefix.
            tracing_context: Optional request tracing context.

        Returns:
            OrchestrationResult with the final text and any side effect.

        Raises:
            ValueError: If the conversation does not end with a user turn.
            CompletionError: If the completion service fails.
        """
        last = conversation.last()
        if last is None or last.role is not Role.USER:
            raise ValueError("Conversation must end with a user turn")

        state = _RunState(
            conversation=conversation.copy(),
            execution_id=execution_id,
            tracing_context=tracing_context,
        )
        logger.debug("%sStarting orchestration for: %.200s", state.prefix, last.text())

        if tracing_context is None:
            return self._run_loop(state)

        with tracing_context.span(
            name="orchestration",
            input={"query": last.text()},
            metadata={"max_rounds": self.max_rounds},
        ) as span:
            result = self._run_loop(state)
            span.set_output(
                {
                    "rounds": result.rounds,
                    "tools_used": [c.name for c in result.tool_calls],
                    "final_text": result.final_text[:500],
                }
            )
            return result

    def _run_loop(self, state: _RunState) -> OrchestrationResult:
        """Core orchestration loop."""
        catalog = self.tool_registry.list_tools()
        rounds = 0

        response = self._complete(state, catalog)
        while True:
            state.segments.extend(text for text in response.texts if text)

            tool_uses = response.tool_uses
            if not tool_uses:
                break
            if rounds >= self.max_rounds:
                logger.warning(
                    "%sTool round limit (%d) reached, %d tool call(s) not dispatched",
                    state.prefix,
                    self.max_rounds,
                    len(tool_uses),
                )
                break

            rounds += 1
            state.conversation.append(Turn(Role.ASSISTANT, list(response.blocks)))
            for tool_use in tool_uses:
                result_block = self._dispatch(state, tool_use, rounds)
                state.conversation.append(Turn(Role.USER, [result_block]))
                state.segments.append(format_tool_trace(tool_use.name, tool_use.arguments))

            # The continuation that closes the last permitted round gets no
            # catalog, so the model has to answer in text.
            response = self._complete(
                state, catalog if rounds < self.max_rounds else None
            )

        final_text = "\n".join(state.segments)
        side_effect = decode(final_text) or decode_first(reversed(state.segments))
        if side_effect is not None:
            logger.info("%sDecoded action signal: %s", state.prefix, side_effect)

        result = OrchestrationResult(
            final_text=final_text,
            side_effect=side_effect,
            rounds=rounds,
            tool_calls=list(state.tool_calls),
        )
        self._log_summary(state, result)
        return result

    def _complete(
        self, state: _RunState, catalog: Optional[list[ToolDescriptor]]
    ) -> CompletionResponse:
        """Request a completion, traced as a generation when enabled."""
        state.completions += 1
        tools = catalog or None
        logger.debug(
            "%sCompletion %d (%d turns, %s)",
            state.prefix,
            state.completions,
            len(state.conversation),
            f"{len(tools)} tools" if tools else "no tools",
        )

        if state.tracing_context is None:
            return self.completion_client.complete(state.conversation, tools)

        with state.tracing_context.generation(
            name=f"completion_{state.completions}",
            model=self.completion_client.model,
            input=[
                {"role": turn.role.value, "content": turn.text()}
                for turn in state.conversation
            ],
            metadata={"tools": [t.name for t in tools] if tools else []},
        ) as gen:
            try:
                response = self.completion_client.complete(state.conversation, tools)
            except Exception:
                gen.set_status("error")
                raise
            gen.set_output(
                {
                    "text": response.texts,
                    "tool_uses": [
                        {"name": t.name, "arguments": t.arguments}
                        for t in response.tool_uses
                    ],
                }
            )
            if response.usage:
                gen.set_usage(**response.usage)
            return response

    def _dispatch(
        self, state: _RunState, tool_use: ToolUseBlock, round_num: int
    ) -> ToolResultBlock:
        """Execute one tool call and build its result block."""
        record = ToolCallRecord(
            round=round_num,
            name=tool_use.name,
            arguments=tool_use.arguments,
            call_id=tool_use.call_id,
        )
        state.tool_calls.append(record)

        if state.tracing_context is None:
            return self._call_tool(state, tool_use, record)

        with state.tracing_context.span(
            name=f"tool:{tool_use.name}",
            input=tool_use.arguments,
        ) as span:
            block = self._call_tool(state, tool_use, record)
            if block.is_error:
                span.set_status("error")
            span.set_output({"error": record.error} if record.error else record.result)
            return block

    def _call_tool(
        self, state: _RunState, tool_use: ToolUseBlock, record: ToolCallRecord
    ) -> ToolResultBlock:
        """
        Call the tool host.

        Tool failures are fed back to the model as an error-shaped result so
        the continuation can explain the failure.
        """
        logger.debug(
            "%sRound %d: calling tool '%s'", state.prefix, record.round, tool_use.name
        )
        try:
            payload = self.tool_registry.call_tool(tool_use.name, tool_use.arguments)
        except ToolError as e:
            logger.error("%sTool '%s' failed: %s", state.prefix, tool_use.name, e)
            error_msg = str(e)
            if len(error_msg) > MAX_ERROR_CHARS:
                error_msg = error_msg[:MAX_ERROR_CHARS] + "..."
            record.error = error_msg
            return ToolResultBlock(
                call_id=tool_use.call_id,
                payload={"error": error_msg, "type": type(e).__name__},
                is_error=True,
            )

        record.result = payload
        return ToolResultBlock(call_id=tool_use.call_id, payload=payload)

    def _log_summary(self, state: _RunState, result: OrchestrationResult) -> None:
        """Log a compact run summary."""
        logger.info(
            "%sOrchestration done: %d round(s), %d completion(s), %d tool call(s)%s",
            state.prefix,
            result.rounds,
            state.completions,
            len(result.tool_calls),
            ", side effect" if result.side_effect else "",
        )
        for call in result.tool_calls:
            if call.error:
                logger.info(
                    "%s  round %d: %s -> error: %.80s",
                    state.prefix, call.round, call.name, call.error,
                )
            else:
                logger.info("%s  round %d: %s -> ok", state.prefix, call.round, call.name)
