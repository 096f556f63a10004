"""
Completion Service Client.

Sends a conversation plus an optional tool catalog to an OpenAI-compatible
chat completions endpoint and returns the reply as ordered content blocks
(text and/or tool-use requests).
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import openai
from openai import OpenAI

from .config import CompletionConfig, config
from .conversation import (
    Conversation,
    ContentBlock,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from .errors import AuthenticationError, RateLimited, UpstreamError
from .tools.registry import ToolDescriptor, result_text

logger = logging.getLogger(__name__)


@dataclass
class CompletionResponse:
    """One completion reply: ordered content blocks plus usage metadata."""

    blocks: list[ContentBlock] = field(default_factory=list)
    model: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Optional[dict] = None

    @property
    def texts(self) -> list[str]:
        return [b.text for b in self.blocks if isinstance(b, TextBlock)]

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]


def build_tool_definitions(catalog: list[ToolDescriptor]) -> list[dict]:
    """Convert tool descriptors into OpenAI function-calling definitions."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in catalog
    ]


def payload_to_text(payload: Any) -> str:
    """Render a tool result payload as the text the model sees."""
    if isinstance(payload, str):
        return payload
    text = result_text(payload)
    if text:
        return text
    return json.dumps(payload, default=str)


def to_openai_messages(
    conversation: Conversation, system_prompt: Optional[str] = None
) -> list[dict]:
    """
    Map conversation turns to chat completion messages.

    Assistant turns carrying tool uses become ``tool_calls``; tool results
    become ``tool`` messages keyed by ``tool_call_id``.
    """
    messages: list[dict] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for turn in conversation:
        if isinstance(turn.content, str):
            messages.append({"role": turn.role.value, "content": turn.content})
            continue

        texts: list[str] = []
        tool_calls: list[dict] = []
        results: list[ToolResultBlock] = []
        for block in turn.content:
            if isinstance(block, TextBlock):
                texts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                tool_calls.append(
                    {
                        "id": block.call_id,
                        "type": "function",
                        "function": {
                            "name": block.name,
                            "arguments": json.dumps(block.arguments),
                        },
                    }
                )
            elif isinstance(block, ToolResultBlock):
                results.append(block)
            else:
                raise TypeError(f"Unsupported content block: {block!r}")

        if turn.role is Role.ASSISTANT:
            if results:
                raise ValueError("Tool results cannot be authored by the assistant")
            message: dict = {"role": "assistant", "content": "\n".join(texts) or None}
            if tool_calls:
                message["tool_calls"] = tool_calls
            messages.append(message)
        else:
            if tool_calls:
                raise ValueError("Tool uses cannot be authored by the user")
            for result in results:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.call_id,
                        "content": payload_to_text(result.payload),
                    }
                )
            if texts:
                messages.append({"role": "user", "content": "\n".join(texts)})

    return messages


def _parse_arguments(raw: Optional[str], tool_name: str) -> dict:
    """Parse tool call arguments, tolerating double-encoded JSON."""
    if not raw:
        return {}
    try:
        args = json.loads(raw)
        if isinstance(args, str):
            args = json.loads(args)
    except json.JSONDecodeError as e:
        raise UpstreamError(
            f"Model emitted malformed arguments for tool '{tool_name}': {raw[:200]}"
        ) from e
    if not isinstance(args, dict):
        raise UpstreamError(
            f"Model emitted non-object arguments for tool '{tool_name}': {raw[:200]}"
        )
    return args


class CompletionClient:
    """Chat completions backend with function calling."""

    def __init__(
        self,
        settings: Optional[CompletionConfig] = None,
        system_prompt: Optional[str] = None,
        client: Optional[OpenAI] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or config.completion
        self.system_prompt = system_prompt
        self.model = self.settings.model
        self._client = client or OpenAI(
            base_url=self.settings.base_url,
            api_key=self.settings.api_key or "not-needed",
            timeout=self.settings.timeout,
            max_retries=0,  # retries are handled in complete()
        )
        self._sleep = sleep

    def complete(
        self,
        conversation: Conversation,
        tool_catalog: Optional[list[ToolDescriptor]] = None,
    ) -> CompletionResponse:
        """
        Request a completion for the conversation.

        Rate-limited requests are retried with exponential backoff.

        Args:
            conversation: The full conversation so far.
            tool_catalog: Tools the model may call. None or empty omits them.

        Returns:
            CompletionResponse with ordered Text and ToolUse blocks.

        Raises:
            RateLimited: If still throttled after all retries.
            AuthenticationError: If the credentials were rejected.
            UpstreamError: For any other failure.
        """
        create_kwargs: dict = {
            "model": self.model,
            "messages": to_openai_messages(conversation, self.system_prompt),
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }
        if tool_catalog:
            create_kwargs["tools"] = build_tool_definitions(tool_catalog)

        delay = self.settings.retry_delay
        attempt = 0
        while True:
            try:
                return self._create(create_kwargs)
            except RateLimited:
                if attempt >= self.settings.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Completion rate limited, retry %d/%d in %.1fs",
                    attempt,
                    self.settings.max_retries,
                    delay,
                )
                self._sleep(delay)
                delay *= self.settings.backoff_factor

    def _create(self, create_kwargs: dict) -> CompletionResponse:
        """Single chat completion call with error translation."""
        try:
            response = self._client.chat.completions.create(**create_kwargs)
        except openai.RateLimitError as e:
            raise RateLimited(str(e)) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AuthenticationError(str(e)) from e
        except openai.APIError as e:
            raise UpstreamError(str(e)) from e

        if not response.choices:
            raise UpstreamError("Completion returned no choices")

        choice = response.choices[0]
        message = choice.message
        blocks: list[ContentBlock] = []
        if message.content:
            blocks.append(TextBlock(message.content))
        for call in message.tool_calls or []:
            blocks.append(
                ToolUseBlock(
                    name=call.function.name,
                    arguments=_parse_arguments(call.function.arguments, call.function.name),
                    call_id=call.id,
                )
            )

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return CompletionResponse(
            blocks=blocks,
            model=getattr(response, "model", None),
            finish_reason=choice.finish_reason,
            usage=usage,
        )

    def close(self) -> None:
        """Close the underlying OpenAI client."""
        try:
            self._client.close()
        except Exception as e:
            logger.debug("Error closing OpenAI client: %s", e)
