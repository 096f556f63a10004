"""Tests for the completion service client."""

import json
from types import SimpleNamespace
from unittest.mock import Mock

import httpx
import openai
import pytest

from sid_chat.completion import (
    CompletionClient,
    build_tool_definitions,
    payload_to_text,
    to_openai_messages,
)
from sid_chat.config import CompletionConfig
from sid_chat.conversation import (
    Conversation,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from sid_chat.errors import AuthenticationError, RateLimited, UpstreamError
from sid_chat.tools.registry import ToolDescriptor

_REQUEST = httpx.Request("POST", "http://completion.test/v1/chat/completions")


def _settings(**overrides) -> CompletionConfig:
    values = dict(
        base_url="http://completion.test/v1",
        api_key="sk-test",
        model="test-model",
        max_tokens=100,
        temperature=0.0,
        timeout=5,
        max_retries=2,
        retry_delay=1.0,
        backoff_factor=2.0,
    )
    values.update(overrides)
    return CompletionConfig(**values)


def _tool_call(call_id: str, name: str, arguments: str) -> SimpleNamespace:
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def _make_response(content=None, tool_calls=None, usage=None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason="stop")],
        model="test-model",
        usage=usage,
    )


def _status_error(cls, status: int):
    response = httpx.Response(status, request=_REQUEST)
    return cls(f"HTTP {status}", response=response, body=None)


def _make_client(responses, **settings) -> tuple[CompletionClient, Mock, Mock]:
    openai_client = Mock()
    openai_client.chat.completions.create.side_effect = responses
    sleep = Mock()
    client = CompletionClient(
        settings=_settings(**settings),
        system_prompt="You are a test assistant.",
        client=openai_client,
        sleep=sleep,
    )
    return client, openai_client, sleep


def _user_conversation(text: str = "list dbs") -> Conversation:
    return Conversation([Turn(Role.USER, text)])


class TestMessageMapping:
    """Tests for conversation to chat message mapping."""

    def test_plain_turns(self):
        conversation = Conversation(
            [Turn(Role.USER, "hi"), Turn(Role.ASSISTANT, "hello"), Turn(Role.USER, "list dbs")]
        )
        messages = to_openai_messages(conversation, "system text")
        assert messages == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "list dbs"},
        ]

    def test_no_system_prompt(self):
        messages = to_openai_messages(_user_conversation())
        assert messages[0] == {"role": "user", "content": "list dbs"}

    def test_tool_use_and_result(self):
        conversation = _user_conversation()
        conversation.append(
            Turn(
                Role.ASSISTANT,
                [TextBlock("Sure"), ToolUseBlock("getDatabases", {"limit": 2}, "call_1")],
            )
        )
        conversation.append(
            Turn(Role.USER, [ToolResultBlock("call_1", {"databases": ["a", "b"]})])
        )

        messages = to_openai_messages(conversation)

        assert messages[1] == {
            "role": "assistant",
            "content": "Sure",
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "getDatabases", "arguments": '{"limit": 2}'},
                }
            ],
        }
        assert messages[2] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": json.dumps({"databases": ["a", "b"]}),
        }

    def test_tool_use_without_text_has_null_content(self):
        conversation = _user_conversation()
        conversation.append(Turn(Role.ASSISTANT, [ToolUseBlock("getDatabases", {}, "c1")]))
        assert to_openai_messages(conversation)[1]["content"] is None


class TestHelpers:
    """Tests for tool definition and payload helpers."""

    def test_build_tool_definitions(self):
        schema = {"type": "object", "properties": {"database": {"type": "string"}}}
        definitions = build_tool_definitions(
            [ToolDescriptor("getTables", "List tables", schema)]
        )
        assert definitions == [
            {
                "type": "function",
                "function": {
                    "name": "getTables",
                    "description": "List tables",
                    "parameters": schema,
                },
            }
        ]

    def test_payload_string_passes_through(self):
        assert payload_to_text("ok") == "ok"

    def test_payload_mcp_text_content(self):
        payload = {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}
        assert payload_to_text(payload) == "a\nb"

    def test_payload_other_json(self):
        assert payload_to_text({"databases": ["a"]}) == '{"databases": ["a"]}'


class TestComplete:
    """Tests for CompletionClient.complete()."""

    def test_text_response(self):
        client, openai_client, _ = _make_client([_make_response(content="Hello")])

        response = client.complete(_user_conversation())

        assert response.texts == ["Hello"]
        assert response.tool_uses == []
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][0]["role"] == "system"
        assert "tools" not in kwargs

    def test_tools_sent_when_catalog_given(self):
        client, openai_client, _ = _make_client([_make_response(content="Hi")])

        client.complete(_user_conversation(), [ToolDescriptor("getDatabases")])

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["tools"][0]["function"]["name"] == "getDatabases"

    def test_empty_catalog_omits_tools(self):
        client, openai_client, _ = _make_client([_make_response(content="Hi")])
        client.complete(_user_conversation(), [])
        assert "tools" not in openai_client.chat.completions.create.call_args.kwargs

    def test_text_then_tool_use_order(self):
        response = _make_response(
            content="Sure",
            tool_calls=[_tool_call("call_9", "getTables", '{"database": "sales"}')],
        )
        client, _, _ = _make_client([response])

        result = client.complete(_user_conversation())

        assert result.blocks == [
            TextBlock("Sure"),
            ToolUseBlock(name="getTables", arguments={"database": "sales"}, call_id="call_9"),
        ]

    def test_double_encoded_arguments(self):
        raw = json.dumps(json.dumps({"database": "sales"}))
        client, _, _ = _make_client(
            [_make_response(tool_calls=[_tool_call("c1", "getTables", raw)])]
        )
        assert client.complete(_user_conversation()).tool_uses[0].arguments == {
            "database": "sales"
        }

    def test_empty_arguments(self):
        client, _, _ = _make_client(
            [_make_response(tool_calls=[_tool_call("c1", "getDatabases", "")])]
        )
        assert client.complete(_user_conversation()).tool_uses[0].arguments == {}

    def test_malformed_arguments_raise_upstream_error(self):
        client, _, _ = _make_client(
            [_make_response(tool_calls=[_tool_call("c1", "getTables", "{not json")])]
        )
        with pytest.raises(UpstreamError):
            client.complete(_user_conversation())

    def test_usage_recorded(self):
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        client, _, _ = _make_client([_make_response(content="Hi", usage=usage)])
        assert client.complete(_user_conversation()).usage == {
            "prompt_tokens": 10,
            "completion_tokens": 5,
            "total_tokens": 15,
        }

    def test_no_choices_is_upstream_error(self):
        client, _, _ = _make_client([SimpleNamespace(choices=[], usage=None)])
        with pytest.raises(UpstreamError):
            client.complete(_user_conversation())


class TestErrorHandling:
    """Tests for error translation and retry."""

    def test_rate_limit_retried_with_backoff(self):
        client, openai_client, sleep = _make_client(
            [
                _status_error(openai.RateLimitError, 429),
                _status_error(openai.RateLimitError, 429),
                _make_response(content="Finally"),
            ]
        )

        response = client.complete(_user_conversation())

        assert response.texts == ["Finally"]
        assert openai_client.chat.completions.create.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_rate_limit_exhausted(self):
        client, openai_client, _ = _make_client(
            [_status_error(openai.RateLimitError, 429)] * 3
        )
        with pytest.raises(RateLimited):
            client.complete(_user_conversation())
        assert openai_client.chat.completions.create.call_count == 3

    def test_authentication_error_not_retried(self):
        client, openai_client, sleep = _make_client(
            [_status_error(openai.AuthenticationError, 401)]
        )
        with pytest.raises(AuthenticationError):
            client.complete(_user_conversation())
        assert openai_client.chat.completions.create.call_count == 1
        sleep.assert_not_called()

    def test_permission_denied_is_authentication_error(self):
        client, _, _ = _make_client([_status_error(openai.PermissionDeniedError, 403)])
        with pytest.raises(AuthenticationError):
            client.complete(_user_conversation())

    def test_server_error_is_upstream_error(self):
        client, _, _ = _make_client([_status_error(openai.InternalServerError, 500)])
        with pytest.raises(UpstreamError):
            client.complete(_user_conversation())

    def test_connection_error_is_upstream_error(self):
        client, _, _ = _make_client([openai.APIConnectionError(request=_REQUEST)])
        with pytest.raises(UpstreamError):
            client.complete(_user_conversation())
