"""Tests for action signal decoding."""

import logging

from sid_chat.actions import ChangeDatabase, decode, decode_first, to_flags


class TestDecode:
    """Tests for decode()."""

    def test_plain_text_is_not_an_action(self):
        assert decode("not json") is None

    def test_unrecognized_object_is_not_an_action(self):
        assert decode('{"foo":1}') is None

    def test_change_database(self):
        signal = decode('{"action":"CHANGE_DATABASE","database":"sales","message":"ok"}')
        assert signal == ChangeDatabase(database="sales", message="ok")

    def test_surrounding_whitespace_is_ignored(self):
        signal = decode('\n  {"action":"CHANGE_DATABASE","database":"sales","message":"ok"}  \n')
        assert signal == ChangeDatabase("sales", "ok")

    def test_code_fence_is_tolerated(self):
        text = '```json\n{"action": "CHANGE_DATABASE", "database": "hr", "message": "Now on hr"}\n```'
        assert decode(text) == ChangeDatabase("hr", "Now on hr")

    def test_missing_message_defaults_to_empty(self):
        signal = decode('{"action":"CHANGE_DATABASE","database":"sales"}')
        assert signal == ChangeDatabase("sales", "")

    def test_missing_database_is_not_an_action(self):
        assert decode('{"action":"CHANGE_DATABASE","message":"ok"}') is None

    def test_non_string_database_is_not_an_action(self):
        assert decode('{"action":"CHANGE_DATABASE","database":3,"message":"ok"}') is None

    def test_unknown_action_is_not_an_action(self):
        assert decode('{"action":"DROP_TABLE","database":"sales"}') is None

    def test_json_array_is_not_an_action(self):
        assert decode('[{"action":"CHANGE_DATABASE"}]') is None

    def test_empty_and_non_string_input(self):
        assert decode("") is None
        assert decode(None) is None

    def test_idempotent(self):
        text = '{"action":"CHANGE_DATABASE","database":"sales","message":"ok"}'
        assert decode(text) == decode(text)
        assert decode("nope") == decode("nope")

    def test_parse_failure_logged_at_debug(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="sid_chat.actions"):
            decode("not json")
        assert caplog.records
        assert all(r.levelno == logging.DEBUG for r in caplog.records)


class TestDecodeFirst:
    """Tests for decode_first()."""

    def test_returns_first_match(self):
        segments = [
            "hello",
            '{"action":"CHANGE_DATABASE","database":"one","message":"1"}',
            '{"action":"CHANGE_DATABASE","database":"two","message":"2"}',
        ]
        assert decode_first(segments) == ChangeDatabase("one", "1")

    def test_no_match(self):
        assert decode_first(["a", "b"]) is None
        assert decode_first([]) is None


class TestToFlags:
    """Tests for the UI flags shape."""

    def test_no_side_effect(self):
        assert to_flags(None) == {"databaseChanged": {"value": False}}

    def test_change_database(self):
        assert to_flags(ChangeDatabase("sales", "ok")) == {
            "databaseChanged": {"value": True, "database": "sales"}
        }


class TestChangeDatabase:
    """Tests for the text shown for a database switch."""

    def test_display_message_uses_model_message(self):
        assert ChangeDatabase("sales", "Now on sales").display_message == "Now on sales"

    def test_display_message_falls_back_when_message_missing(self):
        signal = decode('{"action":"CHANGE_DATABASE","database":"sales"}')
        assert signal.display_message == "Switched to database 'sales'."
