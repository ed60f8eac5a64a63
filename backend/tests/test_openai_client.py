"""Completion client tests — JSON sanitizing, repair pass, error mapping.

The HTTP layer (`_request_completion`) is mocked; no network calls are made.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
from unittest.mock import patch

import pytest
from openai import OpenAIError

from marketscope.errors import ServiceError
from marketscope.services.openai_client import (
    build_payload,
    chat_reply,
    complete,
    parse_json_object,
    sanitize_json,
)

_REQUEST = "marketscope.services.openai_client._request_completion"


def _complete(**kwargs):
    params = {"system": "sys", "user": "usr", "shape": '{"a": 1}', "context": "TEST"}
    params.update(kwargs)
    return asyncio.run(complete(**params))


# ===================================================================== #
#  Unit tests: sanitizer                                                  #
# ===================================================================== #

class TestSanitizeJson:
    def test_plain_object(self):
        assert sanitize_json('{"a": 1}') == '{"a": 1}'

    def test_strips_markdown_fences(self):
        raw = '```json\n{"a": 1}\n```'
        assert parse_json_object(raw) == {"a": 1}

    def test_strips_surrounding_prose(self):
        raw = 'Here is the result: {"a": [1, 2]} Hope this helps!'
        assert parse_json_object(raw) == {"a": [1, 2]}

    def test_removes_trailing_commas(self):
        raw = '{"a": [1, 2,], "b": 3,}'
        assert parse_json_object(raw) == {"a": [1, 2], "b": 3}

    def test_no_object_raises(self):
        with pytest.raises(ValueError):
            sanitize_json("no json here")

    def test_array_is_not_an_object(self):
        with pytest.raises(ValueError):
            parse_json_object('[{"a": 1}]')

    def test_fenced_array_is_not_an_object(self):
        with pytest.raises(ValueError):
            parse_json_object('```json\n[{"a": 1}, {"b": 2}]\n```')

    def test_payload_enables_json_mode(self):
        payload = build_payload(
            model="gpt-4o", messages=[], max_completion_tokens=100, temperature=0.2,
        )
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["max_tokens"] == 100


# ===================================================================== #
#  complete()                                                            #
# ===================================================================== #

class TestComplete:
    def test_returns_parsed_object(self):
        with patch(_REQUEST, return_value=('{"answer": 42}', "stop")) as mock_req:
            assert _complete() == {"answer": 42}
        assert mock_req.call_count == 1

    def test_empty_object_is_a_valid_answer(self):
        with patch(_REQUEST, return_value=("{}", "stop")):
            assert _complete() == {}

    def test_shape_is_appended_to_user_prompt(self):
        with patch(_REQUEST, return_value=("{}", "stop")) as mock_req:
            _complete(user="Find things", shape='{"things": []}')
        messages = mock_req.call_args.args[0]
        assert messages[0] == {"role": "system", "content": "sys"}
        assert messages[1]["content"].startswith("Find things")
        assert '{"things": []}' in messages[1]["content"]

    def test_unparseable_output_gets_one_repair_pass(self):
        with patch(_REQUEST, side_effect=[("not json at all", "stop"), ('{"fixed": true}', "stop")]) as mock_req:
            assert _complete() == {"fixed": True}
        assert mock_req.call_count == 2
        assert mock_req.call_args.kwargs["temperature"] == 0.0

    def test_top_level_array_triggers_repair(self):
        with patch(_REQUEST, side_effect=[('[{"a": 1}]', "stop"), ('{"items": [{"a": 1}]}', "stop")]) as mock_req:
            assert _complete() == {"items": [{"a": 1}]}
        assert mock_req.call_count == 2

    def test_truncated_output_triggers_repair(self):
        with patch(_REQUEST, side_effect=[('{"a": 1}', "length"), ('{"a": 1}', "stop")]) as mock_req:
            assert _complete() == {"a": 1}
        assert mock_req.call_count == 2

    def test_failed_repair_raises(self):
        with patch(_REQUEST, side_effect=[("garbage", "stop"), ("still garbage", "stop")]):
            with pytest.raises(ServiceError, match="repair"):
                _complete()

    def test_empty_content_raises(self):
        with patch(_REQUEST, return_value=("", "stop")):
            with pytest.raises(ServiceError, match="Empty"):
                _complete()

    def test_transport_failure_propagates(self):
        with patch(_REQUEST, side_effect=ServiceError("HTTP 500")):
            with pytest.raises(ServiceError):
                _complete()

    def test_max_tokens_capped_by_env_ceiling(self, monkeypatch):
        monkeypatch.setenv("OPENAI_MAX_COMPLETION_TOKENS", "1000")
        with patch(_REQUEST, return_value=("{}", "stop")) as mock_req:
            _complete(max_tokens=5000)
        assert mock_req.call_args.kwargs["max_completion_tokens"] == 1000

    def test_missing_api_key_raises(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ServiceError, match="OPENAI_API_KEY"):
            _complete()


# ===================================================================== #
#  chat_reply()                                                          #
# ===================================================================== #

class TestChatReply:
    def test_openai_error_becomes_service_error(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        with patch(
            "openai.resources.chat.completions.AsyncCompletions.create",
            side_effect=OpenAIError("rate limited"),
        ):
            with pytest.raises(ServiceError, match="Persona chat"):
                asyncio.run(chat_reply(system_prompt="You are Tom.", history=[]))
