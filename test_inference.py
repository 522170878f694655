import asyncio

import pytest

from web_observer.agents.inference import (
    build_observe_system_prompt,
    build_output_format,
    observe_inference,
    parse_observe_response,
)
from web_observer.core.errors import ModelResponseError


def test_parse_plain_json():
    raw = '{"elements": [{"elementId": "0-4", "description": "Submit", "method": "click", "arguments": []}]}'
    assert parse_observe_response(raw) == [
        {"elementId": "0-4", "description": "Submit", "method": "click", "arguments": []}
    ]


def test_parse_code_fence_and_surrounding_prose():
    raw = 'Here you go:\n```json\n{"elements": [{"elementId": 12, "description": "x"}]}\n```'
    elements = parse_observe_response(raw, return_action=False)
    assert elements == [{"elementId": "12", "description": "x"}]


def test_parse_bare_list_and_skips_entries_without_id():
    raw = '[{"elementId": "0-1", "description": "a", "method": "fill", "arguments": ["hi"]}, {"description": "b"}]'
    elements = parse_observe_response(raw)
    assert [e["elementId"] for e in elements] == ["0-1"]
    assert elements[0]["arguments"] == ["hi"]


def test_parse_garbage_raises():
    with pytest.raises(ModelResponseError):
        parse_observe_response("I could not find anything")


def test_prompt_pieces():
    assert "User Instructions:\nbe brief" in build_observe_system_prompt("be brief")
    assert "Custom Instructions" not in build_observe_system_prompt()
    assert '"method"' in build_output_format(True)
    assert '"method"' not in build_output_format(False)


def test_observe_inference_reports_usage():
    class Client:
        async def create_chat_completion(self, messages, request_id):
            assert request_id == "req-1"
            assert "[0-1] button: Go" in messages[1]["content"]
            return {"content": '{"elements": []}', "usage": {"prompt_tokens": 5, "completion_tokens": 2},
                    "inference_time_ms": 30}

    response = asyncio.run(observe_inference("find go", "[0-1] button: Go", Client(), "req-1",
                                             logger=lambda line: None))

    assert response == {"elements": [], "prompt_tokens": 5, "completion_tokens": 2, "inference_time_ms": 30}
