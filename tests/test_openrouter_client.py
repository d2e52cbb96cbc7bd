import json

import pytest
import responses

from llmbridge.openrouter_client import (
    COMPLETIONS_URL,
    ChatCompletionChunk,
    CompletionsApi,
    CompletionsRequest,
    CompletionsResponse,
    FunctionCall,
    RouterFinishReason,
    RouterToolCall,
)
from llmbridge.types import ErrorCode, LlmError


def completion_json(**overrides):
    body = {
        "id": "gen-1",
        "created": 1700000000,
        "model": "test/model",
        "choices": [
            {
                "finish_reason": "stop",
                "native_finish_reason": "stop",
                "message": {"role": "assistant", "content": "Hello!"},
            }
        ],
        "usage": {"completion_tokens": 2, "prompt_tokens": 3, "total_tokens": 5},
    }
    body.update(overrides)
    return body


def simple_request(**kwargs):
    return CompletionsRequest(
        messages=[{"role": "user", "content": "hi"}], model="test/model", **kwargs
    )


def test_request_omits_unset_fields():
    body = simple_request(stream=False).to_json()
    assert body == {
        "messages": [{"role": "user", "content": "hi"}],
        "model": "test/model",
        "stream": False,
    }


def test_request_includes_set_fields_and_tools():
    tools = [{"type": "function", "function": {"name": "f", "parameters": {}}}]
    body = simple_request(top_k=40.0, seed=7, tools=tools, tool_choice="auto").to_json()
    assert body["top_k"] == 40.0
    assert body["seed"] == 7
    assert body["tools"] == tools
    assert body["tool_choice"] == "auto"
    assert "temperature" not in body


def test_tool_call_round_trip():
    call = RouterToolCall(FunctionCall(arguments='{"a":1}', name="f"), id="call_1", index=2)
    assert RouterToolCall.from_json(call.to_json()) == call


def test_tool_call_to_json_keeps_null_name():
    body = RouterToolCall(FunctionCall(arguments="{")).to_json()
    assert body == {"type": "function", "function": {"arguments": "{", "name": None}}


def test_tool_call_rejects_other_types():
    with pytest.raises(ValueError):
        RouterToolCall.from_json({"type": "retrieval", "function": {"arguments": ""}})


def test_response_from_json():
    response = CompletionsResponse.from_json(completion_json())
    assert response.id == "gen-1"
    assert response.choices[0].message.content == "Hello!"
    assert response.choices[0].finish_reason is RouterFinishReason.STOP
    assert response.usage.total_tokens == 5


def test_response_rejects_unknown_finish_reason():
    data = completion_json()
    data["choices"][0]["finish_reason"] = "bored"
    with pytest.raises(ValueError):
        CompletionsResponse.from_json(data)


def test_response_requires_choices():
    data = completion_json()
    del data["choices"]
    with pytest.raises(ValueError, match="choices"):
        CompletionsResponse.from_json(data)


def test_chunk_from_json():
    chunk = ChatCompletionChunk.from_json(
        {
            "id": "gen-1",
            "created": 1700000000,
            "model": "test/model",
            "choices": [
                {
                    "delta": {
                        "role": "assistant",
                        "tool_calls": [
                            {"type": "function", "index": 0, "function": {"arguments": '{"c'}}
                        ],
                    },
                    "finish_reason": None,
                    "native_finish_reason": None,
                }
            ],
        }
    )
    call = chunk.choices[0].delta.tool_calls[0]
    assert call.index == 0
    assert call.function.arguments == '{"c'
    assert call.function.name is None
    assert chunk.usage is None


def test_send_messages_success():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, COMPLETIONS_URL, json=completion_json())
        result = CompletionsApi("placeholder").send_messages(simple_request(stream=False))
        request = rsps.calls[0].request
    assert result.choices[0].message.content == "Hello!"
    assert request.headers["Authorization"] == "Bearer placeholder"
    assert json.loads(request.body)["model"] == "test/model"


def test_error_body_with_success_status_uses_error_code():
    body = {"error": {"code": 429, "message": "slow down", "metadata": {"retry": True}}}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, COMPLETIONS_URL, json=body)
        with pytest.raises(LlmError) as info:
            CompletionsApi("placeholder").send_messages(simple_request())
    assert info.value.code is ErrorCode.RATE_LIMIT_EXCEEDED
    assert info.value.message == "slow down"
    assert json.loads(info.value.provider_error_json) == {"retry": True}


def test_error_body_with_invalid_code_falls_back_to_http_status():
    body = {"error": {"code": 0, "message": "odd"}}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, COMPLETIONS_URL, json=body)
        with pytest.raises(LlmError) as info:
            CompletionsApi("placeholder").send_messages(simple_request())
    assert info.value.code is ErrorCode.INTERNAL_ERROR
    assert info.value.provider_error_json is None


def test_unparseable_success_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, COMPLETIONS_URL, body="garbage")
        with pytest.raises(LlmError) as info:
            CompletionsApi("placeholder").send_messages(simple_request())
    assert info.value.code is ErrorCode.INTERNAL_ERROR
    assert info.value.message.startswith("Failed to parse response body")
    assert info.value.provider_error_json == "garbage"


def test_error_status_with_error_body():
    body = {"error": {"code": 400, "message": "bad model"}}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, COMPLETIONS_URL, json=body, status=400)
        with pytest.raises(LlmError) as info:
            CompletionsApi("placeholder").send_messages(simple_request())
    assert info.value.code is ErrorCode.INVALID_REQUEST
    assert info.value.message == "bad model"


def test_error_status_with_unparseable_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, COMPLETIONS_URL, body="oops", status=500)
        with pytest.raises(LlmError) as info:
            CompletionsApi("placeholder").send_messages(simple_request())
    assert info.value.code is ErrorCode.INTERNAL_ERROR
    assert info.value.message.startswith("Failed to parse error response body")
    assert info.value.provider_error_json == "oops"


def test_stream_yields_payloads():
    body = ": OPENROUTER PROCESSING\n\ndata: {\"a\": 1}\n\ndata: [DONE]\n\n"
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST, COMPLETIONS_URL, body=body, content_type="text/event-stream"
        )
        events = list(CompletionsApi("placeholder").stream_send_messages(simple_request()))
        accept = rsps.calls[0].request.headers["Accept"]
    assert events == ['{"a": 1}', "[DONE]"]
    assert accept == "text/event-stream"


def test_stream_error_status():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, COMPLETIONS_URL, body="denied", status=401)
        with pytest.raises(LlmError) as info:
            CompletionsApi("placeholder").stream_send_messages(simple_request())
    assert info.value.code is ErrorCode.AUTHENTICATION_FAILED
    assert info.value.provider_error_json == "denied"