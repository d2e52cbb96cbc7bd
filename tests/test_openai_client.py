import json

import pytest
import responses

from llmbridge.openai_client import (
    RESPONSES_URL,
    CreateModelResponseRequest,
    CreateModelResponseResponse,
    OutputMessage,
    OutputText,
    OutputToolCall,
    ResponsesApi,
    Status,
    parse_output_item,
)
from llmbridge.types import ErrorCode, LlmError


def sample_response():
    return {
        "id": "resp_1",
        "created_at": 1700000000,
        "error": None,
        "incomplete_details": None,
        "status": "completed",
        "output": [
            {
                "type": "message",
                "id": "msg_1",
                "role": "assistant",
                "status": "completed",
                "content": [{"type": "output_text", "text": "Hello"}],
            }
        ],
        "usage": {
            "input_tokens": 3,
            "input_tokens_details": {"cached_tokens": 0},
            "output_tokens": 2,
            "output_tokens_details": {"reasoning_tokens": 0},
            "total_tokens": 5,
        },
        "metadata": None,
    }


def test_request_to_json_skips_unset():
    body = CreateModelResponseRequest(input="hi", model="gpt").to_json()
    assert body == {"input": "hi", "model": "gpt", "stream": False}


def test_request_to_json_includes_set_fields():
    tool = {"type": "function", "name": "f", "strict": True}
    request = CreateModelResponseRequest(
        input="hi", model="gpt", temperature=0.2, tools=[tool], top_p=0.9, user="u"
    )
    body = request.to_json()
    assert body["temperature"] == 0.2
    assert body["tools"] == [tool]
    assert body["top_p"] == 0.9
    assert body["user"] == "u"


def test_response_from_json():
    parsed = CreateModelResponseResponse.from_json(sample_response())
    assert parsed.id == "resp_1"
    assert parsed.status is Status.COMPLETED
    assert parsed.output == [
        OutputMessage(
            id="msg_1", content=[OutputText("Hello")], role="assistant", status=Status.COMPLETED
        )
    ]
    assert parsed.usage.total_tokens == 5
    assert parsed.error is None


def test_response_from_json_missing_field():
    data = sample_response()
    del data["id"]
    with pytest.raises(ValueError):
        CreateModelResponseResponse.from_json(data)


def test_parse_tool_call_item():
    item = parse_output_item(
        {
            "type": "function_call",
            "arguments": "{}",
            "call_id": "c1",
            "name": "f",
            "id": "i1",
            "status": "completed",
        }
    )
    assert item == OutputToolCall(
        arguments="{}", call_id="c1", name="f", id="i1", status=Status.COMPLETED
    )


def test_parse_unknown_item_type():
    with pytest.raises(ValueError):
        parse_output_item({"type": "reasoning"})


def test_create_model_response_success():
    api = ResponsesApi("placeholder")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, RESPONSES_URL, json=sample_response(), status=200)
        result = api.create_model_response(CreateModelResponseRequest(input="hi", model="gpt"))
        sent = rsps.calls[0].request
        assert sent.headers["Authorization"] == "Bearer placeholder"
        assert json.loads(sent.body)["model"] == "gpt"
    assert result.id == "resp_1"


def test_create_model_response_http_error():
    api = ResponsesApi("placeholder")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, RESPONSES_URL, body='{"error":"x"}', status=404)
        with pytest.raises(LlmError) as info:
            api.create_model_response(CreateModelResponseRequest(input="hi", model="gpt"))
    assert info.value.code is ErrorCode.INVALID_REQUEST
    assert info.value.message.startswith("Request failed with")
    assert "404" in info.value.message
    assert info.value.provider_error_json == '{"error":"x"}'


def test_create_model_response_bad_body():
    api = ResponsesApi("placeholder")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, RESPONSES_URL, json={"unexpected": True}, status=200)
        with pytest.raises(LlmError) as info:
            api.create_model_response(CreateModelResponseRequest(input="hi", model="gpt"))
    assert info.value.code is ErrorCode.INTERNAL_ERROR


def test_stream_model_response_events():
    api = ResponsesApi("placeholder")
    body = 'data: {"type":"a"}\n\ndata: {"type":"b"}\n\n'
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            RESPONSES_URL,
            body=body,
            status=200,
            content_type="text/event-stream",
        )
        events = list(
            api.stream_model_response(
                CreateModelResponseRequest(input="hi", model="gpt", stream=True)
            )
        )
        assert rsps.calls[0].request.headers["Accept"] == "text/event-stream"
    assert events == ['{"type":"a"}', '{"type":"b"}']


def test_stream_model_response_error_status():
    api = ResponsesApi("placeholder")
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, RESPONSES_URL, body="denied", status=401)
        with pytest.raises(LlmError) as info:
            api.stream_model_response(CreateModelResponseRequest(input="hi", model="gpt"))
    assert info.value.code is ErrorCode.AUTHENTICATION_FAILED