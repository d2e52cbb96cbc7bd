import json

import pytest

from llmbridge.openai_client import (
    CreateModelResponseResponse,
    ErrorObject,
    OutputMessage,
    OutputRefusal,
    OutputText,
    OutputToolCall,
    ResponseUsage,
    Status,
)
from llmbridge.openai_conversions import (
    content_part_to_inner_input_item,
    create_request,
    create_response_metadata,
    messages_to_input_items,
    parse_error_code,
    process_model_response,
    to_openai_role_name,
    tool_defs_to_tools,
    tool_results_to_input_items,
)
from llmbridge.types import (
    CompleteResponse,
    Config,
    ErrorCode,
    ImageDetail,
    ImageSource,
    ImageUrl,
    LlmError,
    Message,
    Role,
    ToolCall,
    ToolDefinition,
    ToolFailure,
    ToolRequest,
    ToolSuccess,
)


def make_response(output, error=None, metadata=None, usage=None):
    return CreateModelResponseResponse(
        id="resp_1",
        created_at=1700000000,
        status=Status.COMPLETED,
        output=output,
        error=error,
        usage=usage,
        metadata=metadata,
    )


def test_create_request_reads_options():
    config = Config(
        model="gpt",
        temperature=0.3,
        max_tokens=100,
        provider_options=[("top_p", "0.5"), ("user", "alice")],
    )
    request = create_request([], config, [])
    assert request.top_p == 0.5
    assert request.user == "alice"
    assert request.max_output_tokens == 100
    assert request.stream is False


def test_create_request_ignores_bad_top_p():
    config = Config(model="gpt", provider_options={"top_p": "high"})
    assert create_request([], config, []).top_p is None


def test_role_names():
    assert [to_openai_role_name(r) for r in Role] == ["user", "assistant", "system", "tool"]


def test_messages_to_input_items():
    items = messages_to_input_items([Message(Role.USER, ["hi"])])
    assert items == [
        {"type": "message", "role": "user", "content": [{"type": "input_text", "text": "hi"}]}
    ]


def test_image_url_default_detail():
    item = content_part_to_inner_input_item(ImageUrl("http://localhost/a.png"))
    assert item == {"type": "input_image", "image_url": "http://localhost/a.png", "detail": "auto"}


def test_inline_image_data_url():
    item = content_part_to_inner_input_item(ImageSource(b"abc", "image/png", ImageDetail.HIGH))
    assert item["image_url"] == "data:image/png;base64,YWJj"
    assert item["detail"] == "high"


def test_tool_results_to_input_items():
    call = ToolCall("c1", "f", '{"x":1}')
    items = tool_results_to_input_items(
        [(call, ToolSuccess("c1", "f", '{"ok":true}')), (call, ToolFailure("c1", "f", "bad"))]
    )
    assert [item["type"] for item in items] == [
        "function_call",
        "function_call_output",
        "function_call",
        "function_call_output",
    ]
    assert items[0]["arguments"] == '{"x":1}'
    assert items[1]["output"] == '{ "success": {"ok":true} }'
    assert items[3]["output"] == '{ "error": { "code": , "message": bad } }'


def test_tool_defs_to_tools():
    tools = tool_defs_to_tools([ToolDefinition("f", '{"type":"object"}', "desc")])
    assert tools == [
        {
            "type": "function",
            "name": "f",
            "description": "desc",
            "parameters": {"type": "object"},
            "strict": True,
        }
    ]


def test_tool_defs_bad_schema():
    with pytest.raises(LlmError) as info:
        tool_defs_to_tools([ToolDefinition("f", "{not json")])
    assert info.value.code is ErrorCode.INTERNAL_ERROR
    assert "f" in info.value.message


@pytest.mark.parametrize(
    "code, expected",
    [
        ("429", ErrorCode.RATE_LIMIT_EXCEEDED),
        ("401", ErrorCode.AUTHENTICATION_FAILED),
        ("server_error", ErrorCode.INTERNAL_ERROR),
        ("1000", ErrorCode.INTERNAL_ERROR),
        ("99", ErrorCode.INTERNAL_ERROR),
    ],
)
def test_parse_error_code(code, expected):
    assert parse_error_code(code) is expected


def test_process_message_response():
    response = make_response(
        [
            OutputMessage("m", [OutputText("Hello"), OutputRefusal("no")], "assistant", Status.COMPLETED),
            OutputToolCall("{}", "c1", "f", "i1", Status.COMPLETED),
        ]
    )
    event = process_model_response(response)
    assert isinstance(event, CompleteResponse)
    assert event.content == ["Hello", "Refusal: no"]
    assert event.tool_calls == [ToolCall("c1", "f", "{}")]
    assert event.id == "resp_1"


def test_process_tool_only_response():
    response = make_response([OutputToolCall("{}", "c1", "f", "i1", Status.COMPLETED)])
    assert process_model_response(response) == ToolRequest([ToolCall("c1", "f", "{}")])


def test_process_error_response():
    response = make_response([], error=ErrorObject("429", "slow down"))
    with pytest.raises(LlmError) as info:
        process_model_response(response)
    assert info.value.code is ErrorCode.RATE_LIMIT_EXCEEDED
    assert info.value.message == "slow down"


def test_create_response_metadata():
    response = make_response(
        [], metadata={"k": "v"}, usage=ResponseUsage(3, 2, 5, 0, 0)
    )
    metadata = create_response_metadata(response)
    assert metadata.provider_id == "resp_1"
    assert metadata.timestamp == "1700000000"
    assert json.loads(metadata.provider_metadata_json) == {"k": "v"}
    assert metadata.usage.total_tokens == 5
    assert metadata.finish_reason is None