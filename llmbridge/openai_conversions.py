"""Conversions between the shared chat types and the Responses API."""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Iterable, Sequence
from typing import Any

from .openai_client import (
    CreateModelResponseRequest,
    CreateModelResponseResponse,
    OutputMessage,
    OutputRefusal,
    OutputText,
    OutputToolCall,
)
from .types import (
    ChatEvent,
    CompleteResponse,
    Config,
    ContentPart,
    ErrorCode,
    ImageDetail,
    ImageSource,
    ImageUrl,
    LlmError,
    Message,
    ResponseMetadata,
    Role,
    ToolCall,
    ToolDefinition,
    ToolFailure,
    ToolRequest,
    ToolResult,
    ToolSuccess,
    Usage,
    error_code_from_status,
)

_ROLE_NAMES = {
    Role.USER: "user",
    Role.ASSISTANT: "assistant",
    Role.SYSTEM: "system",
    Role.TOOL: "tool",
}

_U16 = re.compile(r"\+?[0-9]+")


def _parse_float(text: str | None) -> float | None:
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def create_request(
    items: list[dict[str, Any]], config: Config, tools: list[dict[str, Any]]
) -> CreateModelResponseRequest:
    options = config.options()
    return CreateModelResponseRequest(
        input=items,
        model=config.model,
        temperature=config.temperature,
        max_output_tokens=config.max_tokens,
        tools=tools,
        tool_choice=config.tool_choice,
        stream=False,
        top_p=_parse_float(options.get("top_p")),
        user=options.get("user"),
    )


def to_openai_role_name(role: Role) -> str:
    return _ROLE_NAMES[role]


def _detail(detail: ImageDetail | None) -> str:
    return (detail or ImageDetail.AUTO).value


def content_part_to_inner_input_item(content_part: ContentPart) -> dict[str, Any]:
    if isinstance(content_part, str):
        return {"type": "input_text", "text": content_part}
    if isinstance(content_part, ImageUrl):
        return {
            "type": "input_image",
            "image_url": content_part.url,
            "detail": _detail(content_part.detail),
        }
    if isinstance(content_part, ImageSource):
        encoded = base64.b64encode(content_part.data).decode("ascii")
        return {
            "type": "input_image",
            "image_url": f"data:{content_part.mime_type};base64,{encoded}",
            "detail": _detail(content_part.detail),
        }
    raise TypeError(f"Unsupported content part: {content_part!r}")


def messages_to_input_items(messages: Iterable[Message]) -> list[dict[str, Any]]:
    return [
        {
            "type": "message",
            "role": to_openai_role_name(message.role),
            "content": [content_part_to_inner_input_item(part) for part in message.content],
        }
        for message in messages
    ]


def tool_results_to_input_items(
    tool_results: Iterable[tuple[ToolCall, ToolResult]],
) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for tool_call, tool_result in tool_results:
        items.append(
            {
                "type": "function_call",
                "arguments": tool_call.arguments_json,
                "call_id": tool_call.id,
                "name": tool_call.name,
            }
        )
        if isinstance(tool_result, ToolSuccess):
            output = f'{{ "success": {tool_result.result_json} }}'
        elif isinstance(tool_result, ToolFailure):
            output = (
                f'{{ "error": {{ "code": {tool_result.error_code or ""}, '
                f'"message": {tool_result.error_message} }} }}'
            )
        else:
            raise TypeError(f"Unsupported tool result: {tool_result!r}")
        items.append(
            {"type": "function_call_output", "call_id": tool_result.id, "output": output}
        )
    return items


def tool_defs_to_tools(tool_definitions: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
    tools = []
    for tool_def in tool_definitions:
        try:
            parameters = json.loads(tool_def.parameters_schema)
        except json.JSONDecodeError as err:
            raise LlmError(
                ErrorCode.INTERNAL_ERROR,
                f"Failed to parse tool parameters for {tool_def.name}: {err}",
            ) from err
        tool: dict[str, Any] = {"type": "function", "name": tool_def.name}
        if tool_def.description is not None:
            tool["description"] = tool_def.description
        tool["parameters"] = parameters
        tool["strict"] = True
        tools.append(tool)
    return tools


def parse_error_code(code: str) -> ErrorCode:
    """Read a provider error code as an HTTP status where it is one."""
    if _U16.fullmatch(code):
        value = int(code)
        if value <= 0xFFFF and 100 <= value <= 999:
            return error_code_from_status(value)
    return ErrorCode.INTERNAL_ERROR


def create_response_metadata(response: CreateModelResponseResponse) -> ResponseMetadata:
    usage = response.usage
    return ResponseMetadata(
        finish_reason=None,
        usage=Usage(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
        )
        if usage is not None
        else None,
        provider_id=response.id,
        timestamp=str(response.created_at),
        provider_metadata_json=json.dumps(response.metadata, separators=(",", ":"))
        if response.metadata is not None
        else None,
    )


def process_model_response(response: CreateModelResponseResponse) -> ChatEvent:
    """Turn a response into a chat event; a reported error is raised."""
    if response.error is not None:
        raise LlmError(parse_error_code(response.error.code), response.error.message)

    contents: list[ContentPart] = []
    tool_calls: list[ToolCall] = []
    metadata = create_response_metadata(response)

    for item in response.output:
        if isinstance(item, OutputMessage):
            for part in item.content:
                if isinstance(part, OutputText):
                    contents.append(part.text)
                elif isinstance(part, OutputRefusal):
                    contents.append(f"Refusal: {part.refusal}")
        elif isinstance(item, OutputToolCall):
            tool_calls.append(
                ToolCall(id=item.call_id, name=item.name, arguments_json=item.arguments)
            )

    if not contents:
        return ToolRequest(tool_calls)
    return CompleteResponse(
        id=response.id, content=contents, tool_calls=tool_calls, metadata=metadata
    )