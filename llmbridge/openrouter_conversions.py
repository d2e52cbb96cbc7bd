"""Conversions between the shared chat types and the OpenRouter completions API."""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Iterable
from typing import Any, Union

from .openrouter_client import (
    CompletionsRequest,
    CompletionsResponse,
    FunctionCall,
    RouterFinishReason,
    RouterToolCall,
    RouterUsage,
)
from .types import (
    ChatEvent,
    CompleteResponse,
    Config,
    ContentPart,
    ErrorCode,
    FinishReason,
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
)

_UNSIGNED = re.compile(r"\+?[0-9]+")
_U32_MAX = 0xFFFFFFFF

_FINISH_REASONS = {
    RouterFinishReason.STOP: FinishReason.STOP,
    RouterFinishReason.LENGTH: FinishReason.LENGTH,
    RouterFinishReason.CONTENT_FILTER: FinishReason.CONTENT_FILTER,
    RouterFinishReason.TOOL_CALLS: FinishReason.TOOL_CALLS,
    RouterFinishReason.ERROR: FinishReason.ERROR,
}


def _parse_float(text: str | None) -> float | None:
    if text is None or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_u32(text: str | None) -> int | None:
    if text is None or not _UNSIGNED.fullmatch(text):
        return None
    value = int(text)
    return value if value <= _U32_MAX else None


def _image_part(url: str, detail: Any) -> dict[str, Any]:
    image_url: dict[str, Any] = {"url": url}
    if detail is not None:
        image_url["detail"] = detail.value
    return {"type": "image_url", "image_url": image_url}


def _convert_content_parts(contents: Iterable[ContentPart]) -> list[dict[str, Any]]:
    result: list[dict[str, Any]] = []
    for part in contents:
        if isinstance(part, str):
            result.append({"type": "text", "text": part})
        elif isinstance(part, ImageUrl):
            result.append(_image_part(part.url, part.detail))
        elif isinstance(part, ImageSource):
            encoded = base64.b64encode(part.data).decode("ascii")
            result.append(
                _image_part(f"data:{part.mime_type};base64,{encoded}", part.detail)
            )
        else:
            raise TypeError(f"Unsupported content part: {part!r}")
    return result


def _content_parts_to_string(contents: Iterable[ContentPart]) -> str:
    return "".join(part for part in contents if isinstance(part, str))


def _with_name(body: dict[str, Any], name: str | None) -> dict[str, Any]:
    if name is not None:
        body["name"] = name
    return body


def _convert_message(message: Message) -> dict[str, Any]:
    if message.role is Role.TOOL:
        return _with_name(
            {
                "role": "tool",
                "content": _content_parts_to_string(message.content),
                "tool_call_id": "unknown",
            },
            message.name,
        )
    return _with_name(
        {"role": message.role.value, "content": _convert_content_parts(message.content)},
        message.name,
    )


def _tool_definition_to_tool(tool: ToolDefinition) -> dict[str, Any]:
    try:
        parameters = json.loads(tool.parameters_schema)
    except json.JSONDecodeError as err:
        raise LlmError(
            ErrorCode.INTERNAL_ERROR,
            f"Failed to parse tool parameters for {tool.name}: {err}",
        ) from err
    function: dict[str, Any] = {"name": tool.name}
    if tool.description is not None:
        function["description"] = tool.description
    function["parameters"] = parameters
    return {"type": "function", "function": function}


def convert_tool_choice(tool_choice: str) -> Union[str, dict[str, Any]]:
    """Pass "auto" and "none" through; any other value names a function."""
    if tool_choice in ("auto", "none"):
        return tool_choice
    return {"type": "function", "function": {"name": tool_choice}}


def messages_to_request(messages: Iterable[Message], config: Config) -> CompletionsRequest:
    """Build a non-streaming completions request; bad tool schemas raise LlmError."""
    options = config.options()
    completion_messages = [_convert_message(message) for message in messages]
    tools = [_tool_definition_to_tool(tool) for tool in config.tools]
    return CompletionsRequest(
        messages=completion_messages,
        model=config.model,
        max_tokens=config.max_tokens,
        frequency_penalty=_parse_float(options.get("frequency_penalty")),
        presence_penalty=_parse_float(options.get("presence_penalty")),
        repetition_penalty=_parse_float(options.get("repetition_penalty")),
        seed=_parse_u32(options.get("seed")),
        stop=config.stop_sequences,
        stream=False,
        temperature=config.temperature,
        tool_choice=convert_tool_choice(config.tool_choice)
        if config.tool_choice is not None
        else None,
        tools=tools,
        top_p=_parse_float(options.get("top_p")),
        top_k=_parse_float(options.get("top_k")),
        min_p=_parse_float(options.get("min_p")),
        top_a=_parse_float(options.get("top_a")),
    )


def convert_tool_call(tool_call: RouterToolCall) -> ToolCall:
    return ToolCall(
        id=tool_call.id or "",
        name=tool_call.function.name or "",
        arguments_json=tool_call.function.arguments,
    )


def convert_finish_reason(value: RouterFinishReason) -> FinishReason:
    return _FINISH_REASONS[value]


def convert_usage(value: RouterUsage) -> Usage:
    return Usage(
        input_tokens=value.prompt_tokens,
        output_tokens=value.completion_tokens,
        total_tokens=value.total_tokens,
    )


def process_response(response: CompletionsResponse) -> ChatEvent:
    """Turn the first choice of a response into a chat event."""
    if not response.choices:
        raise LlmError(ErrorCode.INTERNAL_ERROR, "No choices in response")
    choice = response.choices[0]

    contents: list[ContentPart] = []
    if choice.message.content is not None:
        contents.append(choice.message.content)
    tool_calls = [convert_tool_call(call) for call in choice.message.tool_calls or []]

    if not contents:
        return ToolRequest(tool_calls)

    metadata = ResponseMetadata(
        finish_reason=convert_finish_reason(choice.finish_reason)
        if choice.finish_reason is not None
        else None,
        usage=convert_usage(response.usage) if response.usage is not None else None,
        provider_id=None,
        timestamp=str(response.created),
        provider_metadata_json=None,
    )
    return CompleteResponse(
        id=response.id, content=contents, tool_calls=tool_calls, metadata=metadata
    )


def tool_results_to_messages(
    tool_results: Iterable[tuple[ToolCall, ToolResult]],
) -> list[dict[str, Any]]:
    """Render each tool call and its result as an assistant and a tool message."""
    messages: list[dict[str, Any]] = []
    for tool_call, tool_result in tool_results:
        call = RouterToolCall(
            function=FunctionCall(arguments=tool_call.arguments_json, name=tool_call.name),
            id=tool_call.id,
        )
        messages.append({"role": "assistant", "tool_calls": [call.to_json()]})
        if isinstance(tool_result, ToolSuccess):
            content = tool_result.result_json
        elif isinstance(tool_result, ToolFailure):
            content = tool_result.error_message
        else:
            raise TypeError(f"Unsupported tool result: {tool_result!r}")
        messages.append(
            {"role": "tool", "content": content, "tool_call_id": tool_call.id}
        )
    return messages