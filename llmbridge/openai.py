"""Chat over the OpenAI Responses API: whole replies and streamed events."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from typing import Any, Union

from .openai_client import (
    CreateModelResponseResponse,
    OutputToolCall,
    ResponsesApi,
    parse_output_item,
)
from .openai_conversions import (
    create_request,
    create_response_metadata,
    messages_to_input_items,
    parse_error_code,
    process_model_response,
    tool_defs_to_tools,
    tool_results_to_input_items,
)
from .types import (
    ChatEvent,
    Config,
    ErrorCode,
    LlmError,
    Message,
    ResponseMetadata,
    StreamDelta,
    ToolCall,
    ToolResult,
    api_key_from_env,
)

log = logging.getLogger(__name__)

ENV_VAR_NAME = "OPENAI_API_KEY"

StreamEvent = Union[StreamDelta, ResponseMetadata]


def _response_field(data: dict[str, Any]) -> CreateModelResponseResponse:
    if "response" not in data:
        raise ValueError("Unexpected stream event format, does not have 'response' field")
    try:
        return CreateModelResponseResponse.from_json(data["response"])
    except ValueError as err:
        raise ValueError(
            f"Failed to deserialize stream event's response field: {err}"
        ) from err


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"Failed to deserialize stream event: missing field `{key}`")
    return data[key]


class OpenAIChatStream:
    """Decodes raw Responses API stream events into deltas and a final metadata."""

    def __init__(self, raw_events: Iterable[str]) -> None:
        self._events = iter(raw_events)
        self.finished = False

    def decode_message(self, raw: str) -> StreamEvent | None:
        """Decode one raw event.

        Returns None for events that carry nothing of interest, raises
        LlmError when the provider reports a failure and ValueError when the
        event is malformed.
        """
        log.debug("Received raw stream event: %s", raw)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as err:
            raise ValueError(f"Failed to deserialize stream event: {err}") from err

        kind = data.get("type") if isinstance(data, dict) else None
        if not isinstance(kind, str):
            raise ValueError("Unexpected stream event format, does not have 'type' field")

        if kind == "response.failed":
            decoded = _response_field(data)
            if decoded.error is not None:
                raise LlmError(parse_error_code(decoded.error.code), decoded.error.message)
            raise LlmError(ErrorCode.INTERNAL_ERROR, "Unknown error")

        if kind == "response.completed":
            return create_response_metadata(_response_field(data))

        if kind == "response.output_text.delta":
            for key in ("content_index", "item_id", "output_index"):
                _require(data, key)
            delta = _require(data, "delta")
            if not isinstance(delta, str):
                raise ValueError(
                    "Failed to deserialize stream event: field `delta` must be a string"
                )
            return StreamDelta(content=[delta], tool_calls=None)

        if kind == "response.output_item.done":
            _require(data, "output_index")
            try:
                item = parse_output_item(_require(data, "item"))
            except ValueError as err:
                raise ValueError(f"Failed to deserialize stream event: {err}") from err
            if isinstance(item, OutputToolCall):
                return StreamDelta(
                    content=None,
                    tool_calls=[
                        ToolCall(id=item.call_id, name=item.name, arguments_json=item.arguments)
                    ],
                )
            return None

        return None

    def __iter__(self) -> Iterator[StreamEvent]:
        if self.finished:
            return
        for raw in self._events:
            try:
                event = self.decode_message(raw)
            except ValueError as err:
                raise LlmError(ErrorCode.INTERNAL_ERROR, str(err)) from err
            if event is None:
                continue
            if isinstance(event, ResponseMetadata):
                self.finished = True
                yield event
                return
            yield event
        self.finished = True


def _client(api_key: str | None) -> ResponsesApi:
    return ResponsesApi(api_key if api_key is not None else api_key_from_env(ENV_VAR_NAME))


def _request(client: ResponsesApi, items: list[dict[str, Any]], config: Config) -> ChatEvent:
    tools = tool_defs_to_tools(config.tools)
    request = create_request(items, config, tools)
    return process_model_response(client.create_model_response(request))


def send(messages: Iterable[Message], config: Config, api_key: str | None = None) -> ChatEvent:
    """Send a conversation and return the model's reply."""
    client = _client(api_key)
    return _request(client, messages_to_input_items(messages), config)


def continue_chat(
    messages: Iterable[Message],
    tool_results: Iterable[tuple[ToolCall, ToolResult]],
    config: Config,
    api_key: str | None = None,
) -> ChatEvent:
    """Send a conversation followed by the results of the tools the model asked for."""
    client = _client(api_key)
    items = messages_to_input_items(messages)
    items.extend(tool_results_to_input_items(tool_results))
    return _request(client, items, config)


def stream(
    messages: Iterable[Message], config: Config, api_key: str | None = None
) -> OpenAIChatStream:
    """Start a streamed reply."""
    client = _client(api_key)
    items = messages_to_input_items(messages)
    tools = tool_defs_to_tools(config.tools)
    request = create_request(items, config, tools)
    request.stream = True
    return OpenAIChatStream(client.stream_model_response(request))