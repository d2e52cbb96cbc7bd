"""Chat over the OpenRouter completions API: whole replies and streamed events."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Union

from .openrouter_client import (
    ChatCompletionChunk,
    CompletionsApi,
    CompletionsRequest,
    RouterToolCall,
)
from .openrouter_conversions import (
    convert_finish_reason,
    convert_usage,
    messages_to_request,
    process_response,
    tool_results_to_messages,
)
from .types import (
    ChatEvent,
    Config,
    ContentPart,
    FinishReason,
    LlmError,
    Message,
    ResponseMetadata,
    Role,
    StreamDelta,
    ToolCall,
    ToolResult,
    ErrorCode,
    api_key_from_env,
    error_code_from_status,
)

log = logging.getLogger(__name__)

ENV_VAR_NAME = "OPENROUTER_API_KEY"

StreamEvent = Union[StreamDelta, ResponseMetadata]

_RETRY_INSTRUCTION = (
    "You were asked the same question previously, but the response was interrupted "
    "before completion. Please continue your response from where you left off. "
    "Do not include the part of the response that was already seen."
)


@dataclass
class _JsonFragment:
    id: str = ""
    name: str = ""
    json: str = ""


def _error_status(code: int) -> int:
    return code if 100 <= code <= 999 else 500


class OpenRouterChatStream:
    """Decodes raw completion chunks into deltas and a final metadata event.

    Tool calls streamed in fragments are collected by index and emitted once a
    chunk arrives that no longer mentions their index.
    """

    def __init__(self, raw_events: Iterable[str]) -> None:
        self._events = iter(raw_events)
        self.finished = False
        self.finish_reason: FinishReason | None = None
        self._fragments: dict[int, _JsonFragment] = {}

    def _collect_tool_calls(self, calls: Sequence[RouterToolCall]) -> list[ToolCall]:
        tool_calls: list[ToolCall] = []
        seen: set[int] = set()
        for call in calls:
            name = call.function.name
            if call.id is not None and name is not None and call.index is None:
                tool_calls.append(
                    ToolCall(id=call.id, name=name, arguments_json=call.function.arguments)
                )
            elif call.id is not None and name is not None:
                self._fragments[call.index] = _JsonFragment(
                    id=call.id, name=name, json=call.function.arguments
                )
                seen.add(call.index)
            elif call.index is not None:
                fragment = self._fragments.setdefault(call.index, _JsonFragment())
                fragment.json += call.function.arguments
                seen.add(call.index)
            else:
                raise ValueError(f"Unexpected tool call format: {call!r}")

        for index in [index for index in self._fragments if index not in seen]:
            fragment = self._fragments.pop(index)
            tool_calls.append(
                ToolCall(id=fragment.id, name=fragment.name, arguments_json=fragment.json)
            )
        return tool_calls

    def decode_message(self, raw: str) -> StreamEvent | None:
        """Decode one raw event.

        Returns None for comments and events of no interest, raises LlmError
        when the provider reports a failure and ValueError when the event is
        malformed.
        """
        log.debug("Received raw stream event: %s", raw)
        if raw.startswith(": "):
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as err:
            raise ValueError(f"Failed to deserialize stream event: {err}") from err

        kind = data.get("object") if isinstance(data, dict) else None
        if not isinstance(kind, str):
            raise ValueError("Unexpected stream event format, does not have 'object' field")
        if kind != "chat.completion.chunk":
            return None

        try:
            chunk = ChatCompletionChunk.from_json(data)
        except ValueError as err:
            raise ValueError(f"Failed to parse stream event: {err}") from err

        if chunk.usage is not None:
            return ResponseMetadata(
                finish_reason=self.finish_reason,
                usage=convert_usage(chunk.usage),
                provider_id=None,
                timestamp=str(chunk.created),
                provider_metadata_json=None,
            )
        if not chunk.choices:
            return None

        choice = chunk.choices[0]
        if choice.finish_reason is not None:
            self.finish_reason = convert_finish_reason(choice.finish_reason)
        if choice.error is not None:
            error = choice.error
            raise LlmError(
                error_code_from_status(_error_status(error.code)),
                error.message,
                provider_error_json=json.dumps(error.metadata, separators=(",", ":"))
                if error.metadata is not None
                else None,
            )

        content: list[ContentPart] | None = (
            [choice.delta.content] if choice.delta.content is not None else None
        )
        tool_calls = self._collect_tool_calls(choice.delta.tool_calls or [])
        return StreamDelta(content=content, tool_calls=tool_calls or None)

    def __iter__(self) -> Iterator[StreamEvent]:
        if self.finished:
            return
        for raw in self._events:
            try:
                event = self.decode_message(raw)
            except ValueError as err:
                self.finished = True
                raise LlmError(ErrorCode.INTERNAL_ERROR, str(err)) from err
            except LlmError:
                self.finished = True
                raise
            if event is None:
                continue
            yield event
            if isinstance(event, ResponseMetadata):
                self.finished = True
                return
        self.finished = True


def _client(api_key: str | None) -> CompletionsApi:
    return CompletionsApi(api_key if api_key is not None else api_key_from_env(ENV_VAR_NAME))


def _request(client: CompletionsApi, request: CompletionsRequest) -> ChatEvent:
    return process_response(client.send_messages(request))


def send(messages: Iterable[Message], config: Config, api_key: str | None = None) -> ChatEvent:
    """Send a conversation and return the model's reply."""
    client = _client(api_key)
    return _request(client, messages_to_request(messages, config))


def continue_chat(
    messages: Iterable[Message],
    tool_results: Iterable[tuple[ToolCall, ToolResult]],
    config: Config,
    api_key: str | None = None,
) -> ChatEvent:
    """Send a conversation followed by the results of the tools the model asked for."""
    client = _client(api_key)
    request = messages_to_request(messages, config)
    request.messages.extend(tool_results_to_messages(tool_results))
    return _request(client, request)


def stream(
    messages: Iterable[Message], config: Config, api_key: str | None = None
) -> OpenRouterChatStream:
    """Start a streamed reply."""
    client = _client(api_key)
    request = messages_to_request(messages, config)
    request.stream = True
    return OpenRouterChatStream(client.stream_send_messages(request))


def retry_prompt(
    original_messages: Sequence[Message], partial_result: Iterable[StreamDelta]
) -> list[Message]:
    """Build a conversation asking the model to resume an interrupted reply."""
    messages = [
        Message(role=Role.SYSTEM, content=[_RETRY_INSTRUCTION]),
        Message(role=Role.USER, content=["Here is the original question:"]),
    ]
    messages.extend(original_messages)

    partial: list[ContentPart] = [
        "Here is the partial response that was successfully received:"
    ]
    for delta in partial_result:
        if delta.content is not None:
            partial.extend(delta.content)
        for call in delta.tool_calls or []:
            partial.append(
                f'<tool-call id="{call.id}" name="{call.name}" '
                f'arguments="{call.arguments_json}"/>'
            )
    messages.append(Message(role=Role.USER, content=partial))
    return messages