"""Client for the OpenRouter chat completions API."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Any, Union

import requests

from .sse import iter_sse_data
from .types import ErrorCode, LlmError, error_code_from_status

log = logging.getLogger(__name__)

BASE_URL = "https://openrouter.ai"
COMPLETIONS_URL = f"{BASE_URL}/api/v1/chat/completions"


class RouterFinishReason(Enum):
    TOOL_CALLS = "tool_calls"
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


def _obj(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be an object")
    return value


def _req(data: dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    return data[key]


def _str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field `{key}` must be a string")
    return value


def _uint(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"field `{key}` must be a non-negative integer")
    return value


def _list(value: Any, key: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"field `{key}` must be a list")
    return value


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return None if value is None else _str(value, key)


def _opt_uint(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    return None if value is None else _uint(value, key)


def _opt_finish(data: dict[str, Any], key: str) -> RouterFinishReason | None:
    value = data.get(key)
    if value is None:
        return None
    try:
        return RouterFinishReason(value)
    except ValueError as err:
        raise ValueError(f"unknown finish reason {value!r}") from err


@dataclass
class FunctionCall:
    arguments: str
    name: str | None = None


@dataclass
class RouterToolCall:
    """A function call requested by the model, whole or as a streamed fragment."""

    function: FunctionCall
    id: str | None = None
    index: int | None = None

    @classmethod
    def from_json(cls, data: Any) -> "RouterToolCall":
        data = _obj(data, "tool call")
        if data.get("type") != "function":
            raise ValueError(f"unknown tool call type {data.get('type')!r}")
        function = _obj(_req(data, "function"), "function")
        return cls(
            function=FunctionCall(
                arguments=_str(_req(function, "arguments"), "arguments"),
                name=_opt_str(function, "name"),
            ),
            id=_opt_str(data, "id"),
            index=_opt_uint(data, "index"),
        )

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": "function",
            "function": {"arguments": self.function.arguments, "name": self.function.name},
        }
        if self.id is not None:
            body["id"] = self.id
        if self.index is not None:
            body["index"] = self.index
        return body


def _opt_tool_calls(data: dict[str, Any], key: str) -> list[RouterToolCall] | None:
    value = data.get(key)
    if value is None:
        return None
    return [RouterToolCall.from_json(item) for item in _list(value, key)]


@dataclass
class ResponseMessage:
    role: str
    content: str | None = None
    tool_calls: list[RouterToolCall] | None = None


@dataclass
class ErrorResponse:
    code: int
    message: str
    metadata: Any = None


def _parse_error(value: Any) -> ErrorResponse:
    data = _obj(value, "error")
    return ErrorResponse(
        code=_uint(_req(data, "code"), "code"),
        message=_str(_req(data, "message"), "message"),
        metadata=data.get("metadata"),
    )


def _opt_error(data: dict[str, Any]) -> ErrorResponse | None:
    value = data.get("error")
    return None if value is None else _parse_error(value)


@dataclass
class Choice:
    message: ResponseMessage
    finish_reason: RouterFinishReason | None = None
    native_finish_reason: RouterFinishReason | None = None
    error: ErrorResponse | None = None


@dataclass
class RouterUsage:
    completion_tokens: int
    prompt_tokens: int
    total_tokens: int


def _opt_usage(data: dict[str, Any]) -> RouterUsage | None:
    value = data.get("usage")
    if value is None:
        return None
    usage = _obj(value, "usage")
    return RouterUsage(
        completion_tokens=_uint(_req(usage, "completion_tokens"), "completion_tokens"),
        prompt_tokens=_uint(_req(usage, "prompt_tokens"), "prompt_tokens"),
        total_tokens=_uint(_req(usage, "total_tokens"), "total_tokens"),
    )


def _parse_choice(value: Any) -> Choice:
    data = _obj(value, "choice")
    message = _obj(_req(data, "message"), "message")
    return Choice(
        message=ResponseMessage(
            role=_str(_req(message, "role"), "role"),
            content=_opt_str(message, "content"),
            tool_calls=_opt_tool_calls(message, "tool_calls"),
        ),
        finish_reason=_opt_finish(data, "finish_reason"),
        native_finish_reason=_opt_finish(data, "native_finish_reason"),
        error=_opt_error(data),
    )


@dataclass
class CompletionsRequest:
    """Body of a chat completions call; messages, tools and tool choice are JSON values."""

    messages: list[dict[str, Any]]
    model: str
    max_tokens: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    repetition_penalty: float | None = None
    seed: int | None = None
    stop: list[str] | None = None
    stream: bool | None = None
    temperature: float | None = None
    tool_choice: Union[str, dict[str, Any], None] = None
    tools: list[dict[str, Any]] = field(default_factory=list)
    top_p: float | None = None
    top_k: float | None = None
    min_p: float | None = None
    top_a: float | None = None

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {"messages": self.messages, "model": self.model}
        optional = {
            "max_tokens": self.max_tokens,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "repetition_penalty": self.repetition_penalty,
            "seed": self.seed,
            "stop": self.stop,
            "stream": self.stream,
            "temperature": self.temperature,
            "tool_choice": self.tool_choice,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "min_p": self.min_p,
            "top_a": self.top_a,
        }
        body.update({key: value for key, value in optional.items() if value is not None})
        if self.tools:
            body["tools"] = self.tools
        return body


@dataclass
class CompletionsResponse:
    id: str
    choices: list[Choice]
    created: int
    model: str
    system_fingerprint: str | None = None
    usage: RouterUsage | None = None

    @classmethod
    def from_json(cls, data: Any) -> "CompletionsResponse":
        """Decode a completions response; raises ValueError when it is malformed."""
        data = _obj(data, "response")
        return cls(
            id=_str(_req(data, "id"), "id"),
            choices=[_parse_choice(item) for item in _list(_req(data, "choices"), "choices")],
            created=_uint(_req(data, "created"), "created"),
            model=_str(_req(data, "model"), "model"),
            system_fingerprint=_opt_str(data, "system_fingerprint"),
            usage=_opt_usage(data),
        )


@dataclass
class ChoiceDelta:
    content: str | None = None
    tool_calls: list[RouterToolCall] | None = None
    role: str | None = None


@dataclass
class ChoiceChunk:
    delta: ChoiceDelta
    finish_reason: RouterFinishReason | None = None
    native_finish_reason: str | None = None
    error: ErrorResponse | None = None


def _parse_choice_chunk(value: Any) -> ChoiceChunk:
    data = _obj(value, "choice")
    delta = _obj(_req(data, "delta"), "delta")
    return ChoiceChunk(
        delta=ChoiceDelta(
            content=_opt_str(delta, "content"),
            tool_calls=_opt_tool_calls(delta, "tool_calls"),
            role=_opt_str(delta, "role"),
        ),
        finish_reason=_opt_finish(data, "finish_reason"),
        native_finish_reason=_opt_str(data, "native_finish_reason"),
        error=_opt_error(data),
    )


@dataclass
class ChatCompletionChunk:
    id: str
    created: int
    model: str
    choices: list[ChoiceChunk]
    usage: RouterUsage | None = None
    system_fingerprint: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ChatCompletionChunk":
        """Decode one streamed chunk; raises ValueError when it is malformed."""
        data = _obj(data, "chunk")
        return cls(
            id=_str(_req(data, "id"), "id"),
            created=_uint(_req(data, "created"), "created"),
            model=_str(_req(data, "model"), "model"),
            choices=[
                _parse_choice_chunk(item) for item in _list(_req(data, "choices"), "choices")
            ],
            usage=_opt_usage(data),
            system_fingerprint=_opt_str(data, "system_fingerprint"),
        )


def _parse_error_body(raw: str) -> ErrorResponse:
    data = _obj(json.loads(raw), "error body")
    return _parse_error(_req(data, "error"))


def _metadata_json(metadata: Any) -> str | None:
    if metadata is None:
        return None
    return json.dumps(metadata, separators=(",", ":"))


def _status_text(code: int) -> str:
    try:
        return f"{code} {HTTPStatus(code).phrase}"
    except ValueError:
        return str(code)


def parse_response(response: requests.Response) -> CompletionsResponse:
    """Turn an HTTP response into a completions response or an LlmError.

    A successful status may still carry an error body; its code, when it is
    a valid HTTP status, decides the error code.
    """
    status = response.status_code
    raw = response.text
    if 200 <= status < 300:
        log.debug("Received response from OpenRouter API: %r", raw)
        try:
            return CompletionsResponse.from_json(json.loads(raw))
        except ValueError:
            pass
        try:
            error = _parse_error_body(raw)
        except ValueError as err:
            raise LlmError(
                ErrorCode.INTERNAL_ERROR,
                f"Failed to parse response body: {err}",
                provider_error_json=raw,
            ) from err
        effective = error.code if 100 <= error.code <= 999 else status
        raise LlmError(
            error_code_from_status(effective),
            error.message,
            provider_error_json=_metadata_json(error.metadata),
        )

    log.debug("Received %s response from OpenRouter API: %r", status, raw)
    try:
        error = _parse_error_body(raw)
    except ValueError as err:
        raise LlmError(
            ErrorCode.INTERNAL_ERROR,
            f"Failed to parse error response body: {err}",
            provider_error_json=raw,
        ) from err
    raise LlmError(
        error_code_from_status(status),
        error.message,
        provider_error_json=_metadata_json(error.metadata),
    )


class CompletionsApi:
    """Sends chat completion requests, whole or streamed."""

    def __init__(self, api_key: str, session: requests.Session | None = None) -> None:
        self.api_key = api_key
        self.session = session or requests.Session()

    def _post(self, request: CompletionsRequest, **kwargs: Any) -> requests.Response:
        log.debug("Sending request to OpenRouter API: %r", request)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        headers.update(kwargs.pop("headers", {}))
        try:
            return self.session.post(
                COMPLETIONS_URL, json=request.to_json(), headers=headers, **kwargs
            )
        except requests.RequestException as err:
            raise LlmError(ErrorCode.INTERNAL_ERROR, f"Request failed: {err}") from err

    def send_messages(self, request: CompletionsRequest) -> CompletionsResponse:
        return parse_response(self._post(request))

    def stream_send_messages(self, request: CompletionsRequest) -> Iterator[str]:
        """Start a streaming request and return an iterator of raw event payloads."""
        response = self._post(request, headers={"Accept": "text/event-stream"}, stream=True)
        status = response.status_code
        if not 200 <= status < 300:
            body = response.text
            response.close()
            raise LlmError(
                error_code_from_status(status),
                f"Failed to create SSE stream: {_status_text(status)}",
                provider_error_json=body,
            )
        return _events(response)


def _events(response: requests.Response) -> Iterator[str]:
    try:
        yield from iter_sse_data(response.iter_lines(decode_unicode=True))
    finally:
        response.close()