"""Client for the OpenAI Responses API."""

from __future__ import annotations

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

BASE_URL = "https://api.openai.com"
RESPONSES_URL = f"{BASE_URL}/v1/responses"


class Status(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"
    INCOMPLETE = "incomplete"


@dataclass
class ErrorObject:
    code: str
    message: str


@dataclass
class OutputText:
    text: str


@dataclass
class OutputRefusal:
    refusal: str


@dataclass
class OutputMessage:
    id: str
    content: list[Union[OutputText, OutputRefusal]]
    role: str
    status: Status


@dataclass
class OutputToolCall:
    arguments: str
    call_id: str
    name: str
    id: str
    status: Status


OutputItem = Union[OutputMessage, OutputToolCall]


@dataclass
class ResponseUsage:
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cached_tokens: int
    reasoning_tokens: int


@dataclass
class CreateModelResponseRequest:
    """Body of a create-response call; input items and tools are JSON dicts."""

    input: Union[str, list[dict[str, Any]]]
    model: str
    temperature: float | None = None
    max_output_tokens: int | None = None
    tools: list[dict[str, Any]] = field(default_factory=list)
    tool_choice: str | None = None
    stream: bool = False
    top_p: float | None = None
    user: str | None = None

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {"input": self.input, "model": self.model}
        optional = {
            "temperature": self.temperature,
            "max_output_tokens": self.max_output_tokens,
            "tool_choice": self.tool_choice,
            "top_p": self.top_p,
            "user": self.user,
        }
        body.update({key: value for key, value in optional.items() if value is not None})
        if self.tools:
            body["tools"] = self.tools
        body["stream"] = self.stream
        return body


def _parse_content(data: dict[str, Any]) -> Union[OutputText, OutputRefusal]:
    kind = data["type"]
    if kind == "output_text":
        return OutputText(text=data["text"])
    if kind == "refusal":
        return OutputRefusal(refusal=data["refusal"])
    raise ValueError(f"Unknown output content type: {kind!r}")


def parse_output_item(data: dict[str, Any]) -> OutputItem:
    """Decode one element of a response's output list."""
    try:
        kind = data["type"]
        if kind == "message":
            return OutputMessage(
                id=data["id"],
                content=[_parse_content(part) for part in data["content"]],
                role=data["role"],
                status=Status(data["status"]),
            )
        if kind == "function_call":
            return OutputToolCall(
                arguments=data["arguments"],
                call_id=data["call_id"],
                name=data["name"],
                id=data["id"],
                status=Status(data["status"]),
            )
    except (KeyError, TypeError) as err:
        raise ValueError(f"Malformed output item: {err}") from err
    raise ValueError(f"Unknown output item type: {kind!r}")


@dataclass
class CreateModelResponseResponse:
    id: str
    created_at: int
    status: Status
    output: list[OutputItem]
    error: ErrorObject | None = None
    incomplete_details: str | None = None
    usage: ResponseUsage | None = None
    metadata: Any = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "CreateModelResponseResponse":
        """Decode a response object; raises ValueError when it is malformed."""
        try:
            error = data.get("error")
            incomplete = data.get("incomplete_details")
            usage = data.get("usage")
            return cls(
                id=data["id"],
                created_at=int(data["created_at"]),
                status=Status(data["status"]),
                output=[parse_output_item(item) for item in data["output"]],
                error=ErrorObject(code=error["code"], message=error["message"])
                if error is not None
                else None,
                incomplete_details=incomplete["reason"] if incomplete is not None else None,
                usage=ResponseUsage(
                    input_tokens=usage["input_tokens"],
                    output_tokens=usage["output_tokens"],
                    total_tokens=usage["total_tokens"],
                    cached_tokens=usage["input_tokens_details"]["cached_tokens"],
                    reasoning_tokens=usage["output_tokens_details"]["reasoning_tokens"],
                )
                if usage is not None
                else None,
                metadata=data.get("metadata"),
            )
        except (KeyError, TypeError, AttributeError) as err:
            raise ValueError(f"Malformed response: {err}") from err


def _status_text(code: int) -> str:
    try:
        return f"{code} {HTTPStatus(code).phrase}"
    except ValueError:
        return str(code)


def parse_response(response: requests.Response) -> CreateModelResponseResponse:
    """Turn an HTTP response into a decoded response object or an LlmError."""
    status = response.status_code
    if 200 <= status < 300:
        try:
            body = CreateModelResponseResponse.from_json(response.json())
        except ValueError as err:
            raise LlmError(
                ErrorCode.INTERNAL_ERROR, f"Failed to decode response body: {err}"
            ) from err
        log.debug("Received response from OpenAI API: %r", body)
        return body
    text = response.text
    log.debug("Received %s response from OpenAI API: %r", status, text)
    raise LlmError(
        error_code_from_status(status),
        f"Request failed with {_status_text(status)}",
        provider_error_json=text,
    )


class ResponsesApi:
    """Creates model responses, whole or as a stream of events."""

    def __init__(self, api_key: str, session: requests.Session | None = None) -> None:
        self.api_key = api_key
        self.session = session or requests.Session()

    def _post(self, request: CreateModelResponseRequest, **kwargs: Any) -> requests.Response:
        log.debug("Sending request to OpenAI API: %r", request)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        headers.update(kwargs.pop("headers", {}))
        try:
            return self.session.post(
                RESPONSES_URL, json=request.to_json(), headers=headers, **kwargs
            )
        except requests.RequestException as err:
            raise LlmError(ErrorCode.INTERNAL_ERROR, f"Request failed: {err}") from err

    def create_model_response(
        self, request: CreateModelResponseRequest
    ) -> CreateModelResponseResponse:
        return parse_response(self._post(request))

    def stream_model_response(self, request: CreateModelResponseRequest) -> Iterator[str]:
        """Start a streaming request and return an iterator of raw event payloads."""
        response = self._post(
            request, headers={"Accept": "text/event-stream"}, stream=True
        )
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