"""Provider-neutral chat types shared by the LLM clients."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class Role(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ImageDetail(Enum):
    AUTO = "auto"
    LOW = "low"
    HIGH = "high"


class ErrorCode(Enum):
    INVALID_REQUEST = "invalid-request"
    AUTHENTICATION_FAILED = "authentication-failed"
    RATE_LIMIT_EXCEEDED = "rate-limit-exceeded"
    INTERNAL_ERROR = "internal-error"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


class FinishReason(Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool-calls"
    CONTENT_FILTER = "content-filter"
    ERROR = "error"
    OTHER = "other"


@dataclass
class ImageUrl:
    """An image referenced by URL."""

    url: str
    detail: ImageDetail | None = None


@dataclass
class ImageSource:
    """An image given inline as raw bytes."""

    data: bytes
    mime_type: str
    detail: ImageDetail | None = None


# A content part is plain text or an image reference.
ContentPart = Union[str, ImageUrl, ImageSource]


@dataclass
class Message:
    role: Role
    content: list[ContentPart] = field(default_factory=list)
    name: str | None = None


@dataclass
class ToolCall:
    id: str
    name: str
    arguments_json: str


@dataclass
class ToolDefinition:
    name: str
    parameters_schema: str
    description: str | None = None


@dataclass
class ToolSuccess:
    id: str
    name: str
    result_json: str
    execution_time_ms: int | None = None


@dataclass
class ToolFailure:
    id: str
    name: str
    error_message: str
    error_code: str | None = None


ToolResult = Union[ToolSuccess, ToolFailure]


@dataclass
class Config:
    """Model configuration for one chat request."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    stop_sequences: list[str] | None = None
    tools: list[ToolDefinition] = field(default_factory=list)
    tool_choice: str | None = None
    provider_options: Sequence[tuple[str, str]] | Mapping[str, str] = field(
        default_factory=list
    )

    def options(self) -> dict[str, str]:
        """Provider options as a dict; a later duplicate key wins."""
        if isinstance(self.provider_options, Mapping):
            return dict(self.provider_options)
        return dict(self.provider_options)


@dataclass
class Usage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


@dataclass
class ResponseMetadata:
    finish_reason: FinishReason | None = None
    usage: Usage | None = None
    provider_id: str | None = None
    timestamp: str | None = None
    provider_metadata_json: str | None = None


@dataclass
class CompleteResponse:
    id: str
    content: list[ContentPart]
    tool_calls: list[ToolCall]
    metadata: ResponseMetadata


@dataclass
class ToolRequest:
    """The model asks for tools to be called before it can answer."""

    tool_calls: list[ToolCall]


ChatEvent = Union[CompleteResponse, ToolRequest]


@dataclass
class StreamDelta:
    content: list[ContentPart] | None = None
    tool_calls: list[ToolCall] | None = None


class LlmError(Exception):
    """A failure reported by, or while talking to, an LLM provider."""

    def __init__(
        self, code: ErrorCode, message: str, provider_error_json: str | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_error_json = provider_error_json

    def __repr__(self) -> str:
        return f"LlmError({self.code!r}, {self.message!r})"


def error_code_from_status(status: int) -> ErrorCode:
    """Map an HTTP status code to an error code."""
    status = int(status)
    if status == 429:
        return ErrorCode.RATE_LIMIT_EXCEEDED
    if status in (401, 402, 403):
        return ErrorCode.AUTHENTICATION_FAILED
    if 400 <= status < 500:
        return ErrorCode.INVALID_REQUEST
    return ErrorCode.INTERNAL_ERROR


def api_key_from_env(name: str) -> str:
    """Read a required configuration key from the environment."""
    value = os.environ.get(name)
    if value is None:
        raise LlmError(ErrorCode.INTERNAL_ERROR, f"Missing config key: {name}")
    return value