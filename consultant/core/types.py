"""Type definitions for the consultant chat core.

This module contains the provider-agnostic data model shared by the tool
registry, the dispatcher, the provider adapters and the orchestrator.
Provider wire formats never appear here; adapters translate to and from
these types.
"""

import base64
from typing import (
    Annotated,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


Role = Literal["user", "assistant"]
ImageMediaType = Literal["image/jpeg", "image/png", "image/gif", "image/webp"]


class TextBlock(BaseModel):
    """Plain text content."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageBlock(BaseModel):
    """Inline image content.

    Attributes:
        media_type: MIME type of the image
        data: Base64 encoded image bytes, without a ``data:`` prefix
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    media_type: ImageMediaType
    data: str

    @field_validator("data")
    @classmethod
    def _check_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except ValueError as e:
            raise ValueError("Image data must be plain base64 without a data: prefix") from e
        return value


ContentBlock = Annotated[Union[TextBlock, ImageBlock], Field(discriminator="type")]


class Message(BaseModel):
    """A single conversation message.

    Messages are immutable once created. ``content`` accepts a plain string
    for convenience and normalises it to a single text block.

    Attributes:
        role: Who produced the message
        content: Ordered content blocks
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    content: Tuple[ContentBlock, ...]

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (TextBlock(text=value),)
        if isinstance(value, list):
            return tuple(value)
        return value

    @field_validator("content")
    @classmethod
    def _require_content(cls, value: Tuple[Any, ...]) -> Tuple[Any, ...]:
        if not value:
            raise ValueError("Message content cannot be empty")
        return value

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role="assistant", content=text)

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def has_images(self) -> bool:
        return any(isinstance(block, ImageBlock) for block in self.content)


class InputSchema(BaseModel):
    """JSON schema describing a tool's input object.

    Attributes:
        type: Always ``"object"``
        properties: Property name to JSON schema fragment
        required: Names of properties the model must supply
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["object"] = "object"
    properties: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_required(self) -> "InputSchema":
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"Required properties not declared: {', '.join(missing)}")
        return self

    def to_json_schema(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "properties": dict(self.properties),
            "required": list(self.required),
        }


class ToolDefinition(BaseModel):
    """Definition of a tool offered to the model.

    Attributes:
        name: Unique name within a catalog
        description: Human readable description the model uses to pick tools
        input_schema: Schema of the tool input
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str
    input_schema: InputSchema = Field(default_factory=InputSchema)


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model, in normalised form."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    """Outcome of one tool invocation.

    Exactly one of ``payload`` or ``error_message`` is meaningful, selected
    by ``is_error``.

    Attributes:
        id: Id of the originating ToolCallRequest
        name: Name of the tool that was invoked
        payload: Executor return value on success
        error_message: Failure description when ``is_error`` is set
        is_error: Whether the invocation failed
        correlation_id: Identifier tying the invocation to its log lines
        duration_ms: Wall time spent in the executor
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    payload: Any = None
    error_message: Optional[str] = None
    is_error: bool = False
    correlation_id: Optional[str] = None
    duration_ms: int = 0

    @classmethod
    def success(cls, call: ToolCallRequest, payload: Any, **metadata: Any) -> "ToolCallResult":
        return cls(id=call.id, name=call.name, payload=payload, **metadata)

    @classmethod
    def failure(cls, call: ToolCallRequest, message: str, **metadata: Any) -> "ToolCallResult":
        return cls(id=call.id, name=call.name, error_message=message, is_error=True, **metadata)

    @property
    def content(self) -> Any:
        """What gets replayed to the model: the payload or the error text."""
        return self.error_message if self.is_error else self.payload


class TokenUsage(BaseModel):
    """Token counts reported by a provider."""

    model_config = ConfigDict(frozen=True)

    input: int = 0
    output: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(input=self.input + other.input, output=self.output + other.output)

    @property
    def total(self) -> int:
        return self.input + self.output


class ChatResponse(BaseModel):
    """Result of one chat request.

    Attributes:
        final_text: The assistant's answer
        tools_used: Tool names in the order the model requested them
        provider_name: Name of the provider that produced the answer
        token_usage: Usage accumulated over every provider turn
        truncated: Set when the iteration cap stopped the loop
        iterations: Number of tool-executing rounds performed
    """

    final_text: str
    tools_used: List[str] = Field(default_factory=list)
    provider_name: str
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    truncated: bool = False
    iterations: int = 0


# Executors may be sync or async; both receive the tool name and its input
SyncToolExecutor = Callable[[str, Dict[str, Any]], Any]
AsyncToolExecutor = Callable[[str, Dict[str, Any]], Awaitable[Any]]
ToolExecutor = Union[SyncToolExecutor, AsyncToolExecutor]
