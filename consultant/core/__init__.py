"""Core module for the consultant chat service."""

from .dispatcher import ToolDispatcher
from .errors import (
    AuthenticationError,
    ConfigurationError,
    ConsultantError,
    IterationCapExceeded,
    NoProviderAvailable,
    ProviderCallError,
    ProviderError,
    RateLimitError,
    ToolExecutionError,
    UnknownToolError,
)
from .orchestrator import ChatOrchestrator, LoopState
from .registry import RegistryReport, ToolModule, ToolRegistry
from .types import (
    ChatResponse,
    ImageBlock,
    InputSchema,
    Message,
    TextBlock,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
    ToolDefinition,
    ToolExecutor,
)

__all__ = [
    "AuthenticationError",
    "ChatOrchestrator",
    "ChatResponse",
    "ConfigurationError",
    "ConsultantError",
    "ImageBlock",
    "InputSchema",
    "IterationCapExceeded",
    "LoopState",
    "Message",
    "NoProviderAvailable",
    "ProviderCallError",
    "ProviderError",
    "RateLimitError",
    "RegistryReport",
    "TextBlock",
    "TokenUsage",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolModule",
    "ToolRegistry",
    "UnknownToolError",
]
