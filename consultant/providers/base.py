"""Provider adapter interface for the consultant chat core.

Every supported LLM provider encodes tools, transcripts and tool calls
differently. An adapter hides those differences behind one interface so the
orchestrator only ever handles the normalised types from
``consultant.core.types``.

Wire values (the ``Any`` in the signatures below) are opaque to callers:
they are produced by one adapter method and consumed by another method of
the same adapter, never inspected elsewhere.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from consultant.config import ProviderConfig
from consultant.core.errors import ProviderCallError
from consultant.core.types import (
    Message,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
    ToolDefinition,
)
from consultant.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Base interface for provider adapters.

    Args:
        config: Configuration of the provider instance
    """

    #: Provider name reported in ChatResponse.provider_name
    name: str = ""

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    @property
    def model(self) -> Optional[str]:
        return self.config.model

    @abstractmethod
    async def is_available(self) -> bool:
        """Cheap probe telling whether the provider can serve a chat turn.

        Implementations must not raise; failures are reported as False.
        """
        pass

    @abstractmethod
    def to_wire_tools(self, catalog: Sequence[ToolDefinition]) -> List[Any]:
        """Convert normalised tool definitions into the provider's schema."""
        pass

    @abstractmethod
    def to_wire_messages(self, history: Sequence[Message]) -> List[Any]:
        """Convert normalised messages into the provider's transcript shape."""
        pass

    @abstractmethod
    async def send_turn(
        self,
        wire_messages: Sequence[Any],
        wire_tools: Sequence[Any],
        system_prompt: str
    ) -> Any:
        """Send one turn to the provider and return its raw response.

        Raises:
            ProviderCallError: If the provider call fails
        """
        pass

    @abstractmethod
    def extract_tool_calls(self, raw_response: Any) -> List[ToolCallRequest]:
        """Tool calls requested in the response; empty means a final answer."""
        pass

    @abstractmethod
    def extract_final_text(self, raw_response: Any) -> str:
        """Text content of the response."""
        pass

    @abstractmethod
    def format_assistant_turn(self, raw_response: Any) -> Any:
        """The assistant turn carrying the tool calls, ready to append."""
        pass

    @abstractmethod
    def format_tool_results_for_replay(self, results: Sequence[ToolCallResult]) -> List[Any]:
        """Transcript entries carrying tool results back to the provider."""
        pass

    @abstractmethod
    def extract_usage(self, raw_response: Any) -> TokenUsage:
        """Token usage of the response; zeros when not reported."""
        pass

    def describe(self) -> str:
        return f"{self.name} ({self.model})"

    def _call_error(self, error: Exception, status_code: Optional[int] = None) -> ProviderCallError:
        """Wrap an unexpected SDK failure, logging it once."""
        message = sanitize_log_message(str(error))
        logger.error("Provider call failed", extra={
            "provider": self.name,
            "status_code": status_code,
            "error": message
        })
        return ProviderCallError(
            f"Provider call failed: {message}",
            provider_name=self.name,
            status_code=status_code
        )


def serialize_payload(payload: Any) -> str:
    """Serialise a tool payload for providers that expect text."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False, default=str)
