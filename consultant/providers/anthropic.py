"""Anthropic Claude provider adapter."""

import logging
from typing import Any, Dict, List, Sequence

import anthropic
from anthropic import AsyncAnthropic

from consultant.config import ProviderConfig
from consultant.core.errors import AuthenticationError, RateLimitError
from consultant.core.types import (
    ImageBlock,
    Message,
    TextBlock,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
    ToolDefinition,
)
from consultant.providers.base import ProviderAdapter, serialize_payload

logger = logging.getLogger(__name__)


class AnthropicAdapter(ProviderAdapter):
    """Adapter for Anthropic's Messages API.

    Claude returns ``tool_use`` content blocks with explicit ids and expects
    the results back as ``tool_result`` blocks inside a user message.
    """

    name = "claude"

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize the Anthropic adapter.

        Raises:
            ConfigurationError: If no API key is configured
        """
        super().__init__(config)
        self._client = AsyncAnthropic(api_key=config.require_api_key(), base_url=config.base_url)

    async def is_available(self) -> bool:
        try:
            await self._client.models.list(limit=1)
            return True
        except Exception as e:
            logger.warning("Claude is not available", extra={"error": str(e)})
            return False

    def to_wire_tools(self, catalog: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        # Claude takes JSON schema directly
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.input_schema.to_json_schema()
            }
            for tool in catalog
        ]

    def to_wire_messages(self, history: Sequence[Message]) -> List[Dict[str, Any]]:
        return [
            {"role": message.role, "content": [self._content_block(block) for block in message.content]}
            for message in history
        ]

    @staticmethod
    def _content_block(block: Any) -> Dict[str, Any]:
        if isinstance(block, TextBlock):
            return {"type": "text", "text": block.text}
        if isinstance(block, ImageBlock):
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": block.media_type, "data": block.data}
            }
        raise ValueError(f"Unknown content block type: {getattr(block, 'type', block)!r}")

    async def send_turn(
        self,
        wire_messages: Sequence[Any],
        wire_tools: Sequence[Any],
        system_prompt: str
    ) -> Any:
        kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": list(wire_messages)
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if wire_tools:
            kwargs["tools"] = list(wire_tools)

        try:
            return await self._client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            raise RateLimitError(
                "Request rate limit exceeded, please wait a moment",
                provider_name=self.name,
                status_code=429
            ) from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise AuthenticationError(
                "Claude API authorization failed",
                provider_name=self.name,
                status_code=e.status_code
            ) from e
        except anthropic.APIStatusError as e:
            raise self._call_error(e, e.status_code) from e
        except anthropic.APIError as e:
            raise self._call_error(e) from e

    def extract_tool_calls(self, raw_response: Any) -> List[ToolCallRequest]:
        return [
            ToolCallRequest(id=block.id, name=block.name, input=dict(block.input or {}))
            for block in raw_response.content
            if block.type == "tool_use"
        ]

    def extract_final_text(self, raw_response: Any) -> str:
        return "\n".join(block.text for block in raw_response.content if block.type == "text")

    def format_assistant_turn(self, raw_response: Any) -> Dict[str, Any]:
        content = []
        for block in raw_response.content:
            if block.type == "text":
                content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                content.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": dict(block.input or {})
                })
        return {"role": "assistant", "content": content}

    def format_tool_results_for_replay(self, results: Sequence[ToolCallResult]) -> List[Dict[str, Any]]:
        return [{
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": result.id,
                    "content": serialize_payload(result.content),
                    "is_error": result.is_error
                }
                for result in results
            ]
        }]

    def extract_usage(self, raw_response: Any) -> TokenUsage:
        usage = getattr(raw_response, "usage", None)
        if usage is None:
            return TokenUsage()
        return TokenUsage(
            input=getattr(usage, "input_tokens", 0) or 0,
            output=getattr(usage, "output_tokens", 0) or 0
        )
