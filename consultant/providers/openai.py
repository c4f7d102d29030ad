"""OpenAI-compatible provider adapter.

Serves OpenAI itself and any service speaking the Chat Completions protocol
through a custom ``base_url``, such as DeepSeek.
"""

import json
import logging
from typing import Any, Dict, List, Sequence

import openai
from openai import AsyncOpenAI

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


class OpenAIAdapter(ProviderAdapter):
    """Adapter for the Chat Completions API with function calling.

    Tool calls carry explicit ids and JSON-encoded arguments; results go
    back as ``role="tool"`` messages referencing those ids.
    """

    name = "openai"

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize the adapter.

        Raises:
            ConfigurationError: If no API key is configured
        """
        super().__init__(config)
        self.name = config.name or self.name
        self._client = AsyncOpenAI(api_key=config.require_api_key(), base_url=config.base_url)

    async def is_available(self) -> bool:
        try:
            await self._client.models.list()
            return True
        except Exception as e:
            logger.warning("Provider is not available", extra={"provider": self.name, "error": str(e)})
            return False

    def to_wire_tools(self, catalog: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.input_schema.to_json_schema()
                }
            }
            for tool in catalog
        ]

    def to_wire_messages(self, history: Sequence[Message]) -> List[Dict[str, Any]]:
        wire = []
        for message in history:
            if not message.has_images:
                wire.append({"role": message.role, "content": message.text})
                continue
            parts = []
            for block in message.content:
                if isinstance(block, TextBlock):
                    parts.append({"type": "text", "text": block.text})
                elif isinstance(block, ImageBlock):
                    parts.append({
                        "type": "image_url",
                        "image_url": {"url": f"data:{block.media_type};base64,{block.data}"}
                    })
            wire.append({"role": message.role, "content": parts})
        return wire

    async def send_turn(
        self,
        wire_messages: Sequence[Any],
        wire_tools: Sequence[Any],
        system_prompt: str
    ) -> Any:
        messages = list(wire_messages)
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})

        kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "max_tokens": self.config.max_tokens
        }
        if wire_tools:
            kwargs["tools"] = list(wire_tools)
            kwargs["tool_choice"] = "auto"

        try:
            return await self._client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            raise RateLimitError(
                "Request rate limit exceeded, please wait a moment",
                provider_name=self.name,
                status_code=429
            ) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AuthenticationError(
                f"{self.name} API authorization failed",
                provider_name=self.name,
                status_code=e.status_code
            ) from e
        except openai.APIStatusError as e:
            raise self._call_error(e, e.status_code) from e
        except openai.APIError as e:
            raise self._call_error(e) from e

    @staticmethod
    def _message(raw_response: Any) -> Any:
        return raw_response.choices[0].message

    def extract_tool_calls(self, raw_response: Any) -> List[ToolCallRequest]:
        calls = []
        for tool_call in self._message(raw_response).tool_calls or []:
            # Custom (non-function) tool calls are not part of our catalog
            if getattr(tool_call, "type", "function") != "function":
                continue
            calls.append(ToolCallRequest(
                id=tool_call.id,
                name=tool_call.function.name,
                input=self._decode_arguments(tool_call.function.name, tool_call.function.arguments)
            ))
        return calls

    def _decode_arguments(self, tool_name: str, arguments: Any) -> Dict[str, Any]:
        if not arguments:
            return {}
        try:
            decoded = json.loads(arguments)
        except (TypeError, ValueError):
            logger.warning("Invalid tool arguments from model", extra={
                "provider": self.name,
                "tool_name": tool_name
            })
            return {}
        return decoded if isinstance(decoded, dict) else {}

    def extract_final_text(self, raw_response: Any) -> str:
        return self._message(raw_response).content or ""

    def format_assistant_turn(self, raw_response: Any) -> Dict[str, Any]:
        message = self._message(raw_response)
        return {
            "role": "assistant",
            "content": message.content,
            "tool_calls": [
                {
                    "id": tool_call.id,
                    "type": "function",
                    "function": {
                        "name": tool_call.function.name,
                        "arguments": tool_call.function.arguments
                    }
                }
                for tool_call in message.tool_calls or []
                if getattr(tool_call, "type", "function") == "function"
            ]
        }

    def format_tool_results_for_replay(self, results: Sequence[ToolCallResult]) -> List[Dict[str, Any]]:
        return [
            {
                "role": "tool",
                "tool_call_id": result.id,
                "content": (
                    f"Error: {result.error_message}" if result.is_error
                    else serialize_payload(result.payload)
                )
            }
            for result in results
        ]

    def extract_usage(self, raw_response: Any) -> TokenUsage:
        usage = getattr(raw_response, "usage", None)
        if usage is None:
            return TokenUsage()
        return TokenUsage(
            input=getattr(usage, "prompt_tokens", 0) or 0,
            output=getattr(usage, "completion_tokens", 0) or 0
        )
