"""Google Gemini provider adapter.

Gemini differs from the other providers in three ways that matter here:

- function calls usually arrive without ids, nested in content parts, so
  ids are synthesised per turn (``call_<index>_<name>``);
- tool schemas use upper-case type names (``STRING``, ``OBJECT``...);
- the assistant role is called ``model``.
"""

import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

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
from consultant.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

SCHEMA_TYPES = {
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
    "object": "OBJECT",
    "array": "ARRAY",
}


def convert_schema(fragment: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a JSON schema fragment into Gemini's schema dialect.

    Unknown types fall back to ``STRING``.
    """
    converted: Dict[str, Any] = {
        "type": SCHEMA_TYPES.get(str(fragment.get("type", "string")).lower(), "STRING")
    }
    if fragment.get("description"):
        converted["description"] = fragment["description"]
    if fragment.get("enum"):
        converted["enum"] = [str(value) for value in fragment["enum"]]
    if isinstance(fragment.get("properties"), dict):
        converted["properties"] = {
            name: convert_schema(value) for name, value in fragment["properties"].items()
        }
        if fragment.get("required"):
            converted["required"] = list(fragment["required"])
    if isinstance(fragment.get("items"), dict):
        converted["items"] = convert_schema(fragment["items"])
    return converted


def _jsonable(payload: Any) -> Any:
    return json.loads(json.dumps(payload, ensure_ascii=False, default=str))


def synthesise_call_id(index: int, name: str) -> str:
    return f"call_{index}_{name}"


def is_synthesised_call_id(call_id: str, name: str) -> bool:
    """Whether an id was made up locally rather than sent by Gemini."""
    return re.fullmatch(rf"call_\d+_{re.escape(name)}", call_id) is not None


class GeminiAdapter(ProviderAdapter):
    """Adapter for the Gemini ``generate_content`` API."""

    name = "gemini"

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize the Gemini adapter.

        Raises:
            ConfigurationError: If no API key is configured
        """
        super().__init__(config)
        self._client = genai.Client(api_key=config.require_api_key())

    async def is_available(self) -> bool:
        try:
            await self._client.aio.models.get(model=self.config.model)
            return True
        except Exception as e:
            logger.warning("Gemini is not available", extra={"error": str(e)})
            return False

    def to_wire_tools(self, catalog: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": {
                    "type": "OBJECT",
                    "properties": {
                        name: convert_schema(value)
                        for name, value in tool.input_schema.properties.items()
                    },
                    "required": list(tool.input_schema.required)
                }
            }
            for tool in catalog
        ]

    def to_wire_messages(self, history: Sequence[Message]) -> List[Dict[str, Any]]:
        wire = []
        for message in history:
            parts = []
            for block in message.content:
                if isinstance(block, TextBlock):
                    parts.append({"text": block.text})
                elif isinstance(block, ImageBlock):
                    parts.append({
                        "inline_data": {
                            "mime_type": block.media_type,
                            "data": base64.b64decode(block.data)
                        }
                    })
            wire.append({"role": "model" if message.role == "assistant" else "user", "parts": parts})
        return wire

    async def send_turn(
        self,
        wire_messages: Sequence[Any],
        wire_tools: Sequence[Any],
        system_prompt: str
    ) -> Any:
        config = types.GenerateContentConfig(
            system_instruction=system_prompt or None,
            max_output_tokens=self.config.max_tokens,
            tools=[types.Tool(function_declarations=list(wire_tools))] if wire_tools else None
        )
        try:
            return await self._client.aio.models.generate_content(
                model=self.config.model,
                contents=list(wire_messages),
                config=config
            )
        except genai_errors.APIError as e:
            raise self._translate_error(e) from e

    def _translate_error(self, error: genai_errors.APIError) -> Exception:
        code = getattr(error, "code", None)
        text = f"{getattr(error, 'status', '')} {error}"
        if code == 429 or "RESOURCE_EXHAUSTED" in text:
            return RateLimitError(
                "Request rate limit exceeded, please wait a moment",
                provider_name=self.name,
                status_code=429
            )
        if code in (401, 403) or "API_KEY_INVALID" in text:
            return AuthenticationError(
                "Gemini API authorization failed",
                provider_name=self.name,
                status_code=code
            )
        return self._call_error(error, code)

    @staticmethod
    def _parts(raw_response: Any) -> List[Any]:
        candidates = getattr(raw_response, "candidates", None) or []
        if not candidates or candidates[0].content is None:
            return []
        return list(candidates[0].content.parts or [])

    def extract_tool_calls(self, raw_response: Any) -> List[ToolCallRequest]:
        calls = []
        for part in self._parts(raw_response):
            function_call = getattr(part, "function_call", None)
            if not function_call:
                continue
            index = len(calls)
            # Ids only need to be unique within this turn
            call_id = getattr(function_call, "id", None) or synthesise_call_id(index, function_call.name)
            calls.append(ToolCallRequest(
                id=call_id,
                name=function_call.name,
                input=dict(function_call.args or {})
            ))
        return calls

    def extract_final_text(self, raw_response: Any) -> str:
        texts = []
        for part in self._parts(raw_response):
            if getattr(part, "thought", False):
                continue
            text = getattr(part, "text", None)
            if isinstance(text, str) and text:
                texts.append(text)
        return "".join(texts)

    def format_assistant_turn(self, raw_response: Any) -> Any:
        # Replaying the model content as-is keeps thought signatures intact
        return raw_response.candidates[0].content

    def format_tool_results_for_replay(self, results: Sequence[ToolCallResult]) -> List[Dict[str, Any]]:
        parts = []
        for result in results:
            function_response: Dict[str, Any] = {
                "name": result.name,
                "response": (
                    {"error": result.error_message} if result.is_error
                    else {"content": _jsonable(result.payload)}
                )
            }
            # Ids sent by Gemini are echoed back, synthesised ones are not
            if not is_synthesised_call_id(result.id, result.name):
                function_response["id"] = result.id
            parts.append({"function_response": function_response})
        return [{"role": "user", "parts": parts}]

    def extract_usage(self, raw_response: Any) -> TokenUsage:
        metadata: Optional[Any] = getattr(raw_response, "usage_metadata", None)
        if metadata is None:
            return TokenUsage()
        return TokenUsage(
            input=getattr(metadata, "prompt_token_count", 0) or 0,
            output=getattr(metadata, "candidates_token_count", 0) or 0
        )
