"""Common test fixtures for the entire test suite."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from consultant.config import ProviderConfig, Settings
from consultant.core.registry import ToolRegistry
from consultant.core.types import (
    InputSchema,
    Message,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
    ToolDefinition,
)
from consultant.providers.base import ProviderAdapter


@dataclass
class StubTurn:
    """A scripted provider response."""
    text: str = ""
    calls: List[ToolCallRequest] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


class StubAdapter(ProviderAdapter):
    """Provider adapter replaying scripted turns.

    ``script`` is either a list of turns, served in order, or a callable
    receiving the turn index and the transcript and returning the turn.
    Every transcript sent is recorded in ``sent``.
    """

    name = "stub"

    def __init__(
        self,
        script: Union[Sequence[StubTurn], Callable[[int, Sequence[Any]], StubTurn]],
        available: bool = True,
        delay: float = 0.0,
        error: Optional[Exception] = None
    ) -> None:
        super().__init__(ProviderConfig(name="stub", api_key="stub-key", model="stub-model"))
        self._script = script
        self._available = available
        self._delay = delay
        self._error = error
        self.sent: List[List[Any]] = []
        self.system_prompts: List[str] = []
        self.tools_offered: List[List[Any]] = []

    @property
    def turns(self) -> int:
        return len(self.sent)

    async def is_available(self) -> bool:
        return self._available

    def to_wire_tools(self, catalog: Sequence[ToolDefinition]) -> List[str]:
        return [tool.name for tool in catalog]

    def to_wire_messages(self, history: Sequence[Message]) -> List[Dict[str, Any]]:
        return [{"role": message.role, "text": message.text} for message in history]

    async def send_turn(self, wire_messages, wire_tools, system_prompt) -> StubTurn:
        index = len(self.sent)
        self.sent.append(list(wire_messages))
        self.system_prompts.append(system_prompt)
        self.tools_offered.append(list(wire_tools))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        if callable(self._script):
            return self._script(index, wire_messages)
        return self._script[index]

    def extract_tool_calls(self, raw_response: StubTurn) -> List[ToolCallRequest]:
        return list(raw_response.calls)

    def extract_final_text(self, raw_response: StubTurn) -> str:
        return raw_response.text

    def format_assistant_turn(self, raw_response: StubTurn) -> Dict[str, Any]:
        return {"role": "assistant", "calls": [call.id for call in raw_response.calls]}

    def format_tool_results_for_replay(self, results: Sequence[ToolCallResult]) -> List[Dict[str, Any]]:
        return [
            {"role": "tool", "id": result.id, "content": result.content, "is_error": result.is_error}
            for result in results
        ]

    def extract_usage(self, raw_response: StubTurn) -> TokenUsage:
        return raw_response.usage


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    """Fixture to ensure no environment variables affect tests.

    This fixture runs automatically for all tests to ensure a clean environment.
    """
    env_vars = [
        "AI_PROVIDER", "AI_FALLBACK_PROVIDERS", "AVAILABILITY_TTL",
        "ANTHROPIC_API_KEY", "CLAUDE_MODEL",
        "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_BASE_URL",
        "DEEPSEEK_API_KEY", "DEEPSEEK_MODEL", "DEEPSEEK_BASE_URL",
        "GEMINI_API_KEY", "GEMINI_MODEL",
        "MAX_AGENT_ITERATIONS", "MAX_TOKENS", "PROVIDER_TIMEOUT", "TOOL_TIMEOUT",
        "HISTORY_LIMIT", "LOG_LEVEL", "LOG_DIR",
        "EQUIPMENT_API_URL",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_settings():
    """Factory fixture for Settings that ignores any .env file.

    Example:
        def test_something(make_settings):
            settings = make_settings(ai_provider="claude", anthropic_api_key="test-key")
    """
    def _make_settings(**overrides: Any) -> Settings:
        return Settings(env_file=None, **overrides)
    return _make_settings


@pytest.fixture
def make_tool():
    """Factory fixture for tool definitions.

    Example:
        def test_something(make_tool):
            tool = make_tool("lookup", properties={"id": {"type": "string"}}, required=["id"])
    """
    def _make_tool(
        name: str,
        description: str = "Test tool",
        properties: Optional[Dict[str, Dict[str, Any]]] = None,
        required: Optional[List[str]] = None
    ) -> ToolDefinition:
        return ToolDefinition(
            name=name,
            description=description,
            input_schema=InputSchema(properties=properties or {}, required=required or [])
        )
    return _make_tool


@pytest.fixture
def make_registry(make_tool):
    """Factory fixture building a registry from name to executor pairs.

    Every executor gets a matching parameterless definition unless
    ``definitions`` is given explicitly.
    """
    def _make_registry(
        executors: Dict[str, Callable[..., Any]],
        definitions: Optional[Sequence[ToolDefinition]] = None
    ) -> ToolRegistry:
        if definitions is None:
            definitions = [make_tool(name) for name in executors]
        return ToolRegistry(definitions, executors)
    return _make_registry


@pytest.fixture
def stub_adapter():
    """Factory fixture for scripted provider adapters."""
    def _make_adapter(script, **kwargs: Any) -> StubAdapter:
        return StubAdapter(script, **kwargs)
    return _make_adapter


@pytest.fixture
def tool_call():
    """Factory fixture for normalised tool calls."""
    def _make_call(name: str, call_id: Optional[str] = None, **tool_input: Any) -> ToolCallRequest:
        return ToolCallRequest(id=call_id or f"call_{name}", name=name, input=tool_input)
    return _make_call


@pytest.fixture
def turn():
    """Factory fixture for scripted provider turns."""
    def _make_turn(
        text: str = "",
        calls: Optional[List[ToolCallRequest]] = None,
        input_tokens: int = 0,
        output_tokens: int = 0
    ) -> StubTurn:
        return StubTurn(
            text=text,
            calls=list(calls or []),
            usage=TokenUsage(input=input_tokens, output=output_tokens)
        )
    return _make_turn
