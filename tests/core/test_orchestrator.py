"""Tests for the ChatOrchestrator agentic loop."""

import asyncio

import pytest

from consultant.core.dispatcher import ToolDispatcher
from consultant.core.errors import IterationCapExceeded, ProviderCallError, RateLimitError
from consultant.core.orchestrator import NO_RESPONSE_TEXT, TRUNCATED_TEXT, ChatOrchestrator, LoopState
from consultant.core.types import Message, TokenUsage


@pytest.fixture
def equipment_registry(make_registry, make_tool):
    """Registry with a get_all_equipment tool returning one pump."""
    executions = []

    def get_all_equipment(name, tool_input):
        executions.append(dict(tool_input))
        return [{"id": "eq-1", "name": "Feed pump P-101", "type": "pump"}]

    registry = make_registry(
        {"get_all_equipment": get_all_equipment},
        definitions=[make_tool("get_all_equipment", properties={"search": {"type": "string"}})]
    )
    registry.executions = executions
    return registry


@pytest.mark.asyncio
async def test_find_pump_scenario(equipment_registry, stub_adapter, turn, tool_call) -> None:
    """One tool call followed by a final answer."""
    adapter = stub_adapter([
        turn(calls=[tool_call("get_all_equipment", call_id="c1", search="pump")], input_tokens=100, output_tokens=20),
        turn(text="Found 1 pump.", input_tokens=150, output_tokens=10),
    ])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry))

    response = await orchestrator.run([Message.user("find pump equipment")])

    assert response.final_text == "Found 1 pump."
    assert response.tools_used == ["get_all_equipment"]
    assert response.truncated is False
    assert response.iterations == 1
    assert response.provider_name == "stub"
    assert response.token_usage == TokenUsage(input=250, output=30)
    assert equipment_registry.executions == [{"search": "pump"}]


@pytest.mark.asyncio
async def test_transcript_grows_with_assistant_turn_and_results(
    equipment_registry, stub_adapter, turn, tool_call
) -> None:
    """Test what the second turn sees: history, the tool call turn and the result."""
    adapter = stub_adapter([
        turn(calls=[tool_call("get_all_equipment", call_id="c1", search="pump")]),
        turn(text="Found 1 pump."),
    ])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry))

    await orchestrator.run([Message.user("find pump equipment")], system_prompt="Be brief.")

    first, second = adapter.sent
    assert first == [{"role": "user", "text": "find pump equipment"}]
    assert second[0] == first[0]
    assert second[1] == {"role": "assistant", "calls": ["c1"]}
    assert second[2]["role"] == "tool"
    assert second[2]["id"] == "c1"
    assert second[2]["is_error"] is False
    assert second[2]["content"][0]["name"] == "Feed pump P-101"
    assert adapter.system_prompts == ["Be brief.", "Be brief."]


@pytest.mark.asyncio
async def test_no_tool_calls_answers_immediately(equipment_registry, stub_adapter, turn) -> None:
    adapter = stub_adapter([turn(text="Hello!")])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry))

    response = await orchestrator.run([Message.user("hi")])

    assert response.final_text == "Hello!"
    assert response.tools_used == []
    assert response.iterations == 0
    assert adapter.turns == 1


@pytest.mark.asyncio
async def test_empty_final_text_uses_fallback(equipment_registry, stub_adapter, turn) -> None:
    adapter = stub_adapter([turn(text="")])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry))

    response = await orchestrator.run([Message.user("hi")])

    assert response.final_text == NO_RESPONSE_TEXT


@pytest.mark.asyncio
async def test_iteration_cap_truncates(equipment_registry, stub_adapter, turn, tool_call) -> None:
    """A model asking for tools on every turn stops after the cap."""
    adapter = stub_adapter(
        lambda index, transcript: turn(calls=[tool_call("get_all_equipment", call_id=f"c{index}")])
    )
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry), max_iterations=10)

    response = await orchestrator.run([Message.user("loop forever")])

    assert len(equipment_registry.executions) == 10
    assert response.truncated is True
    assert response.iterations == 10
    assert response.tools_used == ["get_all_equipment"] * 10
    assert response.final_text == TRUNCATED_TEXT
    assert adapter.turns == 11


@pytest.mark.asyncio
async def test_iteration_cap_keeps_partial_text(equipment_registry, stub_adapter, turn, tool_call) -> None:
    adapter = stub_adapter(
        lambda index, transcript: turn(
            text=f"Still checking ({index})",
            calls=[tool_call("get_all_equipment", call_id=f"c{index}")]
        )
    )
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry), max_iterations=2)

    response = await orchestrator.run([Message.user("check")])

    assert response.truncated is True
    assert response.final_text == "Still checking (2)"


@pytest.mark.asyncio
async def test_zero_iterations_never_runs_tools(equipment_registry, stub_adapter, turn, tool_call) -> None:
    adapter = stub_adapter([turn(calls=[tool_call("get_all_equipment")])])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry), max_iterations=0)

    response = await orchestrator.run([Message.user("check")])

    assert response.truncated is True
    assert equipment_registry.executions == []
    assert adapter.turns == 1


@pytest.mark.asyncio
async def test_strict_mode_raises_with_partial_response(
    equipment_registry, stub_adapter, turn, tool_call
) -> None:
    adapter = stub_adapter(
        lambda index, transcript: turn(calls=[tool_call("get_all_equipment", call_id=f"c{index}")])
    )
    orchestrator = ChatOrchestrator(
        adapter, ToolDispatcher(equipment_registry), max_iterations=3, strict=True
    )

    with pytest.raises(IterationCapExceeded) as exc_info:
        await orchestrator.run([Message.user("loop")])

    assert exc_info.value.max_iterations == 3
    assert exc_info.value.response.truncated is True
    assert exc_info.value.response.tools_used == ["get_all_equipment"] * 3


@pytest.mark.asyncio
async def test_results_matched_by_id_when_second_finishes_first(
    make_registry, stub_adapter, turn, tool_call
) -> None:
    """Test order-independent matching of concurrent tool results."""
    slow_started = asyncio.Event()
    fast_done = asyncio.Event()

    async def slow_tool(name, tool_input):
        slow_started.set()
        await fast_done.wait()
        return "slow result"

    async def fast_tool(name, tool_input):
        await slow_started.wait()
        fast_done.set()
        return "fast result"

    adapter = stub_adapter([
        turn(calls=[tool_call("slow_tool", call_id="id_slow"), tool_call("fast_tool", call_id="id_fast")]),
        turn(text="done"),
    ])
    registry = make_registry({"slow_tool": slow_tool, "fast_tool": fast_tool})
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(registry))

    response = await orchestrator.run([Message.user("run both")])

    replayed = {entry["id"]: entry["content"] for entry in adapter.sent[1] if entry["role"] == "tool"}
    assert replayed == {"id_slow": "slow result", "id_fast": "fast result"}
    assert response.tools_used == ["slow_tool", "fast_tool"]


@pytest.mark.asyncio
async def test_throwing_tool_does_not_abort_loop(make_registry, stub_adapter, turn, tool_call) -> None:
    """A failing executor is reported to the model and the loop completes."""
    def broken(name, tool_input):
        raise ConnectionError("equipment API down")

    adapter = stub_adapter([
        turn(calls=[tool_call("get_equipment_details", call_id="c1")]),
        turn(text="Sorry, the equipment service is unavailable."),
    ])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(make_registry({"get_equipment_details": broken})))

    response = await orchestrator.run([Message.user("details for eq-1")])

    assert response.tools_used == ["get_equipment_details"]
    assert response.truncated is False
    assert response.final_text == "Sorry, the equipment service is unavailable."
    result_entry = adapter.sent[1][2]
    assert result_entry["is_error"] is True
    assert "equipment API down" in result_entry["content"]


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_to_model(equipment_registry, stub_adapter, turn, tool_call) -> None:
    adapter = stub_adapter([
        turn(calls=[tool_call("drop_tables", call_id="c1")]),
        turn(text="I cannot do that."),
    ])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry))

    response = await orchestrator.run([Message.user("drop everything")])

    assert response.tools_used == ["drop_tables"]
    assert adapter.sent[1][2]["content"] == "Unknown tool: drop_tables"


@pytest.mark.asyncio
async def test_provider_error_propagates(equipment_registry, stub_adapter) -> None:
    error = RateLimitError("slow down", provider_name="stub", status_code=429)
    adapter = stub_adapter([], error=error)
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry))

    with pytest.raises(RateLimitError):
        await orchestrator.run([Message.user("hi")])


@pytest.mark.asyncio
async def test_provider_turn_timeout(equipment_registry, stub_adapter, turn) -> None:
    adapter = stub_adapter([turn(text="too late")], delay=1.0)
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(equipment_registry), turn_timeout=0.01)

    with pytest.raises(ProviderCallError) as exc_info:
        await orchestrator.run([Message.user("hi")])

    assert exc_info.value.provider_name == "stub"
    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_tool_timeout_becomes_error_result(make_registry, stub_adapter, turn, tool_call) -> None:
    async def hanging(name, tool_input):
        await asyncio.sleep(1)

    adapter = stub_adapter([
        turn(calls=[tool_call("hanging", call_id="c1")]),
        turn(text="The tool took too long."),
    ])
    orchestrator = ChatOrchestrator(
        adapter, ToolDispatcher(make_registry({"hanging": hanging})), tool_timeout=0.01
    )

    response = await orchestrator.run([Message.user("wait")])

    assert response.final_text == "The tool took too long."
    assert adapter.sent[1][2]["is_error"] is True


@pytest.mark.asyncio
async def test_catalog_subset_is_offered(make_registry, stub_adapter, turn, make_tool) -> None:
    registry = make_registry({"a": lambda n, i: 1, "b": lambda n, i: 2})
    adapter = stub_adapter([turn(text="ok")])
    orchestrator = ChatOrchestrator(adapter, ToolDispatcher(registry))

    await orchestrator.run([Message.user("hi")], catalog=[registry.get_definition("b")])

    assert adapter.tools_offered == [["b"]]


@pytest.mark.asyncio
async def test_default_catalog_is_whole_registry(make_registry, stub_adapter, turn) -> None:
    registry = make_registry({"a": lambda n, i: 1, "b": lambda n, i: 2})
    adapter = stub_adapter([turn(text="ok")])

    await ChatOrchestrator(adapter, ToolDispatcher(registry)).run([Message.user("hi")])

    assert adapter.tools_offered == [["a", "b"]]


@pytest.mark.asyncio
async def test_run_requires_messages(equipment_registry, stub_adapter) -> None:
    orchestrator = ChatOrchestrator(stub_adapter([]), ToolDispatcher(equipment_registry))

    with pytest.raises(ValueError):
        await orchestrator.run([])


def test_negative_cap_rejected(equipment_registry, stub_adapter) -> None:
    with pytest.raises(ValueError):
        ChatOrchestrator(stub_adapter([]), ToolDispatcher(equipment_registry), max_iterations=-1)


def test_loop_states() -> None:
    assert [state.value for state in LoopState] == ["awaiting_model", "executing_tools", "done"]
