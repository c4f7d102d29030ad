"""Unit tests for chat_client.py."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from consultant.chat_client import (
    CLI_USER_ID,
    DEFAULT_TOOL_FACTORIES,
    build_service,
    chat_loop,
    load_tool_modules,
    parse_arguments,
    run,
)
from consultant.conversation.service import DomainContext
from consultant.core.errors import ConfigurationError, NoProviderAvailable
from consultant.core.types import ChatResponse


@pytest.fixture
def mock_service():
    """Create a mock ChatService."""
    service = Mock()
    service.registry = ["get_all_equipment"]
    service.assembler.drain = AsyncMock()
    service.handle = AsyncMock(return_value=ChatResponse(
        final_text="Found 1 pump.",
        tools_used=["get_all_equipment"],
        provider_name="stub"
    ))
    return service


def test_parse_arguments_default():
    args = parse_arguments([])
    assert args.env_file == ".env"
    assert args.tools is None
    assert args.provider is None


def test_parse_arguments_custom():
    args = parse_arguments([
        "--provider", "claude",
        "--tools", "examples.tools.sensor_tool:create_sensor_module",
        "--equipment-id", "eq-7",
        "--log-level", "DEBUG"
    ])
    assert args.provider == "claude"
    assert args.tools == ["examples.tools.sensor_tool:create_sensor_module"]
    assert args.equipment_id == "eq-7"
    assert args.log_level == "DEBUG"


def test_load_tool_modules():
    modules = load_tool_modules(DEFAULT_TOOL_FACTORIES)
    assert [module.name for module in modules] == ["equipment", "sensor"]


@pytest.mark.parametrize("spec", [
    "examples.tools.sensor_tool",
    "examples.tools.no_such_module:create",
    "examples.tools.sensor_tool:no_such_factory",
])
def test_load_tool_modules_invalid(spec):
    with pytest.raises(ConfigurationError):
        load_tool_modules([spec])


def test_build_service_default_tools(make_settings):
    service = build_service(parse_arguments([]), make_settings())

    assert service.startup().ok
    assert "get_maintenance_log" in service.registry
    assert "analyze_sensor_readings" in service.registry


def test_default_tool_factories_are_packaged():
    """Test the installed distribution ships the modules the CLI loads by default."""
    setuptools = pytest.importorskip("setuptools")
    tomllib = pytest.importorskip("tomllib")
    root = Path(__file__).resolve().parents[1]
    config = tomllib.loads((root / "pyproject.toml").read_text())
    include = config["tool"]["setuptools"]["packages"]["find"]["include"]

    packages = setuptools.find_packages(where=str(root), include=include)

    for spec in DEFAULT_TOOL_FACTORIES:
        module_name = spec.partition(":")[0]
        assert module_name.rpartition(".")[0] in packages


@pytest.mark.asyncio
async def test_chat_loop_quit(mock_service):
    """Test chat_loop with quit command."""
    with patch('builtins.input', return_value="quit"):
        with patch('builtins.print'):
            await chat_loop(mock_service)

    mock_service.handle.assert_not_awaited()
    mock_service.assembler.drain.assert_awaited_once()


@pytest.mark.asyncio
async def test_chat_loop_process_query(mock_service):
    """Test chat_loop forwards queries with the CLI user and domain context."""
    context = DomainContext(id="eq-7", name="Filter", kind="filter")
    input_mock = MagicMock(side_effect=["find pump", "", "quit"])

    with patch('builtins.input', input_mock):
        with patch('builtins.print') as print_mock:
            await chat_loop(mock_service, context)

    mock_service.handle.assert_awaited_once()
    request = mock_service.handle.await_args.args[0]
    assert request.new_messages[0].text == "find pump"
    assert request.user_id == CLI_USER_ID
    assert request.domain_context == context
    printed = " ".join(str(call.args[0]) for call in print_mock.call_args_list if call.args)
    assert "Found 1 pump." in printed
    assert "get_all_equipment" in printed


@pytest.mark.asyncio
async def test_chat_loop_error_handling(mock_service):
    """Test chat_loop keeps running after a failed query."""
    mock_service.handle.side_effect = NoProviderAvailable(["gemini"])
    input_mock = MagicMock(side_effect=["hello", "quit"])

    with patch('builtins.input', input_mock):
        with patch('builtins.print') as print_mock:
            await chat_loop(mock_service)

    assert input_mock.call_count == 2
    printed = " ".join(str(call.args[0]) for call in print_mock.call_args_list if call.args)
    assert "Error processing query" in printed
    mock_service.assembler.drain.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_invalid_tools(tmp_path):
    args = parse_arguments(["--env-file", str(tmp_path / "missing.env"), "--tools", "not-a-spec"])

    with patch('consultant.chat_client.setup_logging'):
        with patch('builtins.print') as print_mock:
            assert await run(args) == 1

    assert "Error" in print_mock.call_args.args[0]


@pytest.mark.asyncio
async def test_run_quit_immediately(tmp_path):
    args = parse_arguments([
        "--env-file", str(tmp_path / "missing.env"),
        "--provider", "claude",
        "--equipment-id", "eq-7"
    ])

    with patch('consultant.chat_client.setup_logging') as logging_mock:
        with patch('consultant.chat_client.chat_loop', AsyncMock()) as loop_mock:
            assert await run(args) == 0

    logging_mock.assert_called_once()
    service, context = loop_mock.await_args.args
    assert context.id == "eq-7"
    assert context.name == "eq-7"
    assert len(service.registry) == 4
