"""Tool Registry for the consultant chat core.

The registry binds every tool definition advertised to the model to the
executor that runs it. It is built once at process start from the tool
modules contributed by the domain packages and never changes afterwards.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from consultant.core.errors import ConfigurationError, UnknownToolError
from consultant.core.types import ToolDefinition, ToolExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolModule:
    """A bundle of tool definitions and executors from one domain module.

    Attributes:
        name: Module name, used in log and error messages
        definitions: Tool definitions the module advertises
        executors: Tool name to executor mapping
    """

    name: str
    definitions: Sequence[ToolDefinition]
    executors: Mapping[str, ToolExecutor] = field(default_factory=dict)


@dataclass(frozen=True)
class RegistryReport:
    """Itemised result of comparing definitions with executors."""

    tool_count: int
    tools_without_executors: Tuple[str, ...] = ()
    executors_without_tools: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.tools_without_executors and not self.executors_without_tools

    def describe(self) -> str:
        """Human readable summary of the mismatches."""
        lines = []
        if self.tools_without_executors:
            lines.append(f"Tools without executors: {', '.join(self.tools_without_executors)}")
        if self.executors_without_tools:
            lines.append(f"Executors without tool definitions: {', '.join(self.executors_without_tools)}")
        if not lines:
            return f"All {self.tool_count} tools are registered correctly"
        return "\n".join(lines)


class ToolRegistry:
    """Registry binding tool definitions to their executors.

    The registry keeps the catalog in declaration order and guarantees that
    tool names are unique. It is read-only once constructed, so any number of
    concurrent chat requests may share one instance.

    Example:
        ```python
        registry = ToolRegistry.from_modules(equipment_module, sensor_module)
        registry.validate()
        result = await registry.dispatch("get_all_equipment", {"search": "pump"})
        ```
    """

    def __init__(
        self,
        definitions: Iterable[ToolDefinition],
        executors: Mapping[str, ToolExecutor]
    ) -> None:
        """Initialize the registry.

        Args:
            definitions: Tool definitions to advertise to the model
            executors: Tool name to executor mapping

        Raises:
            ConfigurationError: If two definitions share a name
        """
        tools: Dict[str, ToolDefinition] = {}
        duplicates: List[str] = []
        for definition in definitions:
            if definition.name in tools:
                duplicates.append(definition.name)
            tools[definition.name] = definition

        if duplicates:
            raise ConfigurationError(
                f"Duplicate tool definitions: {', '.join(sorted(set(duplicates)))}"
            )

        self._tools = MappingProxyType(tools)
        self._executors = MappingProxyType(dict(executors))

    @classmethod
    def from_modules(cls, *modules: ToolModule) -> "ToolRegistry":
        """Build a registry from domain tool modules.

        Args:
            *modules: Tool modules to merge, in catalog order

        Returns:
            A registry containing every definition and executor

        Raises:
            ConfigurationError: If an executor name is claimed by two modules
        """
        definitions: List[ToolDefinition] = []
        executors: Dict[str, ToolExecutor] = {}
        owners: Dict[str, str] = {}

        for module in modules:
            definitions.extend(module.definitions)
            for name, executor in module.executors.items():
                if name in executors:
                    raise ConfigurationError(
                        f"Executor for '{name}' registered by both "
                        f"'{owners[name]}' and '{module.name}'"
                    )
                executors[name] = executor
                owners[name] = module.name

        logger.debug("Building tool registry", extra={
            "modules": [module.name for module in modules],
            "num_definitions": len(definitions),
            "num_executors": len(executors)
        })
        return cls(definitions, executors)

    @property
    def catalog(self) -> Tuple[ToolDefinition, ...]:
        """All tool definitions in declaration order."""
        return tuple(self._tools.values())

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._tools.keys())

    def get_definition(self, name: str) -> ToolDefinition:
        """Get a tool definition by name.

        Raises:
            UnknownToolError: If no tool with the given name exists
        """
        if name not in self._tools:
            raise UnknownToolError(name, self.names)
        return self._tools[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tools and name in self._executors

    def __len__(self) -> int:
        return len(self._tools)

    def check(self) -> RegistryReport:
        """Compare declared tool names with registered executor names.

        Returns:
            A report listing tools without executors and executors without tools
        """
        declared = set(self._tools)
        registered = set(self._executors)
        return RegistryReport(
            tool_count=len(declared),
            tools_without_executors=tuple(sorted(declared - registered)),
            executors_without_tools=tuple(sorted(registered - declared))
        )

    def validate(self) -> RegistryReport:
        """Ensure there is exactly one executor for every declared tool.

        Returns:
            The successful report

        Raises:
            ConfigurationError: If the declared and registered names differ
        """
        report = self.check()
        if not report.ok:
            logger.error("Tool registration mismatch", extra={
                "tools_without_executors": list(report.tools_without_executors),
                "executors_without_tools": list(report.executors_without_tools)
            })
            raise ConfigurationError(
                f"Tool registration error:\n{report.describe()}",
                tools_without_executors=report.tools_without_executors,
                executors_without_tools=report.executors_without_tools
            )

        logger.info("Tool registry validated", extra={"num_tools": report.tool_count})
        return report

    async def dispatch(self, name: str, tool_input: Dict[str, Any]) -> Any:
        """Run the executor registered for a tool.

        Args:
            name: Tool name requested by the model
            tool_input: Input produced by the model

        Returns:
            Whatever the executor returns; sync executors are run with
            ``asyncio.to_thread`` so callers can bound them with a timeout

        Raises:
            UnknownToolError: If no executor is registered under the name
            Exception: Anything the executor raises is propagated unchanged
        """
        executor = self._executors.get(name)
        if executor is None:
            raise UnknownToolError(name, sorted(self._executors))

        if inspect.iscoroutinefunction(executor):
            return await executor(name, tool_input)

        # Sync executors run in a worker thread, off the event loop
        result = await asyncio.to_thread(executor, name, tool_input)
        if inspect.isawaitable(result):
            result = await result
        return result
