"""Inbound chat operation.

``ChatService`` is the single entry point a transport layer (HTTP route, CLI,
queue consumer) calls to answer a chat request. It wires the conversation
assembler, provider selector, tool dispatcher and orchestrator together for
each request.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from consultant.config import Settings
from consultant.conversation.assembler import ConversationAssembler
from consultant.core.dispatcher import ToolDispatcher
from consultant.core.errors import ConfigurationError
from consultant.core.orchestrator import ChatOrchestrator
from consultant.core.registry import RegistryReport, ToolRegistry
from consultant.core.types import ChatResponse, Message, ToolDefinition
from consultant.providers.selector import ProviderSelector

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are an AI consultant for industrial equipment maintenance.
Your job is to help staff work with the equipment on site.

You can:
1. Search equipment by name, type or status
2. Show equipment details such as specifications, commissioning date and last service
3. Read the maintenance log of a piece of equipment
4. Analyse sensor readings and point out unusual consumption

Always use the tools to look facts up instead of guessing. When a tool
returns an error, explain the problem to the user in plain words.
If the user attached a photo of a component, describe what you see first,
then ask clarifying questions before suggesting a fix."""


class DomainContext(BaseModel):
    """The object the user is currently working with, e.g. a scanned machine.

    Attributes:
        id: Identifier the tools accept
        name: Display name
        kind: Object type, e.g. ``"pump"``
        details: Extra labelled facts rendered into the prompt
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: str
    details: Dict[str, str] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    """One inbound chat request.

    Attributes:
        history: Prior messages supplied by the caller, oldest first; when
            empty the history is loaded from the conversation store
        new_messages: The new turn; must not be empty
        tool_catalog: Tools to offer, as definitions or registered tool
            names; None offers every registered tool
        user_id: Owner of the conversation, used for history
        domain_context: Optional object the conversation is about
    """

    history: List[Message] = Field(default_factory=list)
    new_messages: List[Message] = Field(min_length=1)
    tool_catalog: Optional[List[Union[ToolDefinition, str]]] = None
    user_id: Optional[str] = None
    domain_context: Optional[DomainContext] = None


def render_system_prompt(base_prompt: str, context: Optional[DomainContext] = None) -> str:
    """Append the domain context section to a system prompt."""
    if context is None:
        return base_prompt

    lines = [
        "",
        "",
        "CURRENT EQUIPMENT CONTEXT:",
        "The user scanned the QR code of this equipment and is working with it:",
        f"- ID: {context.id}",
        f"- Name: {context.name}",
        f"- Type: {context.kind}",
    ]
    lines.extend(f"- {label}: {value}" for label, value in context.details.items())
    lines.extend([
        "",
        f'When the user asks about equipment without naming it, use equipment_id="{context.id}".',
        "Do not ask for the equipment ID when the context is already set.",
    ])
    return base_prompt + "\n".join(lines)


class ChatService:
    """Answers chat requests with the agentic tool-calling loop.

    Args:
        registry: Tool registry shared by every request
        selector: Provider selector creating an adapter per request
        assembler: Conversation assembler; defaults to one without a store
        settings: Loop limits and timeouts; loaded from the environment when
            omitted
        system_prompt: Base system prompt for every request
        strict: Propagate IterationCapExceeded instead of returning a
            truncated answer
    """

    def __init__(
        self,
        registry: ToolRegistry,
        selector: ProviderSelector,
        assembler: Optional[ConversationAssembler] = None,
        settings: Optional[Settings] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        strict: bool = False
    ) -> None:
        self._settings = settings or Settings()
        self._registry = registry
        self._selector = selector
        self._assembler = assembler or ConversationAssembler(
            history_limit=self._settings.history_limit
        )
        self._system_prompt = system_prompt
        self._strict = strict
        self._report: Optional[RegistryReport] = None

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def assembler(self) -> ConversationAssembler:
        return self._assembler

    def validate_registry(self) -> RegistryReport:
        """Check the tool registry and remember the outcome.

        Returns:
            The itemised report; mismatches are logged, not raised
        """
        self._report = self._registry.check()
        if self._report.ok:
            logger.info(self._report.describe())
        else:
            logger.error("Tool registration error", extra={
                "tools_without_executors": list(self._report.tools_without_executors),
                "executors_without_tools": list(self._report.executors_without_tools)
            })
        return self._report

    def startup(self) -> RegistryReport:
        """Validate the registry, refusing to start on any mismatch.

        Raises:
            ConfigurationError: If definitions and executors differ
        """
        try:
            self._report = self._registry.validate()
        except ConfigurationError:
            self._report = self._registry.check()
            raise
        return self._report

    async def handle(self, request: ChatRequest) -> ChatResponse:
        """Answer one chat request.

        Args:
            request: The inbound request

        Returns:
            The final answer with the tools used

        Raises:
            ConfigurationError: If the registry failed validation
            ValueError: If the request names tools that are not registered
            ProviderError: If no provider is available or a turn fails
            IterationCapExceeded: In strict mode, when the cap is hit
        """
        report = self._report or self.validate_registry()
        if not report.ok:
            raise ConfigurationError(
                f"Tool registration error:\n{report.describe()}",
                tools_without_executors=report.tools_without_executors,
                executors_without_tools=report.executors_without_tools
            )

        start_time = time.time()
        catalog = self._resolve_catalog(request.tool_catalog)

        if request.history:
            history: Tuple[Message, ...] = tuple(request.history)
        else:
            history = await self._assembler.load_history(request.user_id)
        messages = self._assembler.assemble(history, request.new_messages)

        adapter = await self._selector.create()
        dispatcher = ToolDispatcher(self._registry, default_timeout=self._settings.tool_timeout)
        orchestrator = ChatOrchestrator(
            adapter,
            dispatcher,
            max_iterations=self._settings.max_agent_iterations,
            turn_timeout=self._settings.provider_timeout,
            tool_timeout=self._settings.tool_timeout,
            strict=self._strict
        )

        logger.info("Chat request started", extra={
            "user_id": request.user_id,
            "provider": adapter.name,
            "num_messages": len(messages),
            "num_tools": len(catalog)
        })

        response = await orchestrator.run(
            messages,
            catalog,
            render_system_prompt(self._system_prompt, request.domain_context)
        )

        self._assembler.schedule_persist(request.user_id, request.new_messages, response)

        logger.info("Chat request completed", extra={
            "user_id": request.user_id,
            "provider": response.provider_name,
            "tools_used": response.tools_used,
            "iterations": response.iterations,
            "truncated": response.truncated,
            "total_tokens": response.token_usage.total,
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return response

    def _resolve_catalog(
        self,
        entries: Optional[Sequence[Union[ToolDefinition, str]]]
    ) -> Tuple[ToolDefinition, ...]:
        if entries is None:
            return self._registry.catalog

        names = [entry.name if isinstance(entry, ToolDefinition) else entry for entry in entries]
        unknown = [name for name in names if name not in self._registry]
        if unknown:
            raise ValueError(f"Unknown tools in catalog: {', '.join(unknown)}")
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate tools in catalog: {', '.join(duplicates)}")

        return tuple(
            entry if isinstance(entry, ToolDefinition) else self._registry.get_definition(entry)
            for entry in entries
        )
