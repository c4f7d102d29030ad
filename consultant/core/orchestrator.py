"""Chat Orchestrator: the agentic tool-calling loop.

The orchestrator drives one chat request against one provider adapter:

    AWAITING_MODEL --(tool calls)--> EXECUTING_TOOLS --(results)--> AWAITING_MODEL
          |                                                              |
          +--(no tool calls, or iteration cap hit)--> DONE <-------------+

Iterations are strictly sequential because each depends on the previous
provider response; the tool calls requested within one iteration run
concurrently. The loop performs at most ``max_iterations`` tool-executing
rounds, so a request costs at most ``max_iterations + 1`` provider calls.

Provider failures propagate to the caller untouched so it can decide about
fallback. Tool failures never abort the loop: they come back from the
dispatcher as error-flagged results and are replayed to the model, which
gets the chance to recover or apologise.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple

from consultant.core.dispatcher import ToolDispatcher
from consultant.core.errors import IterationCapExceeded, ProviderCallError
from consultant.core.types import ChatResponse, Message, TokenUsage, ToolDefinition

if TYPE_CHECKING:
    from consultant.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
NO_RESPONSE_TEXT = "No response was generated."
TRUNCATED_TEXT = (
    "I could not finish the analysis within the allowed number of steps. "
    "Please narrow the question and try again."
)


class LoopState(str, Enum):
    """States of the agentic loop."""

    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class ChatOrchestrator:
    """Runs the agentic loop for a single chat request.

    An orchestrator holds no conversation state between calls to ``run``;
    every call builds its own transcript.

    Args:
        adapter: The provider adapter chosen for this request
        dispatcher: Dispatcher executing tool calls against the registry
        max_iterations: Maximum number of tool-executing rounds
        turn_timeout: Deadline in seconds for each provider turn
        tool_timeout: Deadline in seconds for each tool call
        strict: Raise IterationCapExceeded instead of returning a truncated
            response when the cap is hit
    """

    def __init__(
        self,
        adapter: "ProviderAdapter",
        dispatcher: ToolDispatcher,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        turn_timeout: Optional[float] = None,
        tool_timeout: Optional[float] = None,
        strict: bool = False
    ) -> None:
        if max_iterations < 0:
            raise ValueError("max_iterations cannot be negative")
        self._adapter = adapter
        self._dispatcher = dispatcher
        self._max_iterations = max_iterations
        self._turn_timeout = turn_timeout
        self._tool_timeout = tool_timeout
        self._strict = strict

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    async def run(
        self,
        messages: Sequence[Message],
        catalog: Optional[Sequence[ToolDefinition]] = None,
        system_prompt: str = ""
    ) -> ChatResponse:
        """Run the loop until the model answers or the cap is hit.

        Args:
            messages: Conversation so far, oldest first, ending with the
                current user turn
            catalog: Tools offered to the model; defaults to the whole registry
            system_prompt: System instructions for the provider

        Returns:
            The final answer with the tools used and accumulated token usage

        Raises:
            ProviderError: If a provider turn fails or times out
            IterationCapExceeded: In strict mode, when the cap is hit
        """
        if not messages:
            raise ValueError("At least one message is required")

        adapter = self._adapter
        if catalog is None:
            catalog = self._dispatcher.registry.catalog

        wire_tools = adapter.to_wire_tools(catalog)
        transcript: Tuple[Any, ...] = tuple(adapter.to_wire_messages(messages))

        iteration = 0
        tools_used: List[str] = []
        usage = TokenUsage()
        start_time = time.time()

        while True:
            self._log_state(LoopState.AWAITING_MODEL, iteration)
            raw_response = await self._send_turn(transcript, wire_tools, system_prompt, iteration)
            usage = usage + adapter.extract_usage(raw_response)
            calls = adapter.extract_tool_calls(raw_response)

            if not calls:
                self._log_state(LoopState.DONE, iteration, start_time=start_time, truncated=False)
                return ChatResponse(
                    final_text=adapter.extract_final_text(raw_response) or NO_RESPONSE_TEXT,
                    tools_used=tools_used,
                    provider_name=adapter.name,
                    token_usage=usage,
                    truncated=False,
                    iterations=iteration
                )

            if iteration >= self._max_iterations:
                self._log_state(LoopState.DONE, iteration, start_time=start_time, truncated=True)
                response = ChatResponse(
                    final_text=adapter.extract_final_text(raw_response) or TRUNCATED_TEXT,
                    tools_used=tools_used,
                    provider_name=adapter.name,
                    token_usage=usage,
                    truncated=True,
                    iterations=iteration
                )
                if self._strict:
                    raise IterationCapExceeded(self._max_iterations, response)
                return response

            self._log_state(LoopState.EXECUTING_TOOLS, iteration, num_calls=len(calls))
            # Recorded in the model's order, not completion order
            tools_used.extend(call.name for call in calls)
            results = await self._dispatcher.execute_all(calls, timeout=self._tool_timeout)

            transcript = (
                transcript
                + (adapter.format_assistant_turn(raw_response),)
                + tuple(adapter.format_tool_results_for_replay(results))
            )
            iteration += 1

    async def _send_turn(
        self,
        transcript: Tuple[Any, ...],
        wire_tools: Sequence[Any],
        system_prompt: str,
        iteration: int
    ) -> Any:
        turn_start = time.time()
        try:
            raw_response = await asyncio.wait_for(
                self._adapter.send_turn(transcript, wire_tools, system_prompt),
                timeout=self._turn_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error("Provider turn timed out", extra={
                "provider": self._adapter.name,
                "iteration": iteration,
                "timeout": self._turn_timeout
            })
            raise ProviderCallError(
                f"Provider turn timed out after {self._turn_timeout}s",
                provider_name=self._adapter.name
            ) from e

        logger.debug("Provider turn completed", extra={
            "provider": self._adapter.name,
            "iteration": iteration,
            "transcript_length": len(transcript),
            "duration_ms": int((time.time() - turn_start) * 1000)
        })
        return raw_response

    def _log_state(
        self,
        state: LoopState,
        iteration: int,
        start_time: Optional[float] = None,
        **details: Any
    ) -> None:
        extra = {"state": state.value, "provider": self._adapter.name, "iteration": iteration, **details}
        if start_time is not None:
            extra["duration_ms"] = int((time.time() - start_time) * 1000)
        if state is LoopState.DONE and details.get("truncated"):
            logger.warning("Agent loop hit the iteration cap", extra=extra)
        else:
            logger.debug("Agent loop state", extra=extra)
