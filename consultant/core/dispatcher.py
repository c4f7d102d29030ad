"""Tool Dispatcher for the consultant chat core.

This module runs tool calls requested by the model against the tool registry.
Every invocation is isolated: executor failures, timeouts and unknown tool
names are converted into error-flagged results that are fed back to the
model, so one bad tool call never aborts the surrounding turn.
"""

import asyncio
import logging
import time
import uuid
from typing import List, Optional, Sequence

from consultant.core.errors import ToolExecutionError, UnknownToolError
from consultant.core.registry import ToolRegistry
from consultant.core.types import ToolCallRequest, ToolCallResult
from consultant.utils.log_utils import redact_sensitive_data, sanitize_log_message

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Executes tool calls with failure isolation and timing metadata.

    Args:
        registry: The validated tool registry
        default_timeout: Deadline in seconds applied when a call does not
            supply its own; None disables the deadline
    """

    def __init__(self, registry: ToolRegistry, default_timeout: Optional[float] = None) -> None:
        self._registry = registry
        self._default_timeout = default_timeout

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute(self, call: ToolCallRequest, timeout: Optional[float] = None) -> ToolCallResult:
        """Execute a single tool call.

        Args:
            call: The normalised tool call requested by the model
            timeout: Optional deadline in seconds for this call

        Returns:
            A result carrying the id of ``call``; ``is_error`` is set when the
            tool is unknown, its input is invalid, it raised or it timed out
        """
        correlation_id = str(uuid.uuid4())
        timeout = timeout if timeout is not None else self._default_timeout
        start_time = time.monotonic()

        logger.info("Tool called", extra={
            "correlation_id": correlation_id,
            "tool_name": call.name,
            "tool_call_id": call.id,
            "tool_input": redact_sensitive_data(call.input)
        })

        try:
            self._validate_input(call, correlation_id)
            payload = await asyncio.wait_for(
                self._registry.dispatch(call.name, call.input),
                timeout=timeout
            )
        except UnknownToolError as e:
            return self._failed(call, correlation_id, start_time, str(e), {
                "available_tools": e.available
            })
        except ToolExecutionError as e:
            return self._failed(call, correlation_id, start_time, str(e))
        except asyncio.TimeoutError:
            return self._failed(
                call, correlation_id, start_time,
                f"Tool '{call.name}' timed out after {timeout}s"
            )
        except Exception as e:
            return self._failed(
                call, correlation_id, start_time,
                f"Execution error: {e}", exc_info=True
            )

        duration_ms = self._elapsed_ms(start_time)
        logger.info("Tool completed", extra={
            "correlation_id": correlation_id,
            "tool_name": call.name,
            "duration_ms": duration_ms,
            "success": True
        })
        return ToolCallResult.success(
            call, payload,
            correlation_id=correlation_id,
            duration_ms=duration_ms
        )

    async def execute_all(
        self,
        calls: Sequence[ToolCallRequest],
        timeout: Optional[float] = None
    ) -> List[ToolCallResult]:
        """Execute the tool calls of one model turn concurrently.

        Args:
            calls: Tool calls in the order the model returned them
            timeout: Optional per-call deadline in seconds

        Returns:
            Results in the same order as ``calls``, regardless of which
            call finished first
        """
        if not calls:
            return []
        return list(await asyncio.gather(*(self.execute(call, timeout) for call in calls)))

    def _validate_input(self, call: ToolCallRequest, correlation_id: str) -> None:
        """Check that every required parameter is present.

        Unknown tools are left to the registry so the error names them once.

        Raises:
            ToolExecutionError: If required parameters are missing
        """
        if call.name not in self._registry:
            return
        definition = self._registry.get_definition(call.name)
        missing = [
            name for name in definition.input_schema.required
            if name not in call.input
        ]
        if missing:
            raise ToolExecutionError(
                f"Missing required parameter(s) {', '.join(repr(m) for m in missing)} "
                f"for tool '{call.name}'",
                tool_name=call.name,
                correlation_id=correlation_id
            )

    def _failed(
        self,
        call: ToolCallRequest,
        correlation_id: str,
        start_time: float,
        message: str,
        details: Optional[dict] = None,
        exc_info: bool = False
    ) -> ToolCallResult:
        duration_ms = self._elapsed_ms(start_time)
        logger.error("Tool failed", extra={
            "correlation_id": correlation_id,
            "tool_name": call.name,
            "duration_ms": duration_ms,
            "success": False,
            "error": sanitize_log_message(message),
            **(details or {})
        }, exc_info=exc_info)
        return ToolCallResult.failure(
            call, message,
            correlation_id=correlation_id,
            duration_ms=duration_ms
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)
