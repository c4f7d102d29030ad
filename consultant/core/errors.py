"""Error classes for the consultant chat core."""

from typing import Any, List, Optional, Sequence


class ConsultantError(Exception):
    """Base exception for all consultant errors."""
    pass


class ConfigurationError(ConsultantError):
    """Raised when the service is misconfigured and must not start.

    Covers registry drift between tool definitions and executors as well as
    missing credentials or unknown provider names.
    """

    def __init__(
        self,
        message: str,
        *,
        tools_without_executors: Sequence[str] = (),
        executors_without_tools: Sequence[str] = ()
    ):
        self.tools_without_executors = list(tools_without_executors)
        self.executors_without_tools = list(executors_without_tools)
        super().__init__(message)


class ProviderError(ConsultantError):
    """Base exception for all provider-related errors."""

    def __init__(self, message: str, *, provider_name: Optional[str] = None):
        self.provider_name = provider_name
        super().__init__(message)

    def __str__(self) -> str:
        if self.provider_name:
            return f"[{self.provider_name}] {super().__str__()}"
        return super().__str__()


class NoProviderAvailable(ProviderError):
    """Raised when the primary provider and every fallback failed the probe."""

    def __init__(self, tried: Sequence[str]):
        self.tried = list(tried)
        tried_text = ", ".join(self.tried) if self.tried else "none configured"
        super().__init__(f"No AI providers are available. Tried: {tried_text}")


class ProviderCallError(ProviderError):
    """Raised when a provider turn fails (network, server, timeout)."""

    def __init__(
        self,
        message: str,
        *,
        provider_name: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        self.status_code = status_code
        super().__init__(message, provider_name=provider_name)


class RateLimitError(ProviderCallError):
    """Raised when the provider rejects a turn because of rate limiting."""
    pass


class AuthenticationError(ProviderCallError):
    """Raised when the provider rejects the configured credentials."""
    pass


class UnknownToolError(ConsultantError):
    """Raised by the registry when asked to dispatch an unregistered tool."""

    def __init__(self, tool_name: str, available: Sequence[str] = ()):
        self.tool_name = tool_name
        self.available: List[str] = list(available)
        super().__init__(f"Unknown tool: {tool_name}")


class ToolExecutionError(ConsultantError):
    """Raised when a tool cannot be executed with the given input."""

    def __init__(self, message: str, *, tool_name: str, correlation_id: Optional[str] = None):
        self.tool_name = tool_name
        self.correlation_id = correlation_id
        super().__init__(message)


class IterationCapExceeded(ConsultantError):
    """Raised in strict mode when the agentic loop hits its iteration cap.

    Attributes:
        response: The best-effort ChatResponse built when the cap was hit
    """

    def __init__(self, max_iterations: int, response: Any = None):
        self.max_iterations = max_iterations
        self.response = response
        super().__init__(
            f"Agent exceeded the maximum number of analysis steps ({max_iterations})"
        )
