"""Consultant: an agentic tool-calling core for LLM-backed domain assistants.

This package answers chat requests by running a bounded loop against an LLM
provider (Claude, OpenAI, DeepSeek or Gemini), executing the tools the model
asks for and feeding their results back until the model produces an answer.

Key Components:
    - Core Types: Message, ToolDefinition, ToolCallRequest, ToolCallResult
    - ToolRegistry: Binds tool definitions to their executors
    - ToolDispatcher: Runs tool calls concurrently with failure isolation
    - ChatOrchestrator: The agentic loop over one provider adapter
    - ProviderSelector: Picks an available provider with fallback
    - ChatService: The inbound chat operation tying it all together

Example:
    ```python
    from consultant import ChatRequest, ChatService, Message, ProviderSelector, Settings, ToolRegistry

    settings = Settings()
    registry = ToolRegistry.from_modules(equipment_module)
    service = ChatService(registry, ProviderSelector(settings), settings=settings)
    service.startup()

    response = await service.handle(ChatRequest(new_messages=[Message.user("List all pumps")]))
    print(response.final_text, response.tools_used)
    ```
"""

from consultant.config import ProviderConfig, Settings
from consultant.conversation import (
    ChatRequest,
    ChatService,
    ConversationAssembler,
    DomainContext,
    InMemoryConversationStore,
)
from consultant.core import (
    ChatOrchestrator,
    ChatResponse,
    ImageBlock,
    Message,
    TextBlock,
    TokenUsage,
    ToolCallRequest,
    ToolCallResult,
    ToolDefinition,
    ToolDispatcher,
    ToolModule,
    ToolRegistry,
)
from consultant.providers import ProviderAdapter, ProviderSelector

__all__ = [
    "ChatOrchestrator",
    "ChatRequest",
    "ChatResponse",
    "ChatService",
    "ConversationAssembler",
    "DomainContext",
    "ImageBlock",
    "InMemoryConversationStore",
    "Message",
    "ProviderAdapter",
    "ProviderConfig",
    "ProviderSelector",
    "Settings",
    "TextBlock",
    "TokenUsage",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolModule",
    "ToolRegistry",
]

__version__ = "0.1.0"
