"""Provider adapters for the consultant chat service.

Each adapter translates between the internal conversation model and one
vendor's wire protocol:
- Claude through the Anthropic Messages API
- OpenAI and DeepSeek through the Chat Completions API
- Gemini through the google-genai SDK

Adapters are imported lazily by the selector, so only the SDKs of the
configured providers need to be importable.
"""

from .base import ProviderAdapter
from .selector import ProviderSelector, default_factories

__all__ = [
    "ProviderAdapter",
    "ProviderSelector",
    "default_factories",
]
