"""Provider adapters: one contract, remote and offline implementations."""

from contextpilot.providers.base import CompletionOptions
from contextpilot.providers.base import PromptAction
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.base import ProviderAdapter
from contextpilot.providers.base import ProviderResponse
from contextpilot.providers.base import Suggestion
from contextpilot.providers.factory import build_provider
from contextpilot.providers.factory import build_provider_chain
from contextpilot.providers.factory import load_environment
from contextpilot.providers.factory import provider_configs_from_env
from contextpilot.providers.local import LocalAdapter
from contextpilot.providers.remote import OllamaAdapter
from contextpilot.providers.remote import OpenAICompatibleAdapter
from contextpilot.providers.remote import OpenRouterAdapter
from contextpilot.providers.remote import TogetherAdapter

__all__ = [
    "CompletionOptions",
    "LocalAdapter",
    "OllamaAdapter",
    "OpenAICompatibleAdapter",
    "OpenRouterAdapter",
    "PromptAction",
    "PromptPayload",
    "ProviderAdapter",
    "ProviderResponse",
    "Suggestion",
    "TogetherAdapter",
    "build_provider",
    "build_provider_chain",
    "load_environment",
    "provider_configs_from_env",
]
