"""Engine domain: prompt building, dispatch, caching and response shaping."""

from contextpilot.engine.cache import action_fingerprint
from contextpilot.engine.cache import completion_fingerprint
from contextpilot.engine.cache import CompletionCache
from contextpilot.engine.cache import Fingerprint
from contextpilot.engine.dispatcher import FallbackDispatcher
from contextpilot.engine.parsing import determine_main_file
from contextpilot.engine.parsing import parse_diagnosis
from contextpilot.engine.parsing import parse_generation
from contextpilot.engine.parsing import parse_refactor
from contextpilot.engine.parsing import parse_review
from contextpilot.engine.parsing import restore_includes
from contextpilot.engine.prompt_builder import PromptContextBuilder
from contextpilot.engine.prompt_builder import SYSTEM_PROMPTS
from contextpilot.engine.schemas import CacheEntry
from contextpilot.engine.schemas import CacheStats
from contextpilot.engine.schemas import DispatchResult
from contextpilot.engine.supersession import RequestSupersession

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CompletionCache",
    "DispatchResult",
    "FallbackDispatcher",
    "Fingerprint",
    "PromptContextBuilder",
    "RequestSupersession",
    "SYSTEM_PROMPTS",
    "action_fingerprint",
    "completion_fingerprint",
    "determine_main_file",
    "parse_diagnosis",
    "parse_generation",
    "parse_refactor",
    "parse_review",
    "restore_includes",
]
