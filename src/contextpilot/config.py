"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem.
Environment credential resolution lives in
``contextpilot.providers.factory``; everything here is plain defaults
that can be overridden at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderConfig:
    """Settings for one entry of the provider fallback chain."""

    name: str
    kind: str = "local"
    model: str = ""
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.1
    max_tokens: int = 2048
    timeout_seconds: float = 30.0
    enabled: bool = True


@dataclass(frozen=True)
class MemoryConfig:
    """On-disk layout and retention bounds of the project memory."""

    directory_name: str = ".contextpilot"
    memory_file: str = "memory.json"
    index_file: str = "index.json"
    history_limit: int = 1000
    interaction_limit: int = 500
    # Slice sizes handed to the prompt builder
    recent_history: int = 10
    recent_interactions: int = 5


@dataclass(frozen=True)
class PromptConfig:
    """Budget and window for prompt context assembly."""

    window_lines: int = 10
    max_chars: int = 6000
    max_signatures: int = 40
    max_history_chars: int = 240


@dataclass(frozen=True)
class CacheConfig:
    """Response cache bounds."""

    completion_ttl_seconds: float = 30.0
    action_ttl_seconds: float = 300.0
    max_entries: int = 256
    strict_fingerprint: bool = False


@dataclass(frozen=True)
class DispatchConfig:
    """Priority order of provider kinds in the fallback chain."""

    order: tuple[str, ...] = ("openrouter", "together", "ollama", "local")
