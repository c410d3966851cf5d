"""Build the provider fallback chain from configuration and credentials."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv

from contextpilot.config import DispatchConfig
from contextpilot.config import ProviderConfig
from contextpilot.providers.base import ProviderAdapter
from contextpilot.providers.local import LocalAdapter
from contextpilot.providers.remote import OllamaAdapter
from contextpilot.providers.remote import OpenAICompatibleAdapter
from contextpilot.providers.remote import OpenRouterAdapter
from contextpilot.providers.remote import TogetherAdapter

logger = logging.getLogger(__name__)

SUPPORTED_KINDS = ("openrouter", "together", "ollama", "openai", "local")

_TRUTHY = {"1", "true", "yes", "on"}


def load_environment(env_file: str | os.PathLike[str] | None = None) -> None:
    """Load a ``.env`` file into the process environment.

    Variables already set in the environment stay authoritative.
    """
    if env_file is None:
        load_dotenv(override=False)
    else:
        load_dotenv(dotenv_path=Path(env_file), override=False)


def provider_configs_from_env(
    env: Mapping[str, str] | None = None,
) -> list[ProviderConfig]:
    """Resolve provider settings from environment variables.

    Remote providers that need a key are only listed when the key is
    present. The local provider is always listed.
    """
    env = os.environ if env is None else env
    configs: list[ProviderConfig] = []

    if env.get("OPENROUTER_API_KEY"):
        configs.append(
            ProviderConfig(
                name="openrouter",
                kind="openrouter",
                model=env.get("OPENROUTER_MODEL", OpenRouterAdapter.default_model),
                api_key=env["OPENROUTER_API_KEY"],
                base_url=env.get("OPENROUTER_BASE_URL"),
            )
        )
    if env.get("TOGETHER_API_KEY"):
        configs.append(
            ProviderConfig(
                name="together",
                kind="together",
                model=env.get("TOGETHER_MODEL", TogetherAdapter.default_model),
                api_key=env["TOGETHER_API_KEY"],
                base_url=env.get("TOGETHER_BASE_URL"),
            )
        )
    if env.get("CONTEXTPILOT_DISABLE_OLLAMA", "").strip().lower() not in _TRUTHY:
        configs.append(
            ProviderConfig(
                name="ollama",
                kind="ollama",
                model=env.get("OLLAMA_MODEL", OllamaAdapter.default_model),
                base_url=env.get("OLLAMA_HOST"),
                timeout_seconds=float(env.get("OLLAMA_TIMEOUT", "30")),
            )
        )
    configs.append(ProviderConfig(name="local", kind="local"))
    return configs


def build_provider(config: ProviderConfig) -> ProviderAdapter:
    """Create one concrete adapter from ``ProviderConfig``."""
    kind = config.kind.strip().lower()
    if kind in ("openrouter", "together", "openai") and not config.api_key:
        raise ValueError(f"api_key is required when kind='{kind}'")
    if kind == "openrouter":
        return OpenRouterAdapter(
            name=config.name,
            api_key=config.api_key,
            model=config.model or None,
            base_url=config.base_url,
        )
    if kind == "together":
        return TogetherAdapter(
            name=config.name,
            api_key=config.api_key,
            model=config.model or None,
            base_url=config.base_url,
        )
    if kind == "openai":
        return OpenAICompatibleAdapter(
            name=config.name,
            api_key=config.api_key,
            model=config.model or None,
            base_url=config.base_url,
        )
    if kind == "ollama":
        return OllamaAdapter(
            name=config.name,
            model=config.model or None,
            base_url=config.base_url,
        )
    if kind == "local":
        return LocalAdapter(name=config.name)
    raise ValueError(
        f"Unsupported provider kind '{config.kind}'. "
        f"Supported kinds: {', '.join(SUPPORTED_KINDS)}."
    )


def build_provider_chain(
    configs: list[ProviderConfig],
    dispatch_config: DispatchConfig | None = None,
) -> list[tuple[ProviderAdapter, ProviderConfig]]:
    """Order enabled providers by priority and guarantee a local tail.

    Kinds missing from ``DispatchConfig.order`` keep their relative order
    after the listed ones. A ``local`` entry is appended when absent and
    always ends the chain.
    """
    order = (dispatch_config or DispatchConfig()).order
    enabled = [c for c in configs if c.enabled]

    def _rank(indexed: tuple[int, ProviderConfig]) -> tuple[int, int]:
        position, cfg = indexed
        kind = cfg.kind.strip().lower()
        if kind == "local":
            return (len(order) + 1, position)
        return (order.index(kind) if kind in order else len(order), position)

    ranked = [cfg for _, cfg in sorted(enumerate(enabled), key=_rank)]
    if not any(c.kind.strip().lower() == "local" for c in ranked):
        ranked.append(ProviderConfig(name="local", kind="local"))

    chain = [(build_provider(cfg), cfg) for cfg in ranked]
    logger.info("provider chain: %s", " -> ".join(cfg.name for cfg in ranked))
    return chain
