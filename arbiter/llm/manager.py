"""Proposer discovery from configuration."""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from arbiter.config import get_settings
from arbiter.llm.base import BaseProposer
from arbiter.llm.claude import ClaudeProposer
from arbiter.llm.gemini import GeminiProposer
from arbiter.llm.openai import OpenAIProposer

logger = logging.getLogger(__name__)

PROPOSER_ALIASES = {
    "gpt4": "openai",
    "gpt5": "openai",
    "gpt": "openai",
    "anthropic": "claude",
    "google": "gemini",
}


class ProposerRegistry:
    """Registry mapping configured proposer names to vendor adapters."""

    def __init__(self):
        self._factories: Dict[str, Callable[[], BaseProposer]] = {
            "claude": ClaudeProposer,
            "openai": OpenAIProposer,
            "gemini": GeminiProposer,
        }

    @staticmethod
    def canonical_name(name: str) -> str:
        name = name.strip().lower()
        return PROPOSER_ALIASES.get(name, name)

    def register(self, name: str, factory: Callable[[], BaseProposer]) -> None:
        self._factories[self.canonical_name(name)] = factory

    def available(self) -> List[str]:
        return list(self._factories.keys())

    def create(self, name: str) -> BaseProposer:
        """Create a proposer by name.

        Raises:
            ValueError: If no adapter is registered under the name
        """
        canonical = self.canonical_name(name)
        if canonical not in self._factories:
            raise ValueError(f"Unknown proposer '{name}'")
        return self._factories[canonical]()

    def build(self, enabled: Iterable[str]) -> List[BaseProposer]:
        """Instantiate every enabled proposer, skipping ones that fail to initialize.

        Args:
            enabled: Proposer names from configuration

        Returns:
            Proposers in configuration order, without duplicates

        Raises:
            Exception: If no proposer could be initialized
        """
        proposers = []
        seen = set()

        for name in enabled:
            canonical = self.canonical_name(name)
            if canonical in seen:
                continue
            seen.add(canonical)
            try:
                proposers.append(self.create(canonical))
            except Exception as e:
                logger.warning(f"Failed to initialize {name} proposer: {e}")

        if not proposers:
            raise Exception("No proposers available")

        logger.info(f"Enabled proposers: {', '.join(p.agent_id for p in proposers)}")
        return proposers


def build_proposers(
    enabled: Optional[Iterable[str]] = None,
    registry: Optional[ProposerRegistry] = None,
) -> List[BaseProposer]:
    """Build proposers from configuration.

    Args:
        enabled: Proposer names. If None, uses config value.
        registry: Registry to use. If None, uses the built-in adapters.

    Returns:
        Initialized proposers
    """
    if enabled is None:
        enabled = get_settings().enabled_proposers
    registry = registry or ProposerRegistry()
    return registry.build(enabled)
