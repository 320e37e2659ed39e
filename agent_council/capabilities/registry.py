"""Capability registry: qualified names, model-facing tool schema, dispatch."""

import logging
from collections.abc import Iterable
from typing import Any

from agent_council.capabilities.base import (
    Capability,
    CapabilityProvider,
    NotFound,
    PromptTemplate,
    Resource,
    UnknownCapability,
    UnknownProvider,
)

logger = logging.getLogger(__name__)

SEPARATOR = "_"


def qualify(provider_id: str, capability_name: str) -> str:
    """Build the wire name `<providerId>_<capabilityName>`."""
    if SEPARATOR in provider_id:
        raise ValueError(f"Provider id must not contain '{SEPARATOR}': {provider_id}")
    return f"{provider_id}{SEPARATOR}{capability_name}"


def parse_qualified_name(qualified_name: str) -> tuple[str, str]:
    """Split a wire name into (provider_id, capability_name).

    The provider id is the first segment; the rest is rejoined so capability
    names containing underscores survive the round trip.
    """
    provider_id, _, capability_name = qualified_name.partition(SEPARATOR)
    return provider_id, capability_name


class CapabilityRegistry:
    """Aggregates providers. Holds references only; providers may be shared."""

    def __init__(self, providers: Iterable[CapabilityProvider] = ()) -> None:
        self._providers: list[CapabilityProvider] = []
        for provider in providers:
            self.register(provider)

    def register(self, provider: CapabilityProvider) -> None:
        if self.get_provider(provider.provider_id) is not None:
            raise ValueError(f"Provider already registered: {provider.provider_id}")
        self._providers.append(provider)
        logger.debug("Registered provider %s (%d capabilities)", provider.provider_id, len(provider.capabilities))

    @property
    def providers(self) -> tuple[CapabilityProvider, ...]:
        return tuple(self._providers)

    def get_provider(self, provider_id: str) -> CapabilityProvider | None:
        return next((p for p in self._providers if p.provider_id == provider_id), None)

    def resolve(self, qualified_name: str) -> tuple[CapabilityProvider, Capability]:
        provider_id, capability_name = parse_qualified_name(qualified_name)
        provider = self.get_provider(provider_id)
        if provider is None:
            raise UnknownProvider(provider_id)
        capability = provider.get_capability(capability_name)
        if capability is None:
            raise UnknownCapability(provider_id, capability_name)
        return provider, capability

    def list_capabilities(self) -> list[dict[str, Any]]:
        """Every capability in the function-calling tool format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": qualify(provider.provider_id, capability.name),
                    "description": f"[{provider.name}] {capability.description}",
                    "parameters": capability.schema(),
                },
            }
            for provider in self._providers
            for capability in provider.capabilities
        ]

    def execute(self, qualified_name: str, args: dict[str, Any]) -> Any:
        provider, capability = self.resolve(qualified_name)
        logger.debug("Executing %s with %s", qualified_name, args)
        return provider.execute(capability.name, args)

    def list_resources(self) -> list[tuple[str, Resource]]:
        return [(p.provider_id, r) for p in self._providers for r in p.resources]

    def list_prompts(self) -> list[tuple[str, PromptTemplate]]:
        return [(p.provider_id, t) for p in self._providers for t in p.prompts]

    def read_resource(self, uri: str) -> Any:
        for provider in self._providers:
            if any(r.uri == uri for r in provider.resources):
                return provider.read_resource(uri)
        raise NotFound(f"Resource {uri}")

    def render_prompt(self, provider_id: str, name: str, args: dict[str, Any]) -> str:
        provider = self.get_provider(provider_id)
        if provider is None:
            raise UnknownProvider(provider_id)
        return provider.render_prompt(name, args)

    def describe(self) -> str:
        """Human-readable capability listing for system prompts."""
        lines: list[str] = []
        for index, provider in enumerate(self._providers, start=1):
            lines.append(f"{index}. **{provider.name}** - {provider.description}")
            for capability in provider.capabilities:
                lines.append(f"   - {qualify(provider.provider_id, capability.name)}: {capability.description}")
        return "\n".join(lines)
