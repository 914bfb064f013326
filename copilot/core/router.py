"""
Provider routing.

The router resolves which registered provider should serve a requested
capability, optionally for a specific model. Selection walks an ordered
rule table: explicit rules added through `add_rule` (typically from the
`routing` config section) come first, followed by the capabilities each
provider declares, in registration order.

A rule scoped to the requested model always beats a model-unscoped rule
for the same capability, so a model override such as
`(text-to-image, dall-e-3) -> openai` wins over the default image
provider.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from copilot.models.base import BaseProvider, ProviderCapability, ProviderRegistry, type_key
from copilot.types import Capability, ProviderType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutingRule:
    provider_type: str
    target: ProviderCapability

    @property
    def capability(self) -> Capability:
        return self.target.capability

    @property
    def scoped(self) -> bool:
        return self.target.scoped


class ProviderRouter:
    """
    ProviderRouter maps (capability, model) requests to registered
    providers. It performs no I/O; invoking the selected provider is up
    to the caller.
    """

    def __init__(self, registry: Optional[ProviderRegistry] = None) -> None:
        self.registry = registry or ProviderRegistry()
        self._explicit: Tuple[RoutingRule, ...] = ()
        self._rules: Tuple[RoutingRule, ...] = ()
        self._lock = threading.Lock()
        self._rebuild()

    def _rebuild(self) -> None:
        declared = [
            RoutingRule(name, cap)
            for name, provider in self.registry.items()
            for cap in provider.capabilities
        ]
        self._rules = self._explicit + tuple(declared)

    def register_provider(self, provider: BaseProvider) -> None:
        """Register or replace the provider for `provider.type`."""
        with self._lock:
            self.registry.register(provider)
            self._rebuild()
        logger.debug(
            "Registered provider %s with capabilities %s",
            provider.type_name,
            [(c.capability.value, c.models) for c in provider.capabilities],
        )

    def add_rule(
        self,
        capability: Union[Capability, str],
        provider_type: Union[ProviderType, str],
        models: Tuple[str, ...] = (),
    ) -> None:
        """Add an explicit rule, consulted before every provider-declared rule."""
        rule = RoutingRule(type_key(provider_type), ProviderCapability(Capability(capability), tuple(models)))
        with self._lock:
            self._explicit = self._explicit + (rule,)
            self._rebuild()

    @property
    def rules(self) -> List[RoutingRule]:
        return list(self._rules)

    def _first_match(
        self, capability: Capability, model: Optional[str], scoped: bool
    ) -> Optional[BaseProvider]:
        for rule in self._rules:
            if rule.capability != capability or rule.scoped != scoped:
                continue
            if scoped and not rule.target.matches_model(model):
                continue
            provider = self.registry.get(rule.provider_type)
            if provider is not None:
                return provider
        return None

    def get_provider_by_capability(
        self,
        capability: Union[Capability, str],
        model: Optional[str] = None,
    ) -> Optional[BaseProvider]:
        """
        Select a provider for a capability.

        Returns None when nothing matches; the caller decides whether to
        fall back or fail.
        """
        try:
            capability = Capability(capability)
        except ValueError:
            logger.warning("Unknown capability requested: %r", capability)
            return None

        provider = None
        if model is not None:
            provider = self._first_match(capability, model, scoped=True)
        if provider is None:
            provider = self._first_match(capability, model, scoped=False)

        if provider is None:
            logger.warning("No provider for capability %s (model=%s)", capability.value, model)
        else:
            logger.debug(
                "Routed %s (model=%s) to provider %s", capability.value, model, provider.type_name
            )
        return provider

    def list_providers(self, capability: Optional[Union[Capability, str]] = None) -> List[BaseProvider]:
        providers = [p for _, p in self.registry.items()]
        if capability is None:
            return providers
        capability = Capability(capability)
        return [p for p in providers if any(c.capability == capability for c in p.capabilities)]
