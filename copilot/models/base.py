"""
Base types and registry for AI providers.

A provider declares which capabilities it serves, either for any model
or only for specific models. The registry keeps one provider per
provider type; registering a type again replaces the earlier entry.
"""

from __future__ import annotations

import fnmatch
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from copilot.types import Capability, ProviderError, ProviderType


@dataclass(frozen=True)
class ProviderCapability:
    """
    One capability a provider serves.

    An empty `models` tuple means the capability is offered for any
    model. Otherwise it only applies to models matching one of the
    entries, which may be shell-style patterns such as `claude-*`.
    """

    capability: Capability
    models: Tuple[str, ...] = ()

    @property
    def scoped(self) -> bool:
        return bool(self.models)

    def matches_model(self, model: Optional[str]) -> bool:
        if not self.models:
            return True
        if model is None:
            return False
        return any(fnmatch.fnmatchcase(model, pattern) for pattern in self.models)


def parse_capabilities(
    cfg: Mapping[str, Any], defaults: Sequence[ProviderCapability]
) -> List[ProviderCapability]:
    """
    Apply `capabilities` overrides from a provider config section.

    Each key is a capability tag; its value is a list of model scopes, or
    an empty list/None for an unscoped capability.
    """
    overrides = cfg.get("capabilities")
    if not overrides:
        return list(defaults)
    caps: List[ProviderCapability] = []
    for tag, models in overrides.items():
        try:
            capability = Capability(tag)
        except ValueError as exc:
            raise ValueError(f"Unknown capability '{tag}'.") from exc
        if isinstance(models, str):
            models = [models]
        caps.append(ProviderCapability(capability, tuple(str(m) for m in (models or ()))))
    return caps


def type_key(provider_type: Union[ProviderType, str]) -> str:
    return str(getattr(provider_type, "value", provider_type))


class BaseProvider:
    """
    Abstract base class for all providers.

    Subclasses set `type` and `default_capabilities` and implement
    `_build_client`. Generating content with the client is left to the
    caller; the core only routes to a provider.
    """

    type: Union[ProviderType, str] = ""
    default_capabilities: Tuple[ProviderCapability, ...] = ()
    default_api_key_env: str = ""

    def __init__(
        self,
        capabilities: Optional[Iterable[ProviderCapability]] = None,
        api_key: Optional[str] = None,
        api_key_env: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.capabilities: Tuple[ProviderCapability, ...] = tuple(
            capabilities if capabilities is not None else self.default_capabilities
        )
        self.api_key = api_key
        self.api_key_env = api_key_env or self.default_api_key_env
        self.base_url = base_url
        self._client: Any = None
        self._client_lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "BaseProvider":
        return cls(
            capabilities=parse_capabilities(cfg, cls.default_capabilities),
            api_key=cfg.get("api_key"),
            api_key_env=cfg.get("api_key_env"),
            base_url=cfg.get("base_url"),
        )

    @property
    def type_name(self) -> str:
        return type_key(self.type)

    def supports(self, capability: Capability, model: Optional[str] = None) -> bool:
        return any(
            c.capability == capability and c.matches_model(model) for c in self.capabilities
        )

    def resolve_api_key(self) -> str:
        api_key = self.api_key or (os.getenv(self.api_key_env) if self.api_key_env else None)
        if not api_key:
            raise ProviderError(
                f"No API key configured for provider '{self.type_name}' "
                f"(set api_key or environment variable '{self.api_key_env}')."
            )
        return api_key

    def client(self) -> Any:
        """Return the provider SDK client, building it on first use."""
        with self._client_lock:
            if self._client is None:
                self._client = self._build_client(self.resolve_api_key())
            return self._client

    def _build_client(self, api_key: str) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.type_name!r})"


class ProviderRegistry:
    """
    Providers keyed by type.

    Writes replace the whole table under a lock; readers take the current
    table without locking.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, BaseProvider] = {}
        self._lock = threading.Lock()

    def register(self, provider: BaseProvider) -> None:
        key = provider.type_name
        if not key:
            raise ValueError("Provider must declare a non-empty type.")
        with self._lock:
            table = dict(self._providers)
            table[key] = provider
            self._providers = table

    def get(self, provider_type: Union[ProviderType, str]) -> Optional[BaseProvider]:
        return self._providers.get(type_key(provider_type))

    def items(self) -> List[Tuple[str, BaseProvider]]:
        return list(self._providers.items())
