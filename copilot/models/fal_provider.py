"""
fal.ai provider.

Default backend for image generation and image-to-image. fal exposes a
plain HTTP API, so the client is a `requests.Session` preloaded with the
key header and base URL.
"""

from typing import Any

import requests

from copilot.models.base import BaseProvider, ProviderCapability
from copilot.types import Capability, ProviderType

DEFAULT_BASE_URL = "https://fal.run"


class FalSession(requests.Session):
    """Session that resolves relative paths against the fal base URL."""

    def __init__(self, api_key: str, base_url: str) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.headers["Authorization"] = f"Key {api_key}"
        self.headers["Content-Type"] = "application/json"

    def request(self, method: str, url: str, *args: Any, **kwargs: Any) -> requests.Response:
        if not url.startswith(("http://", "https://")):
            url = f"{self.base_url}/{url.lstrip('/')}"
        kwargs.setdefault("timeout", 60)
        return super().request(method, url, *args, **kwargs)


class FalProvider(BaseProvider):
    type = ProviderType.FAL
    default_api_key_env = "FAL_KEY"
    default_capabilities = (
        ProviderCapability(Capability.TEXT_TO_IMAGE),
        ProviderCapability(Capability.IMAGE_TO_IMAGE),
    )

    def _build_client(self, api_key: str) -> Any:
        return FalSession(api_key, self.base_url or DEFAULT_BASE_URL)
