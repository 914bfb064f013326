"""
OpenAI provider.

Serves text generation, embeddings and image understanding for any
model, and image generation only for the DALL-E models. The SDK client
is built lazily from the configured API key and base URL.
"""

from typing import Any

from openai import OpenAI

from copilot.models.base import BaseProvider, ProviderCapability
from copilot.types import Capability, ProviderType


class OpenAIProvider(BaseProvider):
    """
    OpenAIProvider wraps the official OpenAI SDK client.
    """

    type = ProviderType.OPENAI
    default_api_key_env = "OPENAI_API_KEY"
    default_capabilities = (
        ProviderCapability(Capability.TEXT_TO_TEXT),
        ProviderCapability(Capability.TEXT_TO_EMBEDDING),
        ProviderCapability(Capability.IMAGE_TO_TEXT),
        ProviderCapability(Capability.TEXT_TO_IMAGE, ("dall-e-3",)),
    )

    def _build_client(self, api_key: str) -> Any:
        return OpenAI(api_key=api_key, base_url=self.base_url or "https://api.openai.com/v1")
