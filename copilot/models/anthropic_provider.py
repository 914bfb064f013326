"""
Anthropic provider.

Claude models read text and images, so this provider declares text
generation and image-to-text, both scoped to `claude-*` model ids. It
never becomes the default for a capability unless a Claude model is
requested.
"""

from typing import Any

import anthropic

from copilot.models.base import BaseProvider, ProviderCapability
from copilot.types import Capability, ProviderType


class AnthropicProvider(BaseProvider):
    """
    AnthropicProvider wraps the Claude messages API via the official anthropic SDK.
    """

    type = ProviderType.ANTHROPIC
    default_api_key_env = "ANTHROPIC_API_KEY"
    default_capabilities = (
        ProviderCapability(Capability.TEXT_TO_TEXT, ("claude-*",)),
        ProviderCapability(Capability.IMAGE_TO_TEXT, ("claude-*",)),
    )

    def _build_client(self, api_key: str) -> Any:
        if self.base_url:
            return anthropic.Anthropic(api_key=api_key, base_url=self.base_url)
        return anthropic.Anthropic(api_key=api_key)
