"""
Provider implementations.

This package collects base types and the registry in `base.py` and the
concrete providers for OpenAI, fal and Anthropic. Adding a new provider
involves creating a new module that subclasses `BaseProvider` and
listing it in `copilot.config.PROVIDER_CLASSES`.
"""

__all__ = [
    "base",
    "openai_provider",
    "fal_provider",
    "anthropic_provider",
]
