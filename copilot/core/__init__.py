"""
Core logic for the copilot.

This subpackage provides the template engine, the prompt and chat
session services, and the router that selects a provider for a
requested capability.
"""

__all__ = [
    "templates",
    "prompts",
    "session",
    "router",
]
