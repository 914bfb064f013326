"""
Copilot package root.

This package provides the prompt and chat-session orchestration core of
the AI assistant: template rendering, prompt and session services,
capability-based provider routing, and the storage backends behind them.
"""

__all__ = [
    "config",
    "core",
    "models",
    "storage",
    "types",
]
