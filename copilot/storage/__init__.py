"""
Repository interfaces and backends for prompts and chat sessions.
"""

__all__ = [
    "base",
    "memory",
    "sqlite",
]
