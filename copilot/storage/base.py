"""
Repository interfaces consumed by the copilot services.

Services depend only on these abstract classes. Concrete backends live
in `memory.py` (process-local) and `sqlite.py` (durable). Backends must
return copies of stored records, never live references, and must raise
`StorageError` for driver failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from copilot.types import ChatMessage, ChatSessionConfig, MessageTemplate, PromptDefinition


class PromptRepository(ABC):
    @abstractmethod
    def get(self, name: str) -> Optional[PromptDefinition]:
        raise NotImplementedError

    @abstractmethod
    def set(self, prompt: PromptDefinition) -> None:
        """Insert or wholesale replace the definition stored under `prompt.name`."""
        raise NotImplementedError

    @abstractmethod
    def update(self, name: str, messages: Sequence[MessageTemplate]) -> bool:
        """Replace the message list only. Returns False when `name` is unknown."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list(self) -> List[PromptDefinition]:
        raise NotImplementedError


class SessionRepository(ABC):
    @abstractmethod
    def get_config(self, session_id: str) -> Optional[ChatSessionConfig]:
        raise NotImplementedError

    @abstractmethod
    def create_config(self, config: ChatSessionConfig) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_history(self, session_id: str) -> List[ChatMessage]:
        """Committed messages for a session, in commit order."""
        raise NotImplementedError

    @abstractmethod
    def append_history(self, session_id: str, messages: Sequence[ChatMessage]) -> None:
        """
        Append all messages in order, or none of them.

        Drafts with the same ids are removed in the same step, so a committed
        draft can no longer be resolved through `get_message`.
        """
        raise NotImplementedError

    @abstractmethod
    def save_message(self, message: ChatMessage) -> None:
        """Store a detached draft message."""
        raise NotImplementedError

    @abstractmethod
    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        raise NotImplementedError
