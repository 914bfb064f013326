"""
In-memory repository backends.

Used by default and in tests. Each repository guards its tables with a
single lock and hands out deep copies, so two callers never observe each
other's unsaved mutations.
"""

from __future__ import annotations

import copy
import threading
from typing import Dict, List, Optional, Sequence

from copilot.storage.base import PromptRepository, SessionRepository
from copilot.types import (
    ChatMessage,
    ChatSessionConfig,
    MessageTemplate,
    PromptDefinition,
    StorageError,
)


class InMemoryPromptRepository(PromptRepository):
    def __init__(self) -> None:
        self._prompts: Dict[str, PromptDefinition] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[PromptDefinition]:
        with self._lock:
            prompt = self._prompts.get(name)
            return copy.deepcopy(prompt) if prompt is not None else None

    def set(self, prompt: PromptDefinition) -> None:
        with self._lock:
            self._prompts[prompt.name] = copy.deepcopy(prompt)

    def update(self, name: str, messages: Sequence[MessageTemplate]) -> bool:
        with self._lock:
            prompt = self._prompts.get(name)
            if prompt is None:
                return False
            prompt.messages = copy.deepcopy(list(messages))
            return True

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._prompts.pop(name, None) is not None

    def list(self) -> List[PromptDefinition]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._prompts.values()]


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._configs: Dict[str, ChatSessionConfig] = {}
        self._history: Dict[str, List[ChatMessage]] = {}
        self._drafts: Dict[str, ChatMessage] = {}
        self._lock = threading.Lock()

    def get_config(self, session_id: str) -> Optional[ChatSessionConfig]:
        with self._lock:
            return self._configs.get(session_id)

    def create_config(self, config: ChatSessionConfig) -> None:
        with self._lock:
            if config.session_id in self._configs:
                raise StorageError(f"Session '{config.session_id}' already exists.")
            self._configs[config.session_id] = config
            self._history[config.session_id] = []

    def get_history(self, session_id: str) -> List[ChatMessage]:
        with self._lock:
            return copy.deepcopy(self._history.get(session_id, []))

    def append_history(self, session_id: str, messages: Sequence[ChatMessage]) -> None:
        with self._lock:
            history = self._history.get(session_id)
            if history is None:
                raise StorageError(f"Session '{session_id}' does not exist.")
            seen = {m.id for m in history}
            for message in messages:
                if message.id in seen:
                    raise StorageError(f"Message '{message.id}' is already committed.")
                seen.add(message.id)
            history.extend(copy.deepcopy(list(messages)))
            for message in messages:
                self._drafts.pop(message.id, None)

    def save_message(self, message: ChatMessage) -> None:
        with self._lock:
            self._drafts[message.id] = copy.deepcopy(message)

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        with self._lock:
            message = self._drafts.get(message_id)
            return copy.deepcopy(message) if message is not None else None
