"""
Chat sessions.

A `ChatSession` combines a bound prompt, a buffer of staged messages (the
stash) and the committed history loaded from storage. Staging is local to
the handle: every `ChatSessionService.get` call materializes a fresh,
independent handle, and only `save()` has durable effects visible to
other handles.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from copilot.core.prompts import Prompt, PromptService
from copilot.storage.base import SessionRepository
from copilot.types import (
    ChatMessage,
    ChatSessionConfig,
    MessageNotFoundError,
    PromptNotFoundError,
    RenderedMessage,
    SessionOwnershipError,
    utcnow,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class ChatSession:
    def __init__(
        self,
        config: ChatSessionConfig,
        prompt: Prompt,
        history: Sequence[ChatMessage],
        repository: SessionRepository,
    ) -> None:
        self.config = config
        self.prompt = prompt
        self.repository = repository
        self._history: List[ChatMessage] = list(history)
        self._stash: List[ChatMessage] = []
        self._lock = threading.Lock()

    @property
    def session_id(self) -> str:
        return self.config.session_id

    @property
    def model(self) -> str:
        """Model snapshotted from the prompt when the session was created."""
        return self.config.model

    @property
    def history(self) -> Tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._history)

    @property
    def stash_messages(self) -> Tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._stash)

    def push(self, message: Union[ChatMessage, Mapping[str, Any]]) -> ChatMessage:
        """
        Stage a message authored for this session.

        Accepts a ChatMessage or a mapping with `role`, `content` and
        optional `attachments` / `created_at`. No ownership check is made.
        """
        if not isinstance(message, ChatMessage):
            created_at = message.get("created_at")
            message = ChatMessage(
                id=_new_id(),
                session_id=self.session_id,
                role=str(message["role"]),
                content=message.get("content"),
                attachments=list(message["attachments"]) if message.get("attachments") else None,
                created_at=created_at if isinstance(created_at, datetime) else utcnow(),
            )
        with self._lock:
            self._stash.append(message)
        return message

    def push_by_message_id(self, message: Union[ChatMessage, str]) -> ChatMessage:
        """
        Stage a draft message created through `ChatSessionService.create_message`.

        The stored record is authoritative: a ChatMessage argument is only
        used for its id. A draft is consumed when it is committed by `save()`,
        so it can be attached to history at most once.

        Raises:
            MessageNotFoundError: If a message id cannot be resolved, including
                drafts already committed by any handle.
            SessionOwnershipError: If the message belongs to another session.
        """
        message_id = message if isinstance(message, str) else message.id
        resolved = self.repository.get_message(message_id)
        if resolved is None:
            raise MessageNotFoundError(message_id)
        message = resolved

        if message.session_id != self.session_id:
            raise SessionOwnershipError(message.id, message.session_id, self.session_id)

        with self._lock:
            if any(m.id == message.id for m in self._stash) or any(
                m.id == message.id for m in self._history
            ):
                logger.warning(
                    "Message %s already attached to session %s, ignoring", message.id, self.session_id
                )
                return message
            self._stash.append(message)
        return message

    def finish(self, params: Optional[Mapping[str, Any]] = None) -> List[RenderedMessage]:
        """
        Build the full ordered message list to send to a provider.

        Rendered prompt templates come first, followed by committed history
        and then staged messages, both taken literally. Empty messages
        without attachments are dropped. Nothing on the session is mutated.
        """
        with self._lock:
            turns = self._history + self._stash
        messages = self.prompt.finish(params or {})
        messages.extend(m.render() for m in turns)
        return [m for m in messages if not m.is_empty()]

    def save(self) -> None:
        """
        Commit every staged message to history, in order.

        The repository append is all-or-nothing; if it raises, the stash
        is left untouched and the error propagates.
        """
        with self._lock:
            pending = list(self._stash)
            if not pending:
                return
            self.repository.append_history(self.session_id, pending)
            self._history.extend(pending)
            del self._stash[: len(pending)]
        logger.info("Committed %d messages to session %s", len(pending), self.session_id)

    def __repr__(self) -> str:
        return (
            f"ChatSession(session_id={self.session_id!r}, prompt={self.prompt.name!r}, "
            f"history={len(self._history)}, stash={len(self._stash)})"
        )


class ChatSessionService:
    """Create and load chat sessions bound to named prompts."""

    def __init__(self, prompts: PromptService, repository: SessionRepository) -> None:
        self.prompts = prompts
        self.repository = repository

    def create(
        self,
        doc_id: str,
        workspace_id: str,
        user_id: str,
        prompt_name: str,
    ) -> str:
        """
        Create a session bound to an existing prompt and return its id.

        The prompt's model is copied into the session config; later changes
        to the prompt's model do not affect the session.

        Raises:
            PromptNotFoundError: If `prompt_name` is unknown.
        """
        prompt = self.prompts.get(prompt_name)
        if prompt is None:
            raise PromptNotFoundError(prompt_name)

        config = ChatSessionConfig(
            session_id=_new_id(),
            doc_id=doc_id,
            workspace_id=workspace_id,
            user_id=user_id,
            prompt_name=prompt_name,
            model=prompt.model,
        )
        self.repository.create_config(config)
        logger.info(
            "Created session %s for user %s with prompt '%s'", config.session_id, user_id, prompt_name
        )
        return config.session_id

    def get(self, session_id: str) -> Optional[ChatSession]:
        config = self.repository.get_config(session_id)
        if config is None:
            return None
        prompt = self.prompts.get(config.prompt_name)
        if prompt is None:
            logger.warning(
                "Session %s is bound to missing prompt '%s'", session_id, config.prompt_name
            )
            return None
        history = self.repository.get_history(session_id)
        return ChatSession(config, prompt, history, self.repository)

    def create_message(
        self,
        session_id: str,
        content: Optional[str] = None,
        attachments: Optional[Sequence[str]] = None,
        role: str = "user",
    ) -> ChatMessage:
        """
        Store a detached draft message for later `push_by_message_id`.

        The session is not checked here; ownership is enforced when the
        message is attached.
        """
        message = ChatMessage(
            id=_new_id(),
            session_id=session_id,
            role=role,
            content=content,
            attachments=list(attachments) if attachments else None,
        )
        self.repository.save_message(message)
        logger.debug("Created draft message %s for session %s", message.id, session_id)
        return message
