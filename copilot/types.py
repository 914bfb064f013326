"""
Shared data types for the copilot core.

Defines the capability and provider enumerations, the prompt and chat
message records passed between services, and the exception hierarchy
raised by the core. Records are plain dataclasses; services copy them
rather than sharing mutable instances between callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Capability(str, Enum):
    """Kinds of AI operation a provider may serve."""

    TEXT_TO_TEXT = "text-to-text"
    TEXT_TO_EMBEDDING = "text-to-embedding"
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_TO_IMAGE = "image-to-image"
    IMAGE_TO_TEXT = "image-to-text"


class ProviderType(str, Enum):
    OPENAI = "openai"
    FAL = "fal"
    ANTHROPIC = "anthropic"
    TEST = "test"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MessageTemplate:
    """
    A stored message pattern.

    `content` may contain `{{key}}` placeholders and `{{#key}}...{{/key}}`
    list blocks. `params` maps a placeholder key to its ordered candidate
    values; the first candidate is the default when a caller omits the key.
    """

    role: str
    content: str = ""
    params: Dict[str, List[str]] = field(default_factory=dict)
    attachments: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageTemplate":
        if "role" not in data:
            raise ValueError("Message template requires a 'role'.")
        raw_params = data.get("params") or {}
        if not isinstance(raw_params, dict):
            raise ValueError("Message template 'params' must be a mapping.")
        params: Dict[str, List[str]] = {}
        for key, candidates in raw_params.items():
            if isinstance(candidates, (list, tuple)):
                params[str(key)] = [str(c) for c in candidates]
            else:
                params[str(key)] = [str(candidates)]
        attachments = data.get("attachments")
        return cls(
            role=str(data["role"]),
            content=str(data.get("content") or ""),
            params=params,
            attachments=[str(a) for a in attachments] if attachments else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.params:
            data["params"] = {k: list(v) for k, v in self.params.items()}
        if self.attachments:
            data["attachments"] = list(self.attachments)
        return data


@dataclass
class PromptDefinition:
    name: str
    model: str
    messages: List[MessageTemplate] = field(default_factory=list)


@dataclass
class RenderedMessage:
    """
    A concrete message ready to send to a provider.

    `params` is set only for messages rendered from a template and holds
    the placeholder values actually resolved. Plain chat turns leave it
    as None.
    """

    role: str
    content: str
    params: Optional[Dict[str, str]] = None
    attachments: Optional[List[str]] = None
    created_at: Optional[datetime] = None

    def is_empty(self) -> bool:
        return self.content == "" and not self.attachments

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.params is not None:
            data["params"] = dict(self.params)
        if self.attachments:
            data["attachments"] = list(self.attachments)
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class ChatSessionConfig:
    session_id: str
    doc_id: str
    workspace_id: str
    user_id: str
    prompt_name: str
    model: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ChatMessage:
    """
    A single chat turn owned by one session.

    Draft messages are created detached (role "user") and only join a
    session's stash once attached by id.
    """

    id: str
    session_id: str
    role: str = "user"
    content: Optional[str] = None
    attachments: Optional[List[str]] = None
    created_at: datetime = field(default_factory=utcnow)

    def render(self) -> RenderedMessage:
        return RenderedMessage(
            role=self.role,
            content=self.content or "",
            attachments=list(self.attachments) if self.attachments else None,
            created_at=self.created_at,
        )


# --------------------------------------------------------------------------------------
# Errors
# --------------------------------------------------------------------------------------


class CopilotError(Exception):
    """Base class for errors raised by the copilot core."""


class NotFoundError(CopilotError):
    """Raised when a mutation targets a record that does not exist."""


class PromptNotFoundError(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Prompt '{name}' not found.")
        self.name = name


class MessageNotFoundError(NotFoundError):
    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message '{message_id}' not found.")
        self.message_id = message_id


class SessionOwnershipError(CopilotError):
    """Raised when a message is attached to a session that does not own it."""

    def __init__(self, message_id: str, owner: str, session_id: str) -> None:
        super().__init__(
            f"Message '{message_id}' belongs to session '{owner}', "
            f"not to session '{session_id}'."
        )
        self.message_id = message_id
        self.owner = owner
        self.session_id = session_id


class StorageError(CopilotError):
    """Raised when a repository fails to read or write."""


class ProviderError(CopilotError):
    """Raised when a provider cannot be configured or reached."""
