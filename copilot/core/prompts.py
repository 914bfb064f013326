"""
Prompt management.

`PromptService` is the CRUD surface over named prompt definitions. It
hands out `Prompt` handles, which render the stored message templates
into concrete messages for a given parameter set. Prompts can also be
seeded from the `prompts` section of the YAML configuration.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from copilot.core.templates import render_message, template_keys
from copilot.storage.base import PromptRepository
from copilot.types import MessageTemplate, PromptDefinition, PromptNotFoundError, RenderedMessage

logger = logging.getLogger(__name__)

TemplateInput = Union[MessageTemplate, Mapping[str, Any]]


def _to_templates(messages: Sequence[TemplateInput]) -> List[MessageTemplate]:
    return [
        m if isinstance(m, MessageTemplate) else MessageTemplate.from_dict(dict(m))
        for m in messages
    ]


class Prompt:
    """
    Render-capable handle over one prompt definition.

    The handle holds its own copy of the definition; later edits in the
    store are only seen by handles fetched after the edit.
    """

    def __init__(self, definition: PromptDefinition) -> None:
        self.name = definition.name
        self.model = definition.model
        self.messages: tuple = tuple(definition.messages)

        keys: List[str] = []
        params: Dict[str, List[str]] = {}
        for message in self.messages:
            for key in template_keys(message.content):
                if key not in keys:
                    keys.append(key)
            for key, candidates in message.params.items():
                # first declaration wins
                params.setdefault(key, list(candidates))
        self._param_keys = keys
        self._params = params

    @property
    def param_keys(self) -> List[str]:
        return list(self._param_keys)

    @property
    def params(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self._params.items()}

    def finish(self, params: Optional[Mapping[str, Any]] = None) -> List[RenderedMessage]:
        """
        Render every template in order.

        Messages that render to empty content and carry no attachments
        are dropped.
        """
        rendered = [render_message(m, params or {}) for m in self.messages]
        return [m for m in rendered if not m.is_empty()]

    def __repr__(self) -> str:
        return f"Prompt(name={self.name!r}, model={self.model!r}, messages={len(self.messages)})"


class PromptService:
    """
    Create, read, update and delete named prompts.

    `set` is the only create path; `update` replaces the messages of an
    existing prompt and keeps its model.
    """

    def __init__(self, repository: PromptRepository) -> None:
        self.repository = repository

    def set(self, name: str, model: str, messages: Sequence[TemplateInput]) -> None:
        templates = _to_templates(messages)
        self.repository.set(PromptDefinition(name=name, model=model, messages=templates))
        logger.info("Prompt '%s' saved with %d messages (model=%s)", name, len(templates), model)

    def get(self, name: str) -> Optional[Prompt]:
        definition = self.repository.get(name)
        if definition is None:
            return None
        return Prompt(definition)

    def update(self, name: str, messages: Sequence[TemplateInput]) -> None:
        """
        Replace the message list of an existing prompt.

        Raises:
            PromptNotFoundError: If no prompt is stored under `name`.
        """
        if not self.repository.update(name, _to_templates(messages)):
            raise PromptNotFoundError(name)
        logger.info("Prompt '%s' updated", name)

    def delete(self, name: str) -> None:
        if self.repository.delete(name):
            logger.info("Prompt '%s' deleted", name)

    def list(self) -> List[PromptDefinition]:
        return self.repository.list()

    def load_from_config(self, prompts_cfg: Mapping[str, Any]) -> int:
        """
        Seed prompts from the `prompts` config section.

        Expected shape:

            prompts:
              translate:
                model: gpt-4o
                messages:
                  - role: system
                    content: "translate {{src}} to {{dst}}"
                    params: {src: [eng], dst: [chs, jpn]}

        Returns the number of prompts written.
        """
        count = 0
        for name, pcfg in (prompts_cfg or {}).items():
            if not isinstance(pcfg, Mapping):
                raise ValueError(f"Prompt '{name}' must be a mapping.")
            if "model" not in pcfg:
                raise ValueError(f"Prompt '{name}' is missing 'model'.")
            self.set(str(name), str(pcfg["model"]), pcfg.get("messages") or [])
            count += 1
        return count
