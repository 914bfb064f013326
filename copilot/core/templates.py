"""
Prompt template rendering.

Templates use a small mustache-like language:

    {{key}}                 scalar substitution
    {{#key}} ... {{/key}}   repeat the body once per element of a list
    {{.}}                   the current element inside a list block

Nothing else is interpreted. Any other tag (nested key paths, inverted
sections, comments, nested blocks) is emitted as literal text. Rendering
is total: it never raises, and unresolved placeholders degrade to their
first declared candidate or to the empty string.

Parsed templates are cached and immutable, so rendering is safe to call
concurrently without coordination.
"""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from copilot.types import MessageTemplate, RenderedMessage

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

CURRENT_ITEM = "."


class Text(NamedTuple):
    text: str


class Variable(NamedTuple):
    key: str


class Section(NamedTuple):
    key: str
    body: Tuple[Union[Text, Variable], ...]


Node = Union[Text, Variable, Section]


def _classify(inner: str) -> Tuple[str, Optional[str]]:
    """Return (kind, key) for a tag body; kind is var, open, close or literal."""
    tag = inner.strip()
    if tag == CURRENT_ITEM:
        return "var", CURRENT_ITEM
    if tag[:1] in ("#", "/"):
        key = tag[1:].strip()
        if _KEY_RE.match(key):
            return ("open" if tag[0] == "#" else "close"), key
        return "literal", None
    if _KEY_RE.match(tag):
        return "var", tag
    return "literal", None


@lru_cache(maxsize=512)
def parse_template(content: str) -> Tuple[Node, ...]:
    """
    Parse template text into a flat tuple of nodes.

    A block that is never closed is kept as literal text, and its body is
    parsed as if it were outside the block.
    """
    nodes: List[Node] = []
    open_key: Optional[str] = None
    open_raw = ""
    body: List[Union[Text, Variable]] = []
    pos = 0

    def emit(node: Union[Text, Variable]) -> None:
        (body if open_key is not None else nodes).append(node)

    for match in _TAG_RE.finditer(content):
        if match.start() > pos:
            emit(Text(content[pos:match.start()]))
        pos = match.end()
        raw = match.group(0)
        kind, key = _classify(match.group(1))

        if kind == "var":
            emit(Variable(key))
        elif kind == "open" and open_key is None:
            open_key, open_raw, body = key, raw, []
        elif kind == "close" and key == open_key:
            nodes.append(Section(open_key, tuple(body)))
            open_key, body = None, []
        else:
            emit(Text(raw))

    if pos < len(content):
        emit(Text(content[pos:]))
    if open_key is not None:
        logger.debug("Unclosed block '%s' rendered as literal text", open_key)
        nodes.append(Text(open_raw))
        nodes.extend(body)
    return tuple(nodes)


def template_keys(content: str) -> List[str]:
    """Distinct placeholder keys in first-seen order, excluding `.`."""
    keys: List[str] = []

    def add(key: str) -> None:
        if key != CURRENT_ITEM and key not in keys:
            keys.append(key)

    for node in parse_template(content):
        if isinstance(node, Variable):
            add(node.key)
        elif isinstance(node, Section):
            add(node.key)
            for child in node.body:
                if isinstance(child, Variable):
                    add(child.key)
    return keys


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if _is_scalar(value):
        return str(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def resolve_param(
    key: str,
    params: Mapping[str, Any],
    candidates: Sequence[str],
) -> Optional[str]:
    """
    Resolve one scalar placeholder.

    A supplied scalar wins when the key declares no candidates, or when
    it is one of the declared candidates. Otherwise the first candidate
    is used. Returns None when nothing resolves.
    """
    value = params.get(key)
    if _is_scalar(value):
        text = str(value)
        if not candidates or text in candidates:
            return text
    if candidates:
        return candidates[0]
    return None


def _render_nodes(
    nodes: Sequence[Node],
    params: Mapping[str, Any],
    bindings: Mapping[str, Sequence[str]],
    used: Dict[str, str],
    item: Optional[str] = None,
) -> str:
    out: List[str] = []
    for node in nodes:
        if isinstance(node, Text):
            out.append(node.text)
        elif isinstance(node, Variable):
            if node.key == CURRENT_ITEM:
                out.append(item or "")
                continue
            value = resolve_param(node.key, params, bindings.get(node.key, ()))
            if value is not None:
                used[node.key] = value
                out.append(value)
        else:
            elements = params.get(node.key)
            if not isinstance(elements, (list, tuple)):
                continue
            for element in elements:
                out.append(
                    _render_nodes(node.body, params, bindings, used, _stringify(element))
                )
    return "".join(out)


def render_message(template: MessageTemplate, params: Mapping[str, Any]) -> RenderedMessage:
    """Render a single message template against a parameter mapping."""
    used: Dict[str, str] = {}
    content = _render_nodes(
        parse_template(template.content), params or {}, template.params, used
    )
    return RenderedMessage(
        role=template.role,
        content=content,
        params=used,
        attachments=list(template.attachments) if template.attachments else None,
    )
