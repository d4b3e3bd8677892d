# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""lxml DOM helpers: text slots, document-order walking, slot splitting.

lxml has no text-node objects. Character data lives on elements as
``.text`` (before the first child) and ``.tail`` (after the closing tag),
so a "text node" here is a ``TextSlot`` naming the owning element and
which of the two runs it is. Attribute values get a slot kind of their own
for pass-1 detections.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import lxml.html
from lxml import etree

from .errors import MalformedDomNodeError

# Elements whose character data is never page prose
SKIP_TAGS = frozenset({"script", "style", "noscript", "textarea", "template", "title", "head", "option"})


class SlotKind(StrEnum):
    TEXT = "text"
    TAIL = "tail"
    ATTRIBUTE = "attribute"


@dataclass(frozen=True, slots=True)
class TextSlot:
    """Reference to one run of character data in an lxml tree.

    Equality and hashing follow element identity, so a slot can key the
    claim and mark registries for as long as the element proxy is alive.
    """

    element: Any
    kind: SlotKind = SlotKind.TEXT
    name: str = ""  # attribute name for ATTRIBUTE slots

    @property
    def value(self) -> str:
        if self.kind is SlotKind.TEXT:
            return self.element.text or ""
        if self.kind is SlotKind.TAIL:
            return self.element.tail or ""
        return self.element.get(self.name, "")

    @property
    def ref(self) -> str:
        """XPath-ish reference for logs and error events."""
        path = element_path(self.element)
        if self.kind is SlotKind.TEXT:
            return f"{path}/text()"
        if self.kind is SlotKind.TAIL:
            return f"{path}/following-text()"
        return f"{path}/@{self.name}"

    def __repr__(self) -> str:
        return f"TextSlot({self.ref!r}, {self.value[:30]!r})"


def is_element(node: Any) -> bool:
    """True for real elements (not comments, PIs or entities)."""
    return isinstance(node, etree._Element) and isinstance(node.tag, str)


def element_path(el: Any) -> str:
    try:
        return el.getroottree().getpath(el)
    except (AttributeError, ValueError, TypeError):
        return f"<{getattr(el, 'tag', '?')}>"


def tag_name(el: Any) -> str:
    return el.tag.lower() if is_element(el) else ""


def iter_text_slots(root: Any) -> Iterator[TextSlot]:
    """Yield every non-empty TEXT/TAIL slot under ``root`` in document order.

    The root's own tail is outside the subtree and is not yielded. Skipped
    elements (script, style, ...) contribute only their tails.
    """
    if not is_element(root):
        raise MalformedDomNodeError(
            f"Expected an element, got {type(root).__name__}", node_ref=element_path(root)
        )
    # (is_tail, node) pairs; reversed pushes keep document order on pop
    stack: list[tuple[bool, Any]] = [(False, root)]
    while stack:
        is_tail, node = stack.pop()
        if is_tail:
            if node.tail:
                yield TextSlot(node, SlotKind.TAIL)
            continue
        if not is_element(node) or tag_name(node) in SKIP_TAGS:
            continue
        if node.text:
            yield TextSlot(node, SlotKind.TEXT)
        for child in reversed(list(node)):
            stack.append((True, child))
            stack.append((False, child))


def iter_elements(root: Any) -> Iterator[Any]:
    """Yield real elements under ``root`` (inclusive), pruning skipped subtrees."""
    if not is_element(root):
        return
    stack = [root]
    while stack:
        el = stack.pop()
        if tag_name(el) in SKIP_TAGS:
            continue
        yield el
        stack.extend(child for child in reversed(list(el)) if is_element(child))


def is_attached(el: Any, root: Any) -> bool:
    """True if ``el`` is ``root`` or one of its descendants."""
    node = el
    while node is not None:
        if node is root:
            return True
        node = node.getparent()
    return False


def root_of(el: Any) -> Any:
    """Topmost ancestor of ``el`` (``el`` itself when detached)."""
    node = el
    while True:
        parent = node.getparent()
        if parent is None:
            return node
        node = parent


def split_slot(slot: TextSlot, start: int, end: int, new_el: Any) -> None:
    """Replace ``slot.value[start:end]`` with ``new_el``.

    The text before ``start`` stays in the slot; the text after ``end``
    becomes ``new_el``'s tail. The caller fills ``new_el``'s own content.
    """
    text = slot.value
    if not 0 <= start <= end <= len(text):
        raise MalformedDomNodeError(
            f"Range [{start}, {end}) outside slot of length {len(text)}", node_ref=slot.ref
        )
    new_el.tail = text[end:] or None
    el = slot.element
    if slot.kind is SlotKind.TEXT:
        el.text = text[:start] or None
        el.insert(0, new_el)
    elif slot.kind is SlotKind.TAIL:
        parent = el.getparent()
        if parent is None:
            raise MalformedDomNodeError("Tail slot on a detached element", node_ref=slot.ref)
        el.tail = text[:start] or None
        parent.insert(parent.index(el) + 1, new_el)
    else:
        raise MalformedDomNodeError("Attribute slots cannot be split", node_ref=slot.ref)


def parse_fragment(html: str) -> lxml.html.HtmlElement:
    """Parse an HTML snippet under a synthetic <div> root."""
    return lxml.html.fragment_fromstring(html, create_parent="div")


def parse_document(html: str) -> lxml.html.HtmlElement:
    return lxml.html.document_fromstring(html)


def to_html(el: Any) -> str:
    return lxml.html.tostring(el, encoding="unicode")
