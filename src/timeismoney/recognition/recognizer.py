# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PriceRecognizer: runs the passes in priority order over one subtree.

Pass order is fixed: attribute > split structure > direct > contextual.
A range claimed by an earlier pass is invisible to later ones, so no span
is ever reported twice. Scanning is lazy and holds no state between calls;
calling ``scan`` again on the same subtree recomputes from scratch.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from typing import Any, Protocol

from timeismoney.dom import SKIP_TAGS, SlotKind, TextSlot, is_element, tag_name
from timeismoney.errors import MalformedDomNodeError
from timeismoney.patterns import CompiledPattern
from timeismoney.recognition import MarkLookup, RawMatch, ScanContext
from timeismoney.recognition.attribute import AttributeStrategy
from timeismoney.recognition.split import SplitStructureStrategy
from timeismoney.recognition.text import ContextualPhraseStrategy, DirectPatternStrategy

logger = logging.getLogger(__name__)


class MatchStrategy(Protocol):
    def find(self, ctx: ScanContext) -> Iterator[RawMatch]: ...


class _NoMarks:
    def is_marked(self, slot: TextSlot) -> bool:
        return False

    def is_element_marked(self, element: Any) -> bool:
        return False


def default_strategies() -> list[MatchStrategy]:
    return [
        AttributeStrategy(),
        SplitStructureStrategy(),
        DirectPatternStrategy(),
        ContextualPhraseStrategy(),
    ]


class PriceRecognizer:
    """Find prices under a DOM node with one CompiledPattern."""

    def __init__(
        self,
        pattern: CompiledPattern,
        *,
        marks: MarkLookup | None = None,
        strategies: Sequence[MatchStrategy] | None = None,
    ) -> None:
        self.pattern = pattern
        self.marks = marks if marks is not None else _NoMarks()
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    def scan(self, node: Any) -> Iterator[RawMatch]:
        """Yield RawMatch for ``node`` (an element subtree or a single TextSlot).

        A single slot only gets the text passes: attribute and split
        detection need an element to look at.

        Raises MalformedDomNodeError for anything else.
        """
        if isinstance(node, TextSlot):
            ctx = self._slot_context(node)
        elif is_element(node):
            ctx = ScanContext(pattern=self.pattern, root=node, marks=self.marks)
        else:
            raise MalformedDomNodeError(f"Cannot scan a {type(node).__name__}", node_ref=repr(node)[:80])
        if ctx is None:
            return
        for strategy in self.strategies:
            yield from strategy.find(ctx)

    def _slot_context(self, slot: TextSlot) -> ScanContext | None:
        if slot.kind is SlotKind.ATTRIBUTE:
            raise MalformedDomNodeError("Attribute slots are not scannable text", node_ref=slot.ref)
        if not is_element(slot.element):
            raise MalformedDomNodeError("Text slot owner is not an element", node_ref=slot.ref)
        owner = slot.element if slot.kind is SlotKind.TEXT else slot.element.getparent()
        # Text inside an annotated widget or a skipped element is off-limits
        node = owner
        while node is not None:
            if tag_name(node) in SKIP_TAGS or self.marks.is_element_marked(node):
                logger.debug("Skipping slot %s inside %s", slot.ref, tag_name(node))
                return None
            node = node.getparent()
        return ScanContext(pattern=self.pattern, root=None, marks=self.marks, explicit_slots=(slot,))
