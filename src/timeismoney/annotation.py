# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""DOM writes: wrap detected prices with their work-time equivalent.

Every write produces one ``<span class="tim-converted-price">`` and one
AnnotationMark in an out-of-band AnnotationRegistry; nothing about the
processed state is encoded in page text. Recognition consults the same
registry, so an annotated range is never detected again.

Placement by match shape:
- single slot: the matched text moves into the span, suffix appended
- split price: a suffix-only span after the last fragment
- attribute: a suffix-only span appended as the element's last child
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from .converter import ConversionFailure, ConversionResult, annotation_suffix
from .dom import SlotKind, TextSlot, is_attached, root_of, split_slot
from .errors import MalformedDomNodeError
from .recognition import MatchSource, RawMatch
from .settings import TimeFormat

logger = logging.getLogger(__name__)

CONVERTED_PRICE_CLASS = "tim-converted-price"
ORIGINAL_PRICE_ATTR = "data-original-price"

# Documents whose marks are kept while other documents are being scanned
MAX_TRACKED_ROOTS = 32


@dataclass(frozen=True, eq=False)
class AnnotationMark:
    """Record that ``source_nodes`` were converted and where the span went."""

    span: Any
    source_nodes: tuple[TextSlot, ...]
    original_text: str
    source: MatchSource
    start_offset: int = 0
    end_offset: int = 0
    root: Any = field(default=None, repr=False)  # document root at write time

    @property
    def range_key(self) -> tuple[TextSlot, int, int]:
        return (self.source_nodes[0], self.start_offset, self.end_offset)


class AnnotationRegistry:
    """Out-of-band store of annotation marks, keyed by node identity.

    lxml element proxies cannot be weakly referenced, so marks hold strong
    references. ``prune_stale`` releases them: marks whose span the page
    detached, and marks of documents no batch has touched among the last
    ``MAX_TRACKED_ROOTS`` distinct ones.
    """

    def __init__(self) -> None:
        self._marks: list[AnnotationMark] = []
        self._spans: set[Any] = set()
        self._elements: set[Any] = set()
        self._slots: set[TextSlot] = set()
        self._ranges: set[tuple[TextSlot, int, int]] = set()
        # id(root) -> root, least recently touched first
        self._roots: OrderedDict[int, Any] = OrderedDict()

    def add(self, mark: AnnotationMark) -> None:
        if mark.root is None:
            mark = replace(mark, root=root_of(mark.span))
        self._marks.append(mark)
        self._spans.add(mark.span)
        self._roots[id(mark.root)] = mark.root
        self._roots.move_to_end(id(mark.root))
        if mark.source is MatchSource.ATTRIBUTE:
            self._elements.add(mark.source_nodes[0].element)
        elif len(mark.source_nodes) > 1:
            self._slots.update(mark.source_nodes)
        else:
            self._ranges.add(mark.range_key)

    def touch(self, node: Any) -> None:
        """Record that ``node``'s document is still being scanned."""
        key = id(root_of(node))
        if key in self._roots:
            self._roots.move_to_end(key)

    def is_marked(self, slot: TextSlot) -> bool:
        if slot in self._slots:
            return True
        return slot.kind is SlotKind.TEXT and slot.element in self._spans

    def is_element_marked(self, element: Any) -> bool:
        return element in self._elements or element in self._spans

    def is_match_marked(self, match: RawMatch) -> bool:
        if match.source is MatchSource.ATTRIBUTE:
            return self.is_element_marked(match.source_nodes[0].element)
        if not match.is_split and (match.source_nodes[0], match.start_offset, match.end_offset) in self._ranges:
            return True
        return any(self.is_marked(slot) for slot in match.source_nodes)

    def marks(self) -> list[AnnotationMark]:
        return list(self._marks)

    def prune(self, root: Any) -> int:
        """Drop marks whose span is no longer attached under ``root``."""
        return self._drop([m for m in self._marks if not is_attached(m.span, root)])

    def prune_stale(self) -> int:
        """Drop marks of detached spans and of documents beyond the tracking limit."""
        evicted = set(list(self._roots)[: max(0, len(self._roots) - MAX_TRACKED_ROOTS)])
        stale = [m for m in self._marks if id(m.root) in evicted or root_of(m.span) is not m.root]
        return self._drop(stale)

    def discard(self, spans: Iterable[Any]) -> int:
        """Drop the marks of the given annotation spans."""
        targets = set(spans)
        return self._drop([m for m in self._marks if m.span in targets])

    def _drop(self, stale: list[AnnotationMark]) -> int:
        if not stale:
            return 0
        dropped = {id(m) for m in stale}
        self._marks = [m for m in self._marks if id(m) not in dropped]
        self._spans = {m.span for m in self._marks}
        self._elements = {m.source_nodes[0].element for m in self._marks if m.source is MatchSource.ATTRIBUTE}
        self._slots = {s for m in self._marks if len(m.source_nodes) > 1 for s in m.source_nodes}
        self._ranges = {
            m.range_key for m in self._marks if m.source is not MatchSource.ATTRIBUTE and len(m.source_nodes) == 1
        }
        live = {id(m.root) for m in self._marks}
        self._roots = OrderedDict((key, root) for key, root in self._roots.items() if key in live)
        logger.debug("Dropped %d annotation marks", len(stale))
        return len(stale)

    def clear(self) -> None:
        self._marks.clear()
        self._spans.clear()
        self._elements.clear()
        self._slots.clear()
        self._ranges.clear()
        self._roots.clear()

    def __len__(self) -> int:
        return len(self._marks)


class AnnotationWriter:
    """Apply one conversion result to the DOM, exactly once per match."""

    def __init__(self, registry: AnnotationRegistry, *, time_format: TimeFormat = "compact") -> None:
        self.registry = registry
        self.time_format = time_format

    def annotate(self, match: RawMatch, result: ConversionResult) -> bool:
        """Write the annotation for ``match``. Returns True if the DOM changed.

        Failures (currency mismatch, invalid wage) and already-marked
        matches are no-ops.

        Raises MalformedDomNodeError if the source text no longer holds
        the match (the page changed it between scan and write).
        """
        if isinstance(result, ConversionFailure):
            return False
        if self.registry.is_match_marked(match):
            return False
        suffix = annotation_suffix(result, self.time_format)

        if match.source is MatchSource.ATTRIBUTE:
            mark = self._annotate_attribute(match, suffix)
        elif match.is_split:
            mark = self._annotate_split(match, suffix)
        else:
            mark = self._annotate_single(match, suffix)
        self.registry.add(mark)
        return True

    def _make_span(self, owner: Any, text: str, original: str) -> Any:
        span = owner.makeelement("span", {"class": CONVERTED_PRICE_CLASS, ORIGINAL_PRICE_ATTR: original})
        span.text = text
        return span

    def _annotate_single(self, match: RawMatch, suffix: str) -> AnnotationMark:
        slot = match.source_nodes[0]
        value = slot.value
        original = value[match.start_offset : match.end_offset]
        if match.end_offset > len(value) or match.text not in original:
            raise MalformedDomNodeError(f"Matched text {match.text!r} is gone", node_ref=slot.ref)
        span = self._make_span(slot.element, original + suffix, original)
        split_slot(slot, match.start_offset, match.end_offset, span)
        return AnnotationMark(
            span=span,
            source_nodes=match.source_nodes,
            original_text=original,
            source=match.source,
            start_offset=match.start_offset,
            end_offset=match.end_offset,
        )

    def _annotate_split(self, match: RawMatch, suffix: str) -> AnnotationMark:
        last = match.source_nodes[-1]
        if match.end_offset > len(last.value):
            raise MalformedDomNodeError("Split price fragment shrank before write", node_ref=last.ref)
        original = match.display_text
        span = self._make_span(last.element, suffix, original)
        # Earlier fragments stay untouched
        split_slot(last, match.end_offset, match.end_offset, span)
        return AnnotationMark(
            span=span,
            source_nodes=match.source_nodes,
            original_text=original,
            source=match.source,
            start_offset=match.start_offset,
            end_offset=match.end_offset,
        )

    def _annotate_attribute(self, match: RawMatch, suffix: str) -> AnnotationMark:
        slot = match.source_nodes[0]
        element = slot.element
        original = slot.value[match.start_offset : match.end_offset]
        if not original:
            raise MalformedDomNodeError(f"Attribute {slot.name!r} no longer holds a price", node_ref=slot.ref)
        span = self._make_span(element, suffix, original)
        element.append(span)
        return AnnotationMark(
            span=span,
            source_nodes=match.source_nodes,
            original_text=original,
            source=match.source,
            start_offset=match.start_offset,
            end_offset=match.end_offset,
        )


def iter_annotation_spans(root: Any) -> list[Any]:
    return [el for el in root.iter("span") if CONVERTED_PRICE_CLASS in (el.get("class") or "").split()]


def _unwrap(span: Any, restored: str) -> None:
    parent = span.getparent()
    if parent is None:
        return
    text = restored + (span.tail or "")
    prev = span.getprevious()
    if prev is not None:
        prev.tail = (prev.tail or "") + text or None
    else:
        parent.text = (parent.text or "") + text or None
    parent.remove(span)


def revert_all(root: Any, registry: AnnotationRegistry | None = None) -> int:
    """Undo every annotation under ``root``; returns the number of spans removed.

    Works from the spans alone, so documents annotated by another process
    can be reverted too. Wrapped spans give back their original text;
    suffix-only spans just disappear.
    """
    spans = iter_annotation_spans(root)
    for span in spans:
        original = span.get(ORIGINAL_PRICE_ATTR) or ""
        wrapped = bool(original) and (span.text or "").startswith(original)
        _unwrap(span, original if wrapped else "")
    if registry is not None:
        registry.discard(spans)
    if spans:
        logger.info("Reverted %d annotations", len(spans))
    return len(spans)
