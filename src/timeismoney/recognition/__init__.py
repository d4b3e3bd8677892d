# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Multi-pass price recognition.

Core data structures shared by the passes. Each pass is a strategy object
with a ``find(ctx)`` generator; all passes of one scan share a ScanContext
whose ClaimSet records which character ranges are already taken. A pass
never yields a range that overlaps an earlier claim.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

from timeismoney.dom import TextSlot, iter_text_slots

if TYPE_CHECKING:
    from timeismoney.patterns import CompiledPattern


class MatchSource(StrEnum):
    """Pass that produced a RawMatch, in priority order."""

    ATTRIBUTE = "attribute"
    SPLIT = "split"
    DIRECT = "direct"
    CONTEXTUAL = "contextual"


@dataclass(frozen=True)
class RawMatch:
    """An unnormalized price detection and where it lives in the DOM.

    ``start_offset`` indexes into the first source slot and ``end_offset``
    into the last one. For attribute matches the single source is an
    ATTRIBUTE slot and the offsets cover the price inside its value.
    """

    text: str  # amount text in the configured number format, no currency
    currency_hint: str  # symbol or code as written
    source_nodes: tuple[TextSlot, ...]
    start_offset: int
    end_offset: int
    source: MatchSource
    qualifier: str = ""  # contextual matches only
    pattern: CompiledPattern | None = field(default=None, compare=False, repr=False)

    @property
    def is_split(self) -> bool:
        return len(self.source_nodes) > 1

    @property
    def write_offset(self) -> int:
        """Offset in the last slot where the writer mutates text."""
        return self.end_offset if self.is_split else self.start_offset

    @property
    def display_text(self) -> str:
        """The matched range as it appears on the page (single-slot only)."""
        if self.is_split:
            return "".join(slot.value for slot in self.source_nodes).strip()
        return self.source_nodes[0].value[self.start_offset : self.end_offset]


class MarkLookup(Protocol):
    """Read side of the annotation mark store."""

    def is_marked(self, slot: TextSlot) -> bool: ...

    def is_element_marked(self, element: Any) -> bool: ...


class ClaimSet:
    """Character ranges taken by earlier passes, per text slot."""

    def __init__(self) -> None:
        self._ranges: dict[TextSlot, list[tuple[int, int]]] = {}
        self._full: set[TextSlot] = set()
        # id -> element; holding the proxy keeps its id stable
        self._elements: dict[int, Any] = {}

    def claim(self, slot: TextSlot, start: int, end: int) -> None:
        self._ranges.setdefault(slot, []).append((start, end))

    def claim_slot(self, slot: TextSlot) -> None:
        self._full.add(slot)

    def claim_subtree(self, element: Any) -> None:
        """Claim every text slot under ``element`` (pass-1 detections)."""
        self._elements[id(element)] = element
        for slot in iter_text_slots(element):
            self._full.add(slot)

    def overlaps(self, slot: TextSlot, start: int, end: int) -> bool:
        if slot in self._full:
            return True
        return any(s < end and start < e for s, e in self._ranges.get(slot, ()))

    def is_fully_claimed(self, slot: TextSlot) -> bool:
        return slot in self._full

    def is_touched(self, slot: TextSlot) -> bool:
        return slot in self._full or slot in self._ranges

    def is_element_claimed(self, element: Any) -> bool:
        """True if ``element`` is inside a subtree claimed by pass 1."""
        if not self._elements:
            return False
        node = element
        while node is not None:
            if id(node) in self._elements:
                return True
            node = node.getparent()
        return False

    def __len__(self) -> int:
        return len(self._full) + sum(len(r) for r in self._ranges.values())


@dataclass
class ScanContext:
    """Mutable state shared by the passes of one scan."""

    pattern: CompiledPattern
    root: Any  # subtree root element, or None for a single-slot scan
    marks: MarkLookup
    claims: ClaimSet = field(default_factory=ClaimSet)
    explicit_slots: tuple[TextSlot, ...] | None = None
    direct_hits: set[TextSlot] = field(default_factory=set)
    _slots: list[TextSlot] | None = field(default=None, repr=False)

    def text_slots(self) -> list[TextSlot]:
        """Unmarked TEXT/TAIL slots in scope, in document order (cached)."""
        if self._slots is None:
            candidates = self.explicit_slots if self.explicit_slots is not None else iter_text_slots(self.root)
            self._slots = [s for s in candidates if not self.marks.is_marked(s)]
        return self._slots
