# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pass 1: complete prices carried by attributes.

Accessibility-annotated widgets often render the price as icons or
scattered glyphs while ``aria-label`` holds the whole string. Structured
markup puts a machine-readable amount in ``data-price``/``data-amount`` or
``itemprop="price" content``. A hit claims the element's whole subtree so
later passes never re-detect the visible rendering of the same price.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from typing import Any

from timeismoney.dom import SlotKind, TextSlot, iter_elements, tag_name
from timeismoney.patterns import CompiledPattern, match_parts
from timeismoney.recognition import MatchSource, RawMatch, ScanContext

logger = logging.getLogger(__name__)

# Widgets with more visible text than this are containers, not price labels
MAX_WIDGET_TEXT = 64

_MACHINE_AMOUNT = re.compile(r"^\s*(\d+)(?:\.(\d{1,2}))?\s*$")
_DATA_AMOUNT_ATTRS = ("data-price", "data-amount")
_NO_CHILDREN_TAGS = frozenset({"meta", "link", "img", "input", "br", "hr", "area", "base", "col", "source"})


def _visible_text(el: Any) -> str:
    return " ".join("".join(el.itertext()).split())


def _machine_to_config(value: str, pattern: CompiledPattern) -> str | None:
    """Rewrite "1999.5" style attribute amounts into the configured format."""
    m = _MACHINE_AMOUNT.match(value)
    if not m:
        return None
    whole, frac = m.group(1), m.group(2)
    return f"{whole}{pattern.config.decimal_separator}{frac}" if frac else whole


def _item_currency(el: Any) -> str:
    """priceCurrency declared next to an itemprop=price element."""
    scope = el.getparent() if el.getparent() is not None else el
    for node in scope.iter():
        if isinstance(node.tag, str) and node.get("itemprop") == "priceCurrency":
            return (node.get("content") or node.text or "").strip()
    return ""


class AttributeStrategy:
    """Price strings from aria-label, data-price/data-amount and microdata."""

    source = MatchSource.ATTRIBUTE

    def find(self, ctx: ScanContext) -> Iterator[RawMatch]:
        if ctx.root is None:
            return
        for el in iter_elements(ctx.root):
            if ctx.claims.is_element_claimed(el):
                continue
            if ctx.marks.is_element_marked(el):
                # Annotated on an earlier scan; its rendering is off-limits
                ctx.claims.claim_subtree(el)
                continue
            if tag_name(el) in _NO_CHILDREN_TAGS:
                continue
            match = self._match_element(el, ctx.pattern)
            if match is None:
                continue
            ctx.claims.claim_subtree(el)
            logger.debug("Attribute price %r on %s", match.text, match.source_nodes[0].ref)
            yield match

    def _match_element(self, el: Any, pattern: CompiledPattern) -> RawMatch | None:
        label = el.get("aria-label")
        candidates = [name for name in _DATA_AMOUNT_ATTRS if el.get(name)]
        is_item_price = el.get("itemprop") == "price" and el.get("content")
        if not label and not candidates and not is_item_price:
            return None
        if len(_visible_text(el)) > MAX_WIDGET_TEXT:
            return None

        if label:
            m = pattern.direct.search(label)
            if m:
                hint, amount = match_parts(m)
                return RawMatch(
                    text=amount,
                    currency_hint=hint,
                    source_nodes=(TextSlot(el, SlotKind.ATTRIBUTE, "aria-label"),),
                    start_offset=m.start(),
                    end_offset=m.end(),
                    source=self.source,
                    pattern=pattern,
                )

        if is_item_price:
            candidates.append("content")
        for name in candidates:
            value = el.get(name)
            amount = _machine_to_config(value, pattern)
            if amount is None:
                continue
            declared = _item_currency(el) if name == "content" else ""
            hint = el.get("data-currency", "").strip() or declared or self._visible_hint(el, pattern)
            if not hint:
                continue
            return RawMatch(
                text=amount,
                currency_hint=hint,
                source_nodes=(TextSlot(el, SlotKind.ATTRIBUTE, name),),
                start_offset=0,
                end_offset=len(value),
                source=self.source,
                pattern=pattern,
            )
        return None

    @staticmethod
    def _visible_hint(el: Any, pattern: CompiledPattern) -> str:
        m = pattern.direct.search(_visible_text(el))
        return match_parts(m)[0] if m else ""
