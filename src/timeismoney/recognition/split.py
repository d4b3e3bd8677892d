# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pass 2: prices whose parts sit in separate text slots.

Storefront markup commonly renders one price as several nodes::

    <span>449€</span><span>00</span>                     whole+symbol, fraction
    <span>$</span><span>25</span><sup>99</sup>           symbol, whole, fraction
    <span>$</span><span>25<span>.</span></span><span>99</span>
    <span>449</span><span>€</span><span>00</span>
    <span>USD</span> <span>100.00</span>

Slots are read in document order and grouped into runs of consecutive
price fragments (currency marker, number, lone decimal separator). Any
other text ends a run, so labels such as "Price:" or "Now" next to the
fragments do not matter. A run never crosses a block element: all of its
fragments share the nearest non-inline ancestor.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from timeismoney.dom import SlotKind, TextSlot, iter_text_slots, tag_name
from timeismoney.patterns import CompiledPattern
from timeismoney.recognition import MatchSource, RawMatch, ScanContext

logger = logging.getLogger(__name__)

MAX_SPLIT_CHARS = 32  # non-space characters across one price
MAX_SPLIT_SLOTS = 6
FRACTION_DIGITS = 2

INLINE_TAGS = frozenset(
    {
        "a", "abbr", "b", "bdi", "bdo", "big", "data", "del", "em", "font", "i",
        "ins", "label", "mark", "s", "small", "span", "strike", "strong", "sub", "sup", "u",
    }
)  # fmt: skip


@dataclass(slots=True)
class _Token:
    slot: TextSlot
    start: int
    end: int
    currency: str  # lead or trail marker, "" if none
    number: str
    lsep: bool  # separator before the number (".99")
    sep: bool  # separator after the number ("449,")

    @property
    def glue(self) -> bool:
        """A lone decimal separator ("." between whole and fraction)."""
        return not self.currency and not self.number


def _tokenize(slot: TextSlot, pattern: CompiledPattern) -> _Token | None:
    value = slot.value
    token = value.strip()
    m = pattern.split_token.fullmatch(token)
    if not m:
        return None
    if m.group("lead") and m.group("trail"):
        return None
    currency = m.group("lead") or m.group("trail") or ""
    number = m.group("num") or ""
    lsep, sep = bool(m.group("lsep")), bool(m.group("sep"))
    if not currency and not number and lsep == sep:
        return None
    start = len(value) - len(value.lstrip())
    return _Token(
        slot=slot,
        start=start,
        end=start + len(token),
        currency=currency,
        number=number,
        lsep=lsep,
        sep=sep,
    )


def _block_scope(slot: TextSlot) -> Any:
    """Nearest non-inline element holding the slot's characters."""
    node = slot.element if slot.kind is SlotKind.TEXT else slot.element.getparent()
    while node is not None and tag_name(node) in INLINE_TAGS:
        parent = node.getparent()
        if parent is None:
            break
        node = parent
    return node


class SplitStructureStrategy:
    """Recombine currency/whole/fraction fragments spread over sibling or nested nodes."""

    source = MatchSource.SPLIT

    def find(self, ctx: ScanContext) -> Iterator[RawMatch]:
        if ctx.root is None:
            return
        available = set(ctx.text_slots())
        run: list[_Token] = []
        scope = None
        for slot in iter_text_slots(ctx.root):
            if not slot.value.strip():
                continue
            token = None
            if slot in available and not ctx.claims.is_touched(slot):
                token = _tokenize(slot, ctx.pattern)
            slot_scope = _block_scope(slot) if token is not None else None
            if token is None or (run and slot_scope is not scope):
                yield from self._flush(run, ctx)
                run = []
            if token is not None:
                run.append(token)
                scope = slot_scope
        yield from self._flush(run, ctx)

    def _flush(self, run: list[_Token], ctx: ScanContext) -> Iterator[RawMatch]:
        if len(run) < 2:
            return
        for match in self._plan(run, ctx.pattern):
            for slot in match.source_nodes:
                ctx.claims.claim_slot(slot)
            logger.debug("Split price %r across %d slots", match.text, len(match.source_nodes))
            yield match

    def _plan(self, run: list[_Token], pattern: CompiledPattern) -> list[RawMatch]:
        """Matches for one run of fragments.

        A run with one currency marker is one price or none. With several
        markers the run is cut at each marker, either opening or closing a
        segment; the cut that yields more prices wins, the configured symbol
        position breaking ties.
        """
        markers = [i for i, t in enumerate(run) if t.currency]
        if not markers:
            return []
        if len(markers) == 1:
            match = self._combine(run, pattern)
            return [match] if match is not None else []

        leading = [run[a:b] for a, b in zip(markers, [*markers[1:], len(run)])]
        trailing = [run[a : b + 1] for a, b in zip([0, *(m + 1 for m in markers[:-1])], markers)]
        cuts = (leading, trailing) if pattern.config.symbol_position == "before" else (trailing, leading)
        best: list[RawMatch] = []
        for segments in cuts:
            found = []
            for segment in segments:
                if len(segment) < 2:
                    continue
                match = self._combine(segment, pattern)
                if match is not None:
                    found.append(match)
            if len(found) > len(best):
                best = found
        return best

    def _combine(self, tokens: list[_Token], pattern: CompiledPattern) -> RawMatch | None:
        if len(tokens) > MAX_SPLIT_SLOTS:
            return None
        if sum(len("".join(t.slot.value.split())) for t in tokens) > MAX_SPLIT_CHARS:
            return None
        markers = [i for i, t in enumerate(tokens) if t.currency]
        if len(markers) != 1:
            return None
        marker = markers[0]
        numbered = [i for i, t in enumerate(tokens) if t.number]
        glue = [i for i, t in enumerate(tokens) if t.glue]
        dec = pattern.config.decimal_separator

        if len(numbered) == 1:
            (i,) = numbered
            whole = tokens[i]
            # A marker in the same slot is an ordinary single-node price
            if glue or i == marker or whole.lsep or whole.sep:
                return None
            if not pattern.amount.fullmatch(whole.number):
                return None
            text = whole.number
        elif len(numbered) == 2:
            i, j = numbered
            whole, frac = tokens[i], tokens[j]
            if whole.lsep or frac.sep or (whole.sep and frac.lsep):
                return None
            explicit = whole.sep or frac.lsep
            if glue:
                if explicit or glue != [i + 1] or j != i + 2:
                    return None
                explicit = True
            elif j == i + 2 and marker == i + 1:
                pass  # "449" "€" "00"
            elif j != i + 1:
                return None
            if not frac.number.isdigit() or len(frac.number) > FRACTION_DIGITS:
                return None
            # Without a separator only a full cents pair counts as a fraction
            if len(frac.number) != FRACTION_DIGITS and not explicit:
                return None
            if dec in whole.number or not pattern.amount.fullmatch(whole.number):
                return None
            text = f"{whole.number}{dec}{frac.number}"
        else:
            return None

        used = sorted({marker, *numbered, *glue})
        if used != list(range(used[0], used[-1] + 1)):
            return None
        first, last = tokens[used[0]], tokens[used[-1]]
        return RawMatch(
            text=text,
            currency_hint=tokens[marker].currency,
            source_nodes=tuple(tokens[k].slot for k in used),
            start_offset=first.start,
            end_offset=last.end,
            source=self.source,
            pattern=pattern,
        )
