# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Passes 3 and 4: single-slot regex matching.

Direct matching is where most prices are found. The contextual pass only
looks at slots where the direct pass found nothing; its pattern tolerates
any whitespace run between currency and amount (formatted HTML such as
``from\\n   $\\n   20``) and the reported span includes the qualifier.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from timeismoney.dom import TextSlot
from timeismoney.patterns import match_parts
from timeismoney.recognition import MatchSource, RawMatch, ScanContext


def _scan_slot(
    slot: TextSlot, regex: re.Pattern[str], ctx: ScanContext, source: MatchSource
) -> Iterator[RawMatch]:
    for m in regex.finditer(slot.value):
        if ctx.claims.overlaps(slot, m.start(), m.end()):
            continue
        hint, amount = match_parts(m)
        ctx.claims.claim(slot, m.start(), m.end())
        yield RawMatch(
            text=amount,
            currency_hint=hint,
            source_nodes=(slot,),
            start_offset=m.start(),
            end_offset=m.end(),
            source=source,
            qualifier=m.groupdict().get("qualifier") or "",
            pattern=ctx.pattern,
        )


class DirectPatternStrategy:
    source = MatchSource.DIRECT

    def find(self, ctx: ScanContext) -> Iterator[RawMatch]:
        for slot in ctx.text_slots():
            if ctx.claims.is_fully_claimed(slot):
                continue
            for match in _scan_slot(slot, ctx.pattern.direct, ctx, self.source):
                ctx.direct_hits.add(slot)
                yield match


class ContextualPhraseStrategy:
    """Qualifier-led prices ("under $20", "starting at 15 €").

    Lowest priority: a slot with any direct hit is left alone, which keeps
    the heuristic from competing with the unambiguous passes.
    """

    source = MatchSource.CONTEXTUAL

    def find(self, ctx: ScanContext) -> Iterator[RawMatch]:
        for slot in ctx.text_slots():
            if slot in ctx.direct_hits or ctx.claims.is_fully_claimed(slot):
                continue
            yield from _scan_slot(slot, ctx.pattern.contextual, ctx, self.source)
