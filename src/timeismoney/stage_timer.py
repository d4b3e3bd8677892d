# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-stage latency accounting for one batch.

Stages repeat once per node (recognize, normalize, convert, annotate), so
unlike a linear pipeline timer this one accumulates totals per stage name.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass(slots=True)
class StageTotal:
    name: str
    total_ns: int = 0
    calls: int = 0


class StageTimer:
    """Accumulate wall time per stage name for latency reporting."""

    __slots__ = ("_stages", "_start_ns")

    def __init__(self) -> None:
        self._stages: dict[str, StageTotal] = {}
        self._start_ns: int = time.monotonic_ns()

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Time the ``with`` body under ``name``, also when it raises."""
        start = time.monotonic_ns()
        try:
            yield
        finally:
            record = self._stages.setdefault(name, StageTotal(name=name))
            record.total_ns += time.monotonic_ns() - start
            record.calls += 1

    def calls(self, name: str) -> int:
        record = self._stages.get(name)
        return record.calls if record else 0

    def elapsed_per_stage(self) -> dict[str, float]:
        """Return {stage_name: elapsed_ms}, in first-seen order."""
        return {s.name: round(s.total_ns / 1e6, 3) for s in self._stages.values()}

    def total_ms(self) -> float:
        return round((time.monotonic_ns() - self._start_ns) / 1e6, 3)
