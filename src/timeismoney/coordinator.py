# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""ScanCoordinator: one batch of pending nodes through the whole pipeline.

    IDLE --(non-empty batch, enabled snapshot)--> SCANNING --(last node)--> IDLE

Per node: recognize -> normalize -> convert -> annotate. An exception in
one node becomes an ErrorEvent and the batch moves on. The only state kept
across batches is the PatternRegistry cache and the AnnotationRegistry
marks, both owned by the caller-visible instance.

Single-threaded. A ``run_batch`` issued while a batch is running (an
observer callback reacting to our own writes) is queued and drained in
order before the outer call returns; annotation marks keep the replay
from touching ranges that were just written.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from .annotation import AnnotationRegistry, AnnotationWriter
from .converter import ConversionFailure, convert
from .dom import TextSlot, element_path, is_element
from .errors import MalformedDomNodeError
from .normalizer import normalize
from .patterns import PatternRegistry
from .recognition.recognizer import PriceRecognizer
from .settings import Settings
from .stage_timer import StageTimer

logger = logging.getLogger(__name__)

MAX_PENDING_NODES = 2000


class CoordinatorState(StrEnum):
    IDLE = "idle"
    SCANNING = "scanning"


@dataclass(frozen=True)
class ErrorEvent:
    """Recoverable per-node failure, handed to the logging collaborator."""

    node_ref: str
    error_kind: str
    message: str


@dataclass
class BatchReport:
    """Outcome counters for one batch."""

    batch_id: str
    nodes: int = 0
    matches: int = 0
    annotated: int = 0
    mismatched: int = 0
    unparsable: int = 0
    undetermined: int = 0
    failed: int = 0  # invalid wage or amount
    skipped: bool = False  # settings disabled
    deferred: bool = False  # re-entrant call, see the outer report
    errors: list[ErrorEvent] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)
    deferred_reports: list[BatchReport] = field(default_factory=list)


def node_ref(node: Any) -> str:
    if isinstance(node, TextSlot):
        return node.ref
    if is_element(node):
        return element_path(node)
    return f"<{type(node).__name__}>"


class ScanCoordinator:
    """Drive recognition, normalization, conversion and annotation per batch."""

    def __init__(
        self,
        *,
        registry: PatternRegistry | None = None,
        marks: AnnotationRegistry | None = None,
        on_error: Callable[[ErrorEvent], None] | None = None,
        on_mutation: Callable[[Any], None] | None = None,
    ) -> None:
        self.registry = registry if registry is not None else PatternRegistry()
        self.marks = marks if marks is not None else AnnotationRegistry()
        self._on_error = on_error
        self._on_mutation = on_mutation
        self._state = CoordinatorState.IDLE
        self._deferred: deque[tuple[list[Any], Settings]] = deque()

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def run_batch(self, nodes: Iterable[Any], settings: Settings) -> BatchReport:
        """Process ``nodes`` in the given order with one settings snapshot.

        Never raises for per-node failures; they are reported in
        ``BatchReport.errors`` and through ``on_error``.
        """
        nodes = list(nodes)
        if self._state is CoordinatorState.SCANNING:
            self._deferred.append((nodes, settings))
            logger.debug("Deferred re-entrant batch of %d nodes", len(nodes))
            return BatchReport(batch_id="", nodes=len(nodes), deferred=True)

        report = self._precheck(nodes, settings)
        if report is not None:
            return report

        self._state = CoordinatorState.SCANNING
        try:
            report = self._scan(nodes, settings)
            while self._deferred:
                pending, snapshot = self._deferred.popleft()
                report.deferred_reports.append(self._precheck(pending, snapshot) or self._scan(pending, snapshot))
        finally:
            self._state = CoordinatorState.IDLE
        return report

    def _precheck(self, nodes: Sequence[Any], settings: Settings) -> BatchReport | None:
        if not settings.enabled:
            logger.debug("Conversion disabled, skipping batch of %d nodes", len(nodes))
            return BatchReport(batch_id="", nodes=len(nodes), skipped=True)
        if not nodes:
            return BatchReport(batch_id="")
        return None

    def _scan(self, nodes: Sequence[Any], settings: Settings) -> BatchReport:
        batch_id = uuid.uuid4().hex[:8]
        report = BatchReport(batch_id=batch_id, nodes=len(nodes))
        timer = StageTimer()
        with structlog.contextvars.bound_contextvars(batch_id=batch_id):
            if len(nodes) > MAX_PENDING_NODES:
                logger.warning("Large batch: %d pending nodes (limit %d)", len(nodes), MAX_PENDING_NODES)

            for node in nodes:
                element = node.element if isinstance(node, TextSlot) else node
                if is_element(element):
                    self.marks.touch(element)
            pruned = self.marks.prune_stale()
            if pruned:
                logger.debug("Released %d stale annotation marks", pruned)

            with timer.measure("compile"):
                pattern = self.registry.compile(settings.currency)
            recognizer = PriceRecognizer(pattern, marks=self.marks)
            writer = AnnotationWriter(self.marks, time_format=settings.time_format)

            for node in nodes:
                try:
                    self._process_node(node, recognizer, writer, settings, report, timer)
                except Exception as e:
                    self._report_error(node, e, report)

            report.timings = timer.elapsed_per_stage()
            logger.debug(
                "Batch done: %d nodes, %d matches, %d annotated, %d mismatched, %d errors",
                report.nodes,
                report.matches,
                report.annotated,
                report.mismatched,
                len(report.errors),
            )
        return report

    def _process_node(
        self,
        node: Any,
        recognizer: PriceRecognizer,
        writer: AnnotationWriter,
        settings: Settings,
        report: BatchReport,
        timer: StageTimer,
    ) -> None:
        with timer.measure("recognize"):
            matches = list(recognizer.scan(node))
        report.matches += len(matches)

        planned = []
        for match in matches:
            with timer.measure("normalize"):
                price = normalize(match)
            if price is None:
                report.unparsable += 1
                continue
            if not price.is_determined:
                report.undetermined += 1
                continue
            with timer.measure("convert"):
                result = convert(price.amount, price.currency_code, settings.wage)
            if result is ConversionFailure.CURRENCY_MISMATCH:
                report.mismatched += 1
                logger.debug("Currency mismatch: %s %s", price.currency_code, match.text)
                continue
            if isinstance(result, ConversionFailure):
                report.failed += 1
                logger.debug("Cannot convert %s: %s", match.text, result)
                continue
            planned.append((match, result))

        # Right-to-left within a slot keeps earlier offsets valid
        planned.sort(key=lambda item: item[0].write_offset, reverse=True)
        for match, result in planned:
            with timer.measure("annotate"):
                written = writer.annotate(match, result)
            if written:
                report.annotated += 1
                if self._on_mutation is not None:
                    self._on_mutation(match.source_nodes[-1].element)

    def _report_error(self, node: Any, error: Exception, report: BatchReport) -> None:
        ref = error.node_ref if isinstance(error, MalformedDomNodeError) and error.node_ref else node_ref(node)
        event = ErrorEvent(node_ref=ref, error_kind=type(error).__name__, message=str(error))
        report.errors.append(event)
        logger.warning("Recoverable error at %s: %s: %s", event.node_ref, event.error_kind, event.message)
        if self._on_error is None:
            return
        try:
            self._on_error(event)
        except Exception:
            logger.exception("on_error callback failed for %s", event.node_ref)
