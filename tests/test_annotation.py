"""Tests for AnnotationWriter, AnnotationRegistry and revert_all."""

from __future__ import annotations

import pytest

from timeismoney import WorkTime
from timeismoney.annotation import (
    CONVERTED_PRICE_CLASS,
    ORIGINAL_PRICE_ATTR,
    AnnotationRegistry,
    AnnotationWriter,
    iter_annotation_spans,
    revert_all,
)
from timeismoney.converter import ConversionFailure
from timeismoney.dom import TextSlot, parse_fragment, to_html
from timeismoney.errors import MalformedDomNodeError
from timeismoney.patterns import DEFAULT_CURRENCY, build_pattern
from timeismoney.recognition import RawMatch
from timeismoney.recognition.recognizer import PriceRecognizer

PATTERN = build_pattern(DEFAULT_CURRENCY)


def _matches(root, registry: AnnotationRegistry | None = None) -> list[RawMatch]:
    return list(PriceRecognizer(PATTERN, marks=registry).scan(root))


# =========================================================================
# Single-slot matches
# =========================================================================


class TestSingleSlot:
    def test_wraps_match_with_suffix(self, marks):
        root = parse_fragment("<p>Now $30.00 only</p>")
        (match,) = _matches(root)
        assert AnnotationWriter(marks).annotate(match, WorkTime(2, 0))
        assert to_html(root) == (
            '<div><p>Now <span class="tim-converted-price" data-original-price="$30.00">'
            "$30.00 (2h 0m)</span> only</p></div>"
        )
        assert len(marks) == 1

    def test_verbose_format(self, marks):
        root = parse_fragment("<p>$30.00</p>")
        (match,) = _matches(root)
        AnnotationWriter(marks, time_format="verbose").annotate(match, WorkTime(2, 30))
        (span,) = iter_annotation_spans(root)
        assert span.text == "$30.00 (2 hours, 30 minutes)"

    def test_two_prices_written_right_to_left(self, marks):
        root = parse_fragment("<p>$5 or $10 each</p>")
        writer = AnnotationWriter(marks)
        for match in sorted(_matches(root), key=lambda m: m.write_offset, reverse=True):
            writer.annotate(match, WorkTime(0, 20))
        assert [s.get(ORIGINAL_PRICE_ATTR) for s in iter_annotation_spans(root)] == ["$5", "$10"]
        assert "".join(root.itertext()) == "$5 (0h 20m) or $10 (0h 20m) each"

    def test_tail_slot(self, marks):
        root = parse_fragment("<p><b>Total</b> $8 today</p>")
        (match,) = _matches(root)
        AnnotationWriter(marks).annotate(match, WorkTime(0, 30))
        assert "".join(root.itertext()) == "Total $8 (0h 30m) today"

    def test_same_match_twice_is_noop(self, marks):
        root = parse_fragment("<p>Now $30.00 only</p>")
        (match,) = _matches(root)
        writer = AnnotationWriter(marks)
        assert writer.annotate(match, WorkTime(2, 0))
        before = to_html(root)
        assert not writer.annotate(match, WorkTime(2, 0))
        assert to_html(root) == before
        assert len(marks) == 1

    def test_failure_does_not_mutate(self, marks):
        root = parse_fragment("<p>€25</p>")
        before = to_html(root)
        (match,) = _matches(root)
        assert not AnnotationWriter(marks).annotate(match, ConversionFailure.CURRENCY_MISMATCH)
        assert to_html(root) == before
        assert len(marks) == 0

    def test_changed_text_raises(self, marks):
        root = parse_fragment("<p>Now $30.00 only</p>")
        (match,) = _matches(root)
        root[0].text = "sold out"
        with pytest.raises(MalformedDomNodeError):
            AnnotationWriter(marks).annotate(match, WorkTime(2, 0))


# =========================================================================
# Split and attribute matches
# =========================================================================


class TestSplitAndAttribute:
    def test_split_suffix_after_last_fragment(self, marks):
        root = parse_fragment("<span>449€</span><span>00</span>")
        (match,) = _matches(root)
        AnnotationWriter(marks).annotate(match, WorkTime(1, 0))
        first, last = root[0], root[1]
        assert first.text == "449€"
        assert len(first) == 0
        assert last.text == "00"
        (span,) = iter_annotation_spans(root)
        assert span.getparent() is last
        assert span.text == " (1h 0m)"
        assert span.get(ORIGINAL_PRICE_ATTR) == "449€00"
        assert marks.is_marked(TextSlot(first))
        assert marks.is_marked(TextSlot(last))

    def test_attribute_suffix_appended(self, marks):
        root = parse_fragment('<button aria-label="$8.48"><i class="icon"></i></button>')
        (match,) = _matches(root)
        AnnotationWriter(marks).annotate(match, WorkTime(0, 34))
        button = root[0]
        span = button[-1]
        assert span.get("class") == CONVERTED_PRICE_CLASS
        assert span.text == " (0h 34m)"
        assert span.get(ORIGINAL_PRICE_ATTR) == "$8.48"
        assert button.get("aria-label") == "$8.48"
        assert marks.is_element_marked(button)


# =========================================================================
# Re-scan after annotation
# =========================================================================


class TestRescan:
    @pytest.mark.parametrize(
        "html",
        [
            "<p>Now $30.00 only</p>",
            "<span>449€</span><span>00</span>",
            '<button aria-label="$8.48"><i></i></button>',
            "<p>Plans from $\n 20</p>",
        ],
    )
    def test_annotated_ranges_are_invisible(self, marks, html):
        root = parse_fragment(html)
        writer = AnnotationWriter(marks)
        for match in _matches(root, marks):
            writer.annotate(match, WorkTime(1, 0))
        assert len(marks) == 1
        assert _matches(root, marks) == []


# =========================================================================
# Registry and revert
# =========================================================================


class TestAnnotationRegistry:
    def test_prune_detached(self, marks):
        root = parse_fragment("<p>$5</p><p>$6</p>")
        writer = AnnotationWriter(marks)
        for match in _matches(root):
            writer.annotate(match, WorkTime(0, 20))
        root.remove(root[0])
        assert marks.prune(root) == 1
        assert len(marks) == 1

    def test_mark_records_document_root(self, marks):
        root = parse_fragment("<div><p>$5</p></div>")
        (match,) = _matches(root)
        AnnotationWriter(marks).annotate(match, WorkTime(0, 20))
        assert marks.marks()[0].root is root

    def test_prune_stale_evicts_oldest_documents(self, marks, monkeypatch):
        monkeypatch.setattr("timeismoney.annotation.MAX_TRACKED_ROOTS", 2)
        roots = [parse_fragment(f"<p>${i + 1}</p>") for i in range(4)]
        writer = AnnotationWriter(marks)
        for root in roots:
            (match,) = _matches(root)
            writer.annotate(match, WorkTime(0, 20))
        marks.touch(roots[0])
        assert marks.prune_stale() == 2
        assert {m.root for m in marks.marks()} == {roots[0], roots[3]}

    def test_prune_stale_drops_reverted_spans(self, marks):
        root = parse_fragment("<p>$5</p>")
        (match,) = _matches(root)
        AnnotationWriter(marks).annotate(match, WorkTime(0, 20))
        revert_all(root)
        assert marks.prune_stale() == 1
        assert len(marks) == 0

    def test_clear(self, marks):
        root = parse_fragment("<p>$5</p>")
        (match,) = _matches(root)
        AnnotationWriter(marks).annotate(match, WorkTime(0, 20))
        marks.clear()
        assert len(marks) == 0
        assert marks.marks() == []


class TestRevertAll:
    HTML = (
        "<p>Now $30.00 only</p>"
        "<div><span>449€</span><span>00</span></div>"
        '<button aria-label="$8.48"><i></i></button>'
    )

    def test_restores_original_markup(self, marks):
        root = parse_fragment(self.HTML)
        original = to_html(root)
        writer = AnnotationWriter(marks)
        for match in _matches(root, marks):
            writer.annotate(match, WorkTime(1, 0))
        assert len(marks) == 3

        assert revert_all(root, marks) == 3
        assert to_html(root) == original
        assert len(marks) == 0

    def test_reannotate_after_revert(self, marks):
        root = parse_fragment(self.HTML)
        writer = AnnotationWriter(marks)
        for match in _matches(root, marks):
            writer.annotate(match, WorkTime(1, 0))
        revert_all(root, marks)
        assert len(_matches(root, marks)) == 3

    def test_without_registry(self):
        root = parse_fragment(
            '<p>Now <span class="tim-converted-price" data-original-price="$3">$3 (0h 12m)</span>!</p>'
        )
        assert revert_all(root) == 1
        assert to_html(root) == "<div><p>Now $3!</p></div>"

    def test_nothing_to_revert(self):
        assert revert_all(parse_fragment("<p>$3</p>")) == 0
