# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Time Is Money CLI: annotate or inspect prices in an HTML file.

Usage:
    timeismoney annotate FILE [--settings PATH] [--output PATH] [--json-logs]
    timeismoney scan FILE [--settings PATH] [--json]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from lxml import etree
from tabulate import tabulate

from . import logging_config
from .converter import ConversionFailure, convert, format_work_time
from .coordinator import ScanCoordinator
from .dom import parse_document, to_html
from .errors import SettingsError
from .normalizer import normalize
from .patterns import PatternRegistry
from .recognition.recognizer import PriceRecognizer
from .settings import Settings, load_settings

logger = logging.getLogger(__name__)


def _load_inputs(args: argparse.Namespace) -> tuple[etree._Element, Settings]:
    """Read the HTML file and settings snapshot, exiting 1 on failure."""
    try:
        settings = load_settings(args.settings)
    except SettingsError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        html = Path(args.file).read_text(encoding="utf-8")
        doc = parse_document(html)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Cannot read {args.file}: {e}", file=sys.stderr)
        sys.exit(1)
    except etree.ParserError as e:
        print(f"Cannot parse {args.file}: {e}", file=sys.stderr)
        sys.exit(1)
    return doc, settings


def cmd_annotate(args: argparse.Namespace) -> None:
    """Run one batch over the document body and write the annotated HTML."""
    doc, settings = _load_inputs(args)
    body = doc.find("body")
    coordinator = ScanCoordinator()
    report = coordinator.run_batch([body if body is not None else doc], settings)

    output = to_html(doc)
    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
    else:
        sys.stdout.write(output + "\n")

    logger.info(
        "Annotated %d of %d prices (%d mismatched, %d errors)",
        report.annotated,
        report.matches,
        report.mismatched,
        len(report.errors),
    )


def cmd_scan(args: argparse.Namespace) -> None:
    """List detections without touching the document."""
    doc, settings = _load_inputs(args)
    body = doc.find("body")
    pattern = PatternRegistry().compile(settings.currency)
    recognizer = PriceRecognizer(pattern)

    rows = []
    for match in recognizer.scan(body if body is not None else doc):
        price = normalize(match)
        if price is None:
            outcome = "unparsable"
        elif not price.is_determined:
            outcome = "undetermined"
        else:
            result = convert(price.amount, price.currency_code, settings.wage)
            if isinstance(result, ConversionFailure):
                outcome = str(result)
            else:
                outcome = format_work_time(result, settings.time_format)
        rows.append(
            {
                "text": match.display_text,
                "amount": price.amount if price else None,
                "currency": price.currency_code if price else None,
                "pass": str(match.source),
                "work_time": outcome,
            }
        )

    if args.json:
        print(json.dumps(rows, ensure_ascii=False, indent=2))
        return
    if not rows:
        print("No prices found.")
        return
    headers = ["Text", "Amount", "Currency", "Pass", "Work time"]
    table = [[r["text"], r["amount"], r["currency"] or "-", r["pass"], r["work_time"]] for r in rows]
    print(tabulate(table, headers=headers, tablefmt="simple"))


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Time Is Money CLI", prog="timeismoney")
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_annotate = subparsers.add_parser("annotate", help="Append work-time equivalents to prices in an HTML file")
    p_annotate.add_argument("file", metavar="FILE")
    p_annotate.add_argument("--settings", type=str, metavar="PATH", help="YAML or JSON settings snapshot")
    p_annotate.add_argument("-o", "--output", type=str, metavar="PATH", help="Write HTML here instead of stdout")
    p_annotate.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines on stderr")

    p_scan = subparsers.add_parser("scan", help="List detected prices without modifying the file")
    p_scan.add_argument("file", metavar="FILE")
    p_scan.add_argument("--settings", type=str, metavar="PATH", help="YAML or JSON settings snapshot")
    p_scan.add_argument("--json", action="store_true", help="Print detections as JSON")

    commands = {"annotate": cmd_annotate, "scan": cmd_scan}

    args = parser.parse_args(argv)
    logging_config.configure(
        json_output=getattr(args, "json_logs", False),
        level="DEBUG" if args.verbose else "INFO",
    )

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
