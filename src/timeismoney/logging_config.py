# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Log setup for the CLI: console lines by default, JSON lines with --json-logs.

Library modules log through plain ``logging.getLogger(__name__)``; records
go through structlog's ``ProcessorFormatter`` so the batch id bound by the
coordinator reaches every line.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog


def _pre_chain(json_output: bool) -> list:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]
    if json_output:
        # ConsoleRenderer prints tracebacks itself
        processors += [structlog.processors.TimeStamper(fmt="iso"), structlog.processors.format_exc_info]
    return processors


def configure(*, json_output: bool = False, level: str = "INFO", stream: TextIO | None = None) -> None:
    """Route stdlib and structlog records to one stderr handler.

    ``stream`` overrides stderr; stdout is reserved for annotated HTML.
    Unknown level names fall back to INFO.
    """
    pre_chain = _pre_chain(json_output)
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
