"""
Lightweight observability utilities.

Every I/O-bound step of the directory (slip scans, snapshot persists,
workbook reads and writes) and every inbound chat message is wrapped in a
span so a slow disk or a stalled transport shows up in the logs with the
operation that suffered from it.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

logger = logging.getLogger("slipdesk.trace")


@contextmanager
def trace_span(name: str, **metadata):
    """
    Measure execution duration of an operation.

    Example log:
    [TRACE] snapshot_persist duration_ms=3.12 count=250

    Always logs completion, even when the wrapped block raises, and never
    suppresses the exception.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000

        meta = " ".join(f"{k}={v}" for k, v in metadata.items())
        logger.info("[TRACE] %s duration_ms=%.2f %s", name, duration_ms, meta)
