from __future__ import annotations

import json
import logging
from io import StringIO

from cyclone_timeline.utils.logger import ContextFilter, JsonFormatter
from cyclone_timeline.utils.timer import timed_block


def test_timed_block_logs_elapsed_with_context(monkeypatch) -> None:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(ContextFilter())

    logger = logging.getLogger("cyclone_timeline.runtime.timer_check")
    logger.handlers = []
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    monkeypatch.setattr("cyclone_timeline.utils.logger._DEBUG_ENABLED", True)
    monkeypatch.setattr("cyclone_timeline.utils.logger._DEBUG_MODULES", set())

    with timed_block("prefetch_all", logger, total=3):
        pass

    payload = json.loads(stream.getvalue().strip())
    assert payload["event"] == "timer.prefetch_all"
    assert payload["context"]["total"] == 3
    assert payload["context"]["elapsed_ms"] >= 0
