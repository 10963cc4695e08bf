import time
from contextlib import contextmanager
from .logger import get_logger, log_debug


@contextmanager
def timed_block(name: str, logger=None, **context):
    """Log the wall time of a block (sync, or spanning awaits inside a coroutine)."""
    logger = logger or get_logger()

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        log_debug(logger, f"timer.{name}", elapsed_ms=round(elapsed_ms, 3), **context)
