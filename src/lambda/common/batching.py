"""Chunking for batch writes and a collector for non-fatal failures."""
import logging

from common import config

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def chunked(seq, size=None):
    """Yield consecutive slices of seq holding at most size elements."""
    if size is None:
        size = config.BATCH_WRITE_LIMIT
    if size < 1:
        raise ValueError("size must be positive")
    seq = list(seq)
    for i in range(0, len(seq), size):
        yield seq[i:i + size]


class BestEffort:
    """Runs side operations whose failure must not fail the caller.

    Each failure is logged and kept as a warning string so it can be returned
    next to the primary result.
    """

    def __init__(self):
        self.warnings = []

    def run(self, label, fn, *args, default=None, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            logger.warning("%s failed: %s", label, e)
            self.warnings.append(f"{label}: {e}")
            return default

    def warn(self, message):
        logger.warning(message)
        self.warnings.append(message)

    def __bool__(self):
        return bool(self.warnings)
