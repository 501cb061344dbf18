"""Wall-clock helper. Cache entries and responses are stamped in epoch milliseconds."""

import time


def now_ms() -> int:
    return int(time.time() * 1000)
