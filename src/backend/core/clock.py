"""
Wall-clock helpers.

Every detector takes a ``Clock`` so that sliding windows can be evaluated
against a controlled "now" in tests.
"""

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)
