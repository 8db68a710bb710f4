"""
Clock
=====
Epoch-millisecond timestamps, the unit every stored bounty timestamp uses.
"""
import time


def now_ms() -> int:
    """Current wall-clock time in integer epoch milliseconds."""
    return int(time.time() * 1000)
