# =============================================
# File: kitchen_dss/utils/timing.py
# Purpose: Elapsed-time helper for pipeline stages
# =============================================
import time
from contextlib import contextmanager


@contextmanager
def stage_timer():
    """`with stage_timer() as elapsed_ms: ...; elapsed_ms()` -> int milliseconds so far."""
    t0 = time.perf_counter()
    yield lambda: int((time.perf_counter() - t0) * 1000)
