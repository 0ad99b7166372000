from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from fundrecon.domain.reconciliation import KeyedLock


def test_same_key_is_mutually_exclusive() -> None:
    locks = KeyedLock()
    active = 0
    peak = 0
    guard = threading.Lock()

    def work(_: int) -> None:
        nonlocal active, peak
        with locks.hold("acme"):
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.001)
            with guard:
                active -= 1

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(work, range(32)))

    assert peak == 1
    assert len(locks) == 0


def test_lock_is_reentrant_and_released() -> None:
    locks = KeyedLock()

    with locks.hold("acme"), locks.hold("acme"):
        assert len(locks) == 1

    assert len(locks) == 0
