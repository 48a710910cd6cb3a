from __future__ import annotations

import threading

from directory_backend.app.subscriptions.locks import KeyedLocks


def test_lock_is_released_once_nobody_holds_it():
    locks = KeyedLocks()

    with locks.hold("sub-1"):
        with locks.hold(("place-1", "floorplans")):
            assert len(locks) == 2
        assert len(locks) == 1

    assert len(locks) == 0


def test_waiting_thread_keeps_the_lock_alive():
    locks = KeyedLocks()
    entered = threading.Event()
    order = []

    def contender() -> None:
        entered.set()
        with locks.hold("sub-1"):
            order.append("second")

    with locks.hold("sub-1"):
        worker = threading.Thread(target=contender)
        worker.start()
        entered.wait(timeout=1)
        order.append("first")
    worker.join(timeout=1)

    assert order == ["first", "second"]
    assert len(locks) == 0


def test_many_distinct_keys_do_not_accumulate():
    locks = KeyedLocks()

    for index in range(100):
        with locks.hold(f"sub-{index}"):
            pass

    assert len(locks) == 0
