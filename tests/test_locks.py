"""Tests for keyed locks."""

import threading

import pytest

from service_scheduler.errors import LockTimeoutError
from service_scheduler.locks import KeyedLockManager
from tests.conftest import STAFF, book


class TestKeyedLockManager:
    def test_idle_locks_are_dropped(self):
        locks = KeyedLockManager(timeout_sec=0.1)
        with locks.hold("a"):
            with locks.hold("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_timeout_is_retryable(self):
        locks = KeyedLockManager(timeout_sec=0.05)
        errors = []

        def contend():
            try:
                with locks.hold("a"):
                    pass
            except LockTimeoutError as e:
                errors.append(e)

        with locks.hold("a"):
            worker = threading.Thread(target=contend)
            worker.start()
            worker.join()
        assert len(errors) == 1
        assert errors[0].retryable
        assert errors[0].lock_key == "a"
        assert len(locks) == 0

    def test_lock_released_after_exception(self):
        locks = KeyedLockManager(timeout_sec=0.05)
        with pytest.raises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")
        with locks.hold("a"):
            pass
        assert len(locks) == 0

    def test_waiters_are_served_in_turn(self):
        locks = KeyedLockManager(timeout_sec=1.0)
        entered = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with locks.hold("a"):
                entered.set()
                release.wait()
                order.append("first")

        def second():
            entered.wait()
            with locks.hold("a"):
                order.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for t in threads:
            t.start()
        entered.wait()
        release.set()
        for t in threads:
            t.join()
        assert order == ["first", "second"]
        assert len(locks) == 0


class TestEngineLocks:
    def test_booking_and_transitions_leave_no_locks(self, engine):
        apt = book(engine, technician_id="tech-an")
        engine.apply_action(apt.id, "confirm", STAFF)
        engine.apply_action(apt.id, "cancel", STAFF)
        assert len(engine.booking._locks) == 0
        assert len(engine.store._row_locks) == 0
