"""Concurrent hold requests for one machine."""

from __future__ import annotations

import random
import threading
import unittest
from datetime import timedelta

import pytest
from django.db import OperationalError, connection, connections
from django.test import TransactionTestCase

from apps.bookings.exceptions import OverlapError
from apps.bookings.models import Booking

from .factories import future_day, hold_request, make_machine


@unittest.skipUnless(connection.vendor in ("postgresql", "sqlite"), "needs a backend with the overlap constraint")
class ConcurrentHoldTests(TransactionTestCase):
    def setUp(self) -> None:
        self.machine = make_machine()
        self.base = future_day(40)

    def _race(self, ranges: list[tuple]) -> list[str]:
        from apps.bookings.services import create_or_reuse_hold

        random.shuffle(ranges)
        barrier = threading.Barrier(len(ranges))
        outcomes: list[str] = []
        lock = threading.Lock()

        def worker(index: int, start, end) -> None:
            request = hold_request(self.machine, start, end, customer_email=f"customer{index}@example.com")
            try:
                barrier.wait(timeout=10)
                create_or_reuse_hold(request)
                outcome = "ok"
            except OverlapError:
                outcome = "overlap"
            except Exception as exc:
                outcome = f"{type(exc).__name__}:{exc}"
            finally:
                connections.close_all()
            with lock:
                outcomes.append(outcome)

        threads = [
            threading.Thread(target=worker, args=(index, start, end))
            for index, (start, end) in enumerate(ranges)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return outcomes

    def test_one_winner_among_overlapping_holds(self) -> None:
        # Every range covers base + 3 days
        ranges = [(self.base + timedelta(days=i), self.base + timedelta(days=i + 3)) for i in range(4)]
        ranges.append((self.base, self.base + timedelta(days=6)))
        ranges.append((self.base + timedelta(days=3), self.base + timedelta(days=3)))

        outcomes = self._race(ranges)

        self.assertEqual(len(outcomes), 6, outcomes)
        self.assertEqual(outcomes.count("ok"), 1, outcomes)
        self.assertEqual(outcomes.count("overlap"), 5, outcomes)
        self.assertEqual(Booking.objects.active().filter(machine=self.machine).count(), 1)

    def test_disjoint_holds_all_succeed(self) -> None:
        ranges = [(self.base + timedelta(days=3 * i), self.base + timedelta(days=3 * i + 1)) for i in range(5)]

        outcomes = self._race(ranges)

        self.assertEqual(outcomes, ["ok"] * 5)
        self.assertEqual(Booking.objects.active().filter(machine=self.machine).count(), 5)


@pytest.mark.skipif(connection.vendor != "sqlite", reason="only SQLite reports writer contention as an error")
def test_lock_contention_is_retried(monkeypatch) -> None:
    from apps.bookings.services import run_with_lock_retry

    monkeypatch.setattr("apps.bookings.services.time.sleep", lambda seconds: None)
    calls = []

    def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("database table is locked: bookings_booking")
        return "placed"

    assert run_with_lock_retry(flaky) == "placed"
    assert len(calls) == 3


def test_other_operational_errors_are_not_retried(monkeypatch) -> None:
    from apps.bookings.services import run_with_lock_retry

    monkeypatch.setattr("apps.bookings.services.time.sleep", lambda seconds: None)
    calls = []

    def broken() -> None:
        calls.append(1)
        raise OperationalError("no such table: bookings_booking")

    with pytest.raises(OperationalError):
        run_with_lock_retry(broken)
    assert len(calls) == 1
