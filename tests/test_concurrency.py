"""Concurrency tests: racing bookings and racing status changes."""

import threading
from concurrent.futures import ThreadPoolExecutor
from itertools import combinations

from service_scheduler.data.centers import DEFAULT_CENTER_ID
from service_scheduler.errors import (
    ConflictError,
    InvalidTransitionError,
    NoTechnicianAvailable,
    SchedulingError,
)
from service_scheduler.schemas.appointment_schema import AppointmentStatus
from service_scheduler.utils import ranges_overlap
from tests.conftest import STAFF, book, engine_with_center, technician, walk_to_reception_approved


def _race(count, fn):
    """Run ``fn(i)`` on ``count`` threads released together; return results and errors."""
    barrier = threading.Barrier(count)

    def run(i):
        barrier.wait()
        try:
            return fn(i), None
        except SchedulingError as e:
            return None, e

    with ThreadPoolExecutor(max_workers=count) as pool:
        outcomes = list(pool.map(run, range(count)))
    return [r for r, _ in outcomes if r is not None], [e for _, e in outcomes if e is not None]


class TestBookingRaces:
    def test_same_technician_same_slot_only_one_wins(self, engine):
        wins, errors = _race(2, lambda i: book(
            engine, technician_id="tech-an", customer_id=f"cust-{i}",
        ))
        assert len(wins) == 1
        assert len(errors) == 1
        error = errors[0]
        assert isinstance(error, ConflictError)
        assert error.status_code == 409
        assert error.conflicting_appointment["technicianId"] == "tech-an"
        assert error.conflicting_appointment["id"] == wins[0].id

    def test_many_racers_one_technician(self, engine):
        wins, errors = _race(12, lambda i: book(
            engine, technician_id="tech-an", customer_id=f"cust-{i}",
            scheduled_time=["09:00", "09:30"][i % 2],
        ))
        assert len(wins) == 1
        assert all(isinstance(e, ConflictError) for e in errors)
        assert engine.roster.get("tech-an").workload_current == 1

    def test_bay_capacity_never_exceeded(self, clock):
        engine = engine_with_center(clock, total_bays=3)
        wins, errors = _race(10, lambda i: book(engine, customer_id=f"cust-{i}"))
        assert len(wins) == 3
        assert len(errors) == 7
        assert len(engine.list_appointments(DEFAULT_CENTER_ID)) == 3

    def test_auto_assign_never_double_books(self, engine):
        wins, errors = _race(8, lambda i: book(
            engine, services=["svc-periodic-maintenance"], auto_assign=True, customer_id=f"cust-{i}",
        ))
        # Only tech-an and tech-dung are eligible for maintenance work.
        assert sorted(a.assigned_technician_id for a in wins) == ["tech-an", "tech-dung"]
        assert all(isinstance(e, NoTechnicianAvailable) for e in errors)

    def test_no_overlap_for_any_technician(self, engine):
        times = ["08:00", "08:30", "09:00", "09:30", "10:00", "10:30"]
        techs = ["tech-an", "tech-binh", "tech-cuong"]

        def attempt(i):
            return book(
                engine, technician_id=techs[i % 3], scheduled_time=times[i % len(times)],
                services=["svc-electronics-diagnostic", "svc-tire-rotation"], customer_id=f"c{i}",
            )

        wins, _ = _race(18, attempt)
        assert wins
        for a, b in combinations(engine.list_appointments(DEFAULT_CENTER_ID), 2):
            if a.assigned_technician_id == b.assigned_technician_id:
                assert not ranges_overlap(
                    a.start_minutes, a.end_minutes, b.start_minutes, b.end_minutes
                )


class TestWorkflowRaces:
    def test_concurrent_confirmations_record_once(self, engine):
        apt = book(engine, technician_id="tech-an")
        wins, errors = _race(6, lambda i: engine.apply_action(apt.id, "confirm", STAFF))
        assert len(wins) == 1
        assert all(isinstance(e, InvalidTransitionError) for e in errors)
        stored = engine.get_appointment(apt.id)
        confirmations = [e for e in stored.workflow_history if e.status == AppointmentStatus.CONFIRMED]
        assert len(confirmations) == 1

    def test_concurrent_auto_start_is_idempotent(self, engine, clock):
        apt = walk_to_reception_approved(engine, clock)
        results, errors = _race(8, lambda i: engine.get_appointment(apt.id, technician("tech-an")))
        assert errors == []
        assert all(r.status == AppointmentStatus.IN_PROGRESS for r in results)
        stored = engine.get_appointment(apt.id)
        started = [e for e in stored.workflow_history if e.status == AppointmentStatus.IN_PROGRESS]
        assert len(started) == 1

    def test_cancel_races_with_work_start(self, engine, clock):
        apt = walk_to_reception_approved(engine, clock)

        def act(i):
            if i % 2:
                return engine.apply_action(apt.id, "cancel", STAFF)
            return engine.apply_action(apt.id, "start_work", technician("tech-an"))

        _race(2, act)
        stored = engine.get_appointment(apt.id)
        # Cancel wins either way: before start_work it blocks it, after it closes it.
        assert stored.status == AppointmentStatus.CANCELLED
        assert stored.version == len(stored.workflow_history)
