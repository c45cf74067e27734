"""Shared test fixtures and helpers."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from service_scheduler.data.centers import DEFAULT_CENTER_ID, CenterDirectory
from service_scheduler.engine import SchedulingEngine
from service_scheduler.schemas.appointment_schema import (
    Actor,
    Appointment,
    AppointmentDraft,
    Role,
    ServiceRequest,
)
from service_scheduler.schemas.catalog_schema import WEEKDAYS, ServiceCenter, WorkingHours
from service_scheduler.workflow import TransitionContext

# Monday 2025-03-17, 08:00 in the center's zone (Asia/Ho_Chi_Minh, UTC+7).
NOW = datetime(2025, 3, 17, 1, 0, tzinfo=timezone.utc)
TODAY = "2025-03-17"
TOMORROW = "2025-03-18"
SATURDAY = "2025-03-22"
SUNDAY = "2025-03-23"

STAFF = Actor(id="staff-1", role=Role.STAFF)
ADMIN = Actor(id="admin-1", role=Role.ADMIN)
CUSTOMER = Actor(id="cust-1", role=Role.CUSTOMER)
SYSTEM = Actor(id="system", role=Role.SYSTEM)


def technician(tech_id: str = "tech-an") -> Actor:
    return Actor(id=tech_id, role=Role.TECHNICIAN)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> None:
        self.moment += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def engine(clock):
    return SchedulingEngine(clock=clock)


def make_center(
    total_bays: int = 10,
    open_: str = "08:00",
    close: str = "18:00",
    closed_dates: tuple = (),
    center_id: str = DEFAULT_CENTER_ID,
) -> ServiceCenter:
    """A center open every day with the same hours."""
    return ServiceCenter(
        id=center_id,
        name="Test Center",
        timezone="Asia/Ho_Chi_Minh",
        total_bays=total_bays,
        working_hours={day: WorkingHours(open=open_, close=close) for day in WEEKDAYS},
        closed_dates=frozenset(closed_dates),
    )


def engine_with_center(clock: "FrozenClock", **center_kwargs) -> SchedulingEngine:
    return SchedulingEngine(centers=CenterDirectory([make_center(**center_kwargs)]), clock=clock)


def make_draft(
    services: Optional[list[str]] = None,
    scheduled_date: str = TOMORROW,
    scheduled_time: str = "09:00",
    technician_id: Optional[str] = None,
    auto_assign: bool = False,
    center_id: str = DEFAULT_CENTER_ID,
    customer_id: str = "cust-1",
    **overrides,
) -> AppointmentDraft:
    """Helper to create a booking draft with sensible defaults."""
    return AppointmentDraft(
        center_id=center_id,
        customer_id=customer_id,
        vehicle_id=overrides.pop("vehicle_id", "veh-1"),
        services=[
            ServiceRequest(service_id=sid)
            for sid in (services if services is not None else ["svc-battery-health"])
        ],
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        technician_id=technician_id,
        auto_assign=auto_assign,
        **overrides,
    )


def book(engine: SchedulingEngine, actor: Actor = CUSTOMER, **kwargs) -> Appointment:
    """Book through the engine with ``make_draft`` defaults."""
    return engine.create_appointment(make_draft(**kwargs), actor)


def walk_to_reception_approved(
    engine: SchedulingEngine, clock: FrozenClock, tech_id: str = "tech-an"
) -> Appointment:
    """Book for tomorrow with ``tech_id`` and drive it to ``reception_approved``."""
    apt = book(engine, technician_id=tech_id)
    engine.apply_action(apt.id, "confirm", STAFF)
    clock.advance(days=1)
    engine.apply_action(apt.id, "arrive", STAFF)
    engine.apply_action(apt.id, "create_reception", technician(tech_id))
    return engine.apply_action(
        apt.id, "approve_reception", STAFF,
        context=TransitionContext(inspection_submitted=True),
    )
