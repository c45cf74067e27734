"""
Scheduling engine facade.

Wires the reference data, the appointment store, the scheduling components
and the workflow together behind one object with one method per external
operation. The HTTP layer and the console helper only ever talk to this.

Usage:
    engine = SchedulingEngine()
    slots = engine.availability("center-main", "2025-03-18", 60)
"""

from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Union

from service_scheduler.data.appointments import AppointmentStore
from service_scheduler.data.centers import CenterDirectory
from service_scheduler.data.services import ServiceCatalog
from service_scheduler.data.technicians import TechnicianRoster
from service_scheduler.errors import ValidationError
from service_scheduler.logging_context import get_request_logger
from service_scheduler.schemas.appointment_schema import (
    Actor,
    Appointment,
    AppointmentDraft,
    AppointmentStatus,
    PreValidation,
    TimeSlot,
)
from service_scheduler.schemas.catalog_schema import ServiceCategory
from service_scheduler.schemas.technician_schema import TechnicianCandidate
from service_scheduler.scheduling import (
    BookingTransaction,
    ConflictDetector,
    SlotAvailabilityCalculator,
    TechnicianMatcher,
)
from service_scheduler.scheduling.availability import validate_duration
from service_scheduler.utils import parse_date, parse_time
from service_scheduler.workflow import AppointmentStateMachine, TransitionContext, resolve_action

logger = get_request_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_status(value: Union[str, AppointmentStatus], field_name: str = "status") -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise ValidationError(field_name, value, "Unknown appointment status") from None


def _coerce_categories(values: Iterable[Union[str, ServiceCategory]]) -> list[ServiceCategory]:
    categories: list[ServiceCategory] = []
    for value in values:
        try:
            category = ServiceCategory(value)
        except ValueError:
            raise ValidationError("categories", value, "Unknown service category") from None
        if category not in categories:
            categories.append(category)
    return categories


class SchedulingEngine:
    """One instance per process; every component shares the same stores and clock."""

    def __init__(
        self,
        centers: Optional[CenterDirectory] = None,
        catalog: Optional[ServiceCatalog] = None,
        roster: Optional[TechnicianRoster] = None,
        store: Optional[AppointmentStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.centers = centers or CenterDirectory()
        self.catalog = catalog or ServiceCatalog()
        self.roster = roster or TechnicianRoster()
        self.store = store or AppointmentStore()
        self._clock = clock or utc_now

        self.detector = ConflictDetector(self.store, self.centers)
        self.calculator = SlotAvailabilityCalculator(self.centers, self.detector, self.now)
        self.matcher = TechnicianMatcher(self.roster, self.detector)
        self.booking = BookingTransaction(
            self.store, self.catalog, self.centers, self.roster,
            self.detector, self.matcher, self.now,
        )
        self.workflow = AppointmentStateMachine(
            self.store, self.centers, self.roster, self.booking, self.now,
        )

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        return self._clock()

    # ------------------------------------------------------------------ #
    # Read path (advisory, lock-free)
    # ------------------------------------------------------------------ #

    def availability(
        self,
        center_id: str,
        date: str,
        duration_minutes: int,
        granularity: Optional[int] = None,
    ) -> list[TimeSlot]:
        return self.calculator.compute_slots(center_id, date, duration_minutes, granularity)

    def pre_validate(
        self,
        center_id: str,
        date: str,
        time: str,
        duration_minutes: int,
        technician_id: Optional[str] = None,
    ) -> PreValidation:
        """
        Advisory "can this slot be booked right now?".

        Raises:
            ConflictError: The slot (or the named technician) is taken.
            ValidationError: Malformed input, closed day, lead time or hours policy.
        """
        day = parse_date(date, "date")
        start = parse_time(time, "time")
        validate_duration(duration_minutes)
        center = self.centers.get(center_id)
        requires_approval = self.booking.validate_slot(center, day, start, duration_minutes)

        check = self.detector.has_conflict(center_id, day, start, duration_minutes)
        if check.has_conflict:
            raise check.to_error()
        if technician_id:
            self.roster.get(technician_id)
            check = self.detector.has_conflict(
                center_id, day, start, duration_minutes, technician_id=technician_id
            )
            if check.has_conflict:
                raise check.to_error()

        return PreValidation(
            can_book=True,
            date=date,
            time=time,
            duration_minutes=duration_minutes,
            technician_id=technician_id,
            requires_approval=requires_approval,
        )

    def available_technicians(
        self,
        center_id: str,
        date: str,
        time: str,
        duration_minutes: int,
        categories: Iterable[Union[str, ServiceCategory]],
    ) -> list[TechnicianCandidate]:
        day = parse_date(date, "date")
        start = parse_time(time, "time")
        validate_duration(duration_minutes)
        self.centers.get(center_id)
        return self.matcher.rank_technicians(
            center_id, day, start, duration_minutes, _coerce_categories(categories)
        )

    def get_appointment(self, appointment_id: str, viewer: Optional[Actor] = None) -> Appointment:
        """Fetch an appointment, firing any status-implied transition for ``viewer``."""
        return self.workflow.reconcile(self.store.get(appointment_id), viewer)

    def list_appointments(
        self,
        center_id: str,
        date: Optional[str] = None,
        status: Optional[Union[str, AppointmentStatus]] = None,
    ) -> list[Appointment]:
        day = parse_date(date, "date") if date is not None else None
        wanted = _coerce_status(status) if status is not None else None
        return self.store.list(center_id=center_id, day=day, status=wanted)

    # ------------------------------------------------------------------ #
    # Write path
    # ------------------------------------------------------------------ #

    def create_appointment(self, draft: AppointmentDraft, actor: Actor) -> Appointment:
        return self.booking.book(draft, actor)

    def update_status(
        self,
        appointment_id: str,
        new_status: Union[str, AppointmentStatus],
        actor: Actor,
        notes: Optional[str] = None,
        context: Optional[TransitionContext] = None,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        stored = self.workflow.transition(
            appointment_id, _coerce_status(new_status, "new_status"), actor,
            notes=notes, context=context, expected_version=expected_version,
        )
        return self.workflow.reconcile(stored, actor)

    def apply_action(
        self,
        appointment_id: str,
        action: str,
        actor: Actor,
        notes: Optional[str] = None,
        context: Optional[TransitionContext] = None,
        expected_version: Optional[int] = None,
        new_date: Optional[str] = None,
        new_time: Optional[str] = None,
    ) -> Appointment:
        """Run a named workflow action (``confirm``, ``start_work``, ``cancel``...)."""
        status = resolve_action(action)
        if status == AppointmentStatus.RESCHEDULED:
            if not new_date or not new_time:
                raise ValidationError(
                    "new_date", new_date, "Rescheduling requires a new date and time"
                )
            return self.workflow.reschedule(
                appointment_id, new_date, new_time, actor,
                reason=notes, expected_version=expected_version,
            )
        return self.update_status(
            appointment_id, status, actor,
            notes=notes, context=context, expected_version=expected_version,
        )

    def assign_technician(
        self,
        appointment_id: str,
        actor: Actor,
        technician_id: Optional[str] = None,
        auto_assign: bool = False,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        return self.workflow.assign(
            appointment_id, actor, technician_id, auto_assign, expected_version
        )

    def reschedule(
        self,
        appointment_id: str,
        new_date: str,
        new_time: str,
        actor: Actor,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        return self.workflow.reschedule(
            appointment_id, new_date, new_time, actor, reason, expected_version
        )

    def reset(self) -> None:
        """Drop all appointments and restore seed reference data."""
        self.store.reset()
        self.roster.reset()
        self.centers.reset()
        logger.debug("Engine state reset")
