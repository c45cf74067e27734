"""
Booking transaction: the only writer of reservations.

Every path that claims or moves a time range (new booking, technician
assignment, reschedule) runs its conflict re-check and its writes inside
one critical section keyed by (center, date). The advisory checks done by
the availability calculator and the matcher are never trusted at commit.

Lock order is always appointment row lock (taken by the workflow) before
the (center, date) reservation lock (taken here).
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from service_scheduler.config import settings
from service_scheduler.data.appointments import AppointmentStore
from service_scheduler.data.centers import CenterDirectory
from service_scheduler.data.services import ServiceCatalog
from service_scheduler.data.technicians import TechnicianRoster
from service_scheduler.errors import LockTimeoutError, NoTechnicianAvailable, ValidationError
from service_scheduler.locks import KeyedLockManager
from service_scheduler.logging_context import get_request_logger
from service_scheduler.schemas.appointment_schema import (
    Actor,
    Appointment,
    AppointmentDraft,
    AppointmentStatus,
    ServiceLine,
    WorkflowEntry,
)
from service_scheduler.schemas.catalog_schema import ServiceCategory, ServiceCenter
from service_scheduler.schemas.technician_schema import AvailabilityStatus
from service_scheduler.scheduling.availability import center_now, slot_start
from service_scheduler.scheduling.conflicts import ConflictDetector, evaluate
from service_scheduler.scheduling.matcher import TechnicianMatcher
from service_scheduler.utils import MINUTES_PER_DAY, format_minutes, parse_date, parse_time

logger = get_request_logger(__name__)


@dataclass
class BookingPlan:
    """A fully validated booking request, ready for the critical section."""
    center: ServiceCenter
    day: date
    start: int
    duration: int
    lines: list[ServiceLine]
    requires_approval: bool

    @property
    def end(self) -> int:
        return self.start + self.duration

    @property
    def categories(self) -> list[ServiceCategory]:
        seen: list[ServiceCategory] = []
        for line in self.lines:
            if line.category not in seen:
                seen.append(line.category)
        return seen


class BookingTransaction:
    """Atomically reserves slots and assigns technicians."""

    def __init__(
        self,
        store: AppointmentStore,
        catalog: ServiceCatalog,
        centers: CenterDirectory,
        roster: TechnicianRoster,
        detector: ConflictDetector,
        matcher: TechnicianMatcher,
        clock: Callable[[], datetime],
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._centers = centers
        self._roster = roster
        self._detector = detector
        self._matcher = matcher
        self._clock = clock
        self._locks = KeyedLockManager(settings.booking.lock_timeout_sec)

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def validate_slot(
        self, center: ServiceCenter, day: date, start: int, duration: int
    ) -> bool:
        """
        Check a slot against opening hours and lead-time policy.

        Returns:
            True when the booking spills past closing time and needs approval.
        """
        hours = center.hours_for(day)
        if hours is None:
            raise ValidationError(
                "scheduled_date", day.isoformat(), "Service center is closed on this date"
            )

        lead = timedelta(minutes=settings.booking.min_lead_time_minutes)
        if slot_start(center, day, start) - center_now(center, self._clock()) < lead:
            raise ValidationError(
                "scheduled_time",
                format_minutes(start),
                f"Bookings require at least {settings.booking.min_lead_time_minutes} "
                "minutes advance notice",
            )

        if start < hours.open_minutes or start >= hours.close_minutes:
            raise ValidationError(
                "scheduled_time",
                format_minutes(start),
                f"Start time is outside opening hours ({hours.open}-{hours.close})",
            )

        end = start + duration
        if end > MINUTES_PER_DAY:
            raise ValidationError(
                "scheduled_time", format_minutes(start), "Service cannot run past midnight"
            )
        if end > hours.close_minutes:
            if not settings.scheduling.allow_spillover:
                raise ValidationError(
                    "scheduled_time",
                    format_minutes(start),
                    f"Service would end at {format_minutes(end)}, after closing time {hours.close}",
                )
            logger.warning(
                "Spillover booking on %s at %s ends %s (closes %s); approval required",
                day.isoformat(), format_minutes(start), format_minutes(end), hours.close,
            )
            return True
        return False

    def plan(self, draft: AppointmentDraft) -> BookingPlan:
        """Validate a draft and resolve its services."""
        day = parse_date(draft.scheduled_date, "scheduled_date")
        start = parse_time(draft.scheduled_time, "scheduled_time")
        if not draft.services:
            raise ValidationError("services", [], "At least one service is required")

        services = self._catalog.resolve([s.service_id for s in draft.services])
        lines = [
            ServiceLine(
                service_id=svc.id,
                name=svc.name,
                category=svc.category,
                quantity=req.quantity,
                unit_price=svc.base_price,
                estimated_duration=svc.estimated_duration,
            )
            for svc, req in zip(services, draft.services)
        ]
        duration = sum(line.total_duration for line in lines)
        center = self._centers.get(draft.center_id)
        spills = self.validate_slot(center, day, start, duration)
        return BookingPlan(center, day, start, duration, lines, spills)

    def _check_technician(self, technician_id: str, center_id: str) -> None:
        technician = self._roster.get(technician_id)
        if technician.center_id != center_id:
            raise ValidationError(
                "technician_id", technician_id, "Technician does not work at this service center"
            )
        if technician.status == AvailabilityStatus.OFFLINE:
            raise ValidationError("technician_id", technician_id, "Technician is offline")

    # ------------------------------------------------------------------ #
    # New bookings
    # ------------------------------------------------------------------ #

    def book(self, draft: AppointmentDraft, actor: Actor) -> Appointment:
        """
        Validate and commit a new appointment in status ``pending``.

        Raises:
            ValidationError: Malformed or policy-violating draft.
            ConflictError: Slot or technician taken at commit time.
            NoTechnicianAvailable: Auto-assign found nobody eligible.
            LockTimeoutError: Lock contention persisted past the retry budget.
        """
        plan = self.plan(draft)
        if draft.technician_id:
            self._check_technician(draft.technician_id, plan.center.id)

        candidate_id: Optional[str] = None
        if draft.auto_assign and not draft.technician_id:
            best = self._matcher.best(
                plan.center.id, plan.day, plan.start, plan.duration, plan.categories
            )
            if best is None:
                raise NoTechnicianAvailable(
                    [c.value for c in plan.categories], plan.day.isoformat(), format_minutes(plan.start)
                )
            candidate_id = best.technician_id

        retries = settings.booking.max_lock_retries
        for attempt in range(retries + 1):
            try:
                return self._commit(plan, draft, actor, candidate_id)
            except LockTimeoutError:
                if attempt >= retries:
                    raise
                logger.warning(
                    "Lock contention booking %s %s; retry %d/%d",
                    plan.day.isoformat(), format_minutes(plan.start), attempt + 1, retries,
                )
        raise AssertionError("unreachable")

    def _commit(
        self,
        plan: BookingPlan,
        draft: AppointmentDraft,
        actor: Actor,
        candidate_id: Optional[str],
    ) -> Appointment:
        center = plan.center
        with self._locks.hold((center.id, plan.day)):
            reservations = self._detector.reservations(center.id, plan.day)

            bays = evaluate(reservations, plan.start, plan.end, center.total_bays)
            if bays.has_conflict:
                raise bays.to_error()

            technician_id = draft.technician_id
            if technician_id:
                held = evaluate(reservations, plan.start, plan.end, 0, technician_id)
                if held.has_conflict:
                    raise held.to_error()
            elif draft.auto_assign:
                technician_id = self._confirm_candidate(plan, reservations, candidate_id)

            now = self._clock()
            appointment = Appointment(
                id=uuid.uuid4().hex,
                number=self._store.next_number(center.id, center_now(center, now).date()),
                center_id=center.id,
                customer_id=draft.customer_id,
                vehicle_id=draft.vehicle_id,
                services=tuple(plan.lines),
                scheduled_date=plan.day,
                scheduled_time=format_minutes(plan.start),
                total_duration=plan.duration,
                assigned_technician_id=technician_id,
                priority=draft.priority,
                status=AppointmentStatus.PENDING,
                workflow_history=(
                    WorkflowEntry(
                        status=AppointmentStatus.PENDING,
                        actor_id=actor.id,
                        actor_role=actor.role,
                        timestamp=now,
                        notes="Appointment booked",
                    ),
                ),
                customer_notes=draft.customer_notes,
                total_price=sum(line.total_price for line in plan.lines),
                requires_spillover_approval=plan.requires_approval,
                original_date=plan.day,
                created_at=now,
            )
            self._store.insert(appointment)
            try:
                if technician_id:
                    self._roster.adjust_workload(technician_id, +1)
            except Exception:
                self._store.remove(appointment.id)
                raise

        logger.info(
            "Booked %s at %s on %s %s-%s (technician: %s)",
            appointment.number, center.id, plan.day.isoformat(),
            appointment.scheduled_time, appointment.end_time, technician_id or "unassigned",
        )
        return appointment

    def _confirm_candidate(
        self,
        plan: BookingPlan,
        reservations: list[Appointment],
        candidate_id: Optional[str],
    ) -> str:
        """Re-verify the pre-selected candidate; re-match once if they lost the slot."""
        if candidate_id is not None:
            still_free = not evaluate(
                reservations, plan.start, plan.end, 0, candidate_id
            ).has_conflict
            online = self._roster.get(candidate_id).status != AvailabilityStatus.OFFLINE
            if still_free and online:
                return candidate_id
            logger.info("Auto-assign candidate %s lost the slot; re-matching", candidate_id)

        best = self._matcher.best(
            plan.center.id, plan.day, plan.start, plan.duration, plan.categories, reservations
        )
        if best is None:
            raise NoTechnicianAvailable(
                [c.value for c in plan.categories], plan.day.isoformat(), format_minutes(plan.start)
            )
        return best.technician_id

    # ------------------------------------------------------------------ #
    # Changes to committed appointments
    # ------------------------------------------------------------------ #

    def assign(
        self,
        appointment: Appointment,
        actor: Actor,
        technician_id: Optional[str] = None,
        auto_assign: bool = False,
    ) -> Appointment:
        """
        Assign or reassign a technician on a committed appointment.

        A ``pending`` appointment is confirmed by the assignment. The previous
        technician's workload is released in the same critical section.
        """
        if not technician_id and not auto_assign:
            raise ValidationError(
                "technician_id", None, "Provide a technician id or request auto-assignment"
            )
        if technician_id:
            self._check_technician(technician_id, appointment.center_id)

        center = self._centers.get(appointment.center_id)
        day = appointment.scheduled_date
        start, end = appointment.start_minutes, appointment.end_minutes

        with self._locks.hold((center.id, day)):
            reservations = self._detector.reservations(center.id, day, exclude_id=appointment.id)
            if technician_id:
                held = evaluate(reservations, start, end, 0, technician_id)
                if held.has_conflict:
                    raise held.to_error()
            else:
                best = self._matcher.best(
                    center.id, day, start, appointment.total_duration,
                    appointment.categories, reservations,
                )
                if best is None:
                    raise NoTechnicianAvailable(
                        [c.value for c in appointment.categories], day.isoformat(),
                        appointment.scheduled_time,
                    )
                technician_id = best.technician_id

            previous = appointment.assigned_technician_id
            changes: dict = {"assigned_technician_id": technician_id}
            updated = appointment.model_copy(update=changes)
            if appointment.status == AppointmentStatus.PENDING:
                updated = appointment.with_entry(
                    WorkflowEntry(
                        status=AppointmentStatus.CONFIRMED,
                        previous_status=appointment.status,
                        actor_id=actor.id,
                        actor_role=actor.role,
                        timestamp=self._clock(),
                        notes=f"Confirmed on assignment of technician {technician_id}",
                    ),
                    status=AppointmentStatus.CONFIRMED,
                    **changes,
                )
            stored = self._store.replace(updated)

            if previous != technician_id:
                if previous:
                    self._roster.adjust_workload(previous, -1)
                self._roster.adjust_workload(technician_id, +1)

        logger.info(
            "Technician %s assigned to %s (previous: %s)",
            technician_id, stored.number, previous or "none",
        )
        return stored

    def move(
        self,
        appointment: Appointment,
        new_date: str,
        new_time: str,
        entry: WorkflowEntry,
    ) -> Appointment:
        """
        Re-validate and commit a new slot for an existing appointment.

        The assigned technician (if any) is kept and must be free in the new
        slot; the appointment's own reservation is ignored when checking.
        """
        day = parse_date(new_date, "new_date")
        start = parse_time(new_time, "new_time")
        center = self._centers.get(appointment.center_id)
        duration = appointment.total_duration
        spills = self.validate_slot(center, day, start, duration)

        with self._locks.hold((center.id, day)):
            reservations = self._detector.reservations(center.id, day, exclude_id=appointment.id)
            bays = evaluate(reservations, start, start + duration, center.total_bays)
            if bays.has_conflict:
                raise bays.to_error()
            if appointment.assigned_technician_id:
                held = evaluate(
                    reservations, start, start + duration, 0, appointment.assigned_technician_id
                )
                if held.has_conflict:
                    raise held.to_error()

            stored = self._store.replace(appointment.with_entry(
                entry,
                status=AppointmentStatus.RESCHEDULED,
                scheduled_date=day,
                scheduled_time=format_minutes(start),
                requires_spillover_approval=spills,
                previous_date=appointment.scheduled_date,
                reschedule_count=appointment.reschedule_count + 1,
            ))

        logger.info(
            "Rescheduled %s from %s %s to %s %s",
            stored.number, appointment.scheduled_date.isoformat(), appointment.scheduled_time,
            new_date, stored.scheduled_time,
        )
        return stored
