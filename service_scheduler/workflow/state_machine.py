"""
Appointment workflow state machine.

Transitions are a table of (from status, to status, permitted roles, guard).
A ``None`` source means "any non-terminal status" and covers the side
branches (cancel, no-show, reschedule). Anything not in the table is
rejected with ``InvalidTransitionError`` and leaves the appointment untouched.

Every change to a single appointment runs under that appointment's row
lock and is committed with an optimistic version check, so two actors
racing on the same appointment cannot lose each other's update.

Usage:
    sm = AppointmentStateMachine(store, centers, roster, booking, clock)
    sm.transition(apt_id, AppointmentStatus.CONFIRMED, Actor(id="s1", role=Role.STAFF))
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from service_scheduler.config import settings
from service_scheduler.data.appointments import AppointmentStore
from service_scheduler.data.centers import CenterDirectory
from service_scheduler.data.technicians import TechnicianRoster
from service_scheduler.errors import InvalidTransitionError, StaleAppointmentError, ValidationError
from service_scheduler.logging_context import get_request_logger
from service_scheduler.schemas.appointment_schema import (
    Actor,
    Appointment,
    AppointmentStatus,
    Role,
    WorkflowEntry,
)
from service_scheduler.scheduling.availability import center_now
from service_scheduler.scheduling.booking import BookingTransaction

logger = get_request_logger(__name__)

S = AppointmentStatus


@dataclass
class TransitionContext:
    """Facts owned by external collaborators (inspection, parts, billing)."""
    inspection_submitted: bool = False
    parts_shortfall: bool = False
    parts_fulfilled: bool = False
    invoice_id: Optional[str] = None
    checklist_resolved: bool = True


@dataclass
class TransitionRequest:
    """Everything a guard may look at."""
    appointment: Appointment
    actor: Actor
    context: TransitionContext
    today: date


@dataclass
class Transition:
    """A single permitted status change."""
    from_status: Optional[AppointmentStatus]
    to_status: AppointmentStatus
    roles: frozenset[Role]
    guard: Optional[Callable[[TransitionRequest], bool]] = None
    reason: str = ""
    # Logged as a warning when it fails; never blocks.
    soft_guard: Optional[Callable[[TransitionRequest], bool]] = None
    soft_reason: str = ""

    def applies_to(self, status: AppointmentStatus, is_terminal: bool) -> bool:
        if self.from_status is None:
            return not is_terminal
        return self.from_status == status


def _roles(*roles: Role) -> frozenset[Role]:
    return frozenset(roles)


def _arrival_window_open(req: TransitionRequest) -> bool:
    latest = req.today + timedelta(days=settings.workflow.early_arrival_days)
    return req.appointment.scheduled_date <= latest


def _is_assigned_technician(req: TransitionRequest) -> bool:
    return req.actor.id == req.appointment.assigned_technician_id


def _customer_is_owner(req: TransitionRequest) -> bool:
    return req.actor.role != Role.CUSTOMER or req.actor.id == req.appointment.customer_id


ACTIONS: dict[str, AppointmentStatus] = {
    "confirm": S.CONFIRMED,
    "arrive": S.CUSTOMER_ARRIVED,
    "create_reception": S.RECEPTION_CREATED,
    "approve_reception": S.RECEPTION_APPROVED,
    "start_work": S.IN_PROGRESS,
    "request_parts": S.PARTS_REQUESTED,
    "parts_fulfilled": S.IN_PROGRESS,
    "complete": S.COMPLETED,
    "invoice": S.INVOICED,
    "cancel": S.CANCELLED,
    "no_show": S.NO_SHOW,
    "reschedule": S.RESCHEDULED,
}

# Statuses that give the technician's slot back.
_RELEASES_WORKLOAD = frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW})


def _starts_work_on_view(appointment: Appointment, viewer: Actor) -> bool:
    return (
        appointment.status == S.RECEPTION_APPROVED
        and viewer.role == Role.TECHNICIAN
        and viewer.id == appointment.assigned_technician_id
    )


class AppointmentStateMachine:
    """
    Role- and guard-checked workflow for committed appointments.

    The history on each appointment is append-only: every accepted
    transition adds exactly one ``WorkflowEntry`` and nothing ever
    rewrites earlier entries.
    """

    TRANSITIONS: list[Transition] = [
        # --- Normal path ---
        Transition(S.PENDING, S.CONFIRMED, _roles(Role.STAFF, Role.ADMIN)),
        Transition(S.CONFIRMED, S.CUSTOMER_ARRIVED, _roles(Role.STAFF, Role.TECHNICIAN, Role.ADMIN),
                   guard=_arrival_window_open,
                   reason="Customer can only check in on the scheduled date"),
        Transition(S.CUSTOMER_ARRIVED, S.RECEPTION_CREATED, _roles(Role.TECHNICIAN, Role.STAFF)),
        Transition(S.RECEPTION_CREATED, S.RECEPTION_APPROVED, _roles(Role.STAFF, Role.ADMIN),
                   guard=lambda req: req.context.inspection_submitted,
                   reason="Inspection record has not been fully submitted"),
        Transition(S.RECEPTION_APPROVED, S.IN_PROGRESS, _roles(Role.TECHNICIAN),
                   guard=_is_assigned_technician,
                   reason="Only the assigned technician can start work"),

        # --- Parts loop ---
        Transition(S.IN_PROGRESS, S.PARTS_REQUESTED, _roles(Role.TECHNICIAN),
                   guard=lambda req: req.context.parts_shortfall,
                   reason="No parts shortfall reported"),
        Transition(S.PARTS_REQUESTED, S.IN_PROGRESS, _roles(Role.STAFF, Role.SYSTEM),
                   guard=lambda req: req.context.parts_fulfilled,
                   reason="Requested parts have not been fulfilled"),

        # --- Completion and billing ---
        Transition(S.IN_PROGRESS, S.COMPLETED, _roles(Role.TECHNICIAN),
                   soft_guard=lambda req: req.context.checklist_resolved,
                   soft_reason="checklist items still unresolved"),
        Transition(S.COMPLETED, S.INVOICED, _roles(Role.STAFF, Role.ADMIN),
                   guard=lambda req: bool(req.context.invoice_id),
                   reason="No invoice has been generated"),

        # --- Side branches (any non-terminal status) ---
        Transition(None, S.CANCELLED, _roles(Role.STAFF, Role.ADMIN, Role.CUSTOMER),
                   guard=_customer_is_owner,
                   reason="Customers can only cancel their own appointments"),
        Transition(None, S.NO_SHOW, _roles(Role.STAFF, Role.ADMIN)),
        Transition(None, S.RESCHEDULED, _roles(Role.STAFF, Role.ADMIN)),

        # --- Back onto the normal path ---
        Transition(S.RESCHEDULED, S.CONFIRMED, _roles(Role.STAFF, Role.ADMIN)),
    ]

    def __init__(
        self,
        store: AppointmentStore,
        centers: CenterDirectory,
        roster: TechnicianRoster,
        booking: BookingTransaction,
        clock: Callable[[], datetime],
    ) -> None:
        self._store = store
        self._centers = centers
        self._roster = roster
        self._booking = booking
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Table lookups
    # ------------------------------------------------------------------ #

    def valid_targets(self, appointment: Appointment, role: Role) -> list[AppointmentStatus]:
        """Statuses reachable from the current one for ``role``, ignoring guards."""
        return [
            t.to_status for t in self.TRANSITIONS
            if t.applies_to(appointment.status, appointment.is_terminal) and role in t.roles
        ]

    def _today(self, appointment: Appointment) -> date:
        center = self._centers.get(appointment.center_id)
        return center_now(center, self._clock()).date()

    def _resolve(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus,
        actor: Actor,
        context: TransitionContext,
    ) -> tuple[Transition, TransitionRequest]:
        current = appointment.status
        candidates = [
            t for t in self.TRANSITIONS
            if t.to_status == new_status and t.applies_to(current, appointment.is_terminal)
        ]
        if not candidates:
            reason = (
                "appointment is already closed" if appointment.is_terminal
                else "not reachable from the current status"
            )
            raise InvalidTransitionError(current.value, new_status.value, reason=reason)

        permitted = [t for t in candidates if actor.role in t.roles]
        if not permitted:
            raise InvalidTransitionError(
                current.value, new_status.value, actor.role.value,
                reason="role is not permitted to make this change",
            )

        request = TransitionRequest(appointment, actor, context, self._today(appointment))
        for rule in permitted:
            if rule.guard is None or rule.guard(request):
                return rule, request
        raise InvalidTransitionError(
            current.value, new_status.value, actor.role.value, reason=permitted[0].reason
        )

    @staticmethod
    def _check_version(appointment: Appointment, expected_version: Optional[int]) -> None:
        if expected_version is not None and appointment.version != expected_version:
            raise StaleAppointmentError(appointment.id, expected_version, appointment.version)

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def transition(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
        actor: Actor,
        notes: Optional[str] = None,
        context: Optional[TransitionContext] = None,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        """
        Move an appointment to ``new_status``.

        Raises:
            InvalidTransitionError: Not reachable, role not permitted, or guard failed.
            StaleAppointmentError: ``expected_version`` does not match.
            LockTimeoutError: The appointment stayed locked past the timeout.
        """
        ctx = context or TransitionContext()
        with self._store.locked(appointment_id):
            current = self._store.get(appointment_id)
            self._check_version(current, expected_version)
            rule, request = self._resolve(current, new_status, actor, ctx)
            if new_status == S.RESCHEDULED:
                raise InvalidTransitionError(
                    current.status.value, new_status.value, actor.role.value,
                    reason="rescheduling requires a new date and time",
                )
            if rule.soft_guard is not None and not rule.soft_guard(request):
                logger.warning(
                    "Appointment %s moved to %s with %s",
                    current.number, new_status.value, rule.soft_reason,
                )
            stored = self._commit(current, new_status, actor, notes, ctx)

        logger.info(
            "Appointment %s: %s -> %s by %s (%s)",
            stored.number, current.status.value, stored.status.value, actor.id, actor.role.value,
        )
        return stored

    def _commit(
        self,
        current: Appointment,
        new_status: AppointmentStatus,
        actor: Actor,
        notes: Optional[str],
        ctx: TransitionContext,
    ) -> Appointment:
        now = self._clock()
        changes: dict = {"status": new_status}
        if new_status == S.CUSTOMER_ARRIVED:
            changes["arrived_at"] = now
        elif new_status == S.COMPLETED:
            changes["completed_at"] = now
        elif new_status == S.CANCELLED:
            changes["cancelled_at"] = now
        elif new_status == S.INVOICED:
            changes["invoice_id"] = ctx.invoice_id

        entry = WorkflowEntry(
            status=new_status,
            previous_status=current.status,
            actor_id=actor.id,
            actor_role=actor.role,
            timestamp=now,
            notes=notes,
        )
        stored = self._store.replace(current.with_entry(entry, **changes))

        if new_status in _RELEASES_WORKLOAD and stored.assigned_technician_id:
            self._roster.adjust_workload(stored.assigned_technician_id, -1)
        return stored

    def reschedule(
        self,
        appointment_id: str,
        new_date: str,
        new_time: str,
        actor: Actor,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        """Move an appointment to a new slot, re-validated by the booking transaction."""
        with self._store.locked(appointment_id):
            current = self._store.get(appointment_id)
            self._check_version(current, expected_version)
            self._resolve(current, S.RESCHEDULED, actor, TransitionContext())

            limit = settings.booking.max_reschedules
            if current.reschedule_count >= limit:
                raise InvalidTransitionError(
                    current.status.value, S.RESCHEDULED.value, actor.role.value,
                    reason=f"reschedule limit of {limit} reached",
                )

            note = (
                f"Moved from {current.scheduled_date.isoformat()} {current.scheduled_time} "
                f"to {new_date} {new_time}"
            )
            entry = WorkflowEntry(
                status=S.RESCHEDULED,
                previous_status=current.status,
                actor_id=actor.id,
                actor_role=actor.role,
                timestamp=self._clock(),
                notes=f"{note}: {reason}" if reason else note,
            )
            return self._booking.move(current, new_date, new_time, entry)

    def assign(
        self,
        appointment_id: str,
        actor: Actor,
        technician_id: Optional[str] = None,
        auto_assign: bool = False,
        expected_version: Optional[int] = None,
    ) -> Appointment:
        """Assign (or reassign) a technician; confirms a pending appointment."""
        with self._store.locked(appointment_id):
            current = self._store.get(appointment_id)
            self._check_version(current, expected_version)
            if actor.role not in (Role.STAFF, Role.ADMIN):
                raise InvalidTransitionError(
                    current.status.value, current.status.value, actor.role.value,
                    reason="only staff can assign technicians",
                )
            if current.is_terminal:
                raise InvalidTransitionError(
                    current.status.value, current.status.value, actor.role.value,
                    reason="cannot assign a technician to a closed appointment",
                )
            return self._booking.assign(current, actor, technician_id, auto_assign)

    def reconcile(self, appointment: Appointment, viewer: Optional[Actor]) -> Appointment:
        """
        Fire status-implied transitions for ``viewer``.

        Currently one rule: the assigned technician observing a
        ``reception_approved`` appointment starts work on it. Re-checked
        under the row lock, so observing the same state twice records the
        transition once.
        """
        if not settings.workflow.auto_start_work or viewer is None:
            return appointment
        if not _starts_work_on_view(appointment, viewer):
            return appointment

        with self._store.locked(appointment.id):
            current = self._store.get(appointment.id)
            # Status or assignee may have changed since the unlocked read.
            if not _starts_work_on_view(current, viewer):
                return current
            self._resolve(current, S.IN_PROGRESS, viewer, TransitionContext())
            stored = self._commit(
                current, S.IN_PROGRESS, viewer,
                "Work started automatically when the assigned technician opened the appointment",
                TransitionContext(),
            )

        logger.info("Auto-started work on %s for %s", stored.number, viewer.id)
        return stored


def resolve_action(action: str) -> AppointmentStatus:
    """Map a named workflow action onto its target status."""
    try:
        return ACTIONS[action]
    except KeyError:
        raise ValidationError(
            "action", action, f"Unknown action; expected one of {sorted(ACTIONS)}"
        ) from None
