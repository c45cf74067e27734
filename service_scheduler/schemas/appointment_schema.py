"""Appointment, workflow history, and slot data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from service_scheduler.schemas.catalog_schema import ServiceCategory
from service_scheduler.utils import format_minutes, parse_time


class AppointmentStatus(str, Enum):
    """Detailed workflow status of an appointment."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CUSTOMER_ARRIVED = "customer_arrived"
    RECEPTION_CREATED = "reception_created"
    RECEPTION_APPROVED = "reception_approved"
    IN_PROGRESS = "in_progress"
    PARTS_REQUESTED = "parts_requested"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


TERMINAL_STATUSES: frozenset[AppointmentStatus] = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
    AppointmentStatus.INVOICED,
})


class CoreStatus(str, Enum):
    """Coarse status used for grouping appointments in UIs and reports."""
    SCHEDULED = "Scheduled"
    CHECKED_IN = "CheckedIn"
    IN_SERVICE = "InService"
    ON_HOLD = "OnHold"
    READY_FOR_PICKUP = "ReadyForPickup"
    CLOSED = "Closed"


CORE_STATUS_MAP: dict[AppointmentStatus, CoreStatus] = {
    AppointmentStatus.PENDING: CoreStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED: CoreStatus.SCHEDULED,
    AppointmentStatus.RESCHEDULED: CoreStatus.SCHEDULED,
    AppointmentStatus.CUSTOMER_ARRIVED: CoreStatus.CHECKED_IN,
    AppointmentStatus.RECEPTION_CREATED: CoreStatus.CHECKED_IN,
    AppointmentStatus.RECEPTION_APPROVED: CoreStatus.IN_SERVICE,
    AppointmentStatus.IN_PROGRESS: CoreStatus.IN_SERVICE,
    AppointmentStatus.PARTS_REQUESTED: CoreStatus.ON_HOLD,
    AppointmentStatus.COMPLETED: CoreStatus.READY_FOR_PICKUP,
    AppointmentStatus.INVOICED: CoreStatus.READY_FOR_PICKUP,
    AppointmentStatus.CANCELLED: CoreStatus.CLOSED,
    AppointmentStatus.NO_SHOW: CoreStatus.CLOSED,
}


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Role(str, Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    TECHNICIAN = "technician"
    ADMIN = "admin"
    SYSTEM = "system"


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Actor(_Model):
    """The authenticated user (or the system) performing an operation."""
    id: str
    role: Role


class ServiceRequest(_Model):
    """A requested catalog service and quantity, as submitted by the client."""
    service_id: str
    quantity: int = Field(default=1, ge=1)


class ServiceLine(_Model):
    """A resolved service on an appointment, priced at creation time."""
    service_id: str
    name: str
    category: ServiceCategory
    quantity: int = Field(ge=1)
    unit_price: float
    estimated_duration: int

    @property
    def total_duration(self) -> int:
        return self.estimated_duration * self.quantity

    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity


class AppointmentDraft(_Model):
    """Booking request submitted by a client."""
    center_id: str
    customer_id: str
    vehicle_id: str
    services: list[ServiceRequest] = Field(default_factory=list)
    scheduled_date: str
    scheduled_time: str
    technician_id: Optional[str] = None
    auto_assign: bool = False
    priority: Priority = Priority.NORMAL
    customer_notes: Optional[str] = None


class WorkflowEntry(_Model):
    """Immutable audit record of a single status change."""
    status: AppointmentStatus
    previous_status: Optional[AppointmentStatus] = None
    actor_id: str
    actor_role: Role
    timestamp: datetime
    notes: Optional[str] = None


class Appointment(_Model):
    """
    The central scheduling record.

    Instances are frozen. Every change produces a new instance with a
    bumped version; the workflow history only ever grows through
    ``with_entry``.
    """
    id: str
    number: str
    center_id: str
    customer_id: str
    vehicle_id: str
    services: tuple[ServiceLine, ...]
    scheduled_date: date
    scheduled_time: str
    total_duration: int
    assigned_technician_id: Optional[str] = None
    priority: Priority = Priority.NORMAL
    status: AppointmentStatus = AppointmentStatus.PENDING
    workflow_history: tuple[WorkflowEntry, ...] = ()
    customer_notes: Optional[str] = None
    total_price: float = 0.0
    requires_spillover_approval: bool = False
    version: int = 1
    reschedule_count: int = 0
    original_date: Optional[date] = None
    previous_date: Optional[date] = None
    invoice_id: Optional[str] = None
    created_at: datetime
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minutes)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def core_status(self) -> CoreStatus:
        return CORE_STATUS_MAP[self.status]

    @property
    def start_minutes(self) -> int:
        return parse_time(self.scheduled_time, "scheduled_time")

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.total_duration

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def categories(self) -> list[ServiceCategory]:
        seen: list[ServiceCategory] = []
        for line in self.services:
            if line.category not in seen:
                seen.append(line.category)
        return seen

    def with_entry(self, entry: WorkflowEntry, **changes) -> "Appointment":
        """Return a copy with ``entry`` appended to the history and ``changes`` applied."""
        return self.model_copy(update={
            **changes,
            "workflow_history": self.workflow_history + (entry,),
        })


class TimeSlot(_Model):
    """A computed, bookable start time. Never persisted."""
    date: str
    time: str
    end_time: str
    available: bool
    conflict_count: int = Field(default=0, ge=0, alias="conflicts")
    requires_approval: bool = False
    is_past: bool = False


class PreValidation(_Model):
    """Advisory answer to "can this slot be booked right now?"."""
    can_book: bool
    date: str
    time: str
    duration_minutes: int
    technician_id: Optional[str] = None
    requires_approval: bool = False
