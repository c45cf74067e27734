"""
Conflict detection against the reservation projection.

Two reservations conflict when their [start, end) ranges overlap on the
same date and either
  * no technician is named and, at some minute of that range, every
    bay is already held, or
  * a technician is named and that technician already holds an
    overlapping non-terminal appointment.

Reads are lock-free snapshots. The authoritative check runs again inside
the booking transaction's critical section.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from service_scheduler.data.appointments import AppointmentStore
from service_scheduler.data.centers import CenterDirectory
from service_scheduler.errors import ConflictError
from service_scheduler.schemas.appointment_schema import Appointment
from service_scheduler.utils import ranges_overlap


@dataclass
class ConflictCheck:
    """Outcome of a single conflict check."""
    has_conflict: bool
    conflict_count: int = 0
    conflicting: Optional[Appointment] = None
    technician_id: Optional[str] = None
    overlapping: list[Appointment] = field(default_factory=list)

    @property
    def conflicting_appointment_id(self) -> Optional[str]:
        return self.conflicting.id if self.conflicting else None

    def summary(self) -> Optional[dict[str, Any]]:
        if self.conflicting is None:
            return None
        apt = self.conflicting
        return {
            "id": apt.id,
            "number": apt.number,
            "technicianId": apt.assigned_technician_id,
            "date": apt.scheduled_date.isoformat(),
            "startTime": apt.scheduled_time,
            "endTime": apt.end_time,
        }

    def to_error(self) -> ConflictError:
        if self.technician_id is not None:
            message = f"Technician {self.technician_id} is not available during this time slot"
        else:
            message = "Time slot conflicts with existing appointments"
        return ConflictError(
            message,
            conflicting_appointment=self.summary(),
            conflict_count=self.conflict_count,
            technician_id=self.technician_id,
        )


def peak_occupancy(reservations: list[Appointment], start: int, end: int) -> int:
    """Most reservations holding a bay at the same minute within [start, end)."""
    events = []
    for apt in reservations:
        events.append((max(start, apt.start_minutes), 1))
        events.append((min(end, apt.end_minutes), -1))
    peak = held = 0
    # Releases sort before claims at the same minute, so back-to-back bookings share a bay.
    for _, delta in sorted(events):
        held += delta
        peak = max(peak, held)
    return peak


def evaluate(
    reservations: list[Appointment],
    start: int,
    end: int,
    total_bays: int,
    technician_id: Optional[str] = None,
) -> ConflictCheck:
    """Pure conflict evaluation over an already-fetched reservation snapshot."""
    overlapping = [
        apt for apt in reservations
        if ranges_overlap(start, end, apt.start_minutes, apt.end_minutes)
    ]

    if technician_id is not None:
        held = [apt for apt in overlapping if apt.assigned_technician_id == technician_id]
        return ConflictCheck(
            has_conflict=bool(held),
            conflict_count=len(held),
            conflicting=held[0] if held else None,
            technician_id=technician_id,
            overlapping=overlapping,
        )

    full = peak_occupancy(overlapping, start, end) >= total_bays
    return ConflictCheck(
        has_conflict=full,
        conflict_count=len(overlapping),
        conflicting=overlapping[0] if full else None,
        overlapping=overlapping,
    )


class ConflictDetector:
    """Checks candidate bookings against the current reservation set."""

    def __init__(self, store: AppointmentStore, centers: CenterDirectory) -> None:
        self._store = store
        self._centers = centers

    def reservations(
        self, center_id: str, day: date, exclude_id: Optional[str] = None
    ) -> list[Appointment]:
        return self._store.active_for(center_id, day, exclude_id=exclude_id)

    def has_conflict(
        self,
        center_id: str,
        day: date,
        start: int,
        duration_minutes: int,
        technician_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> ConflictCheck:
        """
        Check one candidate slot.

        Args:
            start: Start time in minutes since midnight.
            exclude_id: Appointment to ignore (used when moving or reassigning it).
        """
        center = self._centers.get(center_id)
        return evaluate(
            self.reservations(center_id, day, exclude_id=exclude_id),
            start,
            start + duration_minutes,
            center.total_bays,
            technician_id,
        )
